from __future__ import annotations

from enum import Enum


class MessageFormat(str, Enum):
    """How the body of a message should be rendered."""

    TEXT = "text"
    PHOTO = "photo"


class MessageState(str, Enum):
    """Delivery progress of a message from the sender's point of view."""

    SENT = "sent"
    RECEIVED = "received"
    READ = "read"
