"""Database models package."""

from .base import Base
from .chat import (
    Contact,
    Conversation,
    ConversationMember,
    Message,
    MessageComment,
    MessageReaction,
    User,
)
from .enums import MessageFormat, MessageState

__all__ = [
    "Base",
    "User",
    "Conversation",
    "ConversationMember",
    "Message",
    "MessageReaction",
    "MessageComment",
    "Contact",
    "MessageFormat",
    "MessageState",
]
