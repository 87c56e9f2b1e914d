"""Typed realtime events and their JSON wire form."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Iterable, Mapping


class EventKind(str, Enum):
    """Discriminator sent to clients as the ``type`` field."""

    NEW_MESSAGE = "new_message"
    MESSAGE_UPDATE = "message_update"
    MESSAGE_READ = "message_read"
    MESSAGE_REACTION = "message_reaction"
    MESSAGE_DELETED = "message_deleted"
    MESSAGE_COMMENT = "message_comment"
    PROFILE_UPDATE = "profile_update"
    CONVERSATION_UPDATE = "conversation_update"
    SYSTEM_NOTICE = "system_notice"


@dataclass(frozen=True, slots=True)
class NewMessage:
    kind: ClassVar[EventKind] = EventKind.NEW_MESSAGE

    message: Mapping[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {"message": dict(self.message)}


@dataclass(frozen=True, slots=True)
class MessageUpdate:
    kind: ClassVar[EventKind] = EventKind.MESSAGE_UPDATE

    message_ids: tuple[int, ...]
    state: str

    def to_payload(self) -> dict[str, Any]:
        return {"message_ids": list(self.message_ids), "state": self.state}


@dataclass(frozen=True, slots=True)
class MessageRead:
    kind: ClassVar[EventKind] = EventKind.MESSAGE_READ

    user_id: int
    message_ids: tuple[int, ...]
    read_at: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "message_ids": list(self.message_ids),
            "read_at": self.read_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class MessageReaction:
    """Reaction set or cleared; ``emoji`` is ``None`` when the user removed theirs."""

    kind: ClassVar[EventKind] = EventKind.MESSAGE_REACTION

    message_id: int
    user_id: int
    emoji: str | None
    reactions: tuple[Mapping[str, Any], ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "user_id": self.user_id,
            "emoji": self.emoji,
            "reactions": [dict(item) for item in self.reactions],
        }


@dataclass(frozen=True, slots=True)
class MessageDeleted:
    kind: ClassVar[EventKind] = EventKind.MESSAGE_DELETED

    message_id: int

    def to_payload(self) -> dict[str, Any]:
        return {"message_id": self.message_id}


@dataclass(frozen=True, slots=True)
class MessageComment:
    kind: ClassVar[EventKind] = EventKind.MESSAGE_COMMENT

    message_id: int
    action: str
    comment_id: int
    comment: Mapping[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "action": self.action,
            "comment_id": self.comment_id,
            "comment": dict(self.comment) if self.comment is not None else None,
        }


@dataclass(frozen=True, slots=True)
class ProfileUpdate:
    kind: ClassVar[EventKind] = EventKind.PROFILE_UPDATE

    user_id: int
    username: str
    profile_picture: str | None

    def to_payload(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "profile_picture": self.profile_picture,
        }


@dataclass(frozen=True, slots=True)
class ConversationUpdate:
    kind: ClassVar[EventKind] = EventKind.CONVERSATION_UPDATE

    action: str
    conversation: Mapping[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {"action": self.action, "conversation": dict(self.conversation)}


@dataclass(frozen=True, slots=True)
class SystemNotice:
    kind: ClassVar[EventKind] = EventKind.SYSTEM_NOTICE

    message: str

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message}


EventPayload = (
    NewMessage
    | MessageUpdate
    | MessageRead
    | MessageReaction
    | MessageDeleted
    | MessageComment
    | ProfileUpdate
    | ConversationUpdate
    | SystemNotice
)


def encode_frame(data: Mapping[str, Any]) -> str:
    """Serialize a frame the way every outbound message is written."""

    return json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str)


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable fan-out request handed to the hub.

    ``recipients`` is resolved before submission. An empty set addresses
    every connected client and is reserved for global notices.
    """

    payload: EventPayload
    conversation_id: int | None = None
    recipients: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def build(
        cls,
        payload: EventPayload,
        *,
        recipients: Iterable[int] = (),
        conversation_id: int | None = None,
    ) -> "Event":
        return cls(
            payload=payload,
            conversation_id=conversation_id,
            recipients=frozenset(int(user_id) for user_id in recipients),
        )

    @property
    def kind(self) -> EventKind:
        return self.payload.kind

    @property
    def is_broadcast(self) -> bool:
        return not self.recipients

    def to_wire(self) -> dict[str, Any]:
        # recipients stay server side
        return {
            "type": self.kind.value,
            "conversation_id": self.conversation_id,
            "payload": self.payload.to_payload(),
        }

    def encode(self) -> str:
        return encode_frame(self.to_wire())


__all__ = [
    "EventKind",
    "Event",
    "EventPayload",
    "NewMessage",
    "MessageUpdate",
    "MessageRead",
    "MessageReaction",
    "MessageDeleted",
    "MessageComment",
    "ProfileUpdate",
    "ConversationUpdate",
    "SystemNotice",
    "encode_frame",
]
