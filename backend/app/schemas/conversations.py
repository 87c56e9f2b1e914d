"""Schemas describing conversations and their membership."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, constr, field_validator

from app.schemas.messages import MessageRead
from app.schemas.users import UserRead


class ConversationCreate(BaseModel):
    """Payload for starting a conversation.

    A single member starts (or reuses) a direct conversation; more members
    create a group, which must be named.
    """

    name: constr(strip_whitespace=True, max_length=64) = ""
    members: list[int] = Field(..., min_length=1, description="Other participants")

    @field_validator("members")
    @classmethod
    def deduplicate_members(cls, value: list[int]) -> list[int]:
        return list(dict.fromkeys(value))


class ConversationRename(BaseModel):
    name: constr(strip_whitespace=True, min_length=1, max_length=64)


class MemberAdd(BaseModel):
    user_id: int


class ConversationSummary(BaseModel):
    """Conversation entry as shown in a conversation list."""

    id: int
    name: str
    picture: str | None = None
    is_group: bool
    members: list[int] = []
    last_message: MessageRead | None = None
    last_message_at: datetime | None = None


class ConversationDetail(ConversationSummary):
    """Conversation including member profiles and its message history."""

    participants: list[UserRead] = []
    messages: list[MessageRead] = []
