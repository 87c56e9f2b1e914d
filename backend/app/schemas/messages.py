"""Schemas related to messages, reactions and comments."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, constr

from app.config import get_settings
from app.models.enums import MessageFormat, MessageState

settings = get_settings()


class MessageCreate(BaseModel):
    """Payload for posting a message."""

    content: constr(strip_whitespace=True, min_length=1, max_length=settings.message_max_length)
    format: MessageFormat = MessageFormat.TEXT
    reply_to: int | None = Field(default=None, description="Identifier of the message being answered")


class MessageForward(BaseModel):
    conversation_id: int = Field(..., description="Conversation receiving the forwarded copy")


class ReactionRequest(BaseModel):
    emoji: constr(strip_whitespace=True, min_length=1, max_length=32)


class MessageReactionSummary(BaseModel):
    """Aggregated reaction information for a message."""

    emoji: str
    count: int = Field(..., ge=0)


class ReplyPreview(BaseModel):
    """Short excerpt of the message being replied to."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    content: str
    format: MessageFormat


class MessageRead(BaseModel):
    """Serialized representation of a chat message."""

    id: int
    conversation_id: int
    sender_id: int
    sender_name: str
    sender_picture: str | None = None
    content: str
    format: MessageFormat
    state: MessageState
    is_forwarded: bool = False
    reply_to_id: int | None = None
    reply_to: ReplyPreview | None = None
    reactions: list[MessageReactionSummary] = []
    comment_count: int = Field(0, ge=0)
    created_at: datetime


class CommentCreate(BaseModel):
    content: constr(strip_whitespace=True, min_length=1, max_length=settings.message_max_length)


class CommentRead(BaseModel):
    """Comment attached to a message."""

    id: int
    message_id: int
    user_id: int
    sender_name: str
    content: str
    created_at: datetime
