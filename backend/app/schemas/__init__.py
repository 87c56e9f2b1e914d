"""Pydantic schemas for API payloads."""

from .contacts import ContactCreate
from .conversations import (
    ConversationCreate,
    ConversationDetail,
    ConversationRename,
    ConversationSummary,
    MemberAdd,
)
from .messages import (
    CommentCreate,
    CommentRead,
    MessageCreate,
    MessageForward,
    MessageRead,
    MessageReactionSummary,
    ReactionRequest,
    ReplyPreview,
)
from .users import PhotoUpdate, SessionRequest, SessionResponse, UsernameUpdate, UserRead

__all__ = [
    "SessionRequest",
    "SessionResponse",
    "UserRead",
    "UsernameUpdate",
    "PhotoUpdate",
    "ConversationCreate",
    "ConversationRename",
    "ConversationSummary",
    "ConversationDetail",
    "MemberAdd",
    "MessageCreate",
    "MessageForward",
    "MessageRead",
    "MessageReactionSummary",
    "ReactionRequest",
    "ReplyPreview",
    "CommentCreate",
    "CommentRead",
    "ContactCreate",
]
