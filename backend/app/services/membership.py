"""Database backed recipient lookups for the realtime event router."""

from __future__ import annotations

from sqlalchemy import select

from app.database import get_db_session
from app.models import Conversation, ConversationMember
from parley.realtime import ConversationNotFoundError


class SqlMembershipResolver:
    """Reads current membership with a short-lived session per lookup."""

    def conversation_members(self, conversation_id: int) -> list[int]:
        with get_db_session() as db:
            if db.get(Conversation, conversation_id) is None:
                raise ConversationNotFoundError(conversation_id)
            stmt = select(ConversationMember.user_id).where(
                ConversationMember.conversation_id == conversation_id
            )
            return list(db.execute(stmt).scalars())

    def user_conversations(self, user_id: int) -> list[int]:
        with get_db_session() as db:
            stmt = select(ConversationMember.conversation_id).where(ConversationMember.user_id == user_id)
            return list(db.execute(stmt).scalars())
