"""Turns committed domain changes into addressed realtime events."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Protocol, Sequence

from app.monitoring.metrics import realtime_events_dropped_total

from .events import (
    ConversationUpdate,
    Event,
    EventPayload,
    MessageComment,
    MessageDeleted,
    MessageReaction,
    MessageRead,
    MessageUpdate,
    NewMessage,
    ProfileUpdate,
    SystemNotice,
)
from .hub import RealtimeHub


logger = logging.getLogger(__name__)


class RecipientResolutionError(LookupError):
    """Recipients for an event could not be determined."""


class ConversationNotFoundError(RecipientResolutionError):
    def __init__(self, conversation_id: int) -> None:
        super().__init__(f"Conversation {conversation_id} does not exist")
        self.conversation_id = conversation_id


class MembershipResolver(Protocol):
    def conversation_members(self, conversation_id: int) -> Sequence[int]:
        """Return member user ids or raise :class:`ConversationNotFoundError`."""

    def user_conversations(self, user_id: int) -> Sequence[int]:
        """Return ids of every conversation the user belongs to."""


class EventRouter:
    """Resolve recipients from current membership and submit events to the hub.

    Must be called after the triggering write has committed. Every method
    returns whether an event was submitted and never raises: fan-out trouble
    is logged and the event is dropped.
    """

    def __init__(self, hub: RealtimeHub, resolver: MembershipResolver) -> None:
        self.hub = hub
        self.resolver = resolver

    # Conversation scoped events -------------------------------------------

    def new_message(self, conversation_id: int, message: Mapping[str, Any]) -> bool:
        return self._to_conversation(conversation_id, NewMessage(message=message))

    def message_updated(self, conversation_id: int, message_ids: Iterable[int], state: str) -> bool:
        payload = MessageUpdate(message_ids=tuple(message_ids), state=state)
        return self._to_conversation(conversation_id, payload)

    def messages_read(
        self,
        conversation_id: int,
        user_id: int,
        message_ids: Iterable[int],
        read_at: datetime | None = None,
    ) -> bool:
        payload = MessageRead(
            user_id=user_id,
            message_ids=tuple(message_ids),
            read_at=read_at or datetime.now(timezone.utc),
        )
        return self._to_conversation(conversation_id, payload)

    def message_reaction(
        self,
        conversation_id: int,
        message_id: int,
        user_id: int,
        emoji: str | None,
        reactions: Iterable[Mapping[str, Any]] = (),
    ) -> bool:
        payload = MessageReaction(
            message_id=message_id,
            user_id=user_id,
            emoji=emoji,
            reactions=tuple(reactions),
        )
        return self._to_conversation(conversation_id, payload)

    def message_deleted(self, conversation_id: int, message_id: int) -> bool:
        return self._to_conversation(conversation_id, MessageDeleted(message_id=message_id))

    def message_comment(
        self,
        conversation_id: int,
        message_id: int,
        *,
        action: str,
        comment_id: int,
        comment: Mapping[str, Any] | None = None,
    ) -> bool:
        payload = MessageComment(
            message_id=message_id,
            action=action,
            comment_id=comment_id,
            comment=comment,
        )
        return self._to_conversation(conversation_id, payload)

    def conversation_updated(
        self, conversation_id: int, action: str, conversation: Mapping[str, Any]
    ) -> bool:
        return self._to_conversation(
            conversation_id, ConversationUpdate(action=action, conversation=conversation)
        )

    # User scoped events ---------------------------------------------------

    def profile_updated(self, user_id: int, username: str, profile_picture: str | None) -> bool:
        """Notify everyone sharing a conversation with ``user_id``, plus the user's own devices."""

        payload = ProfileUpdate(user_id=user_id, username=username, profile_picture=profile_picture)
        recipients: set[int] = {user_id}
        try:
            for conversation_id in self.resolver.user_conversations(user_id):
                try:
                    recipients.update(self.resolver.conversation_members(conversation_id))
                except ConversationNotFoundError:
                    # Removed between the two lookups.
                    continue
        except Exception:
            return self._drop(payload, "resolution_failed", f"conversations of user {user_id}")

        return self.hub.submit(Event.build(payload, recipients=recipients))

    def system_notice(self, message: str) -> bool:
        """Send a notice to every connected client."""

        return self.hub.submit(Event.build(SystemNotice(message=message)))

    # Helpers ----------------------------------------------------------------

    def _to_conversation(self, conversation_id: int, payload: EventPayload) -> bool:
        try:
            members = self.resolver.conversation_members(conversation_id)
        except ConversationNotFoundError:
            return self._drop(payload, "resolution_failed", f"missing conversation {conversation_id}")
        except Exception:
            return self._drop(payload, "resolution_failed", f"conversation {conversation_id}")

        if not members:
            # An empty recipient set means broadcast to the hub, never fall back to it here.
            return self._drop(payload, "no_recipients", f"conversation {conversation_id}")

        event = Event.build(payload, recipients=members, conversation_id=conversation_id)
        return self.hub.submit(event)

    def _drop(self, payload: EventPayload, reason: str, target: str) -> bool:
        kind = payload.kind.value
        if reason == "resolution_failed":
            logger.warning(
                "Dropping %s event: recipients for %s could not be resolved",
                kind,
                target,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
        else:
            logger.info("Dropping %s event: no recipients for %s", kind, target)
        realtime_events_dropped_total.labels(kind, reason).inc()
        return False


__all__ = [
    "EventRouter",
    "MembershipResolver",
    "RecipientResolutionError",
    "ConversationNotFoundError",
]
