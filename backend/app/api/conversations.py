"""HTTP endpoints for conversations and their membership."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.api.deps import (
    get_conversation_member,
    get_current_user,
    get_user_or_404,
    require_conversation,
    require_group,
)
from app.api.serialization import serialize_detail, serialize_summary
from app.database import get_db
from app.models import Conversation, ConversationMember, Message, MessageState, User
from app.schemas import (
    ConversationCreate,
    ConversationDetail,
    ConversationRename,
    ConversationSummary,
    MemberAdd,
    PhotoUpdate,
)
from app.services import get_event_router

router = APIRouter(prefix="/conversations", tags=["conversations"])

logger = logging.getLogger(__name__)


def _find_direct_conversation(user_id: int, other_id: int, db: Session) -> Conversation | None:
    stmt = (
        select(Conversation)
        .join(ConversationMember)
        .where(
            Conversation.is_group.is_(False),
            ConversationMember.user_id.in_((user_id, other_id)),
        )
        .group_by(Conversation.id)
        .having(func.count(ConversationMember.id) == 2)
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def _publish_update(conversation: Conversation, action: str, db: Session) -> None:
    summary = serialize_summary(conversation, db)
    get_event_router().conversation_updated(conversation.id, action, summary.model_dump(mode="json"))


def _advance_state(
    user_id: int,
    conversation_ids: list[int],
    pending: tuple[MessageState, ...],
    target: MessageState,
    db: Session,
) -> list[Message]:
    """Move incoming messages in ``pending`` states to ``target``; returns the changed rows."""

    if not conversation_ids:
        return []
    stmt = select(Message).where(
        Message.conversation_id.in_(conversation_ids),
        Message.sender_id != user_id,
        Message.state.in_(pending),
    )
    messages = list(db.execute(stmt).scalars())
    for message in messages:
        message.state = target
    return messages


@router.post("", response_model=ConversationSummary, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    payload: ConversationCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ConversationSummary:
    """Start a conversation.

    A single other member yields a direct conversation, reusing an existing one
    with that user when present. Larger member lists create a named group.
    """

    member_ids = [user_id for user_id in payload.members if user_id != current_user.id]
    if not member_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A conversation needs at least one other member",
        )
    for user_id in member_ids:
        get_user_or_404(user_id, db)

    is_group = len(member_ids) > 1
    if not is_group:
        existing = _find_direct_conversation(current_user.id, member_ids[0], db)
        if existing is not None:
            response.status_code = status.HTTP_200_OK
            return serialize_summary(existing, db)
    elif not payload.name:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Group conversations require a name",
        )

    conversation = Conversation(name=payload.name, is_group=is_group)
    conversation.members = [
        ConversationMember(user_id=user_id) for user_id in [current_user.id, *member_ids]
    ]
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    logger.info(
        "User %s created %s conversation %s",
        current_user.id,
        "group" if is_group else "direct",
        conversation.id,
    )

    _publish_update(conversation, "created", db)
    return serialize_summary(conversation, db)


@router.get("", response_model=list[ConversationSummary])
async def list_conversations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[ConversationSummary]:
    """List the caller's conversations, most recent activity first.

    Incoming messages still marked as sent are acknowledged as received.
    """

    stmt = (
        select(Conversation)
        .join(ConversationMember)
        .where(ConversationMember.user_id == current_user.id)
        .order_by(func.coalesce(Conversation.last_message_at, Conversation.created_at).desc(), Conversation.id.desc())
    )
    conversations = list(db.execute(stmt).scalars())

    received = _advance_state(
        current_user.id,
        [conversation.id for conversation in conversations],
        (MessageState.SENT,),
        MessageState.RECEIVED,
        db,
    )
    if received:
        by_conversation: dict[int, list[int]] = {}
        for message in received:
            by_conversation.setdefault(message.conversation_id, []).append(message.id)
        db.commit()
        events = get_event_router()
        for updated_conversation_id, message_ids in by_conversation.items():
            events.message_updated(updated_conversation_id, message_ids, MessageState.RECEIVED.value)

    return [serialize_summary(conversation, db) for conversation in conversations]


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    conversation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ConversationDetail:
    """Return the conversation with its history and mark incoming messages as read."""

    conversation = require_conversation(conversation_id, current_user.id, db)

    read = _advance_state(
        current_user.id,
        [conversation.id],
        (MessageState.SENT, MessageState.RECEIVED),
        MessageState.READ,
        db,
    )
    if read:
        message_ids = [message.id for message in read]
        db.commit()
        events = get_event_router()
        events.message_updated(conversation.id, message_ids, MessageState.READ.value)
        events.messages_read(conversation.id, current_user.id, message_ids)

    return serialize_detail(conversation, db)


@router.post("/{conversation_id}/members", response_model=ConversationSummary)
async def add_member(
    conversation_id: int,
    payload: MemberAdd,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ConversationSummary:
    conversation = require_conversation(conversation_id, current_user.id, db)
    require_group(conversation)
    get_user_or_404(payload.user_id, db)

    if get_conversation_member(conversation.id, payload.user_id, db) is None:
        db.add(ConversationMember(conversation_id=conversation.id, user_id=payload.user_id))
        db.commit()
        db.refresh(conversation)
        _publish_update(conversation, "member_added", db)

    return serialize_summary(conversation, db)


@router.delete("/{conversation_id}/members/me", status_code=status.HTTP_204_NO_CONTENT)
async def leave_conversation(
    conversation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    """Leave a conversation; the last member leaving deletes it."""

    conversation = require_conversation(conversation_id, current_user.id, db)
    membership = get_conversation_member(conversation.id, current_user.id, db)
    db.delete(membership)
    db.flush()
    db.refresh(conversation)

    if not conversation.members:
        db.delete(conversation)
        db.commit()
        logger.info("Conversation %s removed after its last member left", conversation_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    db.commit()
    db.refresh(conversation)
    _publish_update(conversation, "member_left", db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{conversation_id}/name", response_model=ConversationSummary)
async def rename_conversation(
    conversation_id: int,
    payload: ConversationRename,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ConversationSummary:
    conversation = require_conversation(conversation_id, current_user.id, db)
    require_group(conversation)

    conversation.name = payload.name
    db.commit()
    db.refresh(conversation)
    _publish_update(conversation, "renamed", db)
    return serialize_summary(conversation, db)


@router.put("/{conversation_id}/photo", response_model=ConversationSummary)
async def update_conversation_photo(
    conversation_id: int,
    payload: PhotoUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ConversationSummary:
    conversation = require_conversation(conversation_id, current_user.id, db)
    require_group(conversation)

    conversation.picture = payload.photo
    db.commit()
    db.refresh(conversation)
    _publish_update(conversation, "photo", db)
    return serialize_summary(conversation, db)
