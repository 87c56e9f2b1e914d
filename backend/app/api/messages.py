"""HTTP endpoints for posting, forwarding, deleting and reacting to messages."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_message_in_conversation, require_conversation
from app.api.serialization import reaction_summary, serialize_message
from app.database import get_db
from app.models import Conversation, Message, MessageReaction, User
from app.schemas import MessageCreate, MessageForward, MessageRead, ReactionRequest
from app.services import get_event_router

router = APIRouter(prefix="/conversations/{conversation_id}/messages", tags=["messages"])


def _touch(conversation: Conversation) -> None:
    conversation.last_message_at = datetime.now(timezone.utc)


def _publish_new(message: Message) -> MessageRead:
    data = serialize_message(message)
    get_event_router().new_message(message.conversation_id, data.model_dump(mode="json"))
    return data


def _publish_reaction(message: Message, user_id: int, emoji: str | None) -> None:
    summary = [item.model_dump() for item in reaction_summary(message)]
    get_event_router().message_reaction(message.conversation_id, message.id, user_id, emoji, summary)


@router.post("", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    """Post a message, optionally as a reply to one in the same conversation."""

    conversation = require_conversation(conversation_id, current_user.id, db)

    if payload.reply_to is not None:
        parent = db.get(Message, payload.reply_to)
        if parent is None or parent.conversation_id != conversation.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Reply target must belong to the same conversation",
            )

    message = Message(
        conversation_id=conversation.id,
        sender_id=current_user.id,
        content=payload.content,
        format=payload.format,
        reply_to_id=payload.reply_to,
    )
    db.add(message)
    _touch(conversation)
    db.commit()
    db.refresh(message)
    return _publish_new(message)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    conversation_id: int,
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    require_conversation(conversation_id, current_user.id, db)
    message = get_message_in_conversation(conversation_id, message_id, db)
    if message.sender_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the sender can delete this message",
        )

    db.execute(update(Message).where(Message.reply_to_id == message.id).values(reply_to_id=None))
    db.delete(message)
    db.commit()
    get_event_router().message_deleted(conversation_id, message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{message_id}/forward", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def forward_message(
    conversation_id: int,
    message_id: int,
    payload: MessageForward,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    """Copy a message into another conversation the caller belongs to."""

    require_conversation(conversation_id, current_user.id, db)
    original = get_message_in_conversation(conversation_id, message_id, db)
    target = require_conversation(payload.conversation_id, current_user.id, db)

    copy = Message(
        conversation_id=target.id,
        sender_id=current_user.id,
        content=original.content,
        format=original.format,
        is_forwarded=True,
    )
    db.add(copy)
    _touch(target)
    db.commit()
    db.refresh(copy)
    return _publish_new(copy)


@router.put("/{message_id}/reaction", response_model=MessageRead)
async def react_to_message(
    conversation_id: int,
    message_id: int,
    payload: ReactionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    """Set the caller's reaction, replacing any previous one."""

    require_conversation(conversation_id, current_user.id, db)
    message = get_message_in_conversation(conversation_id, message_id, db)

    stmt = select(MessageReaction).where(
        MessageReaction.message_id == message.id,
        MessageReaction.user_id == current_user.id,
    )
    reaction = db.execute(stmt).scalar_one_or_none()
    if reaction is None:
        db.add(MessageReaction(message_id=message.id, user_id=current_user.id, emoji=payload.emoji))
    else:
        reaction.emoji = payload.emoji
    db.commit()
    db.refresh(message)

    _publish_reaction(message, current_user.id, payload.emoji)
    return serialize_message(message)


@router.delete("/{message_id}/reaction", status_code=status.HTTP_204_NO_CONTENT)
async def remove_reaction(
    conversation_id: int,
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    require_conversation(conversation_id, current_user.id, db)
    message = get_message_in_conversation(conversation_id, message_id, db)

    stmt = select(MessageReaction).where(
        MessageReaction.message_id == message.id,
        MessageReaction.user_id == current_user.id,
    )
    reaction = db.execute(stmt).scalar_one_or_none()
    if reaction is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reaction not found")

    db.delete(reaction)
    db.commit()
    db.refresh(message)

    _publish_reaction(message, current_user.id, None)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
