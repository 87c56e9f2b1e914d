"""Conversion of ORM rows into API schemas shared by several routers."""

from __future__ import annotations

from collections import Counter

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Conversation, Message, MessageComment, User
from app.schemas import (
    CommentRead,
    ConversationDetail,
    ConversationSummary,
    MessageRead,
    MessageReactionSummary,
    ReplyPreview,
    UserRead,
)


def reaction_summary(message: Message) -> list[MessageReactionSummary]:
    counts = Counter(reaction.emoji for reaction in message.reactions)
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [MessageReactionSummary(emoji=emoji, count=count) for emoji, count in ordered]


def serialize_message(message: Message) -> MessageRead:
    sender = message.sender
    reply = message.reply_to
    return MessageRead(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        sender_name=sender.username,
        sender_picture=sender.profile_picture,
        content=message.content,
        format=message.format,
        state=message.state,
        is_forwarded=message.is_forwarded,
        reply_to_id=message.reply_to_id,
        reply_to=ReplyPreview.model_validate(reply) if reply is not None else None,
        reactions=reaction_summary(message),
        comment_count=len(message.comments),
        created_at=message.created_at,
    )


def serialize_comment(comment: MessageComment) -> CommentRead:
    return CommentRead(
        id=comment.id,
        message_id=comment.message_id,
        user_id=comment.user_id,
        sender_name=comment.author.username,
        content=comment.content,
        created_at=comment.created_at,
    )


def _last_message(conversation: Conversation, db: Session) -> Message | None:
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation.id)
        .order_by(Message.id.desc())
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def serialize_summary(conversation: Conversation, db: Session) -> ConversationSummary:
    last = _last_message(conversation, db)
    return ConversationSummary(
        id=conversation.id,
        name=conversation.name,
        picture=conversation.picture,
        is_group=conversation.is_group,
        members=conversation.member_ids,
        last_message=serialize_message(last) if last is not None else None,
        last_message_at=conversation.last_message_at,
    )


def serialize_detail(conversation: Conversation, db: Session) -> ConversationDetail:
    summary = serialize_summary(conversation, db)
    participants = sorted((member.user for member in conversation.members), key=lambda user: user.id)
    return ConversationDetail(
        **summary.model_dump(),
        participants=[UserRead.model_validate(user) for user in participants],
        messages=[serialize_message(message) for message in conversation.messages],
    )


def serialize_user(user: User) -> UserRead:
    return UserRead.model_validate(user)
