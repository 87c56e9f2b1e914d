"""Comments attached to individual messages."""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_message_in_conversation, require_conversation
from app.api.serialization import serialize_comment
from app.database import get_db
from app.models import MessageComment, User
from app.schemas import CommentCreate, CommentRead
from app.services import get_event_router

router = APIRouter(
    prefix="/conversations/{conversation_id}/messages/{message_id}/comments",
    tags=["comments"],
)


@router.get("", response_model=list[CommentRead])
def list_comments(
    conversation_id: int,
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[CommentRead]:
    require_conversation(conversation_id, current_user.id, db)
    message = get_message_in_conversation(conversation_id, message_id, db)
    return [serialize_comment(comment) for comment in message.comments]


@router.post("", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
def add_comment(
    conversation_id: int,
    message_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CommentRead:
    require_conversation(conversation_id, current_user.id, db)
    message = get_message_in_conversation(conversation_id, message_id, db)

    comment = MessageComment(message_id=message.id, user_id=current_user.id, content=payload.content)
    db.add(comment)
    db.commit()
    db.refresh(comment)

    data = serialize_comment(comment)
    get_event_router().message_comment(
        conversation_id,
        message.id,
        action="added",
        comment_id=comment.id,
        comment=data.model_dump(mode="json"),
    )
    return data


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    conversation_id: int,
    message_id: int,
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    require_conversation(conversation_id, current_user.id, db)
    get_message_in_conversation(conversation_id, message_id, db)

    comment = db.get(MessageComment, comment_id)
    if comment is None or comment.message_id != message_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
    if comment.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the author can delete this comment",
        )

    db.delete(comment)
    db.commit()
    get_event_router().message_comment(
        conversation_id,
        message_id,
        action="removed",
        comment_id=comment_id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
