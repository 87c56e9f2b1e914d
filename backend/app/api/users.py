"""User directory and profile endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_user_or_404
from app.database import get_db
from app.models import User
from app.schemas import PhotoUpdate, UsernameUpdate, UserRead
from app.services import get_event_router

router = APIRouter(prefix="/users", tags=["users"])


def _publish_profile(user: User) -> None:
    get_event_router().profile_updated(user.id, user.username, user.profile_picture)


@router.get("", response_model=list[UserRead])
def list_users(
    name: str | None = Query(default=None, max_length=64, description="Case-insensitive substring filter"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[User]:
    """List users ordered by username."""

    stmt = select(User).order_by(User.username)
    if name:
        stmt = stmt.where(func.lower(User.username).contains(name.strip().lower()))
    return list(db.execute(stmt).scalars())


@router.get("/me", response_model=UserRead)
def read_current_user(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@router.get("/{user_id}", response_model=UserRead)
def read_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> User:
    return get_user_or_404(user_id, db)


@router.put("/me/username", response_model=UserRead)
async def update_username(
    payload: UsernameUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> User:
    """Rename the current user and notify everyone sharing a conversation."""

    if payload.username == current_user.username:
        return current_user

    stmt = select(User.id).where(
        func.lower(User.username) == payload.username.lower(),
        User.id != current_user.id,
    )
    if db.execute(stmt).first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username is already taken")

    current_user.username = payload.username
    try:
        db.commit()
    except IntegrityError:
        # Taken concurrently under the same name.
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username is already taken") from None
    db.refresh(current_user)
    _publish_profile(current_user)
    return current_user


@router.put("/me/photo", response_model=UserRead)
async def update_photo(
    payload: PhotoUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> User:
    current_user.profile_picture = payload.photo
    db.commit()
    db.refresh(current_user)
    _publish_profile(current_user)
    return current_user
