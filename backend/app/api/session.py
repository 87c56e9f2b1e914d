"""Session handshake: log in by username, registering unknown names."""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.security import create_user_token
from app.database import get_db
from app.models import User
from app.schemas import SessionRequest, SessionResponse

router = APIRouter(tags=["session"])

logger = logging.getLogger(__name__)


def _find_user(name: str, db: Session) -> User | None:
    stmt = select(User).where(func.lower(User.username) == name.lower())
    return db.execute(stmt).scalar_one_or_none()


@router.post("/session", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(payload: SessionRequest, response: Response, db: Session = Depends(get_db)) -> SessionResponse:
    """Return a bearer token for ``name``, creating the user on first login."""

    user = _find_user(payload.name, db)
    if user is not None:
        response.status_code = status.HTTP_200_OK
    else:
        user = User(username=payload.name)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Registered concurrently under the same name.
            db.rollback()
            user = _find_user(payload.name, db)
            if user is None:
                raise
            response.status_code = status.HTTP_200_OK
        else:
            db.refresh(user)
            logger.info("Registered user %s (%s)", user.id, user.username)

    return SessionResponse(identifier=create_user_token(user.id), user_id=user.id)
