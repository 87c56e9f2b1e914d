"""Personal address book."""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_user_or_404
from app.database import get_db
from app.models import Contact, User
from app.schemas import ContactCreate, UserRead

router = APIRouter(prefix="/contacts", tags=["contacts"])


def _get_contact(user_id: int, contact_id: int, db: Session) -> Contact | None:
    stmt = select(Contact).where(Contact.user_id == user_id, Contact.contact_id == contact_id)
    return db.execute(stmt).scalar_one_or_none()


@router.get("", response_model=list[UserRead])
def list_contacts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[User]:
    stmt = (
        select(User)
        .join(Contact, Contact.contact_id == User.id)
        .where(Contact.user_id == current_user.id)
        .order_by(User.username)
    )
    return list(db.execute(stmt).scalars())


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def add_contact(
    payload: ContactCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> User:
    if payload.user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot add yourself as a contact")
    contact = get_user_or_404(payload.user_id, db)

    if _get_contact(current_user.id, contact.id, db) is not None:
        response.status_code = status.HTTP_200_OK
        return contact

    db.add(Contact(user_id=current_user.id, contact_id=contact.id))
    db.commit()
    return contact


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_contact(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    entry = _get_contact(current_user.id, user_id, db)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")
    db.delete(entry)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
