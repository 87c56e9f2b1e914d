from fastapi import APIRouter

from app.api.comments import router as comments_router
from app.api.contacts import router as contacts_router
from app.api.conversations import router as conversations_router
from app.api.messages import router as messages_router
from app.api.session import router as session_router
from app.api.users import router as users_router

router = APIRouter()

router.include_router(session_router)
router.include_router(users_router)
router.include_router(contacts_router)
router.include_router(conversations_router)
router.include_router(messages_router)
router.include_router(comments_router)


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Welcome to the Parley API"}
