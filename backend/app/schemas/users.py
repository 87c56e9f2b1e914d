"""Schemas for the session handshake and user profiles."""

from pydantic import BaseModel, ConfigDict, Field, constr

from app.config import get_settings

settings = get_settings()

Username = constr(
    strip_whitespace=True,
    min_length=settings.username_min_length,
    max_length=settings.username_max_length,
)


class SessionRequest(BaseModel):
    """Login payload. Unknown names are registered on the fly."""

    name: Username = Field(..., description="Username to log in as")


class SessionResponse(BaseModel):
    """Bearer token and identifier returned by the session handshake."""

    identifier: str = Field(..., description="Bearer token for subsequent requests")
    user_id: int
    token_type: str = "bearer"


class UserRead(BaseModel):
    """Public representation of a user."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    profile_picture: str | None = None


class UsernameUpdate(BaseModel):
    username: Username


class PhotoUpdate(BaseModel):
    """Picture payload shared by users and group conversations."""

    photo: constr(strip_whitespace=True, min_length=1) = Field(
        ..., description="Image URL or data URI"
    )
