"""Schemas for the personal address book."""

from pydantic import BaseModel


class ContactCreate(BaseModel):
    user_id: int
