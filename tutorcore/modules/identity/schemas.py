"""Identity schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from tutorcore.core.enums import RoleEnum


class UserCreate(BaseModel):
    """User registration request."""

    email: EmailStr
    full_name: str = Field(default="", max_length=255)
    role: RoleEnum = RoleEnum.STUDENT


class UserRead(BaseModel):
    """User output schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: EmailStr
    full_name: str
    role: RoleEnum
    is_active: bool
    created_at: datetime


class UserDeletionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user: UserRead
    lessons_deleted: int
    bookings_cancelled: int
    chat_rooms_deleted: int
    messages_deleted: int
