"""Chat schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ChatRoomRead(BaseModel):
    """Chat room response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    teacher_id: UUID
    student_id: UUID
    last_message_at: datetime | None
    created_at: datetime


class ReconciliationReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    scanned: int
    created: int
    skipped: int
    failed: int


class ReconcileRequest(BaseModel):
    limit: int | None = Field(default=None, ge=1, le=10000)
