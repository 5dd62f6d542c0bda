"""Chat API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from tutorcore.modules.chat.schemas import ChatRoomRead, ReconcileRequest, ReconciliationReportRead
from tutorcore.modules.chat.service import ChatProvisioner, get_chat_provisioner
from tutorcore.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/rooms", response_model=ChatRoomRead)
async def get_room(
    teacher_id: UUID,
    student_id: UUID,
    service: ChatProvisioner = Depends(get_chat_provisioner),
) -> ChatRoomRead:
    """Get the room for a teacher/student pair."""
    room = await service.get_room(teacher_id, student_id)
    return ChatRoomRead.model_validate(room)


@router.get("/users/{user_id}/rooms", response_model=Page[ChatRoomRead])
async def list_user_rooms(
    user_id: UUID,
    pagination=Depends(get_pagination_params),
    service: ChatProvisioner = Depends(get_chat_provisioner),
) -> Page[ChatRoomRead]:
    """List rooms a user takes part in."""
    items, total = await service.list_rooms_for_user(user_id, pagination.limit, pagination.offset)
    serialized = [ChatRoomRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.post("/reconcile", response_model=ReconciliationReportRead)
async def reconcile_rooms(
    payload: ReconcileRequest,
    service: ChatProvisioner = Depends(get_chat_provisioner),
) -> ReconciliationReportRead:
    """Backfill missing chat rooms (admin)."""
    report = await service.reconcile(payload.limit)
    return ReconciliationReportRead.model_validate(report)
