"""Chat provisioning business logic layer."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorcore.core.config import get_settings
from tutorcore.core.database import get_db_session
from tutorcore.core.metrics import CHAT_ROOMS_CREATED_TOTAL
from tutorcore.modules.audit.repository import AuditRepository
from tutorcore.modules.chat.models import ChatRoom
from tutorcore.modules.chat.repository import ChatRepository
from tutorcore.shared.exceptions import BusinessRuleException, NotFoundException

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass(slots=True)
class ReconciliationReport:
    scanned: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0


class ChatProvisioner:
    """Keeps exactly one chat room per teacher/student pair with a booking.

    Rooms are created on the booking activation path inside the caller's
    transaction. ``reconcile`` backfills pairs that slipped through, e.g.
    bookings written before provisioning existed.
    """

    def __init__(self, repository: ChatRepository, audit_repository: AuditRepository) -> None:
        self.repository = repository
        self.audit_repository = audit_repository

    async def ensure_room(
        self,
        teacher_id: UUID,
        student_id: UUID,
        source: str = "booking",
    ) -> tuple[ChatRoom, bool]:
        """Return the pair's room, creating it if no row exists.

        A soft-deleted room is returned unchanged and never recreated.
        """
        if teacher_id == student_id:
            raise BusinessRuleException("Chat room requires two distinct users")

        room, created = await self.repository.create_room_if_absent(teacher_id, student_id)
        if created:
            CHAT_ROOMS_CREATED_TOTAL.labels(source=source).inc()
            logger.info(
                "Chat room created: room_id=%s teacher_id=%s student_id=%s source=%s",
                room.id,
                teacher_id,
                student_id,
                source,
            )
        return room, created

    async def reconcile(self, limit: int | None = None) -> ReconciliationReport:
        """Create rooms for every booked pair that has none."""
        batch_size = limit or settings.chat_reconciliation_batch_size
        pairs = await self.repository.find_missing_pairs(batch_size)
        report = ReconciliationReport(scanned=len(pairs))

        for teacher_id, student_id in pairs:
            try:
                async with self.repository.savepoint():
                    _, created = await self.ensure_room(teacher_id, student_id, source="reconciliation")
            except Exception:
                report.failed += 1
                logger.exception(
                    "Chat reconciliation failed: teacher_id=%s student_id=%s",
                    teacher_id,
                    student_id,
                )
                continue
            if created:
                report.created += 1
            else:
                report.skipped += 1

        if report.scanned:
            await self.audit_repository.create_audit_log(
                actor_id=None,
                action="chat.reconcile",
                entity_type="chat_room",
                entity_id=None,
                payload=asdict(report),
            )
        logger.info(
            "Chat reconciliation finished: scanned=%s created=%s skipped=%s failed=%s",
            report.scanned,
            report.created,
            report.skipped,
            report.failed,
        )
        return report

    async def get_room(self, teacher_id: UUID, student_id: UUID) -> ChatRoom:
        room = await self.repository.get_room(teacher_id, student_id)
        if room is None:
            raise NotFoundException("Chat room not found")
        return room

    async def list_rooms_for_user(
        self,
        user_id: UUID,
        limit: int,
        offset: int,
    ) -> tuple[list[ChatRoom], int]:
        return await self.repository.list_rooms_for_user(user_id, limit, offset)


def build_chat_provisioner(session: AsyncSession) -> ChatProvisioner:
    return ChatProvisioner(ChatRepository(session), AuditRepository(session))


async def get_chat_provisioner(session: AsyncSession = Depends(get_db_session)) -> ChatProvisioner:
    """Dependency provider for chat provisioner."""
    return build_chat_provisioner(session)
