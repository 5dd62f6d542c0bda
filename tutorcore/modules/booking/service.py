"""Booking business logic layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorcore.core.database import get_db_session
from tutorcore.core.enums import BookingStatusEnum, CancelResultEnum, RoleEnum
from tutorcore.core.metrics import BOOKING_REJECTIONS_TOTAL, BOOKING_TRANSITIONS_TOTAL
from tutorcore.modules.audit.repository import AuditRepository
from tutorcore.modules.billing.service import CreditLedgerService, LedgerResult, build_credit_ledger
from tutorcore.modules.booking.models import Booking
from tutorcore.modules.booking.repository import OPEN_STATUSES, BookingRepository
from tutorcore.modules.chat.service import ChatProvisioner, build_chat_provisioner
from tutorcore.modules.identity.repository import IdentityRepository
from tutorcore.modules.lessons.guard import OverbookingGuard
from tutorcore.modules.lessons.models import Lesson
from tutorcore.modules.lessons.repository import LessonsRepository
from tutorcore.shared.exceptions import (
    AppException,
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    OrphanReferenceException,
)
from tutorcore.shared.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TransitionResult:
    """Booking after a transition plus the side effects it produced."""

    booking: Booking
    ledger: LedgerResult | None = None
    chat_room_id: UUID | None = None
    chat_room_created: bool = False
    cancel_result: CancelResultEnum | None = None


class BookingService:
    """Booking state machine.

    Every transition locks the lesson row first, then the booking row, and
    only then touches credits and chat rooms. Callers own the transaction,
    so any raised exception leaves no partial effect behind.
    """

    def __init__(
        self,
        repository: BookingRepository,
        lessons_repository: LessonsRepository,
        identity_repository: IdentityRepository,
        ledger: CreditLedgerService,
        chat: ChatProvisioner,
        audit_repository: AuditRepository,
        *,
        now_provider=utc_now,
    ) -> None:
        self.repository = repository
        self.lessons_repository = lessons_repository
        self.identity_repository = identity_repository
        self.ledger = ledger
        self.chat = chat
        self.audit_repository = audit_repository
        self.guard = OverbookingGuard(repository)
        self.now_provider = now_provider

    async def create_booking(
        self,
        lesson_id: UUID,
        student_id: UUID,
        target_status: BookingStatusEnum = BookingStatusEnum.PENDING,
        performed_by: UUID | None = None,
    ) -> TransitionResult:
        """Create a booking as pending, or create and activate it at once."""
        if target_status not in OPEN_STATUSES:
            raise BusinessRuleException("New bookings must be pending or active")

        lesson = await self.lessons_repository.get_lesson_for_update(lesson_id)
        await self._require_live_parties(lesson, student_id)
        self._require_not_started(lesson)

        existing = await self.repository.find_open_booking(student_id, lesson_id)
        if existing is not None:
            raise ConflictException("Student already has an open booking for this lesson")

        if target_status == BookingStatusEnum.ACTIVE:
            await self._check_seat(lesson)

        booking = await self.repository.create_booking(student_id=student_id, lesson_id=lesson_id)
        logger.info(
            "Booking created: booking_id=%s lesson_id=%s student_id=%s",
            booking.id,
            lesson_id,
            student_id,
        )
        if target_status == BookingStatusEnum.ACTIVE:
            return await self._activate_locked(lesson, booking, performed_by)

        BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.PENDING.value).inc()
        return TransitionResult(booking=booking)

    async def activate_booking(
        self,
        booking_id: UUID,
        performed_by: UUID | None = None,
    ) -> TransitionResult:
        """Move a pending booking to active: seat, credits, chat room."""
        lesson, booking = await self._lock_booking(booking_id)
        if booking.status != BookingStatusEnum.PENDING:
            raise ConflictException(f"Cannot activate booking in status {booking.status.value}")

        await self._require_live_parties(lesson, booking.student_id)
        self._require_not_started(lesson)
        await self._check_seat(lesson)
        return await self._activate_locked(lesson, booking, performed_by)

    async def cancel_booking(
        self,
        booking_id: UUID,
        reason: str | None = None,
        performed_by: UUID | None = None,
    ) -> TransitionResult:
        """Cancel a booking; an active one gets its seat and credits back."""
        booking = await self._get_live_booking(booking_id)
        if booking.status == BookingStatusEnum.CANCELLED:
            return TransitionResult(booking=booking, cancel_result=CancelResultEnum.ALREADY_CANCELLED)

        lesson, booking = await self._lock_booking(booking_id)
        return await self._cancel_locked(lesson, booking, reason, performed_by)

    async def complete_booking(
        self,
        booking_id: UUID,
        performed_by: UUID | None = None,
    ) -> TransitionResult:
        """Mark an active booking completed once its lesson has ended."""
        lesson, booking = await self._lock_booking(booking_id)
        if booking.status != BookingStatusEnum.ACTIVE:
            raise ConflictException(f"Cannot complete booking in status {booking.status.value}")
        if ensure_utc(lesson.end_time) > self.now_provider():
            raise BusinessRuleException("Lesson has not finished yet")
        return await self._complete_locked(lesson, booking, performed_by)

    async def complete_finished_bookings(
        self,
        now: datetime | None = None,
        limit: int = 500,
    ) -> int:
        """Complete active bookings of every lesson that has already ended.

        Each booking runs in its own savepoint; a failing row is logged and
        left active for the next run.
        """
        now = now or self.now_provider()
        candidates = await self.repository.find_finished_active_bookings(now, limit)
        completed = 0
        failed = 0
        for candidate in candidates:
            try:
                async with self.repository.savepoint():
                    done = await self._complete_finished(candidate.id, candidate.lesson_id)
            except Exception:
                failed += 1
                logger.exception("Booking completion failed: booking_id=%s", candidate.id)
                continue
            if done:
                completed += 1

        if completed or failed:
            logger.info("Finished bookings completed: count=%s failed=%s", completed, failed)
        return completed

    async def _complete_finished(self, booking_id: UUID, lesson_id: UUID) -> bool:
        lesson = await self.lessons_repository.get_lesson_for_update(lesson_id)
        booking = await self.repository.get_booking_for_update(booking_id)
        if lesson is None or booking is None:
            return False
        if booking.status != BookingStatusEnum.ACTIVE or booking.is_deleted:
            return False
        await self._complete_locked(lesson, booking, None)
        return True

    async def soft_delete_booking(
        self,
        booking_id: UUID,
        performed_by: UUID | None = None,
    ) -> Booking:
        """Cancel an open booking, then hide it from every read."""
        booking = await self.repository.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        if booking.is_deleted:
            return booking

        lesson, booking = await self._lock_booking(booking_id)
        if booking.status in OPEN_STATUSES:
            await self._cancel_locked(lesson, booking, "Booking deleted", performed_by)

        await self.repository.mark_deleted(booking, self.now_provider())
        await self.audit_repository.create_audit_log(
            actor_id=performed_by,
            action="booking.delete",
            entity_type="booking",
            entity_id=str(booking.id),
            payload={"lesson_id": str(booking.lesson_id), "student_id": str(booking.student_id)},
        )
        logger.info("Booking deleted: booking_id=%s", booking.id)
        return booking

    async def transition(
        self,
        booking_id: UUID | None,
        lesson_id: UUID | None,
        student_id: UUID | None,
        target_status: BookingStatusEnum,
        performed_by: UUID | None = None,
        reason: str | None = None,
    ) -> TransitionResult:
        """Apply a requested status change to a new or existing booking."""
        if booking_id is None:
            if lesson_id is None or student_id is None:
                raise BusinessRuleException("lesson_id and student_id are required to create a booking")
            return await self.create_booking(lesson_id, student_id, target_status, performed_by)

        booking = await self._get_live_booking(booking_id)
        if lesson_id is not None and booking.lesson_id != lesson_id:
            raise BusinessRuleException("Booking does not belong to this lesson")
        if student_id is not None and booking.student_id != student_id:
            raise BusinessRuleException("Booking does not belong to this student")

        if target_status == BookingStatusEnum.ACTIVE:
            return await self.activate_booking(booking_id, performed_by)
        if target_status == BookingStatusEnum.CANCELLED:
            return await self.cancel_booking(booking_id, reason, performed_by)
        if target_status == BookingStatusEnum.COMPLETED:
            return await self.complete_booking(booking_id, performed_by)
        raise ConflictException("Booking cannot return to pending")

    async def release_lesson_bookings(
        self,
        lesson: Lesson,
        reason: str,
        performed_by: UUID | None = None,
    ) -> int:
        """Cancel every open booking of a lesson the caller has locked."""
        bookings = await self.repository.list_open_bookings_for_lesson(lesson.id)
        for booking in bookings:
            await self._cancel_locked(lesson, booking, reason, performed_by)
        return len(bookings)

    async def release_student_bookings(
        self,
        student_id: UUID,
        reason: str,
        performed_by: UUID | None = None,
    ) -> int:
        """Cancel every open booking a student holds, lesson by lesson."""
        candidates = await self.repository.list_open_bookings_for_student(student_id)
        cancelled = 0
        for candidate in candidates:
            lesson = await self.lessons_repository.get_lesson_for_update(candidate.lesson_id)
            booking = await self.repository.get_booking_for_update(candidate.id)
            if lesson is None or booking is None or booking.status not in OPEN_STATUSES:
                continue
            await self._cancel_locked(lesson, booking, reason, performed_by)
            cancelled += 1
        return cancelled

    async def get_booking(self, booking_id: UUID) -> Booking:
        return await self._get_live_booking(booking_id)

    async def list_bookings(
        self,
        student_id: UUID | None,
        lesson_id: UUID | None,
        status: BookingStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        """List non-deleted bookings, newest first."""
        return await self.repository.list_bookings(student_id, lesson_id, status, limit, offset)

    async def _activate_locked(
        self,
        lesson: Lesson,
        booking: Booking,
        performed_by: UUID | None,
    ) -> TransitionResult:
        ledger_result = None
        cost = max(lesson.credits_cost, 0)
        if cost > 0:
            try:
                ledger_result = await self.ledger.deduct(
                    booking.student_id,
                    cost,
                    booking_id=booking.id,
                    reason=f"Lesson booking {lesson.id}",
                    performed_by=performed_by,
                )
            except AppException as exc:
                self._record_rejection(booking, exc)
                raise

        await self.repository.set_status(booking, BookingStatusEnum.ACTIVE, self.now_provider())
        active = await self.guard.count_active(lesson)
        await self.lessons_repository.set_current_students(lesson, active)

        room, room_created = await self.chat.ensure_room(lesson.teacher_id, booking.student_id)

        await self.audit_repository.create_audit_log(
            actor_id=performed_by,
            action="booking.activate",
            entity_type="booking",
            entity_id=str(booking.id),
            payload={
                "lesson_id": str(lesson.id),
                "student_id": str(booking.student_id),
                "credits": cost,
                "chat_room_id": str(room.id),
            },
        )
        BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.ACTIVE.value).inc()
        logger.info(
            "Booking activated: booking_id=%s lesson_id=%s seats=%s/%s",
            booking.id,
            lesson.id,
            active,
            lesson.capacity,
        )
        return TransitionResult(
            booking=booking,
            ledger=ledger_result,
            chat_room_id=room.id,
            chat_room_created=room_created,
        )

    async def _cancel_locked(
        self,
        lesson: Lesson,
        booking: Booking,
        reason: str | None,
        performed_by: UUID | None,
    ) -> TransitionResult:
        if booking.status == BookingStatusEnum.CANCELLED:
            return TransitionResult(booking=booking, cancel_result=CancelResultEnum.ALREADY_CANCELLED)
        if booking.status == BookingStatusEnum.COMPLETED:
            raise ConflictException("Completed booking cannot be cancelled")

        was_active = booking.status == BookingStatusEnum.ACTIVE
        refund = None
        if was_active:
            amount = await self.ledger.deducted_for_booking(booking.id)
            if amount > 0:
                refund = await self.ledger.refund(
                    booking.student_id,
                    amount,
                    booking_id=booking.id,
                    reason=reason or "Booking cancelled",
                    performed_by=performed_by,
                )

        await self.repository.set_status(
            booking,
            BookingStatusEnum.CANCELLED,
            self.now_provider(),
            reason=reason,
        )
        if was_active:
            active = await self.guard.count_active(lesson)
            await self.lessons_repository.set_current_students(lesson, active)

        await self.audit_repository.create_audit_log(
            actor_id=performed_by,
            action="booking.cancel",
            entity_type="booking",
            entity_id=str(booking.id),
            payload={
                "lesson_id": str(lesson.id),
                "was_active": was_active,
                "refunded": refund.transaction.amount if refund is not None else 0,
                "reason": reason,
            },
        )
        BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.CANCELLED.value).inc()
        logger.info(
            "Booking cancelled: booking_id=%s lesson_id=%s was_active=%s",
            booking.id,
            lesson.id,
            was_active,
        )
        return TransitionResult(booking=booking, ledger=refund, cancel_result=CancelResultEnum.SUCCESS)

    async def _complete_locked(
        self,
        lesson: Lesson,
        booking: Booking,
        performed_by: UUID | None,
    ) -> TransitionResult:
        await self.repository.set_status(booking, BookingStatusEnum.COMPLETED, self.now_provider())
        room, room_created = await self.chat.ensure_room(lesson.teacher_id, booking.student_id)
        await self.audit_repository.create_audit_log(
            actor_id=performed_by,
            action="booking.complete",
            entity_type="booking",
            entity_id=str(booking.id),
            payload={"lesson_id": str(lesson.id), "student_id": str(booking.student_id)},
        )
        BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.COMPLETED.value).inc()
        logger.info("Booking completed: booking_id=%s lesson_id=%s", booking.id, lesson.id)
        return TransitionResult(booking=booking, chat_room_id=room.id, chat_room_created=room_created)

    async def _lock_booking(self, booking_id: UUID) -> tuple[Lesson, Booking]:
        booking = await self._get_live_booking(booking_id)
        lesson = await self.lessons_repository.get_lesson_for_update(booking.lesson_id)
        if lesson is None:
            raise OrphanReferenceException("Lesson not found")
        booking = await self.repository.get_booking_for_update(booking_id)
        if booking is None or booking.is_deleted:
            raise NotFoundException("Booking not found")
        return lesson, booking

    async def _get_live_booking(self, booking_id: UUID) -> Booking:
        booking = await self.repository.get_booking_by_id(booking_id)
        if booking is None or booking.is_deleted:
            raise NotFoundException("Booking not found")
        return booking

    async def _require_live_parties(self, lesson: Lesson | None, student_id: UUID) -> None:
        if lesson is None or lesson.is_deleted:
            raise OrphanReferenceException("Lesson not found or deleted")

        student = await self.identity_repository.get_user_by_id(student_id)
        if student is None or student.is_deleted:
            raise OrphanReferenceException("Student not found or deleted")
        if student.role != RoleEnum.STUDENT:
            raise BusinessRuleException("Only students can hold bookings")

        teacher = await self.identity_repository.get_user_by_id(lesson.teacher_id)
        if teacher is None or teacher.is_deleted:
            raise OrphanReferenceException("Teacher not found or deleted")

    def _require_not_started(self, lesson: Lesson) -> None:
        if ensure_utc(lesson.start_time) <= self.now_provider():
            raise BusinessRuleException("Lesson has already started")

    async def _check_seat(self, lesson: Lesson) -> int:
        try:
            return await self.guard.check_seat_available(lesson)
        except AppException as exc:
            BOOKING_REJECTIONS_TOTAL.labels(reason=exc.code).inc()
            logger.warning("Booking rejected: lesson_id=%s reason=%s", lesson.id, exc.code)
            raise

    def _record_rejection(self, booking: Booking, exc: AppException) -> None:
        BOOKING_REJECTIONS_TOTAL.labels(reason=exc.code).inc()
        logger.warning(
            "Booking rejected: booking_id=%s lesson_id=%s reason=%s",
            booking.id,
            booking.lesson_id,
            exc.code,
        )


def build_booking_service(session: AsyncSession) -> BookingService:
    return BookingService(
        repository=BookingRepository(session),
        lessons_repository=LessonsRepository(session),
        identity_repository=IdentityRepository(session),
        ledger=build_credit_ledger(session),
        chat=build_chat_provisioner(session),
        audit_repository=AuditRepository(session),
    )


async def get_booking_service(session: AsyncSession = Depends(get_db_session)) -> BookingService:
    """Dependency provider for booking service."""
    return build_booking_service(session)
