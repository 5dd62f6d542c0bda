"""Seat accounting for lessons."""

from __future__ import annotations

import logging

from tutorcore.modules.booking.repository import BookingRepository
from tutorcore.modules.lessons.models import Lesson
from tutorcore.shared.exceptions import CapacityExceededException

logger = logging.getLogger(__name__)


class OverbookingGuard:
    """Counts active bookings for a lesson whose row the caller has locked."""

    def __init__(self, booking_repository: BookingRepository) -> None:
        self.booking_repository = booking_repository

    async def count_active(self, lesson: Lesson) -> int:
        return await self.booking_repository.count_active_bookings(lesson.id)

    async def check_seat_available(self, lesson: Lesson) -> int:
        """Return the active count, or raise when no seat is left."""
        active = await self.count_active(lesson)
        if active != lesson.current_students:
            logger.warning(
                "Lesson seat counter drift: lesson_id=%s counter=%s actual=%s",
                lesson.id,
                lesson.current_students,
                active,
            )
        if active >= lesson.capacity:
            raise CapacityExceededException(
                f"Lesson is full: {active} of {lesson.capacity} seats taken",
            )
        return active
