from __future__ import annotations

from uuid import uuid4

import pytest

from tutorcore.core.enums import BookingStatusEnum, MessageStatusEnum, RoleEnum
from tutorcore.modules.chat.models import Message
from tutorcore.shared.exceptions import NotFoundException, OrphanReferenceException


async def _book(store, lesson, student, status=BookingStatusEnum.ACTIVE):
    result = await store.run(lambda s: s.booking.create_booking(lesson.id, student.id, status))
    return result.booking


@pytest.mark.asyncio
async def test_lesson_deletion_cancels_bookings_and_refunds(store, teacher, admin, grant_credits) -> None:
    lesson = store.add_lesson(teacher, capacity=3, credits_cost=4)
    paying = store.add_user(RoleEnum.STUDENT)
    waiting = store.add_user(RoleEnum.STUDENT)
    await grant_credits(paying, 10)
    active = await _book(store, lesson, paying)
    pending = await _book(store, lesson, waiting, BookingStatusEnum.PENDING)

    result = await store.run(lambda s: s.lessons.soft_delete_lesson(lesson.id, admin.id))

    assert result.bookings_cancelled == 2
    assert lesson.deleted_at is not None
    assert active.status == BookingStatusEnum.CANCELLED
    assert pending.status == BookingStatusEnum.CANCELLED
    assert store.balance(paying) == 10
    assert lesson.current_students == 0
    assert store.rooms[(teacher.id, paying.id)].deleted_at is None

    with pytest.raises(NotFoundException):
        await store.run(lambda s: s.lessons.get_availability(lesson.id))
    with pytest.raises(OrphanReferenceException):
        await store.run(lambda s: s.booking.create_booking(lesson.id, waiting.id))


@pytest.mark.asyncio
async def test_lesson_deletion_is_idempotent(store, teacher) -> None:
    lesson = store.add_lesson(teacher, capacity=1, credits_cost=0)
    await store.run(lambda s: s.lessons.soft_delete_lesson(lesson.id))
    deleted_at = lesson.deleted_at

    result = await store.run(lambda s: s.lessons.soft_delete_lesson(lesson.id))

    assert result.bookings_cancelled == 0
    assert lesson.deleted_at == deleted_at


@pytest.mark.asyncio
async def test_teacher_deletion_takes_down_lessons_bookings_and_rooms(
    store,
    teacher,
    student,
    admin,
    grant_credits,
) -> None:
    await grant_credits(student, 10)
    first = store.add_lesson(teacher, capacity=2, credits_cost=3)
    second = store.add_lesson(teacher, capacity=2, credits_cost=2)
    booking_one = await _book(store, first, student)
    booking_two = await _book(store, second, student)
    room = store.rooms[(teacher.id, student.id)]
    message = Message(
        id=uuid4(),
        room_id=room.id,
        sender_id=student.id,
        body="See you on Monday",
        status=MessageStatusEnum.DELIVERED,
        deleted_at=None,
    )
    store.messages[message.id] = message

    result = await store.run(lambda s: s.identity.soft_delete_user(teacher.id, admin.id))

    assert result.lessons_deleted == 2
    assert result.bookings_cancelled == 2
    assert result.chat_rooms_deleted == 1
    assert result.messages_deleted == 1
    assert teacher.deleted_at is not None
    assert teacher.is_active is False
    assert first.deleted_at is not None and second.deleted_at is not None
    assert booking_one.status == BookingStatusEnum.CANCELLED
    assert booking_two.status == BookingStatusEnum.CANCELLED
    assert store.balance(student) == 10
    assert room.deleted_at is not None
    assert message.deleted_at is not None
    assert store.audit_logs[-1].action == "user.delete"

    report = await store.run(lambda s: s.chat.reconcile())
    assert report.scanned == 0


@pytest.mark.asyncio
async def test_student_deletion_cancels_open_bookings_and_keeps_history(
    store,
    teacher,
    student,
    grant_credits,
) -> None:
    await grant_credits(student, 10)
    lesson = store.add_lesson(teacher, capacity=1, credits_cost=5)
    other = store.add_lesson(teacher, capacity=1, credits_cost=5)
    active = await _book(store, lesson, student)
    pending = await _book(store, other, student, BookingStatusEnum.PENDING)

    result = await store.run(lambda s: s.identity.soft_delete_user(student.id))

    assert result.lessons_deleted == 0
    assert result.bookings_cancelled == 2
    assert active.status == BookingStatusEnum.CANCELLED
    assert pending.status == BookingStatusEnum.CANCELLED
    assert lesson.current_students == 0
    assert store.balance(student) == 10
    assert len(store.transactions_for(student)) == 3
    assert lesson.deleted_at is None

    summary = await store.run(lambda s: s.ledger.get_balance(student.id))
    assert summary.committed == 0

    with pytest.raises(OrphanReferenceException):
        await store.run(lambda s: s.ledger.add(student.id, 5, "Top up"))


@pytest.mark.asyncio
async def test_committed_credits_ignore_deleted_bookings(store, teacher, student, grant_credits) -> None:
    await grant_credits(student, 10)
    lesson = store.add_lesson(teacher, capacity=1, credits_cost=3)
    booking = await _book(store, lesson, student)

    before = await store.run(lambda s: s.ledger.get_balance(student.id))
    booking.deleted_at = store.now
    after = await store.run(lambda s: s.ledger.get_balance(student.id))

    assert before.committed == 3
    assert after.committed == 0
    assert after.balance == 7


@pytest.mark.asyncio
async def test_user_deletion_of_unknown_user(store) -> None:
    with pytest.raises(NotFoundException):
        await store.run(lambda s: s.identity.soft_delete_user(uuid4()))
