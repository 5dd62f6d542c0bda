from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any
from uuid import UUID, uuid4

import pytest

from tutorcore.core.enums import BookingStatusEnum, CreditOperationEnum, RoleEnum
from tutorcore.modules.audit.models import AuditLog
from tutorcore.modules.billing.models import Credit, CreditTransaction
from tutorcore.modules.billing.service import CreditLedgerService
from tutorcore.modules.booking.models import Booking
from tutorcore.modules.booking.service import BookingService
from tutorcore.modules.chat.models import ChatRoom, Message
from tutorcore.modules.chat.service import ChatProvisioner
from tutorcore.modules.identity.models import User
from tutorcore.modules.identity.service import IdentityService
from tutorcore.modules.lessons.models import Lesson
from tutorcore.modules.lessons.service import LessonsService

OPEN_STATUSES = (BookingStatusEnum.PENDING, BookingStatusEnum.ACTIVE)


class FakeIntegrityError(Exception):
    """Stands in for a violated unique index or check constraint."""


class FakeStore:
    """Shared in-memory tables plus per-row locks."""

    def __init__(self) -> None:
        self.users: dict[UUID, User] = {}
        self.lessons: dict[UUID, Lesson] = {}
        self.bookings: dict[UUID, Booking] = {}
        self.credits: dict[UUID, Credit] = {}
        self.transactions: list[CreditTransaction] = []
        self.rooms: dict[tuple[UUID, UUID], ChatRoom] = {}
        self.messages: dict[UUID, Message] = {}
        self.audit_logs: list[AuditLog] = []
        self.locks: dict[tuple, asyncio.Lock] = {}
        self.now = datetime(2026, 10, 16, 9, 0, tzinfo=UTC)
        self._ticks = 0
        self._entries = 0

    def now_provider(self) -> datetime:
        return self.now

    def clock(self) -> datetime:
        self._ticks += 1
        return self.now + timedelta(microseconds=self._ticks)

    def next_entry_no(self) -> int:
        self._entries += 1
        return self._entries

    def lock_for(self, key: tuple) -> asyncio.Lock:
        if key not in self.locks:
            self.locks[key] = asyncio.Lock()
        return self.locks[key]

    def build_services(self, tx: FakeTransaction) -> SimpleNamespace:
        identity_repository = FakeIdentityRepository(tx)
        lessons_repository = FakeLessonsRepository(tx)
        booking_repository = FakeBookingRepository(tx)
        billing_repository = FakeBillingRepository(tx)
        chat_repository = FakeChatRepository(tx)
        audit_repository = FakeAuditRepository(tx)

        ledger = CreditLedgerService(billing_repository, identity_repository, audit_repository)
        chat = ChatProvisioner(chat_repository, audit_repository)
        booking = BookingService(
            repository=booking_repository,
            lessons_repository=lessons_repository,
            identity_repository=identity_repository,
            ledger=ledger,
            chat=chat,
            audit_repository=audit_repository,
            now_provider=self.now_provider,
        )
        lessons = LessonsService(
            lessons_repository,
            identity_repository,
            audit_repository,
            booking,
            now_provider=self.now_provider,
        )
        identity = IdentityService(
            identity_repository,
            lessons,
            chat_repository,
            audit_repository,
            now_provider=self.now_provider,
        )
        return SimpleNamespace(
            ledger=ledger,
            chat=chat,
            booking=booking,
            lessons=lessons,
            identity=identity,
            chat_repository=chat_repository,
        )

    async def run(self, work: Callable[[SimpleNamespace], Awaitable[Any]]) -> Any:
        """Run ``work`` in one fake transaction: all or nothing, locks held to the end."""
        tx = FakeTransaction(self)
        try:
            return await work(self.build_services(tx))
        except BaseException:
            tx.rollback()
            raise
        finally:
            tx.release()

    def add_user(self, role: RoleEnum = RoleEnum.STUDENT, deleted: bool = False) -> User:
        user_id = uuid4()
        user = User(
            id=user_id,
            email=f"{user_id.hex[:12]}@example.com",
            full_name="Test User",
            role=role,
            is_active=not deleted,
            deleted_at=self.now if deleted else None,
            created_at=self.clock(),
            updated_at=self.now,
        )
        self.users[user.id] = user
        return user

    def add_lesson(
        self,
        teacher: User,
        capacity: int = 1,
        credits_cost: int = 1,
        starts_in: timedelta = timedelta(days=1),
        duration: timedelta = timedelta(hours=1),
    ) -> Lesson:
        start_time = self.now + starts_in
        lesson = Lesson(
            id=uuid4(),
            teacher_id=teacher.id,
            subject="Guitar basics",
            start_time=start_time,
            end_time=start_time + duration,
            capacity=capacity,
            current_students=0,
            credits_cost=credits_cost,
            deleted_at=None,
            created_at=self.clock(),
            updated_at=self.now,
        )
        self.lessons[lesson.id] = lesson
        return lesson

    def balance(self, user: User) -> int:
        credit = self.credits.get(user.id)
        return credit.balance if credit is not None else 0

    def transactions_for(self, user: User) -> list[CreditTransaction]:
        return [item for item in self.transactions if item.user_id == user.id]

    def active_count(self, lesson: Lesson) -> int:
        return sum(
            1
            for booking in self.bookings.values()
            if booking.lesson_id == lesson.id
            and booking.status == BookingStatusEnum.ACTIVE
            and booking.deleted_at is None
        )


class FakeTransaction:
    """Undo log and held locks for one unit of work."""

    def __init__(self, store: FakeStore) -> None:
        self.store = store
        self.held: list[asyncio.Lock] = []
        self.held_keys: set[tuple] = set()
        self.undo: list[Callable[[], None]] = []

    async def lock(self, key: tuple) -> None:
        if key in self.held_keys:
            return
        lock = self.store.lock_for(key)
        await lock.acquire()
        self.held.append(lock)
        self.held_keys.add(key)
        await asyncio.sleep(0)

    def set_attr(self, obj: Any, name: str, value: Any) -> None:
        previous = getattr(obj, name)
        self.undo.append(lambda: setattr(obj, name, previous))
        setattr(obj, name, value)

    def put(self, table: dict, key: Any, value: Any) -> None:
        self.undo.append(lambda: table.pop(key, None))
        table[key] = value

    def append(self, table: list, value: Any) -> None:
        self.undo.append(lambda: table.remove(value))
        table.append(value)

    @asynccontextmanager
    async def savepoint(self):
        mark = len(self.undo)
        try:
            yield self
        except BaseException:
            self._undo_to(mark)
            raise

    def rollback(self) -> None:
        self._undo_to(0)

    def _undo_to(self, mark: int) -> None:
        while len(self.undo) > mark:
            self.undo.pop()()

    def release(self) -> None:
        for lock in reversed(self.held):
            lock.release()
        self.held.clear()
        self.held_keys.clear()


class FakeIdentityRepository:
    def __init__(self, tx: FakeTransaction) -> None:
        self.tx = tx
        self.store = tx.store

    async def get_user_by_email(self, email: str) -> User | None:
        for user in self.store.users.values():
            if user.email.lower() == email.lower():
                return user
        return None

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        return self.store.users.get(user_id)

    async def get_user_for_update(self, user_id: UUID) -> User | None:
        await self.tx.lock(("user", user_id))
        return self.store.users.get(user_id)

    async def create_user(self, email: str, full_name: str, role: RoleEnum) -> User:
        user = User(
            id=uuid4(),
            email=email,
            full_name=full_name,
            role=role,
            is_active=True,
            deleted_at=None,
            created_at=self.store.clock(),
            updated_at=self.store.now,
        )
        self.tx.put(self.store.users, user.id, user)
        return user

    async def list_users(self, role: RoleEnum | None, limit: int, offset: int) -> tuple[list[User], int]:
        items = [
            user
            for user in self.store.users.values()
            if user.deleted_at is None and (role is None or user.role == role)
        ]
        return items[offset : offset + limit], len(items)

    async def mark_deleted(self, user: User, deleted_at: datetime) -> User:
        self.tx.set_attr(user, "deleted_at", deleted_at)
        self.tx.set_attr(user, "is_active", False)
        return user


class FakeLessonsRepository:
    def __init__(self, tx: FakeTransaction) -> None:
        self.tx = tx
        self.store = tx.store

    async def create_lesson(
        self,
        teacher_id: UUID,
        subject: str | None,
        start_time: datetime,
        end_time: datetime,
        capacity: int,
        credits_cost: int,
    ) -> Lesson:
        lesson = Lesson(
            id=uuid4(),
            teacher_id=teacher_id,
            subject=subject,
            start_time=start_time,
            end_time=end_time,
            capacity=capacity,
            current_students=0,
            credits_cost=credits_cost,
            deleted_at=None,
            created_at=self.store.clock(),
            updated_at=self.store.now,
        )
        self.tx.put(self.store.lessons, lesson.id, lesson)
        return lesson

    async def get_lesson_by_id(self, lesson_id: UUID) -> Lesson | None:
        return self.store.lessons.get(lesson_id)

    async def get_lesson_for_update(self, lesson_id: UUID) -> Lesson | None:
        await self.tx.lock(("lesson", lesson_id))
        return self.store.lessons.get(lesson_id)

    async def list_lessons(
        self,
        teacher_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Lesson], int]:
        items = [
            lesson
            for lesson in self.store.lessons.values()
            if lesson.deleted_at is None and (teacher_id is None or lesson.teacher_id == teacher_id)
        ]
        return items[offset : offset + limit], len(items)

    async def list_lesson_ids_for_teacher(self, teacher_id: UUID) -> list[UUID]:
        return sorted(
            lesson.id
            for lesson in self.store.lessons.values()
            if lesson.teacher_id == teacher_id and lesson.deleted_at is None
        )

    async def set_current_students(self, lesson: Lesson, current_students: int) -> Lesson:
        if not 0 <= current_students <= lesson.capacity:
            raise FakeIntegrityError("ck_lessons_current_students_within_capacity")
        self.tx.set_attr(lesson, "current_students", current_students)
        return lesson

    async def set_capacity(self, lesson: Lesson, capacity: int) -> Lesson:
        if capacity < lesson.current_students:
            raise FakeIntegrityError("ck_lessons_current_students_within_capacity")
        self.tx.set_attr(lesson, "capacity", capacity)
        return lesson

    async def mark_deleted(self, lesson: Lesson, deleted_at: datetime) -> Lesson:
        self.tx.set_attr(lesson, "deleted_at", deleted_at)
        return lesson


class FakeBookingRepository:
    def __init__(self, tx: FakeTransaction) -> None:
        self.tx = tx
        self.store = tx.store

    def savepoint(self):
        return self.tx.savepoint()

    async def create_booking(self, student_id: UUID, lesson_id: UUID) -> Booking:
        if await self.find_open_booking(student_id, lesson_id) is not None:
            raise FakeIntegrityError("uq_bookings_open_student_lesson")
        booking = Booking(
            id=uuid4(),
            student_id=student_id,
            lesson_id=lesson_id,
            status=BookingStatusEnum.PENDING,
            activated_at=None,
            cancelled_at=None,
            completed_at=None,
            cancellation_reason=None,
            deleted_at=None,
            created_at=self.store.clock(),
            updated_at=self.store.now,
        )
        self.tx.put(self.store.bookings, booking.id, booking)
        return booking

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        return self.store.bookings.get(booking_id)

    async def get_booking_for_update(self, booking_id: UUID) -> Booking | None:
        await self.tx.lock(("booking", booking_id))
        return self.store.bookings.get(booking_id)

    async def find_open_booking(self, student_id: UUID, lesson_id: UUID) -> Booking | None:
        for booking in self.store.bookings.values():
            if (
                booking.student_id == student_id
                and booking.lesson_id == lesson_id
                and booking.status in OPEN_STATUSES
                and booking.deleted_at is None
            ):
                return booking
        return None

    async def count_active_bookings(self, lesson_id: UUID) -> int:
        return sum(
            1
            for booking in self.store.bookings.values()
            if booking.lesson_id == lesson_id
            and booking.status == BookingStatusEnum.ACTIVE
            and booking.deleted_at is None
        )

    async def list_bookings(
        self,
        student_id: UUID | None,
        lesson_id: UUID | None,
        status: BookingStatusEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        items = [
            booking
            for booking in self.store.bookings.values()
            if booking.deleted_at is None
            and (student_id is None or booking.student_id == student_id)
            and (lesson_id is None or booking.lesson_id == lesson_id)
            and (status is None or booking.status == status)
        ]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return items[offset : offset + limit], len(items)

    async def list_open_bookings_for_lesson(self, lesson_id: UUID) -> list[Booking]:
        items = sorted(
            (
                booking
                for booking in self.store.bookings.values()
                if booking.lesson_id == lesson_id
                and booking.status in OPEN_STATUSES
                and booking.deleted_at is None
            ),
            key=lambda item: item.id,
        )
        for booking in items:
            await self.tx.lock(("booking", booking.id))
        return items

    async def list_open_bookings_for_student(self, student_id: UUID) -> list[Booking]:
        return sorted(
            (
                booking
                for booking in self.store.bookings.values()
                if booking.student_id == student_id
                and booking.status in OPEN_STATUSES
                and booking.deleted_at is None
            ),
            key=lambda item: (item.lesson_id, item.id),
        )

    async def find_finished_active_bookings(self, now: datetime, limit: int) -> list[Booking]:
        items = []
        for booking in self.store.bookings.values():
            lesson = self.store.lessons[booking.lesson_id]
            if (
                booking.status == BookingStatusEnum.ACTIVE
                and booking.deleted_at is None
                and lesson.deleted_at is None
                and lesson.end_time <= now
            ):
                items.append(booking)
        items.sort(key=lambda item: (item.lesson_id, item.id))
        return items[:limit]

    async def set_status(
        self,
        booking: Booking,
        status: BookingStatusEnum,
        changed_at: datetime,
        reason: str | None = None,
    ) -> Booking:
        self.tx.set_attr(booking, "status", status)
        if status == BookingStatusEnum.ACTIVE:
            self.tx.set_attr(booking, "activated_at", changed_at)
        elif status == BookingStatusEnum.CANCELLED:
            self.tx.set_attr(booking, "cancelled_at", changed_at)
            self.tx.set_attr(booking, "cancellation_reason", reason)
        elif status == BookingStatusEnum.COMPLETED:
            self.tx.set_attr(booking, "completed_at", changed_at)
        return booking

    async def mark_deleted(self, booking: Booking, deleted_at: datetime) -> Booking:
        self.tx.set_attr(booking, "deleted_at", deleted_at)
        return booking


class FakeBillingRepository:
    def __init__(self, tx: FakeTransaction) -> None:
        self.tx = tx
        self.store = tx.store

    async def get_credit(self, user_id: UUID) -> Credit | None:
        return self.store.credits.get(user_id)

    async def get_credit_for_update(self, user_id: UUID) -> Credit:
        if user_id not in self.store.credits:
            credit = Credit(
                id=uuid4(),
                user_id=user_id,
                balance=0,
                created_at=self.store.clock(),
                updated_at=self.store.now,
            )
            self.tx.put(self.store.credits, user_id, credit)
        await self.tx.lock(("credit", user_id))
        return self.store.credits[user_id]

    async def set_balance(self, credit: Credit, balance: int) -> Credit:
        if balance < 0:
            raise FakeIntegrityError("ck_credits_balance_non_negative")
        self.tx.set_attr(credit, "balance", balance)
        return credit

    async def create_transaction(
        self,
        user_id: UUID,
        amount: int,
        operation_type: CreditOperationEnum,
        reason: str,
        performed_by: UUID | None,
        booking_id: UUID | None,
        balance_before: int,
        balance_after: int,
    ) -> CreditTransaction:
        if operation_type == CreditOperationEnum.REFUND and booking_id is not None:
            if await self.get_booking_transaction(booking_id, CreditOperationEnum.REFUND) is not None:
                raise FakeIntegrityError("uq_credit_transactions_refund_booking_id")
        transaction = CreditTransaction(
            id=uuid4(),
            user_id=user_id,
            amount=amount,
            operation_type=operation_type,
            reason=reason,
            performed_by=performed_by,
            booking_id=booking_id,
            balance_before=balance_before,
            balance_after=balance_after,
            entry_no=self.store.next_entry_no(),
            created_at=self.store.clock(),
            updated_at=self.store.now,
        )
        self.tx.append(self.store.transactions, transaction)
        return transaction

    async def get_booking_transaction(
        self,
        booking_id: UUID,
        operation_type: CreditOperationEnum,
    ) -> CreditTransaction | None:
        for transaction in reversed(self.store.transactions):
            if transaction.booking_id == booking_id and transaction.operation_type == operation_type:
                return transaction
        return None

    async def list_transactions(
        self,
        user_id: UUID,
        operation_type: CreditOperationEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[CreditTransaction], int]:
        items = sorted(
            (
                transaction
                for transaction in self.store.transactions
                if transaction.user_id == user_id
                and (operation_type is None or transaction.operation_type == operation_type)
            ),
            key=lambda item: item.entry_no,
            reverse=True,
        )
        return items[offset : offset + limit], len(items)

    async def list_transactions_in_order(self, user_id: UUID) -> list[CreditTransaction]:
        items = [item for item in self.store.transactions if item.user_id == user_id]
        return sorted(items, key=lambda item: item.entry_no)

    async def sum_committed_credits(self, user_id: UUID) -> int:
        total = 0
        for transaction in self.store.transactions:
            if transaction.user_id != user_id or transaction.operation_type != CreditOperationEnum.DEDUCT:
                continue
            booking = self.store.bookings.get(transaction.booking_id)
            if booking is not None and booking.status == BookingStatusEnum.ACTIVE and booking.deleted_at is None:
                total += -transaction.amount
        return total


class FakeChatRepository:
    def __init__(self, tx: FakeTransaction) -> None:
        self.tx = tx
        self.store = tx.store

    def savepoint(self):
        return self.tx.savepoint()

    async def create_room_if_absent(self, teacher_id: UUID, student_id: UUID) -> tuple[ChatRoom, bool]:
        key = (teacher_id, student_id)
        existing = self.store.rooms.get(key)
        if existing is not None:
            return existing, False
        room = ChatRoom(
            id=uuid4(),
            teacher_id=teacher_id,
            student_id=student_id,
            last_message_at=None,
            deleted_at=None,
            created_at=self.store.clock(),
            updated_at=self.store.now,
        )
        self.tx.put(self.store.rooms, key, room)
        return room, True

    async def get_room(
        self,
        teacher_id: UUID,
        student_id: UUID,
        include_deleted: bool = False,
    ) -> ChatRoom | None:
        room = self.store.rooms.get((teacher_id, student_id))
        if room is None or (room.deleted_at is not None and not include_deleted):
            return None
        return room

    async def list_rooms_for_user(
        self,
        user_id: UUID,
        limit: int,
        offset: int,
    ) -> tuple[list[ChatRoom], int]:
        items = [
            room
            for room in self.store.rooms.values()
            if room.deleted_at is None and user_id in (room.teacher_id, room.student_id)
        ]
        return items[offset : offset + limit], len(items)

    async def find_missing_pairs(self, limit: int) -> list[tuple[UUID, UUID]]:
        pairs: list[tuple[UUID, UUID]] = []
        for booking in self.store.bookings.values():
            if booking.status not in (BookingStatusEnum.ACTIVE, BookingStatusEnum.COMPLETED):
                continue
            lesson = self.store.lessons[booking.lesson_id]
            teacher = self.store.users[lesson.teacher_id]
            student = self.store.users[booking.student_id]
            if any(
                item.deleted_at is not None for item in (booking, lesson, teacher, student)
            ):
                continue
            pair = (lesson.teacher_id, booking.student_id)
            if pair in self.store.rooms or pair in pairs:
                continue
            pairs.append(pair)
        return pairs[:limit]

    async def soft_delete_rooms_for_user(self, user_id: UUID, deleted_at: datetime) -> tuple[int, int]:
        room_ids = []
        for room in self.store.rooms.values():
            if room.deleted_at is None and user_id in (room.teacher_id, room.student_id):
                self.tx.set_attr(room, "deleted_at", deleted_at)
                room_ids.append(room.id)
        messages = 0
        for message in self.store.messages.values():
            if message.room_id in room_ids and message.deleted_at is None:
                self.tx.set_attr(message, "deleted_at", deleted_at)
                messages += 1
        return len(room_ids), messages


class FakeAuditRepository:
    def __init__(self, tx: FakeTransaction) -> None:
        self.tx = tx
        self.store = tx.store

    async def create_audit_log(
        self,
        actor_id: UUID | None,
        action: str,
        entity_type: str,
        entity_id: str | None,
        payload: dict,
    ) -> AuditLog:
        log = AuditLog(
            id=uuid4(),
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
            created_at=self.store.clock(),
            updated_at=self.store.now,
        )
        self.tx.append(self.store.audit_logs, log)
        return log


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def teacher(store: FakeStore) -> User:
    return store.add_user(RoleEnum.TEACHER)


@pytest.fixture
def student(store: FakeStore) -> User:
    return store.add_user(RoleEnum.STUDENT)


@pytest.fixture
def admin(store: FakeStore) -> User:
    return store.add_user(RoleEnum.ADMIN)


async def grant(store: FakeStore, user: User, amount: int, admin_id: UUID | None = None):
    return await store.run(lambda s: s.ledger.add(user.id, amount, "Top up", admin_id))


@pytest.fixture
def grant_credits(store: FakeStore):
    async def _grant(user: User, amount: int, admin_id: UUID | None = None):
        return await grant(store, user, amount, admin_id)

    return _grant
