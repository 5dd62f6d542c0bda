"""Identity business logic layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorcore.core.database import get_db_session
from tutorcore.core.enums import RoleEnum
from tutorcore.modules.audit.repository import AuditRepository
from tutorcore.modules.chat.repository import ChatRepository
from tutorcore.modules.identity.models import User
from tutorcore.modules.identity.repository import IdentityRepository
from tutorcore.modules.lessons.service import LessonsService, build_lessons_service
from tutorcore.shared.exceptions import ConflictException, NotFoundException
from tutorcore.shared.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UserDeletionResult:
    """What a user deletion took down with it."""

    user: User
    lessons_deleted: int = 0
    bookings_cancelled: int = 0
    chat_rooms_deleted: int = 0
    messages_deleted: int = 0


class IdentityService:
    """Identity domain service."""

    def __init__(
        self,
        repository: IdentityRepository,
        lessons_service: LessonsService,
        chat_repository: ChatRepository,
        audit_repository: AuditRepository,
        *,
        now_provider=utc_now,
    ) -> None:
        self.repository = repository
        self.lessons_service = lessons_service
        self.chat_repository = chat_repository
        self.audit_repository = audit_repository
        self.now_provider = now_provider

    async def create_user(self, email: str, full_name: str, role: RoleEnum) -> User:
        """Register a user; the role cannot change afterwards."""
        existing_user = await self.repository.get_user_by_email(email)
        if existing_user is not None:
            raise ConflictException("User with this email already exists")

        user = await self.repository.create_user(email=email, full_name=full_name, role=role)
        logger.info("User created: user_id=%s role=%s", user.id, role.value)
        return user

    async def get_user(self, user_id: UUID) -> User:
        user = await self.repository.get_user_by_id(user_id)
        if user is None or user.is_deleted:
            raise NotFoundException("User not found")
        return user

    async def list_users(
        self,
        role: RoleEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[User], int]:
        return await self.repository.list_users(role, limit, offset)

    async def soft_delete_user(
        self,
        user_id: UUID,
        performed_by: UUID | None = None,
    ) -> UserDeletionResult:
        """Delete a user and everything that hangs off them.

        Teachers lose their lessons (which cancels and refunds the bookings
        in them), students lose their open bookings, and both lose their chat
        rooms and messages. Credit history is kept.
        """
        user = await self.repository.get_user_by_id(user_id)
        if user is None:
            raise NotFoundException("User not found")
        if user.is_deleted:
            return UserDeletionResult(user=user)

        result = UserDeletionResult(user=user)
        if user.role == RoleEnum.TEACHER:
            lessons, cancelled = await self.lessons_service.soft_delete_teacher_lessons(
                user.id,
                performed_by,
            )
            result.lessons_deleted = lessons
            result.bookings_cancelled += cancelled

        result.bookings_cancelled += await self.lessons_service.booking_service.release_student_bookings(
            user.id,
            reason="User deleted",
            performed_by=performed_by,
        )

        now = self.now_provider()
        rooms, messages = await self.chat_repository.soft_delete_rooms_for_user(user.id, now)
        result.chat_rooms_deleted = rooms
        result.messages_deleted = messages

        await self.repository.mark_deleted(user, now)
        await self.audit_repository.create_audit_log(
            actor_id=performed_by,
            action="user.delete",
            entity_type="user",
            entity_id=str(user.id),
            payload={
                "lessons_deleted": result.lessons_deleted,
                "bookings_cancelled": result.bookings_cancelled,
                "chat_rooms_deleted": rooms,
                "messages_deleted": messages,
            },
        )
        logger.info(
            "User deleted: user_id=%s lessons=%s bookings=%s rooms=%s",
            user.id,
            result.lessons_deleted,
            result.bookings_cancelled,
            rooms,
        )
        return result


def build_identity_service(session: AsyncSession) -> IdentityService:
    return IdentityService(
        IdentityRepository(session),
        build_lessons_service(session),
        ChatRepository(session),
        AuditRepository(session),
    )


async def get_identity_service(session: AsyncSession = Depends(get_db_session)) -> IdentityService:
    """Dependency provider for identity service."""
    return build_identity_service(session)
