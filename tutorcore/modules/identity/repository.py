"""Identity repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorcore.core.enums import RoleEnum
from tutorcore.modules.identity.models import User


class IdentityRepository:
    """DB operations for identity domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return await self.session.scalar(stmt)

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        stmt = select(User).where(User.id == user_id)
        return await self.session.scalar(stmt)

    async def get_user_for_update(self, user_id: UUID) -> User | None:
        stmt = (
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def create_user(self, email: str, full_name: str, role: RoleEnum) -> User:
        user = User(email=email, full_name=full_name, role=role, is_active=True)
        self.session.add(user)
        await self.session.flush()
        return user

    async def list_users(
        self,
        role: RoleEnum | None,
        limit: int,
        offset: int,
    ) -> tuple[list[User], int]:
        base_stmt: Select[tuple[User]] = select(User).where(User.deleted_at.is_(None))
        if role is not None:
            base_stmt = base_stmt.where(User.role == role)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(User.created_at.desc()).limit(limit).offset(offset)
        items = (await self.session.scalars(stmt)).all()
        return items, total

    async def mark_deleted(self, user: User, deleted_at: datetime) -> User:
        user.deleted_at = deleted_at
        user.is_active = False
        await self.session.flush()
        return user
