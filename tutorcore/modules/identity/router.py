"""Identity API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from tutorcore.core.enums import RoleEnum
from tutorcore.modules.identity.schemas import UserCreate, UserDeletionRead, UserRead
from tutorcore.modules.identity.service import IdentityService, get_identity_service
from tutorcore.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    service: IdentityService = Depends(get_identity_service),
) -> UserRead:
    """Register a new user."""
    user = await service.create_user(payload.email, payload.full_name, payload.role)
    return UserRead.model_validate(user)


@router.get("", response_model=Page[UserRead])
async def list_users(
    role: RoleEnum | None = None,
    pagination=Depends(get_pagination_params),
    service: IdentityService = Depends(get_identity_service),
) -> Page[UserRead]:
    """List live users."""
    items, total = await service.list_users(role, pagination.limit, pagination.offset)
    serialized = [UserRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{user_id}", response_model=UserRead)
async def get_user(
    user_id: UUID,
    service: IdentityService = Depends(get_identity_service),
) -> UserRead:
    user = await service.get_user(user_id)
    return UserRead.model_validate(user)


@router.delete("/{user_id}", response_model=UserDeletionRead)
async def delete_user(
    user_id: UUID,
    performed_by: UUID | None = None,
    service: IdentityService = Depends(get_identity_service),
) -> UserDeletionRead:
    """Soft-delete user with cascade."""
    result = await service.soft_delete_user(user_id, performed_by)
    return UserDeletionRead.model_validate(result)
