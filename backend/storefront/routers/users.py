from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import AuthenticatedUser, get_current_user, get_session, require_admin, translate_domain_errors
from ..infrastructure.repositories import SqlAlchemyUserRepository
from ..models import UserRole
from ..schemas import Envelope, ProfileUpdate, UserRead, UserRoleUpdate
from ..usecases import users as user_usecase

router = APIRouter(prefix="/users", tags=["users"])
admin_router = APIRouter(prefix="/admin/users", tags=["admin", "users"])


@router.get("/me", response_model=Envelope[UserRead])
async def get_profile(
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[UserRead]:
    with translate_domain_errors():
        row = await user_usecase.get_profile(SqlAlchemyUserRepository(session), uid=user.uid)
    return Envelope(data=UserRead.from_db(row))


@router.patch("/me", response_model=Envelope[UserRead])
async def update_profile(
    payload: ProfileUpdate,
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[UserRead]:
    with translate_domain_errors():
        async with session.begin():
            row = await user_usecase.update_profile(
                SqlAlchemyUserRepository(session),
                uid=user.uid,
                name=payload.name,
                phone=payload.phone,
            )
    return Envelope(data=UserRead.from_db(row))


@admin_router.get("", response_model=Envelope[list[UserRead]])
async def list_users(
    role: Optional[UserRole] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[list[UserRead]]:
    rows = await user_usecase.list_users(SqlAlchemyUserRepository(session), role=role)
    return Envelope(data=[UserRead.from_db(row) for row in rows])


@admin_router.patch("/{user_id}/role", response_model=Envelope[UserRead])
async def update_role(
    payload: UserRoleUpdate,
    user_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[UserRead]:
    with translate_domain_errors():
        async with session.begin():
            row = await user_usecase.update_role(
                SqlAlchemyUserRepository(session),
                user_id=user_id,
                role=payload.role,
                acting_uid=admin.uid,
            )
    return Envelope(data=UserRead.from_db(row))
