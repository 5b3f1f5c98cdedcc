from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import AuthenticatedUser, get_current_user, get_session, translate_domain_errors
from ..infrastructure.repositories import SqlAlchemyUserSizeRepository
from ..schemas import Envelope, SizeCreate, SizeRead, SizeUpdate
from ..usecases import sizes as size_usecase

router = APIRouter(prefix="/users/me/sizes", tags=["users", "sizes"])


@router.get("", response_model=Envelope[list[SizeRead]])
async def list_sizes(
    size_type: Optional[str] = Query(default=None, max_length=50),
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[list[SizeRead]]:
    rows = await size_usecase.list_sizes(
        SqlAlchemyUserSizeRepository(session),
        user_uid=user.uid,
        size_type=size_type,
    )
    return Envelope(data=[SizeRead.from_db(row) for row in rows])


@router.post("", response_model=Envelope[SizeRead], status_code=status.HTTP_201_CREATED)
async def create_size(
    payload: SizeCreate,
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[SizeRead]:
    draft = size_usecase.SizeDraft(
        name=payload.name,
        measurements=payload.measurements.model_dump(),
        size_type=payload.size_type,
        is_default=payload.is_default,
    )
    with translate_domain_errors():
        async with session.begin():
            row = await size_usecase.create_size(SqlAlchemyUserSizeRepository(session), user_uid=user.uid, draft=draft)
    return Envelope(data=SizeRead.from_db(row))


@router.get("/{size_id}", response_model=Envelope[SizeRead])
async def get_size(
    size_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[SizeRead]:
    with translate_domain_errors():
        row = await size_usecase.get_size(SqlAlchemyUserSizeRepository(session), user_uid=user.uid, size_id=size_id)
    return Envelope(data=SizeRead.from_db(row))


@router.patch("/{size_id}", response_model=Envelope[SizeRead])
async def update_size(
    payload: SizeUpdate,
    size_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[SizeRead]:
    with translate_domain_errors():
        async with session.begin():
            row = await size_usecase.update_size(
                SqlAlchemyUserSizeRepository(session),
                user_uid=user.uid,
                size_id=size_id,
                name=payload.name,
                size_type=payload.size_type,
                measurements=payload.measurements.model_dump() if payload.measurements else None,
                is_default=payload.is_default,
            )
    return Envelope(data=SizeRead.from_db(row))


@router.delete("/{size_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_size(
    size_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> None:
    with translate_domain_errors():
        async with session.begin():
            await size_usecase.delete_size(SqlAlchemyUserSizeRepository(session), user_uid=user.uid, size_id=size_id)
