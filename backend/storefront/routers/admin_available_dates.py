from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import AuthenticatedUser, get_session, require_admin, translate_domain_errors
from ..infrastructure.repositories import SqlAlchemyAvailableDateRepository
from ..schemas import (
    AvailableDateBulk,
    AvailableDateCleanup,
    AvailableDateCreate,
    AvailableDateRead,
    AvailableDateUpdate,
    CleanupResult,
    Envelope,
)
from ..usecases import available_dates as date_usecase
from ..utils.audit_log import emit_audit_log

router = APIRouter(prefix="/admin/available-dates", tags=["admin", "available-dates"])


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(initiator="admin", **kwargs)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


def _capacity(payload: AvailableDateCreate) -> date_usecase.DayCapacity:
    return date_usecase.DayCapacity(
        day=payload.date,
        normal_slots=payload.normal_slots,
        emergency_slots=payload.emergency_slots,
        emergency_slot_cost=payload.emergency_slot_cost,
        is_available=payload.is_available,
    )


@router.get("", response_model=Envelope[list[AvailableDateRead]])
async def list_all_dates(
    month: Optional[int] = Query(default=None),
    year: Optional[int] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[list[AvailableDateRead]]:
    date_repo = SqlAlchemyAvailableDateRepository(session)
    with translate_domain_errors():
        rows = await date_usecase.list_dates(date_repo, month=month, year=year, public=False)
    return Envelope(data=[AvailableDateRead.from_db(row) for row in rows])


@router.post("", response_model=Envelope[AvailableDateRead], status_code=status.HTTP_201_CREATED)
async def create_date(
    payload: AvailableDateCreate,
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[AvailableDateRead]:
    date_repo = SqlAlchemyAvailableDateRepository(session)
    with translate_domain_errors():
        async with session.begin():
            row = await date_usecase.create_date(date_repo, _capacity(payload))

    _audit(action="available_date.created", user_uid=admin.uid, date_id=row.id, extra={"date": row.date})
    return Envelope(data=AvailableDateRead.from_db(row))


@router.post("/bulk", response_model=Envelope[list[AvailableDateRead]])
async def bulk_upsert_dates(
    payload: AvailableDateBulk,
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[list[AvailableDateRead]]:
    date_repo = SqlAlchemyAvailableDateRepository(session)
    with translate_domain_errors():
        async with session.begin():
            rows = await date_usecase.bulk_upsert(date_repo, [_capacity(item) for item in payload.dates])

    _audit(
        action="available_date.upserted",
        user_uid=admin.uid,
        extra={"dates": [row.date for row in rows], "count": len(rows)},
    )
    return Envelope(data=[AvailableDateRead.from_db(row) for row in rows])


@router.patch("/{date_id}", response_model=Envelope[AvailableDateRead])
async def update_date(
    payload: AvailableDateUpdate,
    date_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[AvailableDateRead]:
    date_repo = SqlAlchemyAvailableDateRepository(session)
    changes = payload.model_dump(exclude_none=True)
    with translate_domain_errors():
        async with session.begin():
            row = await date_usecase.update_date(date_repo, date_id=date_id, changes=changes)

    _audit(action="available_date.updated", user_uid=admin.uid, date_id=row.id, extra={"changes": changes})
    return Envelope(data=AvailableDateRead.from_db(row))


@router.delete("/{date_id}", response_model=Envelope[AvailableDateRead])
async def delete_date(
    date_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[AvailableDateRead]:
    date_repo = SqlAlchemyAvailableDateRepository(session)
    with translate_domain_errors():
        async with session.begin():
            row = await date_usecase.delete_date(date_repo, date_id=date_id)

    _audit(action="available_date.deleted", user_uid=admin.uid, date_id=row.id, extra={"date": row.date})
    return Envelope(data=AvailableDateRead.from_db(row))


@router.post("/cleanup", response_model=Envelope[CleanupResult])
async def cleanup_dates(
    payload: AvailableDateCleanup,
    session: AsyncSession = Depends(get_session),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Envelope[CleanupResult]:
    date_repo = SqlAlchemyAvailableDateRepository(session)
    async with session.begin():
        deleted = await date_usecase.cleanup_before(date_repo, before=payload.before_date)

    _audit(
        action="available_date.cleanup",
        user_uid=admin.uid,
        extra={"before_date": payload.before_date, "deleted_count": deleted},
    )
    return Envelope(data=CleanupResult(deleted_count=deleted))
