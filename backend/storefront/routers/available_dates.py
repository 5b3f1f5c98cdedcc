from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session, translate_domain_errors
from ..infrastructure.repositories import SqlAlchemyAvailableDateRepository
from ..schemas import AvailableDateRead, Envelope
from ..usecases import available_dates as date_usecase

router = APIRouter(prefix="/available-dates", tags=["available-dates"])


@router.get("", response_model=Envelope[list[AvailableDateRead]])
async def list_available_dates(
    month: Optional[int] = Query(default=None, description="1-12, requires year"),
    year: Optional[int] = Query(default=None, description="4-digit year, requires month"),
    session: AsyncSession = Depends(get_session),
) -> Envelope[list[AvailableDateRead]]:
    date_repo = SqlAlchemyAvailableDateRepository(session)
    with translate_domain_errors():
        rows = await date_usecase.list_dates(date_repo, month=month, year=year, public=True)
    return Envelope(data=[AvailableDateRead.from_db(row) for row in rows])
