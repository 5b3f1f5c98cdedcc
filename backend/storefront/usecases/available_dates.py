from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Sequence

from ..domain.errors import ConflictError, NotFoundError, ValidationError
from ..domain.repositories import AvailableDateRepository
from ..models import AvailableDate
from ..utils.time import month_range, utc_today

DEFAULT_NORMAL_SLOTS = 4
DEFAULT_EMERGENCY_SLOTS = 1
DEFAULT_EMERGENCY_SLOT_COST = Decimal("0")


@dataclass(frozen=True)
class DayCapacity:
    day: date
    normal_slots: int = DEFAULT_NORMAL_SLOTS
    emergency_slots: int = DEFAULT_EMERGENCY_SLOTS
    emergency_slot_cost: Decimal = DEFAULT_EMERGENCY_SLOT_COST
    is_available: bool = True


async def list_dates(
    date_repo: AvailableDateRepository,
    *,
    month: int | None,
    year: int | None,
    public: bool,
) -> Sequence[AvailableDate]:
    """Ledger days in a UTC calendar month, or from today on when no month is given."""
    if (month is None) != (year is None):
        raise ValidationError("month and year must be given together")
    if month is not None and year is not None:
        try:
            start, end = month_range(month, year)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return await date_repo.list_range(start, end, only_available=public)
    return await date_repo.list_range(utc_today(), None, only_available=public)


async def create_date(date_repo: AvailableDateRepository, capacity: DayCapacity) -> AvailableDate:
    if await date_repo.get_by_day(capacity.day) is not None:
        raise ConflictError("Date already exists")
    return await date_repo.create(
        day=capacity.day,
        normal_slots=capacity.normal_slots,
        emergency_slots=capacity.emergency_slots,
        emergency_slot_cost=capacity.emergency_slot_cost,
        is_available=capacity.is_available,
    )


async def bulk_upsert(date_repo: AvailableDateRepository, capacities: Sequence[DayCapacity]) -> list[AvailableDate]:
    """Create or replace capacity settings per day; booked counters are kept."""
    results: list[AvailableDate] = []
    for capacity in capacities:
        existing = await date_repo.get_by_day(capacity.day)
        if existing is not None:
            _check_not_below_booked(existing, capacity.normal_slots, capacity.emergency_slots)
        row = await date_repo.upsert(
            day=capacity.day,
            normal_slots=capacity.normal_slots,
            emergency_slots=capacity.emergency_slots,
            emergency_slot_cost=capacity.emergency_slot_cost,
            is_available=capacity.is_available,
        )
        results.append(row)
    return results


async def update_date(
    date_repo: AvailableDateRepository,
    *,
    date_id: int,
    changes: dict[str, Any],
) -> AvailableDate:
    row = await date_repo.get_for_update(date_id)
    if row is None:
        raise NotFoundError("Available date not found")
    _check_not_below_booked(
        row,
        changes.get("normal_slots", row.normal_slots),
        changes.get("emergency_slots", row.emergency_slots),
    )
    if not changes:
        return row
    return await date_repo.update(row, changes)


def _check_not_below_booked(row: AvailableDate, normal_slots: int, emergency_slots: int) -> None:
    if normal_slots < row.normal_booked_slots:
        raise ValidationError("normal_slots cannot be lower than normal slots already booked")
    if emergency_slots < row.emergency_booked_slots:
        raise ValidationError("emergency_slots cannot be lower than emergency slots already booked")


async def delete_date(date_repo: AvailableDateRepository, *, date_id: int) -> AvailableDate:
    row = await date_repo.get(date_id)
    if row is None:
        raise NotFoundError("Available date not found")
    await date_repo.delete(row)
    return row


async def cleanup_before(date_repo: AvailableDateRepository, *, before: date) -> int:
    return await date_repo.delete_before(before)
