from typing import Sequence

from ..domain.errors import CapacityError, DateNotFoundError
from ..domain.repositories import AvailableDateRepository
from ..domain.services import AllocationRequest, LedgerSnapshot, merge_requests, validate_allocation
from ..models import AvailableDate


async def validate_slot_availability(
    date_repo: AvailableDateRepository,
    requests: Sequence[AllocationRequest],
    *,
    lock: bool = False,
) -> dict[int, AvailableDate]:
    """Re-read every referenced ledger day and check the requested slots fit.

    Read-only. Returns the rows keyed by id so callers can freeze them into an
    order.
    """
    rows: dict[int, AvailableDate] = {}
    for request in merge_requests(requests):
        if lock:
            row = await date_repo.get_for_update(request.date_id)
        else:
            row = await date_repo.get(request.date_id)
        if row is None:
            raise DateNotFoundError(f"Date {request.date_id} is no longer available")
        validate_allocation(
            LedgerSnapshot.of(row),
            normal_slots_used=request.normal_slots_used,
            emergency_slots_used=request.emergency_slots_used,
        )
        rows[row.id] = row
    return rows


async def reserve_slots(
    date_repo: AvailableDateRepository,
    requests: Sequence[AllocationRequest],
) -> dict[int, AvailableDate]:
    """Validate, then consume capacity with a conditional increment per day.

    Must run inside the transaction that writes the order.
    """
    rows = await validate_slot_availability(date_repo, requests, lock=True)
    for request in merge_requests(requests):
        if request.total == 0:
            continue
        reserved = await date_repo.reserve(
            request.date_id,
            normal=request.normal_slots_used,
            emergency=request.emergency_slots_used,
        )
        if not reserved:
            raise CapacityError(f"Not enough slots available for {rows[request.date_id].date.isoformat()}")
    return rows


async def release_slots(
    date_repo: AvailableDateRepository,
    requests: Sequence[AllocationRequest],
) -> None:
    for request in merge_requests(requests):
        if request.total == 0:
            continue
        await date_repo.release(
            request.date_id,
            normal=request.normal_slots_used,
            emergency=request.emergency_slots_used,
        )
