from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Literal, Sequence

from ..models import AvailableDate, OrderStatus
from .errors import CapacityError, ValidationError


@dataclass(frozen=True)
class LedgerSnapshot:
    date_id: int
    day: date
    normal_slots: int
    emergency_slots: int
    normal_booked_slots: int
    emergency_booked_slots: int

    @property
    def remaining_normal(self) -> int:
        return self.normal_slots - self.normal_booked_slots

    @property
    def remaining_emergency(self) -> int:
        return self.emergency_slots - self.emergency_booked_slots

    @classmethod
    def of(cls, row: AvailableDate) -> "LedgerSnapshot":
        return cls(
            date_id=row.id,
            day=row.date,
            normal_slots=row.normal_slots,
            emergency_slots=row.emergency_slots,
            normal_booked_slots=row.normal_booked_slots,
            emergency_booked_slots=row.emergency_booked_slots,
        )


@dataclass(frozen=True)
class AllocationRequest:
    date_id: int
    normal_slots_used: int
    emergency_slots_used: int

    @property
    def total(self) -> int:
        return self.normal_slots_used + self.emergency_slots_used


def validate_allocation(snapshot: LedgerSnapshot, *, normal_slots_used: int, emergency_slots_used: int) -> None:
    """
    Pure capacity check for one ledger day. Normal and emergency pools are
    checked independently. Raises CapacityError naming the day on failure.
    """
    if normal_slots_used < 0 or emergency_slots_used < 0:
        raise ValidationError("slot counts must not be negative")
    if normal_slots_used > snapshot.remaining_normal:
        raise CapacityError(f"Not enough normal slots available for {snapshot.day.isoformat()}")
    if emergency_slots_used > snapshot.remaining_emergency:
        raise CapacityError(f"Not enough emergency slots available for {snapshot.day.isoformat()}")


def merge_requests(requests: Sequence[AllocationRequest]) -> list[AllocationRequest]:
    """Combine requests naming the same ledger day, keeping first-seen order."""
    merged: dict[int, AllocationRequest] = {}
    for request in requests:
        seen = merged.get(request.date_id)
        if seen is None:
            merged[request.date_id] = request
            continue
        merged[request.date_id] = AllocationRequest(
            date_id=request.date_id,
            normal_slots_used=seen.normal_slots_used + request.normal_slots_used,
            emergency_slots_used=seen.emergency_slots_used + request.emergency_slots_used,
        )
    return list(merged.values())


def split_slots(total: int, days: int) -> list[int]:
    """Spread ``total`` slots over ``days`` days; earlier days take the remainder."""
    if days <= 0:
        raise ValidationError("at least one date is required")
    share, extra = divmod(total, days)
    return [share + (1 if index < extra else 0) for index in range(days)]


def freeze_allocation(row: AvailableDate, request: AllocationRequest) -> dict[str, Any]:
    """Copy of a ledger row embedded into an order, immune to later edits."""
    return {
        "date": {
            "id": row.id,
            "date": row.date.isoformat(),
            "normal_slots": row.normal_slots,
            "emergency_slots": row.emergency_slots,
            "emergency_slot_cost": str(row.emergency_slot_cost),
            "is_available": row.is_available,
            "normal_booked_slots": row.normal_booked_slots,
            "emergency_booked_slots": row.emergency_booked_slots,
        },
        "normal_slots_used": request.normal_slots_used,
        "emergency_slots_used": request.emergency_slots_used,
        "total_slots_used": request.total,
    }


def allocation_requests(slot_allocation: Sequence[dict[str, Any]]) -> list[AllocationRequest]:
    """Rebuild reservation requests from an order's frozen allocation."""
    return [
        AllocationRequest(
            date_id=int(entry["date"]["id"]),
            normal_slots_used=int(entry["normal_slots_used"]),
            emergency_slots_used=int(entry["emergency_slots_used"]),
        )
        for entry in slot_allocation
    ]


def holds_slots(status: OrderStatus) -> bool:
    return status != OrderStatus.CANCELLED


NotificationType = Literal["urgent", "warning", "info"]
OPEN_STATUSES = frozenset({OrderStatus.PENDING})
NOTIFICATION_LIMIT = 20
_TYPE_RANK: dict[str, int] = {"urgent": 0, "warning": 1, "info": 2}


@dataclass(frozen=True)
class Notification:
    id: str
    type: NotificationType
    title: str
    message: str
    order_id: int
    days_left: int
    status: str


def order_short_id(order_id: int) -> str:
    return str(order_id).zfill(6)[-6:]


def build_notification(
    *,
    order_id: int,
    status: OrderStatus,
    product_name: str,
    customer_name: str | None,
    earliest_day: date,
    today: date,
) -> Notification | None:
    if status not in OPEN_STATUSES:
        return None
    days_left = (earliest_day - today).days
    short_id = order_short_id(order_id)
    message = f"{customer_name or 'Unknown Customer'} - {product_name}"
    if days_left < 0:
        return Notification(
            id=f"overdue-{order_id}",
            type="urgent",
            title=f"Order #{short_id} is {abs(days_left)} day(s) overdue",
            message=message,
            order_id=order_id,
            days_left=days_left,
            status="Overdue",
        )
    if days_left <= 3:
        if days_left == 0:
            when, label = "today", "Due Today"
        elif days_left == 1:
            when, label = "tomorrow", "1 day(s) left"
        else:
            when, label = f"in {days_left} days", f"{days_left} day(s) left"
        return Notification(
            id=f"pending-{order_id}",
            type="urgent" if days_left == 0 else "warning",
            title=f"Order #{short_id} - Due {when}",
            message=message,
            order_id=order_id,
            days_left=days_left,
            status=label,
        )
    return None


def sort_notifications(items: Sequence[Notification], limit: int = NOTIFICATION_LIMIT) -> list[Notification]:
    ordered = sorted(items, key=lambda n: (_TYPE_RANK[n.type], n.days_left))
    return ordered[:limit]
