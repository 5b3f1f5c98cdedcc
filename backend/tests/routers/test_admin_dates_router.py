from datetime import date, datetime
from decimal import Decimal
from typing import Any, cast

import pytest
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.deps import AuthenticatedUser
from storefront.domain.errors import ConflictError
from storefront.models import AvailableDate, UserRole
from storefront.routers import admin_available_dates as router
from storefront.schemas import AvailableDateCleanup, AvailableDateCreate

NOW = datetime(2025, 3, 1)
ADMIN = AuthenticatedUser(uid="admin-1", name="Admin", email="admin@example.com", role=UserRole.ADMIN)


class DummySession:
    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False

    def begin(self) -> "DummySession":
        return self


def _row() -> AvailableDate:
    return AvailableDate(
        id=5,
        date=date(2025, 3, 10),
        normal_slots=4,
        emergency_slots=1,
        emergency_slot_cost=Decimal("250"),
        is_available=True,
        normal_booked_slots=1,
        emergency_booked_slots=0,
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.mark.asyncio
async def test_create_date_emits_audit(monkeypatch: pytest.MonkeyPatch) -> None:
    row = _row()
    captured: dict[str, Any] = {}

    async def fake_create(date_repo: object, capacity: Any) -> AvailableDate:
        captured["capacity"] = capacity
        return row

    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(router.date_usecase, "create_date", fake_create)
    monkeypatch.setattr(router, "emit_audit_log", lambda **kwargs: calls.append(kwargs))

    payload = AvailableDateCreate(date="2025-03-10T18:30:00+00:00", emergency_slot_cost=Decimal("250"))
    result = await router.create_date(payload=payload, session=cast(AsyncSession, DummySession()), admin=ADMIN)

    assert captured["capacity"].day == date(2025, 3, 10)
    assert result.data.remaining_normal_slots == 3
    assert result.data.total_slots == 5
    assert calls[0]["action"] == "available_date.created"
    assert calls[0]["initiator"] == "admin"
    assert calls[0]["date_id"] == 5


@pytest.mark.asyncio
async def test_create_duplicate_date_is_409(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_create(*args: object, **kwargs: object) -> AvailableDate:
        raise ConflictError("Date already exists")

    monkeypatch.setattr(router.date_usecase, "create_date", fake_create)

    with pytest.raises(HTTPException) as excinfo:
        await router.create_date(
            payload=AvailableDateCreate(date=date(2025, 3, 10)),
            session=cast(AsyncSession, DummySession()),
            admin=ADMIN,
        )
    assert excinfo.value.status_code == 409
    assert excinfo.value.detail == "Date already exists"


@pytest.mark.asyncio
async def test_cleanup_reports_deleted_count(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_cleanup(date_repo: object, *, before: date) -> int:
        assert before == date(2025, 3, 1)
        return 7

    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(router.date_usecase, "cleanup_before", fake_cleanup)
    monkeypatch.setattr(router, "emit_audit_log", lambda **kwargs: calls.append(kwargs))

    result = await router.cleanup_dates(
        payload=AvailableDateCleanup(before_date=date(2025, 3, 1)),
        session=cast(AsyncSession, DummySession()),
        admin=ADMIN,
    )
    assert result.data.deleted_count == 7
    assert calls[0]["extra"]["deleted_count"] == 7
