from datetime import datetime, timedelta
from typing import Any, AsyncIterator

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from storefront.config import get_settings
from storefront.deps import AuthenticatedUser, get_auth_session, get_current_user
from storefront.models import User, UserRole
from storefront.utils.auth import create_access_token


class DummySession:
    def __init__(self, user_exists: bool) -> None:
        self.user_exists = user_exists

    async def scalar(self, *args: Any, **kwargs: Any) -> User | None:
        if not self.user_exists:
            return None
        now = datetime(2025, 3, 1)
        return User(id=1, uid="uid-123", email=None, name="Asha", role=UserRole.CUSTOMER, created_at=now, updated_at=now)

    async def rollback(self) -> None:
        return None


def _make_app(user_exists: bool) -> TestClient:
    app = FastAPI()

    async def override_get_auth_session() -> AsyncIterator[DummySession]:
        session = DummySession(user_exists=user_exists)
        yield session

    app.dependency_overrides[get_auth_session] = override_get_auth_session

    @app.get("/protected")
    async def protected(user: AuthenticatedUser = Depends(get_current_user)) -> dict[str, str]:
        return {"uid": user.uid}

    return TestClient(app)


def _token(secret: str, *, expired: bool = False) -> str:
    delta = timedelta(seconds=-1) if expired else timedelta(minutes=30)
    return create_access_token(uid="uid-123", secret=secret, expires_delta=delta)


@pytest.fixture(autouse=True)
def _auth_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTH_SECRET", "testsecret")
    get_settings.cache_clear()


def test_protected_accepts_valid_token() -> None:
    client = _make_app(user_exists=True)
    res = client.get("/protected", headers={"Authorization": f"Bearer {_token('testsecret')}"})
    assert res.status_code == 200
    assert res.json()["uid"] == "uid-123"


def test_protected_rejects_missing_header() -> None:
    client = _make_app(user_exists=True)
    res = client.get("/protected")
    assert res.status_code == 401
    assert res.headers.get("www-authenticate", "").lower().startswith("bearer")


def test_protected_rejects_invalid_token() -> None:
    client = _make_app(user_exists=True)
    res = client.get("/protected", headers={"Authorization": "Bearer invalid"})
    assert res.status_code == 401


def test_protected_rejects_token_signed_with_other_secret() -> None:
    client = _make_app(user_exists=True)
    res = client.get("/protected", headers={"Authorization": f"Bearer {_token('othersecret')}"})
    assert res.status_code == 401


def test_protected_rejects_expired_token() -> None:
    client = _make_app(user_exists=True)
    res = client.get("/protected", headers={"Authorization": f"Bearer {_token('testsecret', expired=True)}"})
    assert res.status_code == 401


def test_protected_rejects_when_user_not_found() -> None:
    client = _make_app(user_exists=False)
    res = client.get("/protected", headers={"Authorization": f"Bearer {_token('testsecret')}"})
    assert res.status_code == 401
