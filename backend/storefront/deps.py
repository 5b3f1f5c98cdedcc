import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Iterator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import Database
from .domain.errors import DomainError
from .infrastructure.repositories import SqlAlchemyUserRepository
from .models import User, UserRole
from .utils.auth import decode_access_token, is_email_login_token
from .utils.mailer import LoggingMailer, Mailer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    uid: str
    name: str
    email: str | None
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def of(cls, user: User) -> "AuthenticatedUser":
        return cls(uid=user.uid, name=user.name, email=user.email, role=user.role)


def _database(request: Request) -> Database:
    return request.app.state.database


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    async with _database(request).sessionmaker() as session:
        yield session


async def get_auth_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Separate session for the user lookup so handlers can open their own transaction."""
    async with _database(request).sessionmaker() as session:
        yield session


def get_mailer(request: Request) -> Mailer:
    mailer = getattr(request.app.state, "mailer", None)
    return mailer if mailer is not None else LoggingMailer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    session: AsyncSession = Depends(get_auth_session),
) -> AuthenticatedUser:
    if authorization is None:
        raise _unauthorized("Authorization header required")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise _unauthorized("Invalid authorization header")

    settings = get_settings()
    if is_email_login_token(token):
        if not settings.allow_email_login_tokens or not x_user_id:
            raise _unauthorized("Invalid or expired token")
        uid = x_user_id.strip()
    else:
        try:
            uid = decode_access_token(
                token,
                secret=settings.auth_secret,
                algorithms=[settings.auth_algorithm],
            )
        except ValueError as exc:
            raise _unauthorized("Invalid or expired token") from exc

    try:
        user = await SqlAlchemyUserRepository(session).get_by_uid(uid)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="user lookup failed",
        ) from exc
    if user is None:
        raise _unauthorized("User not found")
    return AuthenticatedUser.of(user)


async def require_admin(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


@contextmanager
def translate_domain_errors() -> Iterator[None]:
    """Re-raise domain errors as HTTP errors carrying the same status and message."""
    try:
        yield
    except DomainError as exc:
        if exc.status_code >= 500:
            logger.exception("domain error")
            raise HTTPException(status_code=exc.status_code, detail="Internal server error") from exc
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
