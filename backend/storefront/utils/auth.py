from datetime import datetime, timedelta, timezone
from typing import Sequence

import jwt
from jwt import InvalidTokenError

EMAIL_TOKEN_PREFIX = "email-"


def create_access_token(
    *,
    uid: str,
    secret: str,
    algorithm: str = "HS256",
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=30))
    payload: dict[str, object] = {"sub": uid, "iat": now, "exp": exp}
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> str:
    """Return the identity-provider uid carried in ``sub``."""
    try:
        payload = jwt.decode(token, secret, algorithms=list(algorithms))
    except InvalidTokenError as exc:  # includes ExpiredSignatureError
        raise ValueError("invalid token") from exc

    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub.strip():
        raise ValueError("token missing sub")
    return sub.strip()


def is_email_login_token(token: str) -> bool:
    return token.startswith(EMAIL_TOKEN_PREFIX) and len(token) > 20
