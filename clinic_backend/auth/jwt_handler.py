from datetime import datetime, timedelta, timezone

import jwt

from clinic_backend.core import config

ADMIN_ROLE = "admin"


def create_access_token(subject: str, role: str = ADMIN_ROLE, expires_minutes: int | None = None) -> str:
    """Issue a bearer token; the clinic's auth service signs with the same secret."""
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {"sub": subject.strip().lower(), "role": role, "exp": expire, "iat": issued_at}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    return jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": ["exp", "sub"]},
    )
