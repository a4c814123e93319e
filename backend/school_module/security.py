"""Password hashing, password rules and the bearer tokens issued at login.

A token carries the account email (``sub``), its role and its user id.
``decode_access_token`` turns a token back into ``TokenClaims`` and rejects
tokens whose role is not one of ``UserRole``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from .config import settings
from .models import User, UserRole

PASSWORD_MIN_LENGTH = 8

REQUIRED_CLAIMS = ["sub", "role", "exp"]


class AuthError(Exception):
    pass


class WeakPasswordError(ValueError):
    pass


@dataclass(frozen=True)
class TokenClaims:
    email: str
    role: UserRole
    user_id: int | None
    expires_at: datetime


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def check_password_policy(password: str) -> None:
    if len(password) < PASSWORD_MIN_LENGTH:
        raise WeakPasswordError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if not any(ch.isalpha() for ch in password) or not any(ch.isdigit() for ch in password):
        raise WeakPasswordError("Password must contain both letters and digits")


def create_access_token(subject: str, role: str, user_id: int, expires_minutes: int | None = None) -> str:
    exp_minutes = expires_minutes or settings.jwt_exp_minutes
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "uid": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def issue_token(user: User, expires_minutes: int | None = None) -> str:
    return create_access_token(user.email, user.role.value, user.id, expires_minutes)


def decode_access_token(token: str) -> TokenClaims:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc

    try:
        role = UserRole(payload["role"])
    except ValueError as exc:
        raise AuthError("Invalid token payload") from exc
    return TokenClaims(
        email=payload["sub"],
        role=role,
        user_id=payload.get("uid"),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
