from collections.abc import Callable

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .database import get_db_session
from .models import User, UserRole
from .security import AuthError, decode_access_token


# A homeroom teacher is still a teacher for every teacher-level route.
ROLE_ACCESS = {
    UserRole.HOMEROOM_TEACHER: {UserRole.HOMEROOM_TEACHER, UserRole.TEACHER},
}

STAFF_ROLES = (UserRole.ADMIN, UserRole.PRINCIPAL, UserRole.TEACHER, UserRole.HOMEROOM_TEACHER)


def _parse_token(auth_header: str | None) -> str:
    if not auth_header:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid auth scheme")
    return parts[1].strip()


def get_current_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> User:
    token = _parse_token(authorization)
    try:
        claims = decode_access_token(token)
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    user = db.query(User).filter(User.email == claims.email).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    # A role change invalidates tokens issued under the old role.
    if user.role != claims.role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token role is outdated")
    return user


def has_role(user: User, *roles: UserRole) -> bool:
    reachable = ROLE_ACCESS.get(user.role, {user.role})
    return bool(set(roles).intersection(reachable))


def require_roles(*allowed_roles: UserRole) -> Callable:
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not has_role(current_user, *allowed_roles):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role privileges")
        return current_user

    return dependency
