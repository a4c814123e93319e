from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .database import get_db_session
from .middleware import get_current_user, require_roles
from .models import User, UserRole
from .schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    UserActiveUpdateRequest,
    UserCreateRequest,
    UserOut,
)
from .services import change_password, create_user, login_user, set_user_active

router = APIRouter(prefix="/api/v1", tags=["Auth & Users"])


def user_out(user: User) -> UserOut:
    return UserOut(id=user.id, name=user.name, email=user.email, role=user.role, is_active=user.is_active)


@router.post("/auth/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db_session)):
    user, token = login_user(db, email=payload.email, password=payload.password)
    return LoginResponse(access_token=token, role=user.role)


@router.get("/auth/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return user_out(current_user)


@router.put("/auth/change-password", status_code=status.HTTP_204_NO_CONTENT)
def update_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(get_current_user),
):
    change_password(
        db, user=current_user, current_password=payload.current_password, new_password=payload.new_password
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def add_user(
    payload: UserCreateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    user = create_user(db, name=payload.name, email=payload.email, raw_password=payload.password, role=payload.role)
    return user_out(user)


@router.get("/users", response_model=list[UserOut])
def list_users(
    role: UserRole | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    query = db.query(User)
    if role is not None:
        query = query.filter(User.role == role)
    return [user_out(user) for user in query.order_by(User.id.asc()).all()]


@router.patch("/users/{user_id}/active", response_model=UserOut)
def update_user_active(
    user_id: int,
    payload: UserActiveUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    user = set_user_active(db, user_id=user_id, is_active=payload.is_active, actor=current_user)
    return user_out(user)
