from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from crm_api.auth.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageRead,
    ResetPasswordRequest,
    SignupRequest,
    TokenRead,
    UserRead,
)
from crm_api.auth.service import auth_service
from crm_api.core.auth import AuthUser, get_current_user
from crm_api.core.database import get_db
from crm_api.core.errors import AuthError, NotFoundError
from crm_api.mail import Mailer, get_mailer
from crm_api.models.user import User

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup", response_model=TokenRead, status_code=status.HTTP_201_CREATED)
def signup(dto: SignupRequest, db: Session = Depends(get_db)) -> TokenRead:
    return auth_service.signup(db, dto)


@router.post("/login", response_model=TokenRead)
def login(dto: LoginRequest, db: Session = Depends(get_db)) -> TokenRead:
    return auth_service.login(db, dto)


@router.post("/forgot-password", response_model=MessageRead)
def forgot_password(
    dto: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> MessageRead:
    auth_service.forgot_password(db, mailer, dto)
    return MessageRead(message="Password reset link sent")


@router.post("/reset-password", response_model=MessageRead)
def reset_password(dto: ResetPasswordRequest, db: Session = Depends(get_db)) -> MessageRead:
    auth_service.reset_password(db, dto)
    return MessageRead(message="Password has been reset")


@router.get("/me", response_model=UserRead)
def me(user: AuthUser = Depends(get_current_user), db: Session = Depends(get_db)) -> UserRead:
    if user.is_anonymous:
        raise AuthError("authentication token is missing", code="token_missing")
    row = db.get(User, user.user_id)
    if row is None:
        raise NotFoundError("user not found")
    return UserRead.model_validate(row)
