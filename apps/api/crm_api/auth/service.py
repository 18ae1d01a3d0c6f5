from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from crm_api.auth.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    TokenRead,
    UserRead,
)
from crm_api.core.auth import create_access_token, hash_password, verify_password
from crm_api.core.config import get_settings
from crm_api.core.errors import AuthError, DependencyError, NotFoundError, ValidationError
from crm_api.crm.normalization import ensure_utc
from crm_api.mail import Mailer
from crm_api.models.user import User

logger = logging.getLogger("crm_api.auth")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    def signup(self, session: Session, dto: SignupRequest) -> TokenRead:
        if session.scalar(select(User.id).where(User.email == dto.email)) is not None:
            raise ValidationError.single("email", "email is already registered")

        user = User(name=dto.name.strip(), email=dto.email, password_hash=hash_password(dto.password))
        session.add(user)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ValidationError.single("email", "email is already registered") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise DependencyError(f"user write failed: {exc}") from exc

        logger.info("auth.signed_up", extra={"actor_id": str(user.id)})
        return self._token_for(user)

    def login(self, session: Session, dto: LoginRequest) -> TokenRead:
        user = session.scalar(select(User).where(User.email == dto.email))
        if user is None or not verify_password(dto.password, user.password_hash):
            raise AuthError("invalid email or password", code="invalid_credentials")
        logger.info("auth.logged_in", extra={"actor_id": str(user.id)})
        return self._token_for(user)

    def forgot_password(self, session: Session, mailer: Mailer, dto: ForgotPasswordRequest) -> None:
        user = session.scalar(select(User).where(User.email == dto.email))
        if user is None:
            raise NotFoundError("no account with that email")

        settings = get_settings()
        token = secrets.token_urlsafe(32)
        user.reset_token = _hash_reset_token(token)
        user.reset_token_expires_at = utcnow() + timedelta(minutes=settings.password_reset_expires_minutes)
        session.commit()

        link = f"{settings.frontend_url.rstrip('/')}/reset-password/{token}"
        mailer.send(
            user.email,
            "Password reset",
            f"Hello {user.name},\n\nReset your password here: {link}\n\n"
            f"The link expires in {settings.password_reset_expires_minutes} minutes.",
            f'<p>Hello {user.name},</p><p><a href="{link}">Reset your password</a></p>'
            f"<p>The link expires in {settings.password_reset_expires_minutes} minutes.</p>",
        )
        logger.info("auth.reset_requested", extra={"actor_id": str(user.id)})

    def reset_password(self, session: Session, dto: ResetPasswordRequest) -> None:
        user = session.scalar(select(User).where(User.reset_token == _hash_reset_token(dto.token)))
        expires_at = ensure_utc(user.reset_token_expires_at) if user is not None else None
        if user is None or expires_at is None or expires_at <= utcnow():
            raise ValidationError.single("token", "reset token is invalid or has expired")

        user.password_hash = hash_password(dto.password)
        user.reset_token = None
        user.reset_token_expires_at = None
        session.commit()
        logger.info("auth.password_reset", extra={"actor_id": str(user.id)})

    def _token_for(self, user: User) -> TokenRead:
        return TokenRead(access_token=create_access_token(user.id), user=UserRead.model_validate(user))


auth_service = AuthService()
