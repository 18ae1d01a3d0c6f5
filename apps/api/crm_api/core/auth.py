from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session
from starlette.requests import Request

from crm_api.core.config import get_settings
from crm_api.core.database import get_db
from crm_api.core.errors import AuthError
from crm_api.models.user import User

PASSWORD_HASH_ALGORITHM = "pbkdf2_sha256"
PASSWORD_HASH_ITERATIONS = 260_000


@dataclass
class AuthUser:
    user_id: uuid.UUID | None
    name: str | None
    email: str | None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None


ANONYMOUS = AuthUser(user_id=None, name=None, email=None)


def hash_password(password: str, *, iterations: int = PASSWORD_HASH_ITERATIONS) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{PASSWORD_HASH_ALGORITHM}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations_raw, salt, expected = encoded.split("$", 3)
        iterations = int(iterations_raw)
    except ValueError:
        return False
    if algorithm != PASSWORD_HASH_ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return hmac.compare_digest(digest.hex(), expected)


def create_access_token(user_id: uuid.UUID, *, expires_minutes: int | None = None) -> str:
    settings = get_settings()
    lifetime = expires_minutes if expires_minutes is not None else settings.access_token_expires_minutes
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=lifetime)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> uuid.UUID:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise AuthError("token has expired", code="token_expired") from exc
    except JWTError as exc:
        raise AuthError("token is invalid", code="token_invalid") from exc

    subject = payload.get("sub")
    try:
        return uuid.UUID(str(subject))
    except ValueError as exc:
        raise AuthError("token subject is invalid", code="token_invalid") from exc


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    return auth_header[len("Bearer "):].strip() if auth_header.startswith("Bearer ") else ""


def get_current_user(request: Request, db: Session = Depends(get_db)) -> AuthUser:
    token = _bearer_token(request)
    if not token:
        if get_settings().allow_anonymous_writes:
            return ANONYMOUS
        raise AuthError("authentication token is missing", code="token_missing")

    user_id = decode_access_token(token)
    user = db.get(User, user_id)
    if user is None:
        raise AuthError("user no longer exists", code="user_not_found")
    return AuthUser(user_id=user.id, name=user.name, email=user.email)
