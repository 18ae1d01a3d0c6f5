from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class FieldError:
    field: str
    message: str


class CRMError(Exception):
    """Base class for errors that map onto an HTTP status and a machine-readable code."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, *, code: str | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ValidationError(CRMError):
    status_code = 400
    code = "validation_error"

    def __init__(self, fields: list[FieldError], message: str = "validation failed") -> None:
        self.fields = fields
        super().__init__(message, details=[asdict(item) for item in fields])

    @classmethod
    def single(cls, field: str, message: str) -> ValidationError:
        return cls([FieldError(field=field, message=message)], message=message)


class NotFoundError(CRMError):
    status_code = 404
    code = "not_found"


class AuthError(CRMError):
    """Credential failures. ``code`` distinguishes missing, invalid and expired tokens."""

    status_code = 401
    code = "token_invalid"


class DependencyError(CRMError):
    status_code = 500
    code = "dependency_failed"
    public_message = "A backing service failed to complete the request"


class ConflictIgnorable(CRMError):
    """Raised for conditions that are logged and dropped, never shown to a client."""

    code = "conflict_ignorable"


@contextmanager
def ignore_conflicts(logger: logging.Logger, event: str, **fields: Any) -> Iterator[None]:
    try:
        yield
    except ConflictIgnorable as exc:
        logger.warning(event, extra={**fields, "error": str(exc)})
