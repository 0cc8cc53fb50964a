"""Domain error taxonomy for the users service.

Every error carries a stable ``kind`` used as the machine-readable part of
HTTP error bodies, plus the status code the API layer answers with.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class UsersServiceError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(UsersServiceError):
    kind = "validation_error"


class ConflictError(UsersServiceError):
    kind = "conflict"


class NotFoundError(UsersServiceError):
    kind = "not_found"
    status_code = 404


class InvalidCredentialsError(UsersServiceError):
    """Wrong password; ``attempts_remaining`` is ``None`` for exempt accounts."""

    kind = "invalid_credentials"

    def __init__(self, attempts_remaining: int | None = None) -> None:
        if attempts_remaining is None:
            message = "Wrong password!"
        else:
            message = f"Wrong password! {attempts_remaining} attempts left!"
        super().__init__(message)
        self.attempts_remaining = attempts_remaining

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        if self.attempts_remaining is not None:
            detail["attempts_remaining"] = self.attempts_remaining
        return detail


class AccountLockedError(UsersServiceError):
    kind = "account_locked"

    def __init__(self, until: datetime) -> None:
        super().__init__(f"Your user has been banned until {until.isoformat()}")
        self.until = until

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["suspended_until"] = self.until.isoformat()
        return detail


class UnauthenticatedError(UsersServiceError):
    kind = "unauthenticated"
    status_code = 401


class ForbiddenError(UsersServiceError):
    kind = "forbidden"
    status_code = 403
