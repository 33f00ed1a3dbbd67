"""
Typed error taxonomy.

Every error raised by the core carries a stable machine-readable `code` and an
HTTP-style `status_code` so thin adapters (API, CLI) can render it without
guessing. The API layer maps these to `{"detail": {"code": ..., "message": ...}}`.
"""

from __future__ import annotations

from typing import Any


class BarmapError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class ValidationError(BarmapError):
    """Caller supplied a bad coordinate, rating value or similar."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(BarmapError):
    """Location or rating does not exist (or is inactive)."""

    code = "NOT_FOUND"
    status_code = 404


class PermissionDeniedError(BarmapError):
    code = "PERMISSION_DENIED"
    status_code = 403


class AlreadyDeletedError(BarmapError):
    code = "ALREADY_DELETED"
    status_code = 400


class AlreadyInactiveError(BarmapError):
    """Deactivating a location that is already inactive."""

    code = "ALREADY_INACTIVE"
    status_code = 400


class ConflictError(BarmapError):
    """A proximity conflict or a write that kept losing a concurrent race."""

    code = "CONFLICT"
    status_code = 409


class StoreUnavailableError(BarmapError):
    """The document store could not be reached. Never retried by the core."""

    code = "STORE_UNAVAILABLE"
    status_code = 503


class DuplicateKeyError(BarmapError):
    """A unique index rejected a write. Raised by store backends only."""

    code = "DUPLICATE_KEY"
    status_code = 409
