"""Error taxonomy for the room workflow and translation of storage failures."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError


class RoomError(Exception):
    """Base for every failure surfaced at the request boundary.

    ``message`` is the human-readable summary returned to clients and ``error``
    an optional detail string (usually the underlying cause).
    """

    status_code: int = 500

    def __init__(self, message: str, error: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.error = error

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "error": self.error or self.message}


class NotFound(RoomError):
    status_code = 404


class InvalidState(RoomError):
    status_code = 400


class InvalidInput(RoomError):
    status_code = 400


class Forbidden(RoomError):
    status_code = 403


class Conflict(RoomError):
    status_code = 409


class UpstreamError(RoomError):
    status_code = 500


class StorageError(RoomError):
    status_code = 500


class StoreAuthenticationError(RuntimeError):
    """Raised when the store session cannot be established at startup."""


# PostgreSQL SQLSTATE for insufficient_privilege
_PG_INSUFFICIENT_PRIVILEGE = "42501"
_PERMISSION_MARKERS = ("readonly database", "read-only", "permission denied", "access denied")


def _is_permission_error(exc: SQLAlchemyError) -> bool:
    orig = getattr(exc, "orig", None)
    if orig is not None:
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if code == _PG_INSUFFICIENT_PRIVILEGE:
            return True
    text = str(orig if orig is not None else exc).lower()
    return any(marker in text for marker in _PERMISSION_MARKERS)


def translate_storage_error(exc: SQLAlchemyError, message: str) -> RoomError:
    if isinstance(exc, IntegrityError):
        return Conflict(message, error=str(exc.orig))
    if _is_permission_error(exc):
        return Forbidden(
            "Permission denied. The storage principal may not perform this action.",
            error=str(getattr(exc, "orig", None) or exc),
        )
    return StorageError(message, error=str(getattr(exc, "orig", None) or exc))
