"""Error taxonomy shared by every service.

Services raise these; the HTTP layer maps ``kind`` to a status code.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_REQUEST = "invalid_request"
    INTERNAL = "internal"


class BookingError(Exception):
    """Base class for all failures surfaced by the booking core."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.kind.upper()
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": str(self.kind),
            "code": self.code,
            "detail": self.message,
            "details": self.details,
        }


class NotFoundError(BookingError):
    kind = ErrorKind.NOT_FOUND

    @classmethod
    def for_entity(cls, entity: str, entity_id: str) -> NotFoundError:
        return cls(
            f"{entity} with ID {entity_id} not found",
            code=f"{entity.upper().replace(' ', '_')}_NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )


class ConflictError(BookingError):
    kind = ErrorKind.CONFLICT


class InvalidRequestError(BookingError):
    kind = ErrorKind.INVALID_REQUEST


class InternalError(BookingError):
    kind = ErrorKind.INTERNAL


_ERRORS_BY_KIND: dict[ErrorKind, type[BookingError]] = {
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.INVALID_REQUEST: InvalidRequestError,
    ErrorKind.INTERNAL: InternalError,
}


def error_for_kind(kind: ErrorKind) -> type[BookingError]:
    return _ERRORS_BY_KIND[kind]
