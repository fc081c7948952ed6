"""Error kinds and exceptions shared by the scheduling core."""

from __future__ import annotations

from datetime import date
from enum import StrEnum


class ErrorKind(StrEnum):
    VALIDATION = "validation_error"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    INVALID_TOKEN = "invalid_token"
    INVALID_CREDENTIALS = "invalid_credentials"
    ALREADY_EXISTS = "already_exists"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal_error"


class TokenErrorReason(StrEnum):
    MISSING_HEADER = "missing_header"
    MALFORMED_HEADER = "malformed_header"
    WRONG_SCHEME = "wrong_scheme"
    EXPIRED = "expired"
    INVALID = "invalid"
    REUSED = "reused"


class ServiceError(Exception):
    """An expected failure, identified by ``kind`` rather than by subclass.

    ``dates`` lists the offending calendar dates for conflicts and
    ``reason`` narrows down ``INVALID_TOKEN`` failures.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        reason: TokenErrorReason | None = None,
        dates: list[date] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.reason = reason
        self.dates = dates or []

    def __repr__(self) -> str:
        return f"ServiceError({self.kind.value!r}, {self.message!r})"


class StoreUnavailableError(Exception):
    """A backing store could not be reached or did not answer in time."""


class OverlapViolation(Exception):
    """Raised by the event store when a write breaks the no-overlap constraint."""

    def __init__(self, dates: list[date]) -> None:
        super().__init__(
            "overlapping event on " + ", ".join(d.isoformat() for d in dates)
        )
        self.dates = dates
