"""Domain models for the event scheduling system."""

from __future__ import annotations

import datetime as dt
import uuid
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class RecurrenceType(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def _today() -> dt.date:
    return dt.date.today()


def _new_id() -> str:
    return str(uuid.uuid4())


def _check_window(start_time: dt.time, end_time: dt.time) -> None:
    if end_time <= start_time:
        raise ValueError("end_time must be after start_time")


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class User(BaseModel):
    id: str = Field(default_factory=_new_id)
    firstname: str
    lastname: str
    email: str
    password_hash: str

    def public(self) -> PublicUser:
        return PublicUser(
            id=self.id, firstname=self.firstname, lastname=self.lastname, email=self.email
        )


class PublicUser(BaseModel):
    id: str
    firstname: str
    lastname: str
    email: str


class Event(BaseModel):
    """A dated calendar entry; an *instance* when ``recurring_event_id`` is set."""

    id: str = Field(default_factory=_new_id)
    title: str
    description: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    author_id: str
    created_at: dt.date = Field(default_factory=_today)
    is_cancelled: bool = False
    is_modified: bool = False
    recurring_event_id: str | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> Event:
        _check_window(self.start_time, self.end_time)
        return self


class RecurringEvent(BaseModel):
    """The parent row of a series; owns the Event instances it generates."""

    id: str = Field(default_factory=_new_id)
    title: str
    description: str
    start_date: dt.date
    start_time: dt.time
    end_time: dt.time
    author_id: str
    created_at: dt.date = Field(default_factory=_today)
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    recurrence_interval: int = Field(default=1, ge=1)
    recurrence_end_date: dt.date | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> RecurringEvent:
        _check_window(self.start_time, self.end_time)
        return self


class RecurringSeries(BaseModel):
    recurring_event: RecurringEvent
    instances: list[Event] = Field(default_factory=list)


class EventPage(BaseModel):
    events: list[Event]
    total_items: int
    total_pages: int


class TokenClaims(BaseModel):
    """Identity carried by an access or refresh token."""

    id: str
    email: str


class TokenPair(BaseModel):
    token: str
    refresh_token: str


# ---------------------------------------------------------------------------
# Request DTOs
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    firstname: str = Field(min_length=1)
    lastname: str = Field(min_length=1)
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class CreateEventRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    recurrence_interval: int = Field(default=1, ge=1)
    recurrence_end_date: dt.date | None = None

    @model_validator(mode="after")
    def _check(self) -> CreateEventRequest:
        _check_window(self.start_time, self.end_time)
        if self.recurrence_end_date is not None and self.recurrence_end_date < self.date:
            raise ValueError("recurrence_end_date must not be before date")
        return self


class _Patch(BaseModel):
    """Partial update: a field left as ``None`` keeps its stored value."""

    id: str = Field(min_length=1)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude={"id"}, exclude_none=True)


class UpdateEventRequest(_Patch):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = Field(default=None, min_length=1)
    date: dt.date | None = None
    start_time: dt.time | None = None
    end_time: dt.time | None = None
    is_cancelled: bool | None = None


class UpdateRecurringEventRequest(_Patch):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = Field(default=None, min_length=1)
    start_time: dt.time | None = None
    end_time: dt.time | None = None


class ListEventsRequest(BaseModel):
    start_date: dt.date
    end_date: dt.date
    limit: int = Field(default=5, ge=1)
    page: int = Field(default=1, ge=1)
