"""Service for detecting scheduling conflicts between events."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, time

from scheduler.domain.models import Event
from scheduler.repos.memory import EventRepository
from scheduler.services.intervals import overlaps


def find_conflicts(
    new_start: time,
    new_end: time,
    existing_events: Iterable[Event],
    exclude_event_id: str | None = None,
) -> list[Event]:
    """Return the active events that overlap with the given time range.

    Cancelled events and the event identified by *exclude_event_id* are
    skipped.  Callers pass events from a single date.
    """
    return [
        event
        for event in existing_events
        if not event.is_cancelled
        and event.id != exclude_event_id
        and overlaps(new_start, new_end, event.start_time, event.end_time)
    ]


class ConflictChecker:
    """Looks up events on a date and tests them against a candidate range.

    This is a read-only pre-check used to produce a clear error before
    writing; the event store's overlap constraint still has the final say.
    """

    def __init__(self, event_repo: EventRepository) -> None:
        self.event_repo = event_repo

    def has_conflict(
        self,
        on_date: date,
        start_time: time,
        end_time: time,
        exclude_event_id: str | None = None,
    ) -> bool:
        existing = self.event_repo.list_for_date(on_date)
        return bool(find_conflicts(start_time, end_time, existing, exclude_event_id))

    def conflicting_dates(
        self, dates: Iterable[date], start_time: time, end_time: time
    ) -> list[date]:
        """Return the subset of *dates* on which the range would conflict."""
        return [d for d in dates if self.has_conflict(d, start_time, end_time)]
