"""In-memory repositories for users, events and recurring events."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date

from scheduler.domain.errors import OverlapViolation, StoreUnavailableError
from scheduler.domain.models import Event, RecurringEvent, User
from scheduler.services.intervals import overlaps


class Database:
    """Dict-backed tables shared by the repositories.

    Rows are replaced on update, never mutated in place, so a shallow copy
    of each table is a complete snapshot.
    """

    def __init__(self, lock_timeout: float = 5.0) -> None:
        self.users: dict[str, User] = {}
        self.events: dict[str, Event] = {}
        self.recurring_events: dict[str, RecurringEvent] = {}
        self._lock = threading.RLock()
        self._lock_timeout = lock_timeout

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """Run the enclosed block as one atomic unit of work.

        Writers are serialised; any exception restores every table to its
        state on entry before propagating.
        """
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise StoreUnavailableError("timed out waiting for the event store")
        snapshot = (dict(self.users), dict(self.events), dict(self.recurring_events))
        try:
            yield self
        except BaseException:
            self.users, self.events, self.recurring_events = snapshot
            raise
        finally:
            self._lock.release()


class UserRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def add(self, user: User) -> None:
        with self.db.transaction():
            if self.get_by_email(user.email) is not None:
                raise ValueError(f"email already registered: {user.email}")
            self.db.users[user.id] = user

    def get(self, user_id: str) -> User | None:
        return self.db.users.get(user_id)

    def get_by_email(self, email: str) -> User | None:
        return next((u for u in self.db.users.values() if u.email == email), None)


class RecurringEventRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def add(self, recurring_event: RecurringEvent) -> None:
        with self.db.transaction():
            self.db.recurring_events[recurring_event.id] = recurring_event

    def get(self, recurring_event_id: str) -> RecurringEvent | None:
        return self.db.recurring_events.get(recurring_event_id)

    def update(self, recurring_event_id: str, **changes) -> RecurringEvent:
        with self.db.transaction():
            stored = self.db.recurring_events[recurring_event_id]
            updated = RecurringEvent.model_validate({**stored.model_dump(), **changes})
            self.db.recurring_events[recurring_event_id] = updated
            return updated

    def delete(self, recurring_event_id: str) -> None:
        with self.db.transaction():
            self.db.recurring_events.pop(recurring_event_id, None)


class EventRepository:
    """Event table access with a no-overlap constraint on every write.

    Two non-cancelled events on the same date may not have intersecting
    half-open time ranges; a write that would break this raises
    ``OverlapViolation`` and changes nothing.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    # -- reads -------------------------------------------------------------

    def get(self, event_id: str) -> Event | None:
        return self.db.events.get(event_id)

    def list_for_date(self, on_date: date) -> list[Event]:
        return [e for e in self.db.events.values() if e.date == on_date]

    def list_for_series(self, recurring_event_id: str) -> list[Event]:
        """Return all instances of a recurring series, oldest first."""
        return sorted(
            (
                e
                for e in self.db.events.values()
                if e.recurring_event_id == recurring_event_id
            ),
            key=lambda e: (e.date, e.start_time),
        )

    def list_range(
        self,
        author_id: str,
        start_date: date,
        end_date: date,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Event]:
        matching = sorted(
            self._in_range(author_id, start_date, end_date),
            key=lambda e: (e.date, e.start_time),
        )
        if limit is None:
            return matching[offset:]
        return matching[offset : offset + limit]

    def count_range(self, author_id: str, start_date: date, end_date: date) -> int:
        return sum(1 for _ in self._in_range(author_id, start_date, end_date))

    def _in_range(self, author_id: str, start_date: date, end_date: date):
        return (
            e
            for e in self.db.events.values()
            if e.author_id == author_id and start_date <= e.date <= end_date
        )

    # -- writes ------------------------------------------------------------

    def add(self, event: Event) -> None:
        self.add_many([event])

    def add_many(self, events: list[Event]) -> None:
        with self.db.transaction():
            for event in events:
                self._check_overlap(event)
                self.db.events[event.id] = event

    def update(self, event_id: str, **changes) -> Event:
        with self.db.transaction():
            stored = self.db.events[event_id]
            updated = Event.model_validate({**stored.model_dump(), **changes})
            self._check_overlap(updated)
            self.db.events[event_id] = updated
            return updated

    def update_series_from(
        self, recurring_event_id: str, from_date: date, **changes
    ) -> list[Event]:
        """Apply *changes* to unmodified instances dated *from_date* or later.

        Instances edited individually (``is_modified``) and past instances
        are left untouched.  Returns the updated instances.
        """
        updated: list[Event] = []
        with self.db.transaction():
            for event in self.list_for_series(recurring_event_id):
                if event.is_modified or event.date < from_date:
                    continue
                updated.append(self.update(event.id, **changes))
        return updated

    def delete(self, event_id: str) -> None:
        with self.db.transaction():
            self.db.events.pop(event_id, None)

    def delete_for_series(self, recurring_event_id: str) -> int:
        with self.db.transaction():
            doomed = [
                eid
                for eid, e in self.db.events.items()
                if e.recurring_event_id == recurring_event_id
            ]
            for eid in doomed:
                del self.db.events[eid]
        return len(doomed)

    def _check_overlap(self, candidate: Event) -> None:
        if candidate.is_cancelled:
            return
        for existing in self.list_for_date(candidate.date):
            if existing.id == candidate.id or existing.is_cancelled:
                continue
            if overlaps(
                candidate.start_time,
                candidate.end_time,
                existing.start_time,
                existing.end_time,
            ):
                raise OverlapViolation([candidate.date])
