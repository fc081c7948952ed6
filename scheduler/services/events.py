"""Create, update, delete and list standalone events and recurring series."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import date

from pydantic import ValidationError

from scheduler.domain.errors import ErrorKind, ServiceError
from scheduler.domain.models import (
    CreateEventRequest,
    Event,
    EventPage,
    ListEventsRequest,
    RecurrenceType,
    RecurringEvent,
    RecurringSeries,
    UpdateEventRequest,
    UpdateRecurringEventRequest,
)
from scheduler.domain.results import service_boundary
from scheduler.repos.memory import Database, EventRepository, RecurringEventRepository
from scheduler.services.conflicts import ConflictChecker
from scheduler.services.recurrence import DEFAULT_HORIZON_YEARS, expand_recurrence

logger = logging.getLogger(__name__)

_CONFLICT_MESSAGE = "An event already exists at the specified date and time"


def _not_found(what: str = "Event") -> ServiceError:
    return ServiceError(ErrorKind.NOT_FOUND, f"{what} not found")


class EventService:
    """Event lifecycle operations, each returning a ``Result``.

    Every write runs inside one ``Database.transaction()``: the conflict
    pre-check and the insert see the same state, and a recurring series is
    either stored with all of its instances or not at all.
    """

    def __init__(
        self,
        db: Database,
        horizon_years: int = DEFAULT_HORIZON_YEARS,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.db = db
        self.event_repo = EventRepository(db)
        self.recurring_repo = RecurringEventRepository(db)
        self.conflicts = ConflictChecker(self.event_repo)
        self.horizon_years = horizon_years
        self._today = today

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @service_boundary
    def create_event(
        self, author_id: str, payload: CreateEventRequest
    ) -> Event | RecurringSeries:
        """Create a standalone event, or a whole series when recurrence is set."""
        if payload.recurrence_type == RecurrenceType.NONE:
            return self._create_standalone(author_id, payload)
        return self._create_series(author_id, payload)

    def _create_standalone(self, author_id: str, payload: CreateEventRequest) -> Event:
        with self.db.transaction():
            if self.conflicts.has_conflict(
                payload.date, payload.start_time, payload.end_time
            ):
                logger.warning("Rejected event on %s: time slot taken", payload.date)
                raise ServiceError(
                    ErrorKind.CONFLICT, _CONFLICT_MESSAGE, dates=[payload.date]
                )
            event = Event(
                title=payload.title,
                description=payload.description,
                date=payload.date,
                start_time=payload.start_time,
                end_time=payload.end_time,
                author_id=author_id,
            )
            self.event_repo.add(event)
        logger.info("Created event %s on %s", event.id, event.date)
        return event

    def _create_series(
        self, author_id: str, payload: CreateEventRequest
    ) -> RecurringSeries:
        # Any failure below unwinds the transaction, which also removes the
        # parent row inserted first.
        with self.db.transaction():
            parent = RecurringEvent(
                title=payload.title,
                description=payload.description,
                start_date=payload.date,
                start_time=payload.start_time,
                end_time=payload.end_time,
                author_id=author_id,
                recurrence_type=payload.recurrence_type,
                recurrence_interval=payload.recurrence_interval,
                recurrence_end_date=payload.recurrence_end_date,
            )
            self.recurring_repo.add(parent)

            instances = expand_recurrence(parent, self.horizon_years)
            conflicting = self.conflicts.conflicting_dates(
                (i.date for i in instances), parent.start_time, parent.end_time
            )
            if conflicting:
                logger.warning(
                    "Rejected %s series: %d of %d dates conflict",
                    parent.recurrence_type,
                    len(conflicting),
                    len(instances),
                )
                raise ServiceError(
                    ErrorKind.CONFLICT,
                    "Events already exist on some of the recurring dates",
                    dates=conflicting,
                )
            self.event_repo.add_many(instances)

        logger.info(
            "Created recurring event %s with %d instances", parent.id, len(instances)
        )
        return RecurringSeries(recurring_event=parent, instances=instances)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    @service_boundary
    def update_event(self, author_id: str, payload: UpdateEventRequest) -> Event:
        """Patch a standalone event or a single instance of a series.

        Absent fields keep their stored values.  The resulting window is
        always re-checked for conflicts, even when nothing changed.
        Editing an instance marks it modified so series updates skip it.
        """
        with self.db.transaction():
            stored = self.event_repo.get(payload.id)
            if stored is None or stored.author_id != author_id:
                raise _not_found()

            changes = payload.changes()
            on_date = changes.get("date", stored.date)
            start_time = changes.get("start_time", stored.start_time)
            end_time = changes.get("end_time", stored.end_time)
            if end_time <= start_time:
                raise ServiceError(
                    ErrorKind.VALIDATION, "end_time must be after start_time"
                )

            cancelled = changes.get("is_cancelled", stored.is_cancelled)
            if not cancelled and self.conflicts.has_conflict(
                on_date, start_time, end_time, exclude_event_id=stored.id
            ):
                logger.warning("Rejected update of %s: time slot taken", stored.id)
                raise ServiceError(ErrorKind.CONFLICT, _CONFLICT_MESSAGE, dates=[on_date])

            if stored.recurring_event_id is not None:
                changes["is_modified"] = True
            updated = self.event_repo.update(stored.id, **changes)

        logger.info("Updated event %s", updated.id)
        return updated

    @service_boundary
    def update_recurring_event(
        self, author_id: str, payload: UpdateRecurringEventRequest
    ) -> RecurringSeries:
        """Patch a series and propagate to its upcoming, unedited instances.

        Instances dated before today or individually modified keep their
        values.  There is no conflict pre-check here; the store's overlap
        constraint still rejects a change that would collide, and the whole
        update is then rolled back.
        """
        with self.db.transaction():
            parent = self.recurring_repo.get(payload.id)
            if parent is None or parent.author_id != author_id:
                raise _not_found("Recurring event")

            changes = payload.changes()
            try:
                updated_parent = self.recurring_repo.update(parent.id, **changes)
            except ValidationError as exc:
                raise ServiceError(
                    ErrorKind.VALIDATION, "end_time must be after start_time"
                ) from exc
            touched = self.event_repo.update_series_from(
                parent.id, self._today(), **changes
            )
            instances = self.event_repo.list_for_series(parent.id)

        logger.info(
            "Updated recurring event %s (%d instances changed)", parent.id, len(touched)
        )
        return RecurringSeries(recurring_event=updated_parent, instances=instances)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    @service_boundary
    def delete_event(self, author_id: str, event_id: str) -> Event:
        with self.db.transaction():
            stored = self.event_repo.get(event_id)
            if stored is None or stored.author_id != author_id:
                raise _not_found()
            self.event_repo.delete(event_id)
        logger.info("Deleted event %s", event_id)
        return stored

    @service_boundary
    def delete_recurring_event(self, author_id: str, recurring_event_id: str) -> int:
        """Delete a series: its instances first, then the parent row.

        Returns the number of instances removed.
        """
        with self.db.transaction():
            parent = self.recurring_repo.get(recurring_event_id)
            if parent is None or parent.author_id != author_id:
                raise _not_found("Recurring event")
            removed = self.event_repo.delete_for_series(recurring_event_id)
            self.recurring_repo.delete(recurring_event_id)
        logger.info(
            "Deleted recurring event %s and %d instances", recurring_event_id, removed
        )
        return removed

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @service_boundary
    def list_events(self, author_id: str, query: ListEventsRequest) -> EventPage:
        with self.db.transaction():
            total = self.event_repo.count_range(author_id, query.start_date, query.end_date)
            events = self.event_repo.list_range(
                author_id,
                query.start_date,
                query.end_date,
                limit=query.limit,
                offset=(query.page - 1) * query.limit,
            )
        return EventPage(
            events=events,
            total_items=total,
            total_pages=math.ceil(total / query.limit),
        )
