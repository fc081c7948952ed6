"""Tests for the event lifecycle service — create, update, delete, list."""

from __future__ import annotations

import threading
from datetime import date, time

import pytest

from scheduler.domain.errors import ErrorKind
from scheduler.domain.models import (
    CreateEventRequest,
    Event,
    ListEventsRequest,
    RecurrenceType,
    RecurringSeries,
    UpdateEventRequest,
    UpdateRecurringEventRequest,
)
from scheduler.repos.memory import Database
from scheduler.services.events import EventService

OWNER = "owner-id"
STRANGER = "stranger-id"
_TODAY = date(2026, 3, 10)


@pytest.fixture()
def service():
    return EventService(Database(), today=lambda: _TODAY)


def _create(service: EventService, **overrides):
    defaults = dict(
        title="Team meeting",
        description="Weekly planning",
        date=date(2026, 3, 12),
        start_time=time(9),
        end_time=time(10),
    )
    defaults.update(overrides)
    return service.create_event(OWNER, CreateEventRequest(**defaults))


def _series(service: EventService, **overrides) -> RecurringSeries:
    defaults = dict(
        recurrence_type=RecurrenceType.DAILY,
        date=date(2026, 3, 1),
        recurrence_end_date=date(2026, 3, 5),
        start_time=time(14),
        end_time=time(15),
    )
    defaults.update(overrides)
    result = _create(service, **defaults)
    assert result.ok, result.error
    return result.value


# ---------------------------------------------------------------------------
# Standalone events
# ---------------------------------------------------------------------------


def test_create_standalone_event(service):
    result = _create(service)

    assert result.ok
    event = result.value
    assert isinstance(event, Event)
    assert event.author_id == OWNER
    assert event.recurring_event_id is None
    assert service.event_repo.get(event.id) == event


def test_create_conflicting_event_creates_nothing(service):
    _create(service)
    result = _create(service, start_time=time(9, 30), end_time=time(9, 45))

    assert not result.ok
    assert result.error.kind == ErrorKind.CONFLICT
    assert result.error.dates == [date(2026, 3, 12)]
    assert len(service.db.events) == 1


def test_back_to_back_events_do_not_conflict(service):
    _create(service)
    assert _create(service, start_time=time(10), end_time=time(11)).ok


def test_concurrent_overlapping_creates_admit_exactly_one(service):
    start = threading.Barrier(2)
    results = []

    def book(start_time, end_time):
        start.wait(timeout=5)
        results.append(_create(service, start_time=start_time, end_time=end_time))

    workers = [
        threading.Thread(target=book, args=(time(9), time(10))),
        threading.Thread(target=book, args=(time(9, 30), time(10, 30))),
    ]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=10)

    assert sorted(r.ok for r in results) == [False, True]
    rejected = next(r for r in results if not r.ok)
    assert rejected.error.kind == ErrorKind.CONFLICT
    assert len(service.db.events) == 1


def test_cancelled_event_frees_its_slot(service):
    event = _create(service).value
    service.update_event(OWNER, UpdateEventRequest(id=event.id, is_cancelled=True))

    assert _create(service, title="Replacement").ok


# ---------------------------------------------------------------------------
# Recurring series
# ---------------------------------------------------------------------------


def test_create_series_persists_parent_and_instances(service):
    series = _series(service)

    parent = series.recurring_event
    assert service.recurring_repo.get(parent.id) == parent
    assert [i.date.day for i in series.instances] == [1, 2, 3, 4, 5]
    assert all(i.recurring_event_id == parent.id for i in series.instances)
    assert len(service.event_repo.list_for_series(parent.id)) == 5


def test_series_with_one_conflicting_date_is_rolled_back(service):
    """Instance 4 of 5 conflicts: neither parent nor any instance survives."""
    _create(service, date=date(2026, 3, 4), start_time=time(14, 30), end_time=time(16))

    result = _create(
        service,
        recurrence_type=RecurrenceType.DAILY,
        date=date(2026, 3, 1),
        recurrence_end_date=date(2026, 3, 5),
        start_time=time(14),
        end_time=time(15),
    )

    assert result.error.kind == ErrorKind.CONFLICT
    assert result.error.dates == [date(2026, 3, 4)]
    assert service.db.recurring_events == {}
    assert len(service.db.events) == 1


def test_series_without_end_date_uses_two_year_horizon(service):
    series = _series(
        service,
        recurrence_type=RecurrenceType.MONTHLY,
        date=date(2024, 1, 1),
        recurrence_end_date=None,
    )
    assert series.instances[-1].date == date(2026, 1, 1)
    assert len(series.instances) == 25


def test_monthly_interval_past_year_9999_yields_single_instance(service):
    series = _series(
        service,
        recurrence_type=RecurrenceType.MONTHLY,
        recurrence_interval=100_000,
        date=date(2026, 3, 1),
        recurrence_end_date=date(2026, 6, 1),
    )
    assert [i.date for i in series.instances] == [date(2026, 3, 1)]


def test_unexpected_failure_during_series_creation_rolls_back(service, monkeypatch):
    def broken(events):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(service.event_repo, "add_many", broken)
    result = _create(
        service,
        recurrence_type=RecurrenceType.WEEKLY,
        recurrence_end_date=date(2026, 4, 30),
    )

    assert result.error.kind == ErrorKind.INTERNAL
    assert service.db.recurring_events == {}
    assert service.db.events == {}


# ---------------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------------


def test_update_keeps_absent_fields(service):
    event = _create(service).value
    result = service.update_event(OWNER, UpdateEventRequest(id=event.id, title="Renamed"))

    assert result.ok
    updated = result.value
    assert updated.title == "Renamed"
    assert updated.description == event.description
    assert (updated.date, updated.start_time, updated.end_time) == (
        event.date,
        event.start_time,
        event.end_time,
    )
    assert not updated.is_modified


def test_noop_update_does_not_conflict_with_itself(service):
    event = _create(service).value
    assert service.update_event(OWNER, UpdateEventRequest(id=event.id)).ok


def test_update_into_taken_slot_is_rejected(service):
    _create(service)
    other = _create(service, start_time=time(11), end_time=time(12)).value

    result = service.update_event(
        OWNER, UpdateEventRequest(id=other.id, start_time=time(9, 30))
    )

    assert result.error.kind == ErrorKind.CONFLICT
    assert service.event_repo.get(other.id).start_time == time(11)


def test_update_with_inverted_window_is_a_validation_error(service):
    event = _create(service).value
    result = service.update_event(
        OWNER, UpdateEventRequest(id=event.id, start_time=time(10, 30))
    )
    assert result.error.kind == ErrorKind.VALIDATION


def test_updating_an_instance_marks_it_modified(service):
    series = _series(service)
    instance = series.instances[2]

    updated = service.update_event(
        OWNER, UpdateEventRequest(id=instance.id, title="Moved")
    ).unwrap()

    assert updated.is_modified
    assert updated.recurring_event_id == series.recurring_event.id


def test_series_update_skips_past_and_modified_instances(service):
    series = _series(
        service, date=date(2026, 3, 8), recurrence_end_date=date(2026, 3, 12)
    )
    by_day = {i.date.day: i for i in series.instances}
    service.update_event(OWNER, UpdateEventRequest(id=by_day[11].id, title="Special"))

    result = service.update_recurring_event(
        OWNER,
        UpdateRecurringEventRequest(
            id=series.recurring_event.id, title="Renamed", start_time=time(13)
        ),
    )

    assert result.ok
    assert result.value.recurring_event.title == "Renamed"
    assert result.value.recurring_event.end_time == time(15)
    titles = {i.date.day: i.title for i in result.value.instances}
    assert titles == {
        8: "Team meeting",
        9: "Team meeting",
        10: "Renamed",
        11: "Special",
        12: "Renamed",
    }
    assert service.event_repo.get(by_day[12].id).start_time == time(13)
    assert service.event_repo.get(by_day[9].id).start_time == time(14)


def test_series_update_colliding_with_other_event_rolls_back(service):
    series = _series(
        service, date=date(2026, 3, 10), recurrence_end_date=date(2026, 3, 12)
    )
    _create(service, date=date(2026, 3, 12), start_time=time(12), end_time=time(13))

    result = service.update_recurring_event(
        OWNER,
        UpdateRecurringEventRequest(id=series.recurring_event.id, start_time=time(12)),
    )

    assert result.error.kind == ErrorKind.CONFLICT
    parent = service.recurring_repo.get(series.recurring_event.id)
    assert parent.start_time == time(14)
    assert all(
        i.start_time == time(14)
        for i in service.event_repo.list_for_series(parent.id)
    )


def test_series_update_with_inverted_window_changes_nothing(service):
    series = _series(
        service, date=date(2026, 3, 10), recurrence_end_date=date(2026, 3, 12)
    )
    parent_id = series.recurring_event.id

    result = service.update_recurring_event(
        OWNER,
        UpdateRecurringEventRequest(id=parent_id, title="Late", start_time=time(16)),
    )

    assert result.error.kind == ErrorKind.VALIDATION
    assert service.recurring_repo.get(parent_id) == series.recurring_event
    assert service.event_repo.list_for_series(parent_id) == series.instances


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------


def test_non_owner_gets_not_found_everywhere(service):
    event = _create(service).value
    series = _series(service)
    parent_id = series.recurring_event.id

    outcomes = [
        service.update_event(STRANGER, UpdateEventRequest(id=event.id, title="x")),
        service.delete_event(STRANGER, event.id),
        service.update_recurring_event(
            STRANGER, UpdateRecurringEventRequest(id=parent_id, title="x")
        ),
        service.delete_recurring_event(STRANGER, parent_id),
    ]

    assert [r.error.kind for r in outcomes] == [ErrorKind.NOT_FOUND] * 4
    assert service.event_repo.get(event.id).title == "Team meeting"
    assert service.recurring_repo.get(parent_id) is not None


def test_missing_ids_give_same_not_found(service):
    assert service.delete_event(OWNER, "missing").error.kind == ErrorKind.NOT_FOUND
    assert (
        service.delete_recurring_event(OWNER, "missing").error.kind
        == ErrorKind.NOT_FOUND
    )


# ---------------------------------------------------------------------------
# Deletes
# ---------------------------------------------------------------------------


def test_delete_single_instance_leaves_series(service):
    series = _series(service)
    target = series.instances[0]

    assert service.delete_event(OWNER, target.id).ok
    assert service.event_repo.get(target.id) is None
    assert len(service.event_repo.list_for_series(series.recurring_event.id)) == 4


def test_delete_series_removes_instances_then_parent(service):
    series = _series(service)
    standalone = _create(service).value

    result = service.delete_recurring_event(OWNER, series.recurring_event.id)

    assert result.value == 5
    assert service.db.recurring_events == {}
    assert list(service.db.events) == [standalone.id]


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def test_list_events_paginates(service):
    _series(service)  # 5 instances, Mar 1-5
    page = service.list_events(
        OWNER,
        ListEventsRequest(
            start_date=date(2026, 3, 1), end_date=date(2026, 3, 31), limit=2, page=3
        ),
    ).unwrap()

    assert page.total_items == 5
    assert page.total_pages == 3
    assert [e.date.day for e in page.events] == [5]


def test_list_events_only_returns_callers_events(service):
    _create(service)
    page = service.list_events(
        STRANGER,
        ListEventsRequest(start_date=date(2026, 1, 1), end_date=date(2026, 12, 31)),
    ).unwrap()
    assert page.total_items == 0
    assert page.total_pages == 0
    assert page.events == []
