"""Tests for the recurrence expansion service."""

from __future__ import annotations

from datetime import date, time

import pytest

from scheduler.domain.models import RecurrenceType, RecurringEvent
from scheduler.services.recurrence import expand, expand_recurrence, recurrence_horizon


# ---------------------------------------------------------------------------
# expand
# ---------------------------------------------------------------------------


def test_expand_daily_until_end_date():
    dates = expand(date(2024, 1, 1), RecurrenceType.DAILY, 1, date(2024, 1, 5))
    assert [d.isoformat() for d in dates] == [
        "2024-01-01",
        "2024-01-02",
        "2024-01-03",
        "2024-01-04",
        "2024-01-05",
    ]


def test_expand_daily_with_interval():
    dates = expand(date(2024, 1, 1), RecurrenceType.DAILY, 3, date(2024, 1, 10))
    assert dates == [
        date(2024, 1, 1),
        date(2024, 1, 4),
        date(2024, 1, 7),
        date(2024, 1, 10),
    ]


def test_expand_weekly_every_other_week():
    dates = expand(date(2026, 3, 5), RecurrenceType.WEEKLY, 2, date(2026, 4, 3))
    assert dates == [date(2026, 3, 5), date(2026, 3, 19), date(2026, 4, 2)]


def test_expand_monthly_default_horizon_is_two_years():
    dates = expand(date(2024, 1, 1), RecurrenceType.MONTHLY, 1, None)
    assert dates[0] == date(2024, 1, 1)
    assert dates[-1] == date(2026, 1, 1)
    assert len(dates) == 25
    assert all(d <= date(2026, 1, 1) for d in dates)


def test_expand_daily_default_horizon_includes_final_day():
    dates = expand(date(2024, 1, 1), RecurrenceType.DAILY, 1, None)
    assert dates[-1] == date(2026, 1, 1)


def test_expand_monthly_clamps_to_last_day_without_drifting():
    """Jan 31 series: short months clamp, later months return to the 31st."""
    dates = expand(date(2024, 1, 31), RecurrenceType.MONTHLY, 1, date(2024, 5, 31))
    assert dates == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
        date(2024, 5, 31),
    ]


def test_expand_monthly_with_interval():
    dates = expand(date(2024, 1, 15), RecurrenceType.MONTHLY, 2, date(2024, 7, 14))
    assert dates == [date(2024, 1, 15), date(2024, 3, 15), date(2024, 5, 15)]


def test_expand_is_deterministic():
    args = (date(2024, 2, 29), RecurrenceType.WEEKLY, 1, None)
    assert expand(*args) == expand(*args)


def test_expand_end_before_start_is_empty():
    assert expand(date(2024, 1, 5), RecurrenceType.DAILY, 1, date(2024, 1, 1)) == []


def test_expand_rejects_non_recurring_and_bad_interval():
    with pytest.raises(ValueError):
        expand(date(2024, 1, 1), RecurrenceType.NONE, 1, None)
    with pytest.raises(ValueError):
        expand(date(2024, 1, 1), RecurrenceType.DAILY, 0, None)


def test_expand_monthly_stops_before_year_overflow():
    assert expand(
        date(2024, 1, 1), RecurrenceType.MONTHLY, 100_000, date(2024, 12, 31)
    ) == [date(2024, 1, 1)]
    assert expand(
        date(9999, 11, 1), RecurrenceType.MONTHLY, 1, date(9999, 12, 31)
    ) == [date(9999, 11, 1), date(9999, 12, 1)]


def test_default_horizon_is_capped_at_last_representable_date():
    assert recurrence_horizon(date(9998, 6, 1), None) == date.max

    daily = expand(date(9998, 6, 1), RecurrenceType.DAILY, 1, None)
    assert daily[0] == date(9998, 6, 1)
    assert daily[-1] == date.max

    monthly = expand(date(9998, 6, 15), RecurrenceType.MONTHLY, 1, None)
    assert monthly[-1] == date(9999, 12, 15)


def test_recurrence_horizon_leap_day():
    assert recurrence_horizon(date(2024, 2, 29), None) == date(2026, 2, 28)
    assert recurrence_horizon(date(2024, 2, 29), date(2024, 3, 1)) == date(2024, 3, 1)


# ---------------------------------------------------------------------------
# expand_recurrence
# ---------------------------------------------------------------------------


def test_expand_recurrence_builds_instances():
    parent = RecurringEvent(
        title="Soccer practice",
        description="City Park Field 4",
        start_date=date(2026, 2, 19),
        start_time=time(15, 30),
        end_time=time(17, 0),
        author_id="user-1",
        recurrence_type=RecurrenceType.WEEKLY,
        recurrence_end_date=date(2026, 3, 13),
    )
    instances = expand_recurrence(parent)

    assert [i.date for i in instances] == [
        date(2026, 2, 19),
        date(2026, 2, 26),
        date(2026, 3, 5),
        date(2026, 3, 12),
    ]
    for instance in instances:
        assert instance.recurring_event_id == parent.id
        assert instance.author_id == "user-1"
        assert instance.title == "Soccer practice"
        assert (instance.start_time, instance.end_time) == (time(15, 30), time(17, 0))
        assert not instance.is_modified
