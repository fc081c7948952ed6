"""Service for expanding recurring events into dated Event instances.

Monthly series keep the day-of-month of the series start and clamp to the
last day of shorter months: a series starting on Jan 31 runs Jan 31,
Feb 29 (or 28), Mar 31, Apr 30, ...  Each occurrence is computed from the
start date, so one short month never drags later occurrences earlier.
"""

from __future__ import annotations

from datetime import date, datetime, time

from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY, WEEKLY, rrule

from scheduler.domain.models import Event, RecurrenceType, RecurringEvent

DEFAULT_HORIZON_YEARS = 2

_RRULE_FREQ = {RecurrenceType.DAILY: DAILY, RecurrenceType.WEEKLY: WEEKLY}


def recurrence_horizon(
    start_date: date,
    end_date: date | None,
    horizon_years: int = DEFAULT_HORIZON_YEARS,
) -> date:
    """Return the last date a series may occupy (inclusive)."""
    if end_date is not None:
        return end_date
    try:
        return start_date + relativedelta(years=horizon_years)
    except (ValueError, OverflowError):
        # Past year 9999.
        return date.max


def expand(
    start_date: date,
    recurrence_type: RecurrenceType,
    interval: int = 1,
    end_date: date | None = None,
    horizon_years: int = DEFAULT_HORIZON_YEARS,
) -> list[date]:
    """Return the ascending occurrence dates of a series.

    Occurrences run from *start_date* up to and including *end_date*, or up
    to *horizon_years* after the start when no end date is given.
    """
    if recurrence_type == RecurrenceType.NONE:
        raise ValueError("non-recurring events have no occurrences to expand")
    if interval < 1:
        raise ValueError("interval must be a positive integer")

    horizon = recurrence_horizon(start_date, end_date, horizon_years)
    if horizon < start_date:
        return []

    if recurrence_type == RecurrenceType.MONTHLY:
        dates: list[date] = []
        step = 0
        cursor = start_date
        while cursor <= horizon:
            dates.append(cursor)
            step += interval
            try:
                cursor = start_date + relativedelta(months=step)
            except (ValueError, OverflowError):
                # Next occurrence falls past year 9999.
                break
        return dates

    rule = rrule(
        _RRULE_FREQ[recurrence_type],
        dtstart=datetime.combine(start_date, time.min),
        interval=interval,
        until=datetime.combine(horizon, time.min),
    )
    return [dt.date() for dt in rule]


def expand_recurrence(
    parent: RecurringEvent, horizon_years: int = DEFAULT_HORIZON_YEARS
) -> list[Event]:
    """Expand a RecurringEvent into one Event instance per occurrence date.

    Each instance copies the parent's title, description and time window,
    belongs to the parent's author and carries ``recurring_event_id``.
    """
    dates = expand(
        parent.start_date,
        parent.recurrence_type,
        parent.recurrence_interval,
        parent.recurrence_end_date,
        horizon_years,
    )
    return [
        Event(
            title=parent.title,
            description=parent.description,
            date=occurrence,
            start_time=parent.start_time,
            end_time=parent.end_time,
            author_id=parent.author_id,
            recurring_event_id=parent.id,
        )
        for occurrence in dates
    ]
