from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta

from app.domain.entities.business_hours import BusinessHoursConfig


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_midnight(day: date | datetime) -> datetime:
    """
    Midnight (UTC) of the calendar date the caller passed in.
    The date component is kept as given so a local "today" never slides
    into yesterday or tomorrow.
    """
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, time.min, tzinfo=UTC)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open intervals: touching at a boundary is not an overlap."""
    return a_start < b_end and a_end > b_start


def buffer_overlaps(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
    gap: timedelta,
) -> bool:
    return overlaps(a_start, a_end, b_start - gap, b_end + gap)


def within_business_hours(start: datetime, end: datetime, config: BusinessHoursConfig) -> bool:
    start = to_utc(start)
    end = to_utc(end)
    if start.date() != end.date():
        return False
    if start.weekday() in config.closed_days:
        return False
    return start.time() >= config.opening and end.time() <= config.closing


def is_future(start: datetime, now: datetime) -> bool:
    return to_utc(start) > to_utc(now)


def format_hhmm(value: datetime | time) -> str:
    return value.strftime("%H:%M")
