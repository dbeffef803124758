from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from app.application.utils.interval_rules import (
    buffer_overlaps,
    format_hhmm,
    is_future,
    overlaps,
    to_utc,
    utc_midnight,
    within_business_hours,
)
from app.domain.entities.booking import Booking
from app.domain.entities.business_hours import BusinessHoursConfig
from app.domain.entities.time_block import ProviderTimeBlock


@dataclass(frozen=True)
class AvailableSlots:
    """
    Free start times (HH:MM, ascending) for one provider on one day.

    Iterating is lazy and can be repeated: every iteration re-walks the
    candidate grid against the same snapshot of bookings.
    """

    provider_id: str
    day: datetime
    duration: timedelta
    config: BusinessHoursConfig
    existing: tuple[Booking, ...]
    step: timedelta
    minimum_gap: timedelta
    blocks: tuple[ProviderTimeBlock, ...] = ()
    now: datetime | None = field(default=None)

    def __iter__(self) -> Iterator[str]:
        for start in self.start_times():
            yield format_hhmm(start)

    def start_times(self) -> Iterator[datetime]:
        if self.duration <= timedelta(0) or self.step <= timedelta(0):
            return
        if self.day.weekday() in self.config.closed_days:
            return

        current = self.day + _as_delta(self.config.opening)
        last_start = self.day + _as_delta(self.config.closing) - self.duration
        while current <= last_start:
            end = current + self.duration
            if self._is_free(current, end):
                yield current
            current += self.step

    def _is_free(self, start: datetime, end: datetime) -> bool:
        if not within_business_hours(start, end, self.config):
            return False
        if self.now is not None and not is_future(start, self.now):
            return False
        for booking in self.existing:
            if buffer_overlaps(start, end, to_utc(booking.start_time), to_utc(booking.end_time), self.minimum_gap):
                return False
        for block in self.blocks:
            if overlaps(start, end, to_utc(block.start_time), to_utc(block.end_time)):
                return False
        return True


class SlotGenerator:
    def __init__(self, step_minutes: int = 30, minimum_gap_minutes: int = 15) -> None:
        self._step_minutes = step_minutes
        self._minimum_gap_minutes = minimum_gap_minutes

    def generate(
        self,
        provider_id: str,
        day: date | datetime,
        service_duration_minutes: int,
        config: BusinessHoursConfig,
        existing_bookings: Iterable[Booking],
        blocks: Sequence[ProviderTimeBlock] = (),
        now: datetime | None = None,
        step_minutes: int | None = None,
        minimum_gap_minutes: int | None = None,
    ) -> AvailableSlots:
        step = step_minutes if step_minutes is not None else self._step_minutes
        gap = minimum_gap_minutes if minimum_gap_minutes is not None else self._minimum_gap_minutes
        return AvailableSlots(
            provider_id=provider_id,
            day=utc_midnight(day),
            duration=timedelta(minutes=service_duration_minutes),
            config=config,
            existing=tuple(b for b in existing_bookings if b.provider_id == provider_id and b.is_active),
            step=timedelta(minutes=step),
            minimum_gap=timedelta(minutes=gap),
            blocks=tuple(b for b in blocks if b.provider_id == provider_id),
            now=to_utc(now) if now is not None else None,
        )


def _as_delta(value) -> timedelta:
    return timedelta(hours=value.hour, minutes=value.minute, seconds=value.second)
