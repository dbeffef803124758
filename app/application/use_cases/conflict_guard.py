from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from app.application.utils.interval_rules import (
    buffer_overlaps,
    format_hhmm,
    is_future,
    overlaps,
    to_utc,
    within_business_hours,
)
from app.domain.entities.booking import Booking, BookingCandidate
from app.domain.entities.business_hours import BusinessHoursConfig
from app.domain.entities.time_block import ProviderTimeBlock
from app.domain.entities.validation import ConflictingInterval, ValidationFailure, ValidationResult


class ConflictGuard:
    """
    Decides whether a single proposed booking (new or rescheduled) may be
    written for a provider, given a snapshot of that provider's bookings.

    Checks run in a fixed order and stop at the first failure:
    business hours, in the past, empty interval, double booking,
    provider time block, minimum gap.
    """

    def __init__(self, minimum_gap_minutes: int = 15) -> None:
        self._minimum_gap = timedelta(minutes=minimum_gap_minutes)

    def validate(
        self,
        candidate: BookingCandidate,
        config: BusinessHoursConfig,
        existing_bookings: Iterable[Booking],
        now: datetime,
        blocks: Sequence[ProviderTimeBlock] = (),
    ) -> ValidationResult:
        start = to_utc(candidate.start)
        end = to_utc(candidate.end)

        if not within_business_hours(start, end, config):
            return ValidationResult.fail(
                ValidationFailure.outside_business_hours,
                f"The booking must fall within business hours "
                f"({format_hhmm(config.opening)}-{format_hhmm(config.closing)}) on an open day",
            )

        if not is_future(start, now):
            return ValidationResult.fail(ValidationFailure.in_past, "The booking must start in the future")

        if end <= start:
            return ValidationResult.fail(
                ValidationFailure.invalid_interval,
                "The end time must be later than the start time",
            )

        others = [
            b
            for b in existing_bookings
            if b.provider_id == candidate.provider_id
            and b.is_active
            and b.id != candidate.exclude_booking_id
        ]

        for booking in others:
            b_start, b_end = to_utc(booking.start_time), to_utc(booking.end_time)
            if overlaps(start, end, b_start, b_end):
                return ValidationResult.fail(
                    ValidationFailure.double_booked,
                    f"Provider already has a booking from {format_hhmm(b_start)} to {format_hhmm(b_end)}",
                    ConflictingInterval(start=b_start, end=b_end, booking_id=booking.id),
                )

        for block in blocks:
            if block.provider_id != candidate.provider_id:
                continue
            k_start, k_end = to_utc(block.start_time), to_utc(block.end_time)
            if overlaps(start, end, k_start, k_end):
                return ValidationResult.fail(
                    ValidationFailure.provider_blocked,
                    f"Provider is unavailable from {format_hhmm(k_start)} to {format_hhmm(k_end)}",
                    ConflictingInterval(start=k_start, end=k_end, block_id=block.id),
                )

        for booking in others:
            b_start, b_end = to_utc(booking.start_time), to_utc(booking.end_time)
            if buffer_overlaps(start, end, b_start, b_end, self._minimum_gap):
                minutes = int(self._minimum_gap.total_seconds() // 60)
                return ValidationResult.fail(
                    ValidationFailure.insufficient_gap,
                    f"There must be at least {minutes} minutes between bookings; "
                    f"another booking runs from {format_hhmm(b_start)} to {format_hhmm(b_end)}",
                    ConflictingInterval(start=b_start, end=b_end, booking_id=booking.id),
                )

        return ValidationResult.success()
