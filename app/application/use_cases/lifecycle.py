from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from app.application.utils.interval_rules import to_utc
from app.domain.entities.booking import Booking
from app.domain.entities.booking_status import (
    TRANSITION_TABLE,
    BookingStatus,
    TransitionRule,
    find_rule,
    parse_status,
)
from app.domain.entities.lifecycle_result import TransitionFailure, TransitionResult
from app.domain.entities.status_transition import StatusTransition


class LifecycleEngine:
    """
    Booking status state machine.

    `transition` never touches storage: it returns the updated booking and
    the ledger entry, and the caller persists both in one unit of work.
    """

    def __init__(self, cancellation_cutoff_hours: float = 2) -> None:
        self._cancellation_cutoff = timedelta(hours=cancellation_cutoff_hours)

    def allowed_transitions(self, current_status: str | BookingStatus) -> list[TransitionRule]:
        status = parse_status(current_status)
        if status is None:
            return []
        return list(TRANSITION_TABLE.get(status, ()))

    def check_cancellation_policy(self, booking: Booking, now: datetime) -> TransitionResult | None:
        """Returns a failed result when the booking may not be cancelled at `now`."""
        until_start = to_utc(booking.start_time) - to_utc(now)
        if until_start < timedelta(0):
            return TransitionResult.fail(
                TransitionFailure.past_booking,
                "A booking that has already started or passed cannot be cancelled",
                booking.status,
            )
        if until_start < self._cancellation_cutoff:
            hours = self._cancellation_cutoff.total_seconds() / 3600
            return TransitionResult.fail(
                TransitionFailure.too_close_to_cancel,
                f"A booking cannot be cancelled less than {hours:g} hours before it starts",
                booking.status,
            )
        return None

    def transition(
        self,
        booking: Booking,
        new_status: str | BookingStatus,
        now: datetime,
        reason: str | None = None,
        notes: str | None = None,
        changed_by: str = "system",
    ) -> TransitionResult:
        target = parse_status(new_status)
        if target is None:
            return TransitionResult.fail(
                TransitionFailure.unknown_status,
                f"Invalid status: {new_status}",
                booking.status,
            )

        rule = find_rule(booking.status, target)
        if rule is None:
            return TransitionResult.fail(
                TransitionFailure.invalid_transition,
                f"Cannot transition from {booking.status.value} to {target.value}",
                booking.status,
            )

        if rule.requires_reason and not (reason and reason.strip()):
            return TransitionResult.fail(
                TransitionFailure.reason_required,
                f"A reason is required to move a booking to {target.value}",
                booking.status,
            )

        if target == BookingStatus.cancelled:
            rejection = self.check_cancellation_policy(booking, now)
            if rejection is not None:
                return rejection

        changed_at = to_utc(now)
        changes: dict[str, object] = {"status": target, "updated_at": changed_at}
        if target == BookingStatus.cancelled:
            changes["cancelled_at"] = changed_at
            changes["cancellation_reason"] = reason
        updated = replace(booking, **changes)

        entry = StatusTransition(
            booking_id=booking.id,
            from_status=booking.status,
            to_status=target,
            changed_at=changed_at,
            changed_by=changed_by,
            reason=reason,
            notes=notes,
        )
        return TransitionResult(
            previous_status=booking.status,
            current_status=target,
            changed_at=changed_at,
            booking=updated,
            entry=entry,
        )
