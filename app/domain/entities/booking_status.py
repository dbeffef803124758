from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"


@dataclass(frozen=True)
class TransitionRule:
    to_status: BookingStatus
    requires_reason: bool
    display_name: str
    description: str


# Single source of truth for the lifecycle. Everything else is derived from it.
TRANSITION_TABLE: dict[BookingStatus, tuple[TransitionRule, ...]] = {
    BookingStatus.pending: (
        TransitionRule(
            to_status=BookingStatus.confirmed,
            requires_reason=False,
            display_name="Confirm Booking",
            description="Confirms that the appointment is scheduled",
        ),
        TransitionRule(
            to_status=BookingStatus.cancelled,
            requires_reason=True,
            display_name="Cancel Booking",
            description="Cancels the appointment before it is confirmed",
        ),
    ),
    BookingStatus.confirmed: (
        TransitionRule(
            to_status=BookingStatus.completed,
            requires_reason=False,
            display_name="Mark as Completed",
            description="The appointment took place successfully",
        ),
        TransitionRule(
            to_status=BookingStatus.cancelled,
            requires_reason=True,
            display_name="Cancel Booking",
            description="Cancels a confirmed appointment",
        ),
        TransitionRule(
            to_status=BookingStatus.no_show,
            requires_reason=False,
            display_name="Mark as No Show",
            description="The customer did not show up",
        ),
    ),
}

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    status: frozenset(rule.to_status for rule in TRANSITION_TABLE.get(status, ()))
    for status in BookingStatus
}

TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def parse_status(value: str | BookingStatus) -> BookingStatus | None:
    """Return the matching status (case-insensitive) or None if unknown."""
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus(str(value).strip().lower())
    except ValueError:
        return None


def find_rule(from_status: BookingStatus, to_status: BookingStatus) -> TransitionRule | None:
    for rule in TRANSITION_TABLE.get(from_status, ()):
        if rule.to_status == to_status:
            return rule
    return None
