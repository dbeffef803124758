from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from app.domain.entities.booking import Booking
from app.domain.entities.booking_status import BookingStatus
from app.domain.entities.status_transition import StatusTransition


class TransitionFailure(str, Enum):
    unknown_status = "unknown_status"
    invalid_transition = "invalid_transition"
    reason_required = "reason_required"
    past_booking = "past_booking"
    too_close_to_cancel = "too_close_to_cancel"


@dataclass(frozen=True)
class TransitionResult:
    previous_status: BookingStatus | None = None
    current_status: BookingStatus | None = None
    changed_at: datetime | None = None
    booking: Booking | None = None
    entry: StatusTransition | None = None
    failure: TransitionFailure | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def fail(cls, failure: TransitionFailure, message: str, previous_status: BookingStatus | None = None) -> "TransitionResult":
        return cls(previous_status=previous_status, current_status=previous_status, failure=failure, message=message)
