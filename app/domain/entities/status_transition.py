from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.domain.entities.booking_status import BookingStatus


@dataclass(frozen=True)
class StatusTransition:
    booking_id: str
    from_status: BookingStatus
    to_status: BookingStatus
    changed_at: datetime
    changed_by: str
    reason: str | None = None
    notes: str | None = None
