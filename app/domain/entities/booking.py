from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from app.domain.entities.booking_status import BookingStatus


@dataclass(frozen=True)
class Booking:
    id: str
    customer_id: str
    provider_id: str
    service_id: str
    start_time: datetime
    end_time: datetime  # exclusive
    status: BookingStatus = BookingStatus.pending
    price: Decimal = Decimal("0")
    notes: str | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        """Cancelled bookings no longer hold their slot."""
        return self.status != BookingStatus.cancelled


@dataclass(frozen=True)
class BookingCandidate:
    provider_id: str
    start: datetime
    end: datetime
    exclude_booking_id: str | None = None  # set when rescheduling
