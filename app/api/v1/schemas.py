import datetime as dt
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from app.domain.entities.booking_status import BookingStatus


class ServiceSchema(BaseModel):
    id: str
    name: str
    duration_minutes: int
    price: Decimal


class BookingCreateSchema(BaseModel):
    customer_id: str
    provider_id: str
    service_id: str
    start_time: datetime
    end_time: datetime | None = None
    price: Decimal | None = None
    notes: str | None = None
    status: BookingStatus = BookingStatus.pending


class BookingUpdateSchema(BaseModel):
    provider_id: str | None = None
    service_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    price: Decimal | None = None
    notes: str | None = None


class BookingValidateSchema(BaseModel):
    provider_id: str
    start_time: datetime
    end_time: datetime
    exclude_booking_id: str | None = None


class BookingSchema(BaseModel):
    id: str
    customer_id: str
    provider_id: str
    service_id: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    price: Decimal
    notes: str | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ConflictSchema(BaseModel):
    start: datetime
    end: datetime
    booking_id: str | None = None
    block_id: str | None = None


class ValidationResultSchema(BaseModel):
    ok: bool
    kind: str | None = None
    message: str | None = None
    conflict: ConflictSchema | None = None


class SlotsResponseSchema(BaseModel):
    provider_id: str
    date: dt.date
    service_id: str
    slots: list[str] = Field(default_factory=list)


class StatusUpdateSchema(BaseModel):
    new_status: str
    reason: str | None = None
    cancellation_reason: str | None = None
    notes: str | None = None


class StatusUpdateResponseSchema(BaseModel):
    message: str
    previous_status: BookingStatus
    current_status: BookingStatus
    timestamp: datetime


class StatusTransitionSchema(BaseModel):
    from_status: BookingStatus
    to_status: BookingStatus
    reason: str | None = None
    notes: str | None = None
    changed_at: datetime
    changed_by: str


class AllowedTransitionSchema(BaseModel):
    from_status: BookingStatus
    to_status: BookingStatus
    requires_reason: bool
    display_name: str
    description: str


class TimeBlockCreateSchema(BaseModel):
    start_time: datetime
    end_time: datetime
    reason: str | None = None


class TimeBlockSchema(BaseModel):
    id: str
    provider_id: str
    start_time: datetime
    end_time: datetime
    reason: str | None = None
