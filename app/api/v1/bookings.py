from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from app.api.v1.schemas import (
    AllowedTransitionSchema,
    BookingCreateSchema,
    BookingSchema,
    BookingUpdateSchema,
    BookingValidateSchema,
    ConflictSchema,
    ServiceSchema,
    SlotsResponseSchema,
    StatusTransitionSchema,
    StatusUpdateResponseSchema,
    StatusUpdateSchema,
    TimeBlockCreateSchema,
    TimeBlockSchema,
    ValidationResultSchema,
)
from app.application.exceptions import (
    BookingConflictError,
    BookingNotFoundError,
    ServiceNotFoundError,
    StoreUnavailableError,
)
from app.application.ports.business_config import BusinessConfigPort
from app.application.use_cases.booking import BookingRequest, BookingUseCase, RescheduleRequest
from app.domain.entities.booking import Booking, BookingCandidate
from app.domain.entities.booking_status import BookingStatus, TransitionRule
from app.domain.entities.business_hours import BusinessHoursConfig
from app.domain.entities.lifecycle_result import TransitionFailure, TransitionResult
from app.domain.entities.validation import ValidationFailure, ValidationResult
from app.wiring.dependencies import get_booking_use_case, get_business_config, get_now

router = APIRouter()
logger = logging.getLogger(__name__)

CONFLICT_KINDS = {
    ValidationFailure.double_booked,
    ValidationFailure.insufficient_gap,
    ValidationFailure.provider_blocked,
    TransitionFailure.invalid_transition,
}


def get_business_hours(
    x_business_id: str = Header("default"),
    config_port: BusinessConfigPort = Depends(get_business_config),
) -> BusinessHoursConfig:
    return config_port.get_business_hours(x_business_id)


def _status_code(kind: ValidationFailure | TransitionFailure) -> int:
    return 409 if kind in CONFLICT_KINDS else 422


def _validation_schema(result: ValidationResult) -> ValidationResultSchema:
    return ValidationResultSchema(
        ok=result.ok,
        kind=result.failure.value if result.failure else None,
        message=result.message,
        conflict=ConflictSchema(**asdict(result.conflict)) if result.conflict else None,
    )


def _raise_for_validation(result: ValidationResult) -> None:
    raise HTTPException(
        status_code=_status_code(result.failure),
        detail=_validation_schema(result).model_dump(mode="json"),
    )


def _raise_for_transition(result: TransitionResult) -> None:
    raise HTTPException(
        status_code=_status_code(result.failure),
        detail={"kind": result.failure.value, "message": result.message},
    )


def _booking_schema(booking: Booking) -> BookingSchema:
    return BookingSchema(**asdict(booking))


def _rule_schema(from_status: BookingStatus, rule: TransitionRule) -> AllowedTransitionSchema:
    return AllowedTransitionSchema(
        from_status=from_status,
        to_status=rule.to_status,
        requires_reason=rule.requires_reason,
        display_name=rule.display_name,
        description=rule.description,
    )


def _translate_errors(e: Exception) -> HTTPException:
    if isinstance(e, (BookingNotFoundError, ServiceNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, BookingConflictError):
        logger.warning("Store rejected conflicting write", extra={"reason": str(e)})
        return HTTPException(status_code=409, detail={"kind": ValidationFailure.double_booked.value, "message": str(e)})
    if isinstance(e, StoreUnavailableError):
        logger.exception("Booking store unavailable")
        return HTTPException(status_code=503, detail="Booking store unavailable")
    return HTTPException(status_code=422, detail=str(e))


@router.get("/services", response_model=list[ServiceSchema])
def list_services(uc: BookingUseCase = Depends(get_booking_use_case)):
    return [ServiceSchema(**asdict(service)) for service in uc.list_services()]


@router.get("/providers/{provider_id}/slots", response_model=SlotsResponseSchema)
def get_available_slots(
    provider_id: str,
    day: date = Query(..., alias="date"),
    service_id: str = Query(...),
    config: BusinessHoursConfig = Depends(get_business_hours),
    now: datetime = Depends(get_now),
    uc: BookingUseCase = Depends(get_booking_use_case),
):
    try:
        slots = uc.get_available_slots(provider_id, day, service_id, config, now)
        return SlotsResponseSchema(provider_id=provider_id, date=day, service_id=service_id, slots=list(slots))
    except (ServiceNotFoundError, StoreUnavailableError) as e:
        raise _translate_errors(e)


@router.post("/bookings/validate", response_model=ValidationResultSchema)
def validate_booking(
    req: BookingValidateSchema,
    config: BusinessHoursConfig = Depends(get_business_hours),
    now: datetime = Depends(get_now),
    uc: BookingUseCase = Depends(get_booking_use_case),
):
    candidate = BookingCandidate(
        provider_id=req.provider_id,
        start=req.start_time,
        end=req.end_time,
        exclude_booking_id=req.exclude_booking_id,
    )
    try:
        return _validation_schema(uc.validate_booking(candidate, config, now))
    except StoreUnavailableError as e:
        raise _translate_errors(e)


@router.post("/bookings", response_model=BookingSchema, status_code=201)
def create_booking(
    req: BookingCreateSchema,
    config: BusinessHoursConfig = Depends(get_business_hours),
    now: datetime = Depends(get_now),
    uc: BookingUseCase = Depends(get_booking_use_case),
):
    request = BookingRequest(
        customer_id=req.customer_id,
        provider_id=req.provider_id,
        service_id=req.service_id,
        start=req.start_time,
        end=req.end_time,
        price=req.price,
        notes=req.notes,
        status=req.status,
    )
    try:
        result = uc.create_booking(request, config, now)
    except (ServiceNotFoundError, BookingConflictError, StoreUnavailableError, ValueError) as e:
        raise _translate_errors(e)
    if not result.ok:
        _raise_for_validation(result.validation)
    return _booking_schema(result.booking)


@router.get("/bookings/{booking_id}", response_model=BookingSchema)
def get_booking(booking_id: str, uc: BookingUseCase = Depends(get_booking_use_case)):
    try:
        return _booking_schema(uc.get_booking(booking_id))
    except (BookingNotFoundError, StoreUnavailableError) as e:
        raise _translate_errors(e)


@router.patch("/bookings/{booking_id}", response_model=BookingSchema)
def reschedule_booking(
    booking_id: str,
    req: BookingUpdateSchema,
    config: BusinessHoursConfig = Depends(get_business_hours),
    now: datetime = Depends(get_now),
    uc: BookingUseCase = Depends(get_booking_use_case),
):
    changes = RescheduleRequest(
        provider_id=req.provider_id,
        service_id=req.service_id,
        start=req.start_time,
        end=req.end_time,
        price=req.price,
        notes=req.notes,
    )
    try:
        result = uc.reschedule_booking(booking_id, changes, config, now)
    except (BookingNotFoundError, ServiceNotFoundError, BookingConflictError, StoreUnavailableError) as e:
        raise _translate_errors(e)
    if not result.ok:
        _raise_for_validation(result.validation)
    return _booking_schema(result.booking)


@router.put("/bookings/{booking_id}/status", response_model=StatusUpdateResponseSchema)
def update_status(
    booking_id: str,
    req: StatusUpdateSchema,
    x_changed_by: str = Header("system"),
    now: datetime = Depends(get_now),
    uc: BookingUseCase = Depends(get_booking_use_case),
):
    try:
        result = uc.transition_status(
            booking_id,
            req.new_status,
            now=now,
            reason=req.cancellation_reason or req.reason,
            notes=req.notes,
            changed_by=x_changed_by,
        )
    except (BookingNotFoundError, BookingConflictError, StoreUnavailableError) as e:
        raise _translate_errors(e)
    if not result.ok:
        _raise_for_transition(result)
    return StatusUpdateResponseSchema(
        message="Status updated successfully",
        previous_status=result.previous_status,
        current_status=result.current_status,
        timestamp=result.changed_at,
    )


@router.get("/bookings/{booking_id}/status/history", response_model=list[StatusTransitionSchema])
def get_status_history(booking_id: str, uc: BookingUseCase = Depends(get_booking_use_case)):
    try:
        history = uc.get_history(booking_id)
    except (BookingNotFoundError, StoreUnavailableError) as e:
        raise _translate_errors(e)
    return [
        StatusTransitionSchema(**{k: v for k, v in asdict(entry).items() if k != "booking_id"})
        for entry in history
    ]


@router.get("/bookings/{booking_id}/status/allowed-transitions", response_model=list[AllowedTransitionSchema])
def get_booking_allowed_transitions(booking_id: str, uc: BookingUseCase = Depends(get_booking_use_case)):
    try:
        booking = uc.get_booking(booking_id)
        rules = uc.get_allowed_transitions_for_booking(booking_id)
    except (BookingNotFoundError, StoreUnavailableError) as e:
        raise _translate_errors(e)
    return [_rule_schema(booking.status, rule) for rule in rules]


@router.get("/statuses/{status}/allowed-transitions", response_model=list[AllowedTransitionSchema])
def get_allowed_transitions(status: str, uc: BookingUseCase = Depends(get_booking_use_case)):
    try:
        rules = uc.get_allowed_transitions(status)
    except ValueError as e:
        raise HTTPException(
            status_code=422,
            detail={"kind": TransitionFailure.unknown_status.value, "message": str(e)},
        )
    return [_rule_schema(BookingStatus(status.strip().lower()), rule) for rule in rules]


@router.post("/providers/{provider_id}/blocks", response_model=TimeBlockSchema, status_code=201)
def add_time_block(
    provider_id: str,
    req: TimeBlockCreateSchema,
    uc: BookingUseCase = Depends(get_booking_use_case),
):
    try:
        block = uc.add_time_block(provider_id, req.start_time, req.end_time, req.reason)
    except (ValueError, StoreUnavailableError) as e:
        raise _translate_errors(e)
    return TimeBlockSchema(**asdict(block))


@router.get("/providers/{provider_id}/blocks", response_model=list[TimeBlockSchema])
def list_time_blocks(
    provider_id: str,
    day: date = Query(..., alias="date"),
    uc: BookingUseCase = Depends(get_booking_use_case),
):
    try:
        blocks = uc.list_time_blocks(provider_id, day)
    except StoreUnavailableError as e:
        raise _translate_errors(e)
    return [TimeBlockSchema(**asdict(block)) for block in blocks]
