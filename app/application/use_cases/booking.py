from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal

from app.application.exceptions import BookingNotFoundError, ServiceNotFoundError
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.history_ledger import HistoryLedgerPort
from app.application.ports.service_catalog import ServiceCatalogPort
from app.application.use_cases.conflict_guard import ConflictGuard
from app.application.use_cases.lifecycle import LifecycleEngine
from app.application.use_cases.slot_generator import AvailableSlots, SlotGenerator
from app.application.utils.interval_rules import to_utc
from app.domain.entities.booking import Booking, BookingCandidate
from app.domain.entities.booking_status import TERMINAL_STATUSES, BookingStatus, TransitionRule, parse_status
from app.domain.entities.business_hours import BusinessHoursConfig
from app.domain.entities.lifecycle_result import TransitionResult
from app.domain.entities.service import Service
from app.domain.entities.status_transition import StatusTransition
from app.domain.entities.time_block import ProviderTimeBlock
from app.domain.entities.validation import ValidationResult


@dataclass(frozen=True)
class BookingRequest:
    customer_id: str
    provider_id: str
    service_id: str
    start: datetime
    end: datetime | None = None  # defaults to start + service duration
    price: Decimal | None = None  # defaults to the service price
    notes: str | None = None
    status: BookingStatus = BookingStatus.pending


@dataclass(frozen=True)
class RescheduleRequest:
    provider_id: str | None = None
    service_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    price: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class BookingResult:
    validation: ValidationResult
    booking: Booking | None

    @property
    def ok(self) -> bool:
        return self.validation.ok and self.booking is not None


def _new_id() -> str:
    return uuid.uuid4().hex


class BookingUseCase:
    """
    Entry point for the booking API layer. Resolves entities through the
    collaborators, hands fully resolved values to the scheduling core and
    persists its decisions inside the store's per-provider transaction.

    Business hours and `now` are always passed in by the caller.
    """

    def __init__(
        self,
        store: BookingStorePort,
        ledger: HistoryLedgerPort,
        catalog: ServiceCatalogPort,
        slot_generator: SlotGenerator | None = None,
        guard: ConflictGuard | None = None,
        engine: LifecycleEngine | None = None,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._catalog = catalog
        self._slot_generator = slot_generator or SlotGenerator()
        self._guard = guard or ConflictGuard()
        self._engine = engine or LifecycleEngine()
        self._id_factory = id_factory
        self._logger = logging.getLogger(__name__)

    # -- availability ---------------------------------------------------

    def get_available_slots(
        self,
        provider_id: str,
        day: date | datetime,
        service_id: str,
        config: BusinessHoursConfig,
        now: datetime,
    ) -> AvailableSlots:
        service = self._require_service(service_id)
        calendar_day = day.date() if isinstance(day, datetime) else day
        return self._slot_generator.generate(
            provider_id=provider_id,
            day=calendar_day,
            service_duration_minutes=service.duration_minutes,
            config=config,
            existing_bookings=self._store.find_by_provider_and_date(provider_id, calendar_day),
            blocks=self._store.find_time_blocks(provider_id, calendar_day),
            now=now,
        )

    def list_services(self) -> list[Service]:
        return self._catalog.list_services()

    # -- validation, create, reschedule ---------------------------------

    def validate_booking(
        self,
        candidate: BookingCandidate,
        config: BusinessHoursConfig,
        now: datetime,
    ) -> ValidationResult:
        day = to_utc(candidate.start).date()
        return self._guard.validate(
            candidate,
            config,
            self._store.find_by_provider_and_date(candidate.provider_id, day),
            now,
            self._store.find_time_blocks(candidate.provider_id, day),
        )

    def create_booking(self, request: BookingRequest, config: BusinessHoursConfig, now: datetime) -> BookingResult:
        if request.status in TERMINAL_STATUSES:
            raise ValueError(f"A booking cannot be created as {request.status.value}")
        service = self._require_service(request.service_id)
        start = to_utc(request.start)
        end = to_utc(request.end) if request.end is not None else start + timedelta(minutes=service.duration_minutes)
        candidate = BookingCandidate(provider_id=request.provider_id, start=start, end=end)

        with self._store.transaction(request.provider_id):
            validation = self.validate_booking(candidate, config, now)
            if not validation.ok:
                self._log_rejection("Booking rejected", request.provider_id, None, validation)
                return BookingResult(validation=validation, booking=None)

            created_at = to_utc(now)
            booking = Booking(
                id=self._id_factory(),
                customer_id=request.customer_id,
                provider_id=request.provider_id,
                service_id=service.id,
                start_time=start,
                end_time=end,
                status=request.status,
                price=request.price if request.price is not None else service.price,
                notes=request.notes,
                created_at=created_at,
                updated_at=created_at,
            )
            self._store.insert(booking)

        self._logger.info(
            "Booking created",
            extra={"booking_id": booking.id, "provider_id": booking.provider_id, "status": booking.status.value},
        )
        return BookingResult(validation=validation, booking=booking)

    def reschedule_booking(
        self,
        booking_id: str,
        changes: RescheduleRequest,
        config: BusinessHoursConfig,
        now: datetime,
    ) -> BookingResult:
        target = (changes.provider_id,) if changes.provider_id else ()

        with self._locked_booking(booking_id, *target) as current:
            provider_id = changes.provider_id or current.provider_id
            service_id = current.service_id
            if changes.service_id is not None:
                service_id = self._require_service(changes.service_id).id

            start = to_utc(changes.start) if changes.start is not None else to_utc(current.start_time)
            if changes.end is not None:
                end = to_utc(changes.end)
            elif changes.service_id is not None:
                end = start + timedelta(minutes=self._require_service(service_id).duration_minutes)
            else:
                end = start + (to_utc(current.end_time) - to_utc(current.start_time))

            updated = replace(
                current,
                provider_id=provider_id,
                service_id=service_id,
                start_time=start,
                end_time=end,
                price=changes.price if changes.price is not None else current.price,
                notes=changes.notes if changes.notes is not None else current.notes,
                updated_at=to_utc(now),
            )

            time_changed = (provider_id, start, end) != (
                current.provider_id,
                to_utc(current.start_time),
                to_utc(current.end_time),
            )
            if time_changed or changes.service_id is not None:
                candidate = BookingCandidate(
                    provider_id=provider_id,
                    start=start,
                    end=end,
                    exclude_booking_id=current.id,
                )
                validation = self.validate_booking(candidate, config, now)
                if not validation.ok:
                    self._log_rejection("Reschedule rejected", provider_id, booking_id, validation)
                    return BookingResult(validation=validation, booking=None)
            else:
                validation = ValidationResult.success()

            self._store.update(updated)

        self._logger.info("Booking updated", extra={"booking_id": booking_id, "provider_id": provider_id})
        return BookingResult(validation=validation, booking=updated)

    def get_booking(self, booking_id: str) -> Booking:
        booking = self._store.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    # -- lifecycle ------------------------------------------------------

    def transition_status(
        self,
        booking_id: str,
        new_status: str | BookingStatus,
        now: datetime,
        reason: str | None = None,
        notes: str | None = None,
        changed_by: str = "system",
    ) -> TransitionResult:
        with self._locked_booking(booking_id) as booking:
            result = self._engine.transition(
                booking,
                new_status,
                now=now,
                reason=reason,
                notes=notes,
                changed_by=changed_by,
            )
            if not result.ok:
                self._logger.info(
                    "Status change rejected",
                    extra={"booking_id": booking_id, "kind": result.failure.value, "status": booking.status.value},
                )
                return result
            self._store.update(result.booking)
            self._ledger.append(result.entry)

        self._logger.info(
            "Booking status changed",
            extra={
                "booking_id": booking_id,
                "status": f"{result.previous_status.value}->{result.current_status.value}",
                "reason": reason,
                "changed_by": changed_by,
            },
        )
        return result

    def get_allowed_transitions(self, current_status: str | BookingStatus) -> list[TransitionRule]:
        if parse_status(current_status) is None:
            raise ValueError(f"Invalid status: {current_status}")
        return self._engine.allowed_transitions(current_status)

    def get_allowed_transitions_for_booking(self, booking_id: str) -> list[TransitionRule]:
        return self._engine.allowed_transitions(self.get_booking(booking_id).status)

    def get_history(self, booking_id: str) -> list[StatusTransition]:
        self.get_booking(booking_id)
        return self._ledger.list_by_booking(booking_id)

    # -- provider time blocks -------------------------------------------

    def add_time_block(
        self,
        provider_id: str,
        start: datetime,
        end: datetime,
        reason: str | None = None,
    ) -> ProviderTimeBlock:
        start, end = to_utc(start), to_utc(end)
        if end <= start:
            raise ValueError("The end time must be later than the start time")
        block = ProviderTimeBlock(id=self._id_factory(), provider_id=provider_id, start_time=start, end_time=end, reason=reason)
        self._store.add_time_block(block)
        self._logger.info("Time block added", extra={"provider_id": provider_id, "reason": reason})
        return block

    def list_time_blocks(self, provider_id: str, day: date) -> list[ProviderTimeBlock]:
        return self._store.find_time_blocks(provider_id, day)

    # -- helpers --------------------------------------------------------

    @contextmanager
    def _locked_booking(self, booking_id: str, *also_lock: str) -> Iterator[Booking]:
        """
        Yields the booking re-read inside a store transaction that holds its
        provider (plus `also_lock`). Retries when the booking moved to another
        provider between the first read and taking the locks.
        """
        while True:
            provider_id = self.get_booking(booking_id).provider_id
            with self._store.transaction(provider_id, *also_lock):
                booking = self.get_booking(booking_id)
                if booking.provider_id == provider_id:
                    yield booking
                    return
            self._logger.info(
                "Booking changed provider while locking, retrying",
                extra={"booking_id": booking_id, "provider_id": booking.provider_id},
            )

    def _require_service(self, service_id: str) -> Service:
        service = self._catalog.get_service(service_id)
        if service is None:
            raise ServiceNotFoundError(f"Service {service_id} not found")
        return service

    def _log_rejection(
        self,
        message: str,
        provider_id: str,
        booking_id: str | None,
        validation: ValidationResult,
    ) -> None:
        self._logger.info(
            message,
            extra={
                "booking_id": booking_id,
                "provider_id": provider_id,
                "kind": validation.failure.value if validation.failure else None,
                "reason": validation.message,
            },
        )
