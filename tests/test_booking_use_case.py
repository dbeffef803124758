from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from app.application.exceptions import BookingConflictError, BookingNotFoundError, ServiceNotFoundError
from app.application.use_cases.booking import BookingRequest, BookingUseCase, RescheduleRequest
from app.application.use_cases.conflict_guard import ConflictGuard
from app.domain.entities.booking import BookingCandidate
from app.domain.entities.booking_status import BookingStatus
from app.domain.entities.lifecycle_result import TransitionFailure
from app.domain.entities.validation import ValidationFailure
from app.infrastructure.store.memory_store import MemoryBookingStore
from tests.factories import DAY, NOW, at, make_booking


@pytest.fixture
def use_case(store, catalog) -> BookingUseCase:
    return BookingUseCase(store=store, ledger=store, catalog=catalog)


def _request(start, provider_id="p1", service_id="haircut", **kwargs) -> BookingRequest:
    return BookingRequest(customer_id="c1", provider_id=provider_id, service_id=service_id, start=start, **kwargs)


def test_create_booking_defaults_end_price_and_status(use_case, hours):
    result = use_case.create_booking(_request(at(10)), hours, NOW)

    assert result.ok
    booking = result.booking
    assert booking.end_time == at(10, 30)
    assert booking.price == Decimal("25.00")
    assert booking.status == BookingStatus.pending
    assert booking.created_at == NOW
    assert use_case.get_booking(booking.id) == booking


def test_create_booking_rejects_conflicts(use_case, hours):
    assert use_case.create_booking(_request(at(10)), hours, NOW).ok

    clash = use_case.create_booking(_request(at(10, 15)), hours, NOW)
    assert not clash.ok
    assert clash.validation.failure == ValidationFailure.double_booked

    tight = use_case.create_booking(_request(at(10, 40)), hours, NOW)
    assert tight.validation.failure == ValidationFailure.insufficient_gap

    assert use_case.create_booking(_request(at(10, 45)), hours, NOW).ok


def test_create_booking_unknown_service(use_case, hours):
    with pytest.raises(ServiceNotFoundError):
        use_case.create_booking(_request(at(10), service_id="nope"), hours, NOW)


def test_create_booking_in_terminal_status_is_refused(use_case, hours):
    with pytest.raises(ValueError):
        use_case.create_booking(_request(at(10), status=BookingStatus.completed), hours, NOW)


def test_available_slots_then_book_each(use_case, hours):
    slots = use_case.get_available_slots("p1", DAY, "haircut", hours, NOW)
    first = next(iter(slots))
    assert first == "09:00"

    for start in slots.start_times():
        result = use_case.validate_booking(
            BookingCandidate(provider_id="p1", start=start, end=start + timedelta(minutes=30)), hours, NOW
        )
        assert result.ok

    use_case.create_booking(_request(at(9)), hours, NOW)
    assert "09:00" not in list(use_case.get_available_slots("p1", DAY, "haircut", hours, NOW))


def test_reschedule_excludes_own_interval(use_case, hours):
    booking = use_case.create_booking(_request(at(10)), hours, NOW).booking

    result = use_case.reschedule_booking(booking.id, RescheduleRequest(start=at(10, 15)), hours, NOW + timedelta(minutes=1))

    assert result.ok
    assert result.booking.start_time == at(10, 15)
    assert result.booking.end_time == at(10, 45)
    assert use_case.get_booking(booking.id).start_time == at(10, 15)


def test_reschedule_into_conflict_keeps_original(use_case, hours):
    first = use_case.create_booking(_request(at(10)), hours, NOW).booking
    second = use_case.create_booking(_request(at(12)), hours, NOW).booking

    result = use_case.reschedule_booking(second.id, RescheduleRequest(start=at(10, 30)), hours, NOW)

    assert result.validation.failure == ValidationFailure.insufficient_gap
    assert result.validation.conflict.booking_id == first.id
    assert use_case.get_booking(second.id).start_time == at(12)


def test_reschedule_service_change_recomputes_end(use_case, hours):
    booking = use_case.create_booking(_request(at(10)), hours, NOW).booking
    result = use_case.reschedule_booking(booking.id, RescheduleRequest(service_id="color"), hours, NOW)
    assert result.ok
    assert result.booking.service_id == "color"
    assert result.booking.end_time == at(11, 30)


def test_reschedule_to_other_provider(use_case, store, hours):
    booking = use_case.create_booking(_request(at(10)), hours, NOW).booking
    result = use_case.reschedule_booking(booking.id, RescheduleRequest(provider_id="p2"), hours, NOW)
    assert result.ok
    assert store.find_by_provider_and_date("p1", DAY) == []
    assert [b.id for b in store.find_by_provider_and_date("p2", DAY)] == [booking.id]


def test_notes_only_update_skips_validation(use_case, hours):
    booking = use_case.create_booking(_request(at(10)), hours, NOW).booking
    # the booking is in the past by now, but it was not moved
    later = at(11)
    result = use_case.reschedule_booking(booking.id, RescheduleRequest(notes="bring photo"), hours, later)
    assert result.ok
    assert result.booking.notes == "bring photo"


def test_reschedule_missing_booking(use_case, hours):
    with pytest.raises(BookingNotFoundError):
        use_case.reschedule_booking("missing", RescheduleRequest(start=at(10)), hours, NOW)


def test_transition_updates_booking_and_ledger_together(use_case, hours):
    booking = use_case.create_booking(_request(at(15)), hours, NOW).booking

    confirmed = use_case.transition_status(booking.id, "confirmed", now=NOW, changed_by="alice")
    assert confirmed.ok
    cancelled = use_case.transition_status(booking.id, "cancelled", now=NOW + timedelta(minutes=5), reason="sick")
    assert cancelled.ok

    stored = use_case.get_booking(booking.id)
    assert stored.status == BookingStatus.cancelled
    assert stored.cancellation_reason == "sick"
    assert stored.cancelled_at == NOW + timedelta(minutes=5)

    history = use_case.get_history(booking.id)
    assert [(h.from_status, h.to_status) for h in history] == [
        (BookingStatus.pending, BookingStatus.confirmed),
        (BookingStatus.confirmed, BookingStatus.cancelled),
    ]
    assert history[0].changed_by == "alice"
    assert history[1].changed_by == "system"

    # the slot is free again
    assert "15:00" in list(use_case.get_available_slots("p1", DAY, "haircut", hours, NOW))


def test_rejected_transition_writes_nothing(use_case, hours):
    booking = use_case.create_booking(_request(at(15)), hours, NOW).booking
    result = use_case.transition_status(booking.id, "completed", now=NOW)
    assert result.failure == TransitionFailure.invalid_transition
    assert use_case.get_history(booking.id) == []
    assert use_case.get_booking(booking.id).status == BookingStatus.pending


def test_ledger_failure_rolls_back_status(store, catalog, hours):
    class BrokenLedger:
        def append(self, entry):
            raise RuntimeError("ledger down")

        def list_by_booking(self, booking_id):
            return []

    use_case = BookingUseCase(store=store, ledger=BrokenLedger(), catalog=catalog)
    booking = use_case.create_booking(_request(at(15)), hours, NOW).booking

    with pytest.raises(RuntimeError):
        use_case.transition_status(booking.id, "confirmed", now=NOW)

    assert store.get(booking.id).status == BookingStatus.pending


def test_terminal_booking_rejects_every_status(use_case, hours):
    booking = use_case.create_booking(_request(at(15)), hours, NOW).booking
    use_case.transition_status(booking.id, "confirmed", now=NOW)
    use_case.transition_status(booking.id, "no_show", now=at(16))
    for status in BookingStatus:
        result = use_case.transition_status(booking.id, status, now=at(16), reason="x")
        assert result.failure == TransitionFailure.invalid_transition


def test_allowed_transitions_lookup(use_case, hours):
    booking = use_case.create_booking(_request(at(15)), hours, NOW).booking
    assert [r.to_status for r in use_case.get_allowed_transitions_for_booking(booking.id)] == [
        BookingStatus.confirmed,
        BookingStatus.cancelled,
    ]
    assert use_case.get_allowed_transitions("completed") == []
    with pytest.raises(ValueError):
        use_case.get_allowed_transitions("unknown")


def test_history_for_missing_booking(use_case):
    with pytest.raises(BookingNotFoundError):
        use_case.get_history("missing")


def test_time_block_affects_slots_and_validation(use_case, hours):
    use_case.add_time_block("p1", at(12), at(13), reason="lunch")
    assert [b.reason for b in use_case.list_time_blocks("p1", DAY)] == ["lunch"]

    slots = list(use_case.get_available_slots("p1", DAY, "haircut", hours, NOW))
    assert "12:00" not in slots and "12:30" not in slots

    result = use_case.create_booking(_request(at(12, 30)), hours, NOW)
    assert result.validation.failure == ValidationFailure.provider_blocked


def test_time_block_must_have_positive_length(use_case):
    with pytest.raises(ValueError):
        use_case.add_time_block("p1", at(13), at(12))


def test_concurrent_writes_after_empty_snapshot_only_one_succeeds(store, hours):
    guard = ConflictGuard(minimum_gap_minutes=15)
    candidates = [
        make_booking("first", start=at(10)),
        make_booking("second", start=at(10, 15)),
    ]
    for booking in candidates:
        candidate = BookingCandidate(provider_id="p1", start=booking.start_time, end=booking.end_time)
        assert guard.validate(candidate, hours, [], NOW).ok

    barrier = threading.Barrier(len(candidates))
    outcomes: list[str] = []
    outcome_lock = threading.Lock()

    def write(booking):
        barrier.wait()
        try:
            store.insert(booking)
            outcome = "ok"
        except BookingConflictError:
            outcome = "conflict"
        with outcome_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=write, args=(b,)) for b in candidates]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["conflict", "ok"]
    assert len(store.find_by_provider_and_date("p1", DAY)) == 1


def test_concurrent_create_booking_serializes_per_provider(use_case, store, hours):
    barrier = threading.Barrier(4)
    results = []
    results_lock = threading.Lock()

    def book(minute):
        barrier.wait()
        result = use_case.create_booking(_request(at(10, minute)), hours, NOW)
        with results_lock:
            results.append(result)

    threads = [threading.Thread(target=book, args=(m,)) for m in (0, 5, 10, 15)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for r in results if r.ok) == 1
    assert all(r.validation.failure == ValidationFailure.double_booked for r in results if not r.ok)
    assert len(store.find_by_provider_and_date("p1", DAY)) == 1


class MovedBeforeLockStore(MemoryBookingStore):
    """Applies a pending provider move right before the next transaction takes its locks."""

    def __init__(self) -> None:
        super().__init__(minimum_gap_minutes=15)
        self.pending_move = None
        self.locked: list[set[str]] = []

    @contextmanager
    def transaction(self, *provider_ids: str):
        if self.pending_move is not None:
            moved, self.pending_move = self.pending_move, None
            self.update(moved)
        self.locked.append(set(provider_ids))
        with super().transaction(*provider_ids):
            yield


def test_transition_relocks_when_booking_moved_provider(catalog, hours):
    store = MovedBeforeLockStore()
    use_case = BookingUseCase(store=store, ledger=store, catalog=catalog)
    booking = use_case.create_booking(_request(at(15)), hours, NOW).booking

    store.locked.clear()
    store.pending_move = replace(booking, provider_id="p2")
    result = use_case.transition_status(booking.id, "confirmed", now=NOW)

    assert result.ok
    assert store.locked == [{"p1"}, {"p2"}]
    stored = store.get(booking.id)
    assert stored.provider_id == "p2"
    assert stored.status == BookingStatus.confirmed


def test_reschedule_relocks_when_booking_moved_provider(catalog, hours):
    store = MovedBeforeLockStore()
    use_case = BookingUseCase(store=store, ledger=store, catalog=catalog)
    booking = use_case.create_booking(_request(at(15)), hours, NOW).booking

    store.locked.clear()
    store.pending_move = replace(booking, provider_id="p2")
    result = use_case.reschedule_booking(booking.id, RescheduleRequest(start=at(16)), hours, NOW)

    assert result.ok
    assert store.locked == [{"p1"}, {"p2"}]
    assert result.booking.provider_id == "p2"
    assert store.find_by_provider_and_date("p2", DAY) == [result.booking]


def test_list_services_is_sorted_by_id(use_case):
    assert [s.id for s in use_case.list_services()] == ["color", "haircut"]
