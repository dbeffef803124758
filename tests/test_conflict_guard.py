from __future__ import annotations

from datetime import timedelta

from app.application.use_cases.conflict_guard import ConflictGuard
from app.domain.entities.booking import BookingCandidate
from app.domain.entities.booking_status import BookingStatus
from app.domain.entities.time_block import ProviderTimeBlock
from app.domain.entities.validation import ValidationFailure
from tests.factories import DAY, NOW, SUNDAY, at, make_booking


def _candidate(start, end, provider_id="p1", exclude=None) -> BookingCandidate:
    return BookingCandidate(provider_id=provider_id, start=start, end=end, exclude_booking_id=exclude)


def test_scenario_overlap_gap_and_exact_gap(hours):
    guard = ConflictGuard(minimum_gap_minutes=15)
    existing = [make_booking(start=at(10), minutes=30)]

    overlap = guard.validate(_candidate(at(10, 15), at(10, 45)), hours, existing, NOW)
    assert overlap.failure == ValidationFailure.double_booked
    assert overlap.conflict.start == at(10)
    assert overlap.conflict.end == at(10, 30)
    assert "10:00" in overlap.message and "10:30" in overlap.message

    too_close = guard.validate(_candidate(at(10, 40), at(11, 10)), hours, existing, NOW)
    assert too_close.failure == ValidationFailure.insufficient_gap
    assert too_close.conflict.booking_id == "b1"

    exact = guard.validate(_candidate(at(10, 45), at(11, 15)), hours, existing, NOW)
    assert exact.ok
    assert exact.failure is None


def test_gap_is_checked_before_the_existing_booking_too(hours):
    guard = ConflictGuard()
    existing = [make_booking(start=at(10), minutes=30)]
    result = guard.validate(_candidate(at(9, 20), at(9, 50)), hours, existing, NOW)
    assert result.failure == ValidationFailure.insufficient_gap
    assert guard.validate(_candidate(at(9, 15), at(9, 45)), hours, existing, NOW).ok


def test_outside_business_hours_comes_first(hours):
    guard = ConflictGuard()
    # also in the past and overlapping, but hours are checked first
    result = guard.validate(_candidate(at(8), at(9, 30)), hours, [make_booking(start=at(9))], at(12))
    assert result.failure == ValidationFailure.outside_business_hours

    closed = guard.validate(_candidate(at(10, day=SUNDAY), at(11, day=SUNDAY)), hours, [], NOW)
    assert closed.failure == ValidationFailure.outside_business_hours


def test_in_past(hours):
    result = ConflictGuard().validate(_candidate(at(10), at(10, 30)), hours, [], at(10))
    assert result.failure == ValidationFailure.in_past


def test_invalid_interval(hours):
    guard = ConflictGuard()
    assert guard.validate(_candidate(at(11), at(10)), hours, [], NOW).failure == ValidationFailure.invalid_interval
    assert guard.validate(_candidate(at(11), at(11)), hours, [], NOW).failure == ValidationFailure.invalid_interval


def test_rescheduling_excludes_the_booking_itself(hours):
    guard = ConflictGuard()
    existing = [make_booking("b1", start=at(10))]
    moved = guard.validate(_candidate(at(10, 15), at(10, 45), exclude="b1"), hours, existing, NOW)
    assert moved.ok


def test_cancelled_and_other_provider_bookings_do_not_conflict(hours):
    guard = ConflictGuard()
    existing = [
        make_booking("b1", start=at(10), status=BookingStatus.cancelled),
        make_booking("b2", start=at(10), provider_id="p2"),
    ]
    assert guard.validate(_candidate(at(10), at(10, 30)), hours, existing, NOW).ok


def test_provider_block(hours):
    guard = ConflictGuard()
    block = ProviderTimeBlock(id="k1", provider_id="p1", start_time=at(13), end_time=at(14), reason="lunch")
    result = guard.validate(_candidate(at(13, 30), at(14)), hours, [], NOW, [block])
    assert result.failure == ValidationFailure.provider_blocked
    assert result.conflict.block_id == "k1"

    # blocks have no gap requirement
    assert guard.validate(_candidate(at(14), at(14, 30)), hours, [], NOW, [block]).ok


def test_double_booking_reported_before_block_and_gap(hours):
    guard = ConflictGuard()
    existing = [make_booking("b1", start=at(13), minutes=60)]
    block = ProviderTimeBlock(id="k1", provider_id="p1", start_time=at(13), end_time=at(14))
    result = guard.validate(_candidate(at(13), at(13, 30)), hours, existing, NOW, [block])
    assert result.failure == ValidationFailure.double_booked


def test_no_overlap_invariant_holds_for_accepted_sequence(hours):
    guard = ConflictGuard(minimum_gap_minutes=15)
    accepted = []
    start = at(9)
    while start < at(18):
        candidate = _candidate(start, start + timedelta(minutes=30))
        if guard.validate(candidate, hours, accepted, NOW).ok:
            accepted.append(make_booking(f"b{len(accepted)}", start=start))
        start += timedelta(minutes=5)

    assert len(accepted) > 1
    gap = timedelta(minutes=15)
    for i, a in enumerate(accepted):
        for b in accepted[i + 1 :]:
            assert not (a.start_time < b.end_time + gap and a.end_time > b.start_time - gap)
