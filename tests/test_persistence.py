"""
Tests for the JSON file booking store.
"""

from __future__ import annotations

import json
import tempfile
from datetime import timedelta

import pytest

from app.application.exceptions import BookingConflictError, StoreUnavailableError
from app.application.use_cases.booking import BookingRequest, BookingUseCase, RescheduleRequest
from app.domain.entities.booking_status import BookingStatus
from app.domain.entities.status_transition import StatusTransition
from app.domain.entities.time_block import ProviderTimeBlock
from app.infrastructure.store.json_store import JsonBookingStore
from tests.factories import DAY, NOW, at, make_booking, provider_file


def test_json_store_persistence():
    """Bookings survive a new store instance over the same directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonBookingStore(data_dir=tmpdir)
        booking = make_booking("b1", start=at(10))
        store.insert(booking)

        reopened = JsonBookingStore(data_dir=tmpdir)
        retrieved = reopened.get("b1")

        assert retrieved == booking
        assert reopened.find_by_provider_and_date("p1", DAY) == [booking]
        assert reopened.find_by_provider_and_date("p1", DAY + timedelta(days=1)) == []


def test_cancelled_bookings_are_not_returned_for_the_day(tmp_path):
    store = JsonBookingStore(data_dir=str(tmp_path))
    store.insert(make_booking("b1", start=at(10), status=BookingStatus.cancelled))
    store.insert(make_booking("b2", start=at(10)))
    assert [b.id for b in store.find_by_provider_and_date("p1", DAY)] == ["b2"]


def test_exclusion_check_on_insert(tmp_path):
    store = JsonBookingStore(data_dir=str(tmp_path), minimum_gap_minutes=15)
    store.insert(make_booking("b1", start=at(10)))
    with pytest.raises(BookingConflictError):
        store.insert(make_booking("b2", start=at(10, 40)))
    store.insert(make_booking("b3", start=at(10, 45)))


def test_history_and_blocks_roundtrip(tmp_path):
    store = JsonBookingStore(data_dir=str(tmp_path))
    store.insert(make_booking("b1", start=at(10)))
    store.append(
        StatusTransition(
            booking_id="b1",
            from_status=BookingStatus.pending,
            to_status=BookingStatus.confirmed,
            changed_at=NOW,
            changed_by="alice",
            notes="phoned",
        )
    )
    store.add_time_block(ProviderTimeBlock(id="k1", provider_id="p1", start_time=at(13), end_time=at(14)))

    reopened = JsonBookingStore(data_dir=str(tmp_path))
    history = reopened.list_by_booking("b1")
    assert len(history) == 1
    assert history[0].changed_by == "alice"
    assert history[0].notes == "phoned"
    assert [b.id for b in reopened.find_time_blocks("p1", DAY)] == ["k1"]


def test_transaction_rolls_back_on_error(tmp_path):
    store = JsonBookingStore(data_dir=str(tmp_path))
    store.insert(make_booking("b1", start=at(10)))

    with pytest.raises(RuntimeError):
        with store.transaction("p1"):
            store.insert(make_booking("b2", start=at(12)))
            raise RuntimeError("boom")

    assert store.get("b2") is None
    assert [b.id for b in store.find_by_provider_and_date("p1", DAY)] == ["b1"]


def test_use_case_over_json_store_moves_history_with_provider(tmp_path, catalog, hours):
    store = JsonBookingStore(data_dir=str(tmp_path))
    use_case = BookingUseCase(store=store, ledger=store, catalog=catalog)

    booking = use_case.create_booking(
        BookingRequest(customer_id="c1", provider_id="p1", service_id="haircut", start=at(15)), hours, NOW
    ).booking
    assert use_case.transition_status(booking.id, "confirmed", now=NOW).ok
    assert use_case.reschedule_booking(booking.id, RescheduleRequest(provider_id="p2"), hours, NOW).ok

    assert store.find_by_provider_and_date("p1", DAY) == []
    assert store.get(booking.id).provider_id == "p2"
    assert [e.to_status for e in use_case.get_history(booking.id)] == [BookingStatus.confirmed]


def test_corrupted_file_is_reported(tmp_path):
    store = JsonBookingStore(data_dir=str(tmp_path))
    provider_file(tmp_path, "p1").write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreUnavailableError):
        store.find_by_provider_and_date("p1", DAY)


def test_file_layout_is_one_document_per_provider(tmp_path):
    store = JsonBookingStore(data_dir=str(tmp_path))
    store.insert(make_booking("b1", start=at(10)))
    store.insert(make_booking("b2", start=at(10), provider_id="p2"))

    data = json.loads(provider_file(tmp_path, "p1").read_text(encoding="utf-8"))
    assert data["provider_id"] == "p1"
    assert [b["id"] for b in data["bookings"]] == ["b1"]
    assert data["bookings"][0]["start_time"] == "2030-01-07T10:00:00+00:00"


def test_similar_provider_ids_use_separate_documents(tmp_path):
    store = JsonBookingStore(data_dir=str(tmp_path))
    store.insert(make_booking("b1", start=at(10), provider_id="a b"))
    store.insert(make_booking("b2", start=at(10), provider_id="a_b"))

    assert provider_file(tmp_path, "a b") != provider_file(tmp_path, "a_b")
    assert [b.id for b in store.find_by_provider_and_date("a_b", DAY)] == ["b2"]
    assert [b.id for b in store.find_by_provider_and_date("a b", DAY)] == ["b1"]


def test_update_keeps_a_single_row_per_booking(tmp_path):
    store = JsonBookingStore(data_dir=str(tmp_path))
    store.insert(make_booking("x1", start=at(10), provider_id="a_b"))
    store.insert(make_booking("y1", start=at(10), provider_id="a b"))

    store.update(make_booking("y1", start=at(12), provider_id="a b"))

    for provider_id, expected in (("a b", ["y1"]), ("a_b", ["x1"])):
        data = json.loads(provider_file(tmp_path, provider_id).read_text(encoding="utf-8"))
        assert [item["id"] for item in data["bookings"]] == expected
    assert store.get("y1").start_time == at(12)
