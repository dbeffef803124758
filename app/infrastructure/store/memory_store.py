from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from datetime import date, timedelta

from app.application.exceptions import BookingConflictError
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.history_ledger import HistoryLedgerPort
from app.application.utils.interval_rules import buffer_overlaps, overlaps, to_utc, utc_midnight
from app.domain.entities.booking import Booking
from app.domain.entities.status_transition import StatusTransition
from app.domain.entities.time_block import ProviderTimeBlock


class MemoryBookingStore(BookingStorePort, HistoryLedgerPort):
    """
    Process-local store for bookings, provider time blocks and the status
    history ledger. Serializes writers with one re-entrant lock per provider.
    """

    def __init__(self, minimum_gap_minutes: int = 15) -> None:
        self._bookings: dict[str, Booking] = {}
        self._blocks: dict[str, list[ProviderTimeBlock]] = {}
        self._history: dict[str, list[StatusTransition]] = {}
        self._minimum_gap = timedelta(minutes=minimum_gap_minutes)
        self._locks: dict[str, threading.RLock] = {}
        self._lock_lock = threading.Lock()  # guards the locks dict
        self._data_lock = threading.RLock()  # guards the containers themselves

    def _get_lock(self, provider_id: str) -> threading.RLock:
        with self._lock_lock:
            if provider_id not in self._locks:
                self._locks[provider_id] = threading.RLock()
            return self._locks[provider_id]

    @contextmanager
    def transaction(self, *provider_ids: str) -> Iterator[None]:
        with ExitStack() as stack:
            for provider_id in sorted(set(provider_ids)):
                stack.enter_context(self._get_lock(provider_id))
            snapshot = self._snapshot(set(provider_ids))
            try:
                yield
            except BaseException:
                self._restore(set(provider_ids), snapshot)
                raise

    def _snapshot(self, provider_ids: set[str]) -> tuple[dict[str, Booking], dict[str, list[StatusTransition]]]:
        with self._data_lock:
            bookings = {bid: b for bid, b in self._bookings.items() if b.provider_id in provider_ids}
            history = {bid: list(self._history.get(bid, [])) for bid in bookings}
            return bookings, history

    def _restore(
        self,
        provider_ids: set[str],
        snapshot: tuple[dict[str, Booking], dict[str, list[StatusTransition]]],
    ) -> None:
        bookings, history = snapshot
        with self._data_lock:
            touched = [bid for bid, b in self._bookings.items() if b.provider_id in provider_ids]
            for bid in touched:
                if bid not in bookings:
                    del self._bookings[bid]
                    self._history.pop(bid, None)
            self._bookings.update(bookings)
            for bid, entries in history.items():
                if entries:
                    self._history[bid] = entries
                else:
                    self._history.pop(bid, None)

    def find_by_provider_and_date(self, provider_id: str, day: date) -> list[Booking]:
        day_start = utc_midnight(day)
        day_end = day_start + timedelta(days=1)
        with self._data_lock:
            found = [
                b
                for b in self._bookings.values()
                if b.provider_id == provider_id
                and b.is_active
                and day_start <= to_utc(b.start_time) < day_end
            ]
        return sorted(found, key=lambda b: to_utc(b.start_time))

    def get(self, booking_id: str) -> Booking | None:
        with self._data_lock:
            return self._bookings.get(booking_id)

    def insert(self, booking: Booking) -> None:
        with self._get_lock(booking.provider_id), self._data_lock:
            if booking.id in self._bookings:
                raise ValueError(f"Booking {booking.id} already exists")
            self._check_exclusion(booking)
            self._bookings[booking.id] = booking

    def update(self, booking: Booking) -> None:
        with self._get_lock(booking.provider_id), self._data_lock:
            if booking.id not in self._bookings:
                raise KeyError(booking.id)
            self._check_exclusion(booking)
            self._bookings[booking.id] = booking

    def _check_exclusion(self, booking: Booking) -> None:
        if not booking.is_active:
            return
        start, end = to_utc(booking.start_time), to_utc(booking.end_time)
        for other in self._bookings.values():
            if other.id == booking.id or other.provider_id != booking.provider_id or not other.is_active:
                continue
            if buffer_overlaps(start, end, to_utc(other.start_time), to_utc(other.end_time), self._minimum_gap):
                raise BookingConflictError(
                    f"Booking {booking.id} conflicts with booking {other.id} for provider {booking.provider_id}"
                )

    def add_time_block(self, block: ProviderTimeBlock) -> None:
        with self._get_lock(block.provider_id), self._data_lock:
            self._blocks.setdefault(block.provider_id, []).append(block)

    def find_time_blocks(self, provider_id: str, day: date) -> list[ProviderTimeBlock]:
        day_start = utc_midnight(day)
        day_end = day_start + timedelta(days=1)
        with self._data_lock:
            blocks = [
                b
                for b in self._blocks.get(provider_id, [])
                if overlaps(to_utc(b.start_time), to_utc(b.end_time), day_start, day_end)
            ]
        return sorted(blocks, key=lambda b: to_utc(b.start_time))

    def append(self, entry: StatusTransition) -> None:
        with self._data_lock:
            self._history.setdefault(entry.booking_id, []).append(entry)

    def list_by_booking(self, booking_id: str) -> list[StatusTransition]:
        with self._data_lock:
            entries = list(self._history.get(booking_id, []))
        # sorted() is stable, so equal timestamps keep append order
        return sorted(entries, key=lambda e: to_utc(e.changed_at))
