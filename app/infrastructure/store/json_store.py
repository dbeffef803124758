from __future__ import annotations

import hashlib
import json
import threading
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

from app.application.exceptions import BookingConflictError, StoreUnavailableError
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.history_ledger import HistoryLedgerPort
from app.application.utils.interval_rules import buffer_overlaps, overlaps, to_utc, utc_midnight
from app.domain.entities.booking import Booking
from app.domain.entities.booking_status import BookingStatus
from app.domain.entities.status_transition import StatusTransition
from app.domain.entities.time_block import ProviderTimeBlock


class JsonBookingStore(BookingStorePort, HistoryLedgerPort):
    """
    One JSON document per provider holding its bookings, time blocks and the
    status history of those bookings. Writes go through a temp file and an
    atomic rename. Locking is per process.
    """

    def __init__(self, data_dir: str = "./data/bookings", minimum_gap_minutes: int = 15) -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._minimum_gap = timedelta(minutes=minimum_gap_minutes)
        self._locks: dict[str, threading.RLock] = {}
        self._lock_lock = threading.Lock()  # Lock for managing locks dict

    def _get_lock(self, provider_id: str) -> threading.RLock:
        """Get or create a lock for a provider_id."""
        with self._lock_lock:
            if provider_id not in self._locks:
                self._locks[provider_id] = threading.RLock()
            return self._locks[provider_id]

    def _get_file_path(self, provider_id: str) -> Path:
        # hex digest keeps the name filesystem-safe and distinct per provider id
        digest = hashlib.sha256(provider_id.encode("utf-8")).hexdigest()
        return self._data_dir / f"{digest}.json"

    def _empty_data(self, provider_id: str) -> dict[str, Any]:
        return {"provider_id": provider_id, "bookings": [], "blocks": [], "history": {}, "version": 1}

    def _load_provider_data(self, provider_id: str) -> dict[str, Any]:
        """Load provider data from JSON file, return an empty document if missing."""
        file_path = self._get_file_path(provider_id)
        if not file_path.exists():
            return self._empty_data(provider_id)
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise StoreUnavailableError(f"Cannot read booking data for provider {provider_id}: {e}") from e
        data.setdefault("bookings", [])
        data.setdefault("blocks", [])
        data.setdefault("history", {})
        data.setdefault("version", 1)
        return data

    def _save_provider_data(self, provider_id: str, data: dict[str, Any]) -> None:
        """Save provider data to JSON file atomically."""
        file_path = self._get_file_path(provider_id)
        temp_path = file_path.with_suffix(".json.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            temp_path.replace(file_path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise StoreUnavailableError(f"Cannot write booking data for provider {provider_id}: {e}") from e

    @contextmanager
    def transaction(self, *provider_ids: str) -> Iterator[None]:
        with ExitStack() as stack:
            for provider_id in sorted(set(provider_ids)):
                stack.enter_context(self._get_lock(provider_id))
            snapshots = {pid: self._load_provider_data(pid) for pid in set(provider_ids)}
            try:
                yield
            except BaseException:
                for pid, data in snapshots.items():
                    self._save_provider_data(pid, data)
                raise

    def _provider_ids(self) -> list[str]:
        ids = []
        for file_path in sorted(self._data_dir.glob("*.json")):
            try:
                with open(file_path, "r", encoding="utf-8") as f:
                    ids.append(json.load(f)["provider_id"])
            except (json.JSONDecodeError, OSError, KeyError) as e:
                raise StoreUnavailableError(f"Cannot read {file_path.name}: {e}") from e
        return ids

    def _locate(self, booking_id: str) -> str | None:
        """Return the provider_id whose document holds the booking."""
        for provider_id in self._provider_ids():
            data = self._load_provider_data(provider_id)
            for item in data["bookings"]:
                if item["id"] == booking_id:
                    return item["provider_id"]
        return None

    def find_by_provider_and_date(self, provider_id: str, day: date) -> list[Booking]:
        day_start = utc_midnight(day)
        day_end = day_start + timedelta(days=1)
        with self._get_lock(provider_id):
            data = self._load_provider_data(provider_id)
        bookings = [_deserialize_booking(item) for item in data["bookings"]]
        found = [
            b
            for b in bookings
            if b.provider_id == provider_id and b.is_active and day_start <= to_utc(b.start_time) < day_end
        ]
        return sorted(found, key=lambda b: to_utc(b.start_time))

    def get(self, booking_id: str) -> Booking | None:
        provider_id = self._locate(booking_id)
        if provider_id is None:
            return None
        with self._get_lock(provider_id):
            data = self._load_provider_data(provider_id)
        for item in data["bookings"]:
            if item["id"] == booking_id:
                return _deserialize_booking(item)
        return None

    def insert(self, booking: Booking) -> None:
        if self._locate(booking.id) is not None:
            raise ValueError(f"Booking {booking.id} already exists")
        with self._get_lock(booking.provider_id):
            data = self._load_provider_data(booking.provider_id)
            self._check_exclusion(booking, data)
            data["bookings"].append(_serialize_booking(booking))
            self._save_provider_data(booking.provider_id, data)

    def update(self, booking: Booking) -> None:
        previous_provider = self._locate(booking.id)
        if previous_provider is None:
            raise KeyError(booking.id)

        with ExitStack() as stack:
            for provider_id in sorted({previous_provider, booking.provider_id}):
                stack.enter_context(self._get_lock(provider_id))
            data = self._load_provider_data(booking.provider_id)
            self._check_exclusion(booking, data)

            if previous_provider != booking.provider_id:
                old = self._load_provider_data(previous_provider)
                old["bookings"] = [item for item in old["bookings"] if item["id"] != booking.id]
                moved_history = old["history"].pop(booking.id, [])
                self._save_provider_data(previous_provider, old)
                data["history"].setdefault(booking.id, []).extend(moved_history)
                data["bookings"].append(_serialize_booking(booking))
            else:
                data["bookings"] = [
                    _serialize_booking(booking) if item["id"] == booking.id else item for item in data["bookings"]
                ]
            self._save_provider_data(booking.provider_id, data)

    def _check_exclusion(self, booking: Booking, data: dict[str, Any]) -> None:
        if not booking.is_active:
            return
        start, end = to_utc(booking.start_time), to_utc(booking.end_time)
        for item in data["bookings"]:
            other = _deserialize_booking(item)
            if other.id == booking.id or other.provider_id != booking.provider_id or not other.is_active:
                continue
            if buffer_overlaps(start, end, to_utc(other.start_time), to_utc(other.end_time), self._minimum_gap):
                raise BookingConflictError(
                    f"Booking {booking.id} conflicts with booking {other.id} for provider {booking.provider_id}"
                )

    def add_time_block(self, block: ProviderTimeBlock) -> None:
        with self._get_lock(block.provider_id):
            data = self._load_provider_data(block.provider_id)
            data["blocks"].append(_serialize_block(block))
            self._save_provider_data(block.provider_id, data)

    def find_time_blocks(self, provider_id: str, day: date) -> list[ProviderTimeBlock]:
        day_start = utc_midnight(day)
        day_end = day_start + timedelta(days=1)
        with self._get_lock(provider_id):
            data = self._load_provider_data(provider_id)
        blocks = [_deserialize_block(item) for item in data["blocks"]]
        found = [
            b
            for b in blocks
            if b.provider_id == provider_id and overlaps(to_utc(b.start_time), to_utc(b.end_time), day_start, day_end)
        ]
        return sorted(found, key=lambda b: to_utc(b.start_time))

    def append(self, entry: StatusTransition) -> None:
        provider_id = self._locate(entry.booking_id)
        if provider_id is None:
            raise KeyError(entry.booking_id)
        with self._get_lock(provider_id):
            data = self._load_provider_data(provider_id)
            data["history"].setdefault(entry.booking_id, []).append(_serialize_transition(entry))
            self._save_provider_data(provider_id, data)

    def list_by_booking(self, booking_id: str) -> list[StatusTransition]:
        provider_id = self._locate(booking_id)
        if provider_id is None:
            return []
        with self._get_lock(provider_id):
            data = self._load_provider_data(provider_id)
        entries = [_deserialize_transition(item) for item in data["history"].get(booking_id, [])]
        return sorted(entries, key=lambda e: to_utc(e.changed_at))


def _iso(value: datetime | None) -> str | None:
    return to_utc(value).isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return to_utc(datetime.fromisoformat(value)) if value else None


def _serialize_booking(booking: Booking) -> dict[str, Any]:
    return {
        "id": booking.id,
        "customer_id": booking.customer_id,
        "provider_id": booking.provider_id,
        "service_id": booking.service_id,
        "start_time": _iso(booking.start_time),
        "end_time": _iso(booking.end_time),
        "status": booking.status.value,
        "price": str(booking.price),
        "notes": booking.notes,
        "cancelled_at": _iso(booking.cancelled_at),
        "cancellation_reason": booking.cancellation_reason,
        "created_at": _iso(booking.created_at),
        "updated_at": _iso(booking.updated_at),
    }


def _deserialize_booking(data: dict[str, Any]) -> Booking:
    return Booking(
        id=data["id"],
        customer_id=data["customer_id"],
        provider_id=data["provider_id"],
        service_id=data["service_id"],
        start_time=_parse_dt(data["start_time"]),
        end_time=_parse_dt(data["end_time"]),
        status=BookingStatus(data.get("status", BookingStatus.pending.value)),
        price=Decimal(data.get("price") or "0"),
        notes=data.get("notes"),
        cancelled_at=_parse_dt(data.get("cancelled_at")),
        cancellation_reason=data.get("cancellation_reason"),
        created_at=_parse_dt(data.get("created_at")),
        updated_at=_parse_dt(data.get("updated_at")),
    )


def _serialize_block(block: ProviderTimeBlock) -> dict[str, Any]:
    return {
        "id": block.id,
        "provider_id": block.provider_id,
        "start_time": _iso(block.start_time),
        "end_time": _iso(block.end_time),
        "reason": block.reason,
    }


def _deserialize_block(data: dict[str, Any]) -> ProviderTimeBlock:
    return ProviderTimeBlock(
        id=data["id"],
        provider_id=data["provider_id"],
        start_time=_parse_dt(data["start_time"]),
        end_time=_parse_dt(data["end_time"]),
        reason=data.get("reason"),
    )


def _serialize_transition(entry: StatusTransition) -> dict[str, Any]:
    return {
        "booking_id": entry.booking_id,
        "from_status": entry.from_status.value,
        "to_status": entry.to_status.value,
        "reason": entry.reason,
        "notes": entry.notes,
        "changed_at": _iso(entry.changed_at),
        "changed_by": entry.changed_by,
    }


def _deserialize_transition(data: dict[str, Any]) -> StatusTransition:
    return StatusTransition(
        booking_id=data["booking_id"],
        from_status=BookingStatus(data["from_status"]),
        to_status=BookingStatus(data["to_status"]),
        changed_at=_parse_dt(data["changed_at"]),
        changed_by=data.get("changed_by") or "system",
        reason=data.get("reason"),
        notes=data.get("notes"),
    )
