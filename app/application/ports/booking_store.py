from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date

from app.domain.entities.booking import Booking
from app.domain.entities.time_block import ProviderTimeBlock


class BookingStorePort(ABC):
    """
    Persistence collaborator for bookings.

    Implementations must serialize validate-then-write per provider:
    everything done inside `transaction(provider_id, ...)` is isolated from
    other transactions on the same providers and is rolled back if the block
    raises. `insert` and `update` must additionally refuse a write that would
    leave two active bookings of one provider closer than the minimum gap
    (raising BookingConflictError).
    """

    @abstractmethod
    def transaction(self, *provider_ids: str) -> AbstractContextManager[None]:
        raise NotImplementedError

    @abstractmethod
    def find_by_provider_and_date(self, provider_id: str, day: date) -> list[Booking]:
        """Active (non-cancelled) bookings of the provider starting on `day` (UTC), ordered by start."""
        raise NotImplementedError

    @abstractmethod
    def get(self, booking_id: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def insert(self, booking: Booking) -> None:
        raise NotImplementedError

    @abstractmethod
    def update(self, booking: Booking) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_time_block(self, block: ProviderTimeBlock) -> None:
        raise NotImplementedError

    @abstractmethod
    def find_time_blocks(self, provider_id: str, day: date) -> list[ProviderTimeBlock]:
        """Blocks of the provider intersecting `day` (UTC), ordered by start."""
        raise NotImplementedError
