from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.status_transition import StatusTransition


class HistoryLedgerPort(ABC):
    """Append-only audit trail of status transitions. No updates, no deletes."""

    @abstractmethod
    def append(self, entry: StatusTransition) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_by_booking(self, booking_id: str) -> list[StatusTransition]:
        """Entries for one booking ordered by changed_at ascending."""
        raise NotImplementedError
