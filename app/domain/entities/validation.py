from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ValidationFailure(str, Enum):
    outside_business_hours = "outside_business_hours"
    in_past = "in_past"
    invalid_interval = "invalid_interval"
    double_booked = "double_booked"
    provider_blocked = "provider_blocked"
    insufficient_gap = "insufficient_gap"


@dataclass(frozen=True)
class ConflictingInterval:
    start: datetime
    end: datetime
    booking_id: str | None = None
    block_id: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    failure: ValidationFailure | None = None
    message: str | None = None
    conflict: ConflictingInterval | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls()

    @classmethod
    def fail(
        cls,
        failure: ValidationFailure,
        message: str,
        conflict: ConflictingInterval | None = None,
    ) -> "ValidationResult":
        return cls(failure=failure, message=message, conflict=conflict)
