from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time


@dataclass(frozen=True)
class BusinessHoursConfig:
    opening: time
    closing: time
    closed_days: frozenset[int] = field(default_factory=frozenset)  # Monday=0 ... Sunday=6
