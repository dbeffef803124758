from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ProviderTimeBlock:
    id: str
    provider_id: str
    start_time: datetime
    end_time: datetime
    reason: str | None = None
