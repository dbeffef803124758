from __future__ import annotations

import json
from datetime import time
from pathlib import Path
from typing import Any

from app.application.ports.business_config import BusinessConfigPort
from app.domain.entities.business_hours import BusinessHoursConfig


def parse_hhmm(value: str) -> time:
    hour, minute = value.strip().split(":", 1)
    return time(int(hour), int(minute))


def business_hours_from_dict(data: dict[str, Any]) -> BusinessHoursConfig:
    return BusinessHoursConfig(
        opening=parse_hhmm(data["opening"]),
        closing=parse_hhmm(data["closing"]),
        closed_days=frozenset(int(d) for d in data.get("closed_days", [])),
    )


class BusinessConfigStore(BusinessConfigPort):
    """Per-business hours with a default for businesses without an override."""

    def __init__(
        self,
        default: BusinessHoursConfig,
        overrides: dict[str, BusinessHoursConfig] | None = None,
    ) -> None:
        self._default = default
        self._overrides = dict(overrides or {})

    @classmethod
    def from_json(cls, default: BusinessHoursConfig, path: str | Path) -> "BusinessConfigStore":
        """JSON object keyed by business id: {"acme": {"opening": "08:00", "closing": "17:00", "closed_days": [6]}}."""
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return cls(default, {business_id: business_hours_from_dict(cfg) for business_id, cfg in raw.items()})

    def get_business_hours(self, business_id: str) -> BusinessHoursConfig:
        return self._overrides.get(business_id, self._default)
