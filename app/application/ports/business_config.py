from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.business_hours import BusinessHoursConfig


class BusinessConfigPort(ABC):
    @abstractmethod
    def get_business_hours(self, business_id: str) -> BusinessHoursConfig:
        """Business hours for the calling business."""
        raise NotImplementedError
