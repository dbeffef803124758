from __future__ import annotations

from datetime import time
from decimal import Decimal

import pytest

from app.domain.entities.business_hours import BusinessHoursConfig
from app.domain.entities.service import Service
from app.infrastructure.catalog.service_catalog_store import ServiceCatalogStore
from app.infrastructure.store.memory_store import MemoryBookingStore


@pytest.fixture
def hours() -> BusinessHoursConfig:
    return BusinessHoursConfig(opening=time(9, 0), closing=time(18, 0), closed_days=frozenset({6}))


@pytest.fixture
def catalog() -> ServiceCatalogStore:
    return ServiceCatalogStore(
        {
            "haircut": Service(id="haircut", name="Haircut", duration_minutes=30, price=Decimal("25.00")),
            "color": Service(id="color", name="Hair Color", duration_minutes=90, price=Decimal("80.00")),
        }
    )


@pytest.fixture
def store() -> MemoryBookingStore:
    return MemoryBookingStore(minimum_gap_minutes=15)
