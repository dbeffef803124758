from datetime import UTC, datetime
from functools import lru_cache
import logging

from app.core.config import settings
from app.application.use_cases.booking import BookingUseCase
from app.application.use_cases.conflict_guard import ConflictGuard
from app.application.use_cases.lifecycle import LifecycleEngine
from app.application.use_cases.slot_generator import SlotGenerator
from app.application.ports.business_config import BusinessConfigPort
from app.application.ports.service_catalog import ServiceCatalogPort
from app.domain.entities.business_hours import BusinessHoursConfig
from app.infrastructure.business.business_config_store import BusinessConfigStore, parse_hhmm
from app.infrastructure.catalog.service_catalog_store import ServiceCatalogStore
from app.infrastructure.store.json_store import JsonBookingStore
from app.infrastructure.store.memory_store import MemoryBookingStore


_booking_store: MemoryBookingStore | JsonBookingStore | None = None


def get_booking_store() -> MemoryBookingStore | JsonBookingStore:
    global _booking_store
    if _booking_store is None:
        if settings.STORE_PROVIDER.lower() == "json":
            _booking_store = JsonBookingStore(
                data_dir=settings.DATA_DIR,
                minimum_gap_minutes=settings.MINIMUM_GAP_MINUTES,
            )
        else:
            _booking_store = MemoryBookingStore(minimum_gap_minutes=settings.MINIMUM_GAP_MINUTES)
        logging.getLogger(__name__).info("Booking store ready: %s", type(_booking_store).__name__)
    return _booking_store


@lru_cache
def get_service_catalog() -> ServiceCatalogPort:
    if settings.SERVICE_CATALOG_PATH:
        return ServiceCatalogStore.from_json(settings.SERVICE_CATALOG_PATH)
    return ServiceCatalogStore()


def default_business_hours() -> BusinessHoursConfig:
    return BusinessHoursConfig(
        opening=parse_hhmm(settings.BUSINESS_OPENING),
        closing=parse_hhmm(settings.BUSINESS_CLOSING),
        closed_days=frozenset(settings.BUSINESS_CLOSED_DAYS),
    )


@lru_cache
def get_business_config() -> BusinessConfigPort:
    if settings.BUSINESS_CONFIG_PATH:
        return BusinessConfigStore.from_json(default_business_hours(), settings.BUSINESS_CONFIG_PATH)
    return BusinessConfigStore(default_business_hours())


def get_booking_use_case() -> BookingUseCase:
    store = get_booking_store()
    return BookingUseCase(
        store=store,
        ledger=store,
        catalog=get_service_catalog(),
        slot_generator=SlotGenerator(
            step_minutes=settings.SLOT_STEP_MINUTES,
            minimum_gap_minutes=settings.MINIMUM_GAP_MINUTES,
        ),
        guard=ConflictGuard(minimum_gap_minutes=settings.MINIMUM_GAP_MINUTES),
        engine=LifecycleEngine(cancellation_cutoff_hours=settings.CANCELLATION_CUTOFF_HOURS),
    )


def get_now() -> datetime:
    """Wall clock for the HTTP layer; the scheduling core only ever receives it."""
    return datetime.now(UTC)
