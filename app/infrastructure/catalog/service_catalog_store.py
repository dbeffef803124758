from __future__ import annotations

import json
import logging
from decimal import Decimal
from pathlib import Path

from app.application.ports.service_catalog import ServiceCatalogPort
from app.domain.entities.service import Service
from app.infrastructure.catalog.service_catalog_data import SERVICE_CATALOG


class ServiceCatalogStore(ServiceCatalogPort):
    def __init__(self, catalog: dict[str, Service] | None = None) -> None:
        self._catalog = catalog if catalog is not None else SERVICE_CATALOG

    @classmethod
    def from_json(cls, path: str | Path) -> "ServiceCatalogStore":
        """
        Load a catalog from a JSON list of
        {"id", "name", "duration_minutes", "price"} objects.
        """
        with open(path, "r", encoding="utf-8") as f:
            items = json.load(f)
        catalog = {
            str(item["id"]).lower().strip(): Service(
                id=str(item["id"]).lower().strip(),
                name=item.get("name") or str(item["id"]),
                duration_minutes=int(item["duration_minutes"]),
                price=Decimal(str(item.get("price", "0"))),
            )
            for item in items
        }
        logging.getLogger(__name__).info("Service catalog loaded", extra={"count": len(catalog)})
        return cls(catalog)

    def get_service(self, service_id: str) -> Service | None:
        normalized_id = service_id.lower().strip()
        return self._catalog.get(normalized_id)

    def list_services(self) -> list[Service]:
        return sorted(self._catalog.values(), key=lambda s: s.id)
