from __future__ import annotations

from decimal import Decimal

from app.domain.entities.service import Service


SERVICE_CATALOG: dict[str, Service] = {
    "haircut": Service(id="haircut", name="Haircut", duration_minutes=30, price=Decimal("25.00")),
    "beard_trim": Service(id="beard_trim", name="Beard Trim", duration_minutes=15, price=Decimal("12.00")),
    "color": Service(id="color", name="Hair Color", duration_minutes=90, price=Decimal("80.00")),
    "manicure": Service(id="manicure", name="Manicure", duration_minutes=45, price=Decimal("30.00")),
    "massage": Service(id="massage", name="Massage (60 min)", duration_minutes=60, price=Decimal("55.00")),
}
