import logging

from fastapi import FastAPI

from app.api.v1.bookings import router as bookings_router
from app.core.config import settings

LOG_CONTEXT_KEYS = ("booking_id", "provider_id", "status", "kind", "reason", "changed_by")


class ContextFormatter(logging.Formatter):
    """Appends the booking context passed through `extra=` as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = [
            f"{key}={getattr(record, key)}"
            for key in LOG_CONTEXT_KEYS
            if getattr(record, key, None) not in (None, "")
        ]
        return f"{base} | {' '.join(context)}" if context else base


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter("%(asctime)s %(levelname)s:%(name)s:%(message)s"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)


configure_logging(settings.LOG_LEVEL)

app = FastAPI(title="Booking Scheduler", version="1.0.0")
app.include_router(bookings_router, prefix="/api/v1", tags=["bookings"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "env": settings.ENV, "store": settings.STORE_PROVIDER}
