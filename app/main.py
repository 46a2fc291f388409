import logging

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.api.v1.billing import router as billing_router
from app.api.v1.bookings import router as bookings_router
from app.api.v1.cron import router as cron_router
from app.api.webhooks import router as webhooks_router
from app.core.config import settings

class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in (
            "booking_id",
            "tenant_id",
            "from_status",
            "to_status",
            "status",
            "event_type",
            "event_id",
            "source",
            "job",
            "task",
            "key",
            "reason",
            "error",
        ):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)

app = FastAPI(title="Salon Booking & Billing Lifecycle", version="1.0.0")

app.include_router(bookings_router, tags=["bookings"])
app.include_router(billing_router, tags=["billing"])
app.include_router(webhooks_router, tags=["webhooks"])
app.include_router(cron_router, tags=["cron"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
