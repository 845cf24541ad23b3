"""Mesa payments API entrypoint."""

from fastapi import FastAPI

from services.api.app.db.init_db import init_db
from services.api.app.log_config import configure_logging
from services.api.app.routers.audit import router as audit_router
from services.api.app.routers.checkout import router as checkout_router
from services.api.app.routers.invoice import router as invoice_router
from services.api.app.routers.order import router as order_router
from services.api.app.routers.payments import router as payments_router

app = FastAPI(title="Mesa Payments API")

app.include_router(checkout_router)
app.include_router(payments_router)
app.include_router(order_router)
app.include_router(invoice_router)
app.include_router(audit_router)


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    init_db()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
