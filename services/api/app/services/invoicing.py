"""Invoice issuance: give an order one document number, exactly once.

The order row is locked first, so two issuance calls for the same order are
serialized and the second one finds the number the first one wrote. The counter
update and the order update commit together; a number is never spent without
landing on an order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.api.app.db.database import run_in_transaction
from services.api.app.db.models import Order, TaxProfile, utcnow
from services.api.app.models.invoice import NumberingConfig
from services.api.app.services import sequence
from services.api.app.services.audit_log import log_event
from services.api.app.services.errors import NumberingDisabledError, OrderNotFoundError
from services.api.app.services.numbering import compose_invoice_number
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)

INVOICE_COUNTER = "invoiceNumbering"
ACTIVE_TAX_PROFILE_ID = "active"


@dataclass(frozen=True, slots=True)
class IssuedInvoice:
    order_id: str
    invoice_number: str
    series: str | None
    issued_at: datetime
    replayed: bool = False


def load_numbering_config(db: Session) -> NumberingConfig:
    profile = db.get(TaxProfile, ACTIVE_TAX_PROFILE_ID)
    if profile is None:
        return NumberingConfig()
    return NumberingConfig.model_validate(profile.invoice_numbering_json or {})


def save_numbering_config(db: Session, config: NumberingConfig) -> NumberingConfig:
    def _work(tx: Session) -> NumberingConfig:
        profile = tx.get(TaxProfile, ACTIVE_TAX_PROFILE_ID)
        if profile is None:
            profile = TaxProfile(id=ACTIVE_TAX_PROFILE_ID)
            tx.add(profile)
        profile.invoice_numbering_json = config.model_dump(mode="json")
        profile.updated_at = utcnow()
        return config

    saved = run_in_transaction(db, _work, name="save_numbering_config")
    logger.info("numbering_config_saved", **saved.model_dump(mode="json"))
    return saved


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def issue_invoice(db: Session, order_id: str, *, now: datetime | None = None) -> IssuedInvoice:
    def _work(tx: Session) -> IssuedInvoice:
        order = tx.get(Order, order_id, with_for_update=True)
        if order is None:
            raise OrderNotFoundError(order_id)

        if order.invoice_number:
            return IssuedInvoice(
                order_id=order.id,
                invoice_number=order.invoice_number,
                series=order.invoice_series,
                issued_at=_as_naive_utc(order.invoice_issued_at),
                replayed=True,
            )

        config = load_numbering_config(tx)
        if not config.enabled:
            raise NumberingDisabledError()

        issued_at = _as_naive_utc(now) if now is not None else utcnow()
        period_key = sequence.period_key_for(issued_at, config.reset_policy)
        value = sequence.allocate(tx, INVOICE_COUNTER, period_key)
        invoice_number = compose_invoice_number(config, value)

        order.invoice_number = invoice_number
        order.invoice_series = config.series or None
        order.invoice_issued_at = issued_at

        log_event(
            tx,
            entity_type=EntityTypeV1.INVOICE,
            entity_id=order.id,
            event_type=EventTypeV1.INVOICE_ISSUED,
            event_payload={
                "invoice_number": invoice_number,
                "series": order.invoice_series,
                "counter": INVOICE_COUNTER,
                "period_key": period_key,
                "value": value,
            },
        )
        return IssuedInvoice(
            order_id=order.id,
            invoice_number=invoice_number,
            series=order.invoice_series,
            issued_at=issued_at,
        )

    issued = run_in_transaction(db, _work, name="issue_invoice")
    logger.info(
        "invoice_issued" if not issued.replayed else "invoice_replayed",
        order_id=issued.order_id,
        invoice_number=issued.invoice_number,
        series=issued.series,
    )
    return issued
