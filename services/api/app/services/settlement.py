"""Settlement: turn a processor confirmation into exactly one durable order.

Every delivery of a confirmation (webhook, client capture, processor retry) runs the
same read-check-write as a single transaction. The draft row is read under a lock,
so concurrent deliveries for one external reference queue behind each other and all
but the first observe the completed draft. Deliveries for different references lock
different rows and do not wait on each other.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import structlog
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from packages.shared.schemas.payment import (
    DraftStatusV1,
    PaymentOutcomeV1,
    SettlementStatusV1,
)
from services.api.app.db.database import run_in_transaction
from services.api.app.db.models import Order, OrderDraft, utcnow
from services.api.app.services import drafts
from services.api.app.services.audit_log import log_event
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)

OrderBuilder = Callable[[OrderDraft], dict[str, Any]]


@dataclass(frozen=True, slots=True)
class SettlementResult:
    status: SettlementStatusV1
    external_ref: str
    draft_id: str | None = None
    order_id: str | None = None
    # True when an earlier delivery already moved the draft to a terminal state.
    replayed: bool = False


def default_order_payload(draft: OrderDraft) -> dict[str, Any]:
    return dict(draft.payload_json or {})


def settle(
    db: Session,
    external_ref: str,
    outcome: PaymentOutcomeV1,
    *,
    amount_cents: int | None = None,
    currency: str | None = None,
    provider: str | None = None,
    build_order_payload: OrderBuilder = default_order_payload,
) -> SettlementResult:
    """Apply a payment outcome to the draft for ``external_ref``.

    Safe to call any number of times for the same confirmation: the first call
    that commits decides the result and every later call returns it unchanged.
    A failed commit leaves nothing behind and the call can be retried as is.

    ``provider`` is the processor the confirmation arrived through. When given, it
    must match the processor the draft was opened with, otherwise nothing changes.
    """

    outcome = PaymentOutcomeV1(outcome)

    def _work(tx: Session) -> SettlementResult:
        draft = drafts.find_by_external_ref(tx, external_ref, for_update=True)
        if draft is None:
            return SettlementResult(status=SettlementStatusV1.DRAFT_NOT_FOUND, external_ref=external_ref)

        # Only the processor that opened the draft can settle it. Nothing is written.
        if provider is not None and provider != draft.provider:
            return SettlementResult(
                status=SettlementStatusV1.PROVIDER_MISMATCH,
                external_ref=external_ref,
                draft_id=draft.id,
            )

        # Replays write nothing, not even to the event log.
        if draft.status == DraftStatusV1.COMPLETED.value:
            return SettlementResult(
                status=SettlementStatusV1.COMPLETED,
                external_ref=external_ref,
                draft_id=draft.id,
                order_id=draft.order_id,
                replayed=True,
            )

        if draft.status == DraftStatusV1.FAILED.value:
            # First terminal state wins; a late success does not resurrect the draft.
            return SettlementResult(
                status=SettlementStatusV1.FAILED,
                external_ref=external_ref,
                draft_id=draft.id,
                replayed=True,
            )

        if outcome is PaymentOutcomeV1.FAILED:
            drafts.mark_failed(tx, draft.id)
            return SettlementResult(
                status=SettlementStatusV1.FAILED,
                external_ref=external_ref,
                draft_id=draft.id,
            )

        order = _materialize_order(
            tx,
            draft,
            amount_cents=amount_cents,
            currency=currency,
            build_order_payload=build_order_payload,
        )
        drafts.mark_completed(tx, draft.id, order.id)
        return SettlementResult(
            status=SettlementStatusV1.COMPLETED,
            external_ref=external_ref,
            draft_id=draft.id,
            order_id=order.id,
        )

    result = run_in_transaction(db, _work, name="settle")
    _log_result(result, outcome)
    return result


def _materialize_order(
    db: Session,
    draft: OrderDraft,
    *,
    amount_cents: int | None,
    currency: str | None,
    build_order_payload: OrderBuilder,
) -> Order:
    paid_cents = draft.amount_cents if amount_cents is None else amount_cents
    paid_currency = (currency or draft.currency).upper()

    if paid_cents != draft.amount_cents or paid_currency != draft.currency:
        logger.warning(
            "settlement_amount_mismatch",
            external_ref=draft.external_ref,
            draft_amount_cents=draft.amount_cents,
            draft_currency=draft.currency,
            paid_amount_cents=paid_cents,
            paid_currency=paid_currency,
        )

    now = utcnow()
    order = Order(
        id=uuid4().hex,
        payload_json=build_order_payload(draft),
        payment_provider=draft.provider,
        payment_status=PaymentOutcomeV1.SUCCEEDED.value,
        payment_amount_cents=paid_cents,
        payment_currency=paid_currency,
        payment_external_ref=draft.external_ref,
        payment_created_at=now,
        created_at=now,
    )
    db.add(order)
    # Insert the order before the draft points at it.
    db.flush()

    log_event(
        db,
        entity_type=EntityTypeV1.ORDER,
        entity_id=order.id,
        event_type=EventTypeV1.ORDER_CREATED,
        event_payload={
            "draft_id": draft.id,
            "external_ref": draft.external_ref,
            "amount_cents": paid_cents,
            "currency": paid_currency,
        },
    )
    return order


def _log_result(result: SettlementResult, outcome: PaymentOutcomeV1) -> None:
    fields = {
        "external_ref": result.external_ref,
        "outcome": outcome.value,
        "status": result.status.value,
        "draft_id": result.draft_id,
        "order_id": result.order_id,
    }
    if result.status is SettlementStatusV1.DRAFT_NOT_FOUND:
        logger.warning("settlement_draft_not_found", **fields)
    elif result.status is SettlementStatusV1.PROVIDER_MISMATCH:
        logger.warning("settlement_provider_mismatch", **fields)
    elif result.replayed and result.status is SettlementStatusV1.FAILED and outcome is PaymentOutcomeV1.SUCCEEDED:
        logger.warning("settlement_ignored_after_failure", **fields)
    elif result.replayed:
        logger.info("settlement_replayed", **fields)
    else:
        logger.info("settlement_applied", **fields)
