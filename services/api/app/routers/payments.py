from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from packages.shared.schemas.payment import DraftStatusV1, SettlementStatusV1
from services.api.app.db.deps import get_db
from services.api.app.models.order import CaptureRequest, SettlementOut, WebhookAck
from services.api.app.routers.common import (
    gateway_for,
    raise_gateway_http_error,
    raise_payments_http_error,
)
from services.api.app.services import drafts
from services.api.app.services.gateway_base import PaymentConfirmation, PaymentGateway
from services.api.app.services.settlement import SettlementResult, settle
from sqlalchemy.orm import Session

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _raw_body(request: Request) -> bytes:
    # Signatures are computed over the exact bytes the processor sent.
    return await request.body()


def _settle(db: Session, gateway: PaymentGateway, confirmation: PaymentConfirmation) -> SettlementResult:
    try:
        return settle(
            db,
            confirmation.external_ref,
            confirmation.outcome,
            amount_cents=confirmation.amount_cents,
            currency=confirmation.currency,
            provider=gateway.provider,
        )
    except Exception as e:
        raise_payments_http_error(e)


@router.post("/v1/pay/{provider}/capture", response_model=SettlementOut)
def capture_payment(
    payload: CaptureRequest,
    gateway: PaymentGateway = Depends(gateway_for),
    db: Session = Depends(get_db),
) -> SettlementOut:
    log = logger.bind(provider=gateway.provider, external_ref=payload.external_ref)

    draft = drafts.find_by_external_ref(db, payload.external_ref)
    if draft is None:
        raise HTTPException(status_code=404, detail="Draft not found")

    if draft.provider != gateway.provider:
        raise HTTPException(status_code=409, detail="Draft provider does not match capture provider")

    # Terminal drafts are answered from the store; the processor is not asked to capture twice.
    if draft.status == DraftStatusV1.COMPLETED.value:
        log.info("capture_replayed", order_id=draft.order_id)
        return SettlementOut(
            status=SettlementStatusV1.COMPLETED.value,
            external_ref=draft.external_ref,
            order_id=draft.order_id,
            replayed=True,
        )
    if draft.status == DraftStatusV1.FAILED.value:
        log.info("capture_after_failure")
        return SettlementOut(
            ok=False,
            status=SettlementStatusV1.FAILED.value,
            external_ref=draft.external_ref,
            replayed=True,
        )

    # Do not hold store locks across the processor call.
    db.rollback()

    try:
        confirmation = gateway.capture(payload.external_ref)
    except Exception as e:
        log.warning("capture_failed", error=str(e))
        raise_gateway_http_error(e)

    result = _settle(db, gateway, confirmation)
    return SettlementOut(
        ok=result.status is SettlementStatusV1.COMPLETED,
        status=result.status.value,
        external_ref=result.external_ref,
        order_id=result.order_id,
        replayed=result.replayed,
    )


@router.post("/v1/webhooks/{provider}", response_model=WebhookAck)
def receive_webhook(
    request: Request,
    body: bytes = Depends(_raw_body),
    gateway: PaymentGateway = Depends(gateway_for),
    db: Session = Depends(get_db),
) -> WebhookAck:

    with structlog.contextvars.bound_contextvars(provider=gateway.provider, channel="webhook"):
        signature = request.headers.get(gateway.signature_header, "")
        try:
            confirmation = gateway.parse_webhook(body, signature)
        except Exception as e:
            raise_gateway_http_error(e)

        if confirmation is None:
            return WebhookAck(ignored=True)

        result = _settle(db, gateway, confirmation)

        if result.status is SettlementStatusV1.DRAFT_NOT_FOUND:
            # Possibly a payment from a flow we do not own. Acknowledge so it is not redelivered.
            return WebhookAck(note="draft not found")

        if result.status is SettlementStatusV1.PROVIDER_MISMATCH:
            return WebhookAck(ignored=True, note="provider mismatch")

        return WebhookAck(order_id=result.order_id)


@router.get("/v1/webhooks/{provider}", response_model=WebhookAck, dependencies=[Depends(gateway_for)])
def webhook_probe() -> WebhookAck:
    return WebhookAck()
