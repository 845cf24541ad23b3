from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timezone
from typing import NoReturn

from fastapi import HTTPException
from services.api.app.db.models import Order, OrderDraft
from services.api.app.models.order import DraftOut, OrderOut, PaymentBlock
from services.api.app.services import gateway_factory
from services.api.app.services.errors import (
    DraftNotFoundError,
    DuplicateRefError,
    NumberingDisabledError,
    OrderNotFoundError,
    PaymentsError,
    TransactionConflictError,
)
from services.api.app.services.gateway_base import (
    GatewayConfigError,
    GatewayError,
    GatewayPaymentPendingError,
    GatewayPayloadError,
    GatewaySignatureError,
    PaymentGateway,
)


def iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat()


def draft_to_out(draft: OrderDraft) -> DraftOut:
    return DraftOut(
        draft_id=draft.id,
        external_ref=draft.external_ref,
        status=draft.status,
        provider=draft.provider,
        amount_cents=draft.amount_cents,
        currency=draft.currency,
        order_id=draft.order_id,
        created_at=iso(draft.created_at),
        completed_at=iso(draft.completed_at),
    )


def order_to_out(order: Order) -> OrderOut:
    return OrderOut(
        order_id=order.id,
        payload=order.payload_json or {},
        payment=PaymentBlock(
            provider=order.payment_provider,
            status=order.payment_status,
            amount_cents=order.payment_amount_cents,
            currency=order.payment_currency,
            external_ref=order.payment_external_ref,
            created_at=iso(order.payment_created_at),
        ),
        invoice_number=order.invoice_number,
        invoice_series=order.invoice_series,
        invoice_issued_at=iso(order.invoice_issued_at),
        created_at=iso(order.created_at),
    )


def raise_payments_http_error(e: Exception) -> NoReturn:
    if isinstance(e, (OrderNotFoundError, DraftNotFoundError)):
        raise HTTPException(status_code=404, detail=str(e)) from e

    if isinstance(e, (NumberingDisabledError, DuplicateRefError)):
        raise HTTPException(status_code=409, detail=str(e)) from e

    if isinstance(e, TransactionConflictError):
        raise HTTPException(status_code=503, detail=str(e)) from e

    if isinstance(e, PaymentsError):
        raise HTTPException(status_code=400, detail=str(e)) from e

    raise HTTPException(status_code=500, detail="Internal Server Error") from e


def raise_gateway_http_error(e: Exception) -> NoReturn:
    if isinstance(e, (GatewaySignatureError, GatewayPayloadError)):
        raise HTTPException(status_code=400, detail=str(e)) from e

    if isinstance(e, GatewayConfigError):
        raise HTTPException(status_code=500, detail=str(e)) from e

    if isinstance(e, GatewayPaymentPendingError):
        raise HTTPException(status_code=409, detail=str(e)) from e

    if isinstance(e, NotImplementedError):
        raise HTTPException(status_code=501, detail=str(e)) from e

    if isinstance(e, GatewayError):
        raise HTTPException(status_code=502, detail=str(e)) from e

    raise HTTPException(status_code=500, detail="Internal Server Error") from e


def gateway_for(provider: str) -> Generator[PaymentGateway, None, None]:
    """Gateway for the `{provider}` path segment, closed when the request finishes."""

    try:
        gateway = gateway_factory.get_payment_gateway(provider)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        raise_gateway_http_error(e)

    try:
        yield gateway
    finally:
        gateway.close()
