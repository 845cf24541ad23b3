from __future__ import annotations

import os
from uuid import uuid4

import structlog
from fastapi import APIRouter, Depends, HTTPException
from services.api.app.db.database import run_in_transaction
from services.api.app.db.deps import get_db
from services.api.app.models.order import DraftCreateRequest, DraftCreateResponse, DraftOut
from services.api.app.routers.common import (
    draft_to_out,
    gateway_for,
    raise_gateway_http_error,
    raise_payments_http_error,
)
from services.api.app.services import drafts
from services.api.app.services.errors import DuplicateRefError
from services.api.app.services.gateway_base import PaymentGateway
from sqlalchemy.orm import Session

router = APIRouter()
logger = structlog.get_logger(__name__)


def default_currency() -> str:
    return os.getenv("PAY_CURRENCY", "GTQ").strip().upper() or "GTQ"


@router.post("/v1/pay/{provider}/drafts", response_model=DraftCreateResponse)
def create_checkout_draft(
    payload: DraftCreateRequest,
    gateway: PaymentGateway = Depends(gateway_for),
    db: Session = Depends(get_db),
) -> DraftCreateResponse:
    currency = (payload.currency or default_currency()).upper()

    external_ref = payload.external_ref
    client_data: dict = {}
    if external_ref is None:
        try:
            created = gateway.create_payment(
                payload.amount_cents,
                currency,
                metadata={"reference": uuid4().hex},
            )
        except Exception as e:
            raise_gateway_http_error(e)
        external_ref = created.external_ref
        client_data = created.client_data

    def _work(tx: Session) -> DraftOut:
        draft = drafts.create_draft(
            tx,
            external_ref=external_ref,
            provider=gateway.provider,
            amount_cents=payload.amount_cents,
            currency=currency,
            payload=payload.payload,
        )
        return draft_to_out(draft)

    try:
        out = run_in_transaction(db, _work, name="create_draft")
    except DuplicateRefError:
        # The payment was already initiated; hand back what we have.
        existing = drafts.find_by_external_ref(db, external_ref)
        logger.info("draft_already_initiated", external_ref=external_ref)
        return DraftCreateResponse(created=False, draft=draft_to_out(existing))
    except Exception as e:
        raise_payments_http_error(e)

    return DraftCreateResponse(created=True, draft=out, client_data=client_data)


@router.get("/v1/drafts/{external_ref}", response_model=DraftOut)
def get_draft(external_ref: str, db: Session = Depends(get_db)) -> DraftOut:
    draft = drafts.find_by_external_ref(db, external_ref)
    if draft is None:
        raise HTTPException(status_code=404, detail="Draft not found")
    return draft_to_out(draft)
