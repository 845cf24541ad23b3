from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class DraftCreateRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    # Line items, fulfillment type, table or address, notes. Stored as given.
    payload: dict[str, Any] = Field(default_factory=dict)

    # Set when the client already created the payment with the processor.
    external_ref: str | None = Field(default=None, min_length=1)


class DraftOut(BaseModel):
    draft_id: str
    external_ref: str
    status: str
    provider: str
    amount_cents: int
    currency: str
    order_id: str | None = None
    created_at: str
    completed_at: str | None = None


class DraftCreateResponse(BaseModel):
    # False when a draft already existed for the external reference.
    created: bool
    draft: DraftOut
    # Whatever the storefront needs to finish paying (client secret, approval link).
    client_data: dict[str, Any] = Field(default_factory=dict)


class CaptureRequest(BaseModel):
    external_ref: str = Field(..., min_length=1)


class SettlementOut(BaseModel):
    ok: bool = True
    status: str
    external_ref: str
    order_id: str | None = None
    replayed: bool = False


class WebhookAck(BaseModel):
    ok: bool = True
    ignored: bool = False
    note: str | None = None
    order_id: str | None = None


class PaymentBlock(BaseModel):
    provider: str
    status: str
    amount_cents: int
    currency: str
    external_ref: str
    created_at: str


class OrderOut(BaseModel):
    order_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    payment: PaymentBlock

    invoice_number: str | None = None
    invoice_series: str | None = None
    invoice_issued_at: str | None = None

    created_at: str
