from __future__ import annotations

from packages.shared.schemas.payment import ResetPolicyV1
from pydantic import BaseModel, Field


class NumberingConfig(BaseModel):
    enabled: bool = False
    series: str = ""
    prefix: str = ""
    suffix: str = ""
    # Digits to zero-pad to, e.g. 6 -> 000123. Never truncates.
    padding: int = 0
    reset_policy: ResetPolicyV1 = ResetPolicyV1.NEVER


class InvoiceIssueRequest(BaseModel):
    order_id: str = Field(..., min_length=1)


class InvoiceOut(BaseModel):
    order_id: str
    invoice_number: str
    series: str | None = None
    issued_at: str
