"""Shared payment schema (v1).

Status and policy vocabularies shared by the API, the storefront and the ops console.
They should remain stable and backwards compatible once shipped.
"""

from __future__ import annotations

from enum import Enum


class DraftStatusV1(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentOutcomeV1(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ResetPolicyV1(str, Enum):
    NEVER = "never"
    YEARLY = "yearly"
    MONTHLY = "monthly"
    DAILY = "daily"


class SettlementStatusV1(str, Enum):
    # The draft was settled by this call or by an earlier delivery of the same confirmation.
    COMPLETED = "completed"
    FAILED = "failed"
    # No draft for the external reference; the payment may belong to another flow.
    DRAFT_NOT_FOUND = "draft_not_found"
    # The confirmation came through a different processor than the one the draft was opened with.
    PROVIDER_MISMATCH = "provider_mismatch"
