"""Shared event schema (v1).

The backend stores an append-only event log next to every draft, order and invoice
transition. Back-office clients consume these events to render an audit trail.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EntityTypeV1(str, Enum):
    DRAFT = "Draft"
    ORDER = "Order"
    INVOICE = "Invoice"


class EventTypeV1(str, Enum):
    DRAFT_CREATED = "DRAFT_CREATED"
    DRAFT_COMPLETED = "DRAFT_COMPLETED"
    DRAFT_FAILED = "DRAFT_FAILED"
    ORDER_CREATED = "ORDER_CREATED"
    INVOICE_ISSUED = "INVOICE_ISSUED"


class EventV1(BaseModel):
    id: str

    entity_type: EntityTypeV1
    entity_id: str

    event_type: EventTypeV1
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str
