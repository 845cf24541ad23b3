"""Draft store: pending settlement attempts keyed by the processor's external reference.

None of these functions commit. They run inside the caller's transaction so that a
draft transition and whatever it is coupled with (an order insert) land together.
"""

from __future__ import annotations

from typing import Any
from uuid import uuid4

import structlog
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from packages.shared.schemas.payment import DraftStatusV1
from services.api.app.db.models import OrderDraft, utcnow
from services.api.app.services.audit_log import log_event
from services.api.app.services.errors import DraftNotFoundError, DuplicateRefError
from sqlalchemy import select
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)

TERMINAL_STATUSES = frozenset({DraftStatusV1.COMPLETED.value, DraftStatusV1.FAILED.value})


def create_draft(
    db: Session,
    *,
    external_ref: str,
    provider: str,
    amount_cents: int,
    currency: str,
    payload: dict[str, Any],
) -> OrderDraft:
    existing = find_by_external_ref(db, external_ref)
    if existing is not None:
        raise DuplicateRefError(external_ref, draft_id=existing.id)

    draft = OrderDraft(
        id=uuid4().hex,
        external_ref=external_ref,
        status=DraftStatusV1.PENDING.value,
        provider=provider,
        amount_cents=amount_cents,
        currency=currency.upper(),
        payload_json=dict(payload),
    )
    db.add(draft)
    # A concurrent insert of the same external_ref surfaces here as IntegrityError;
    # the transaction runner retries and the lookup above then reports the duplicate.
    db.flush()

    log_event(
        db,
        entity_type=EntityTypeV1.DRAFT,
        entity_id=draft.id,
        event_type=EventTypeV1.DRAFT_CREATED,
        event_payload={
            "external_ref": external_ref,
            "provider": provider,
            "amount_cents": amount_cents,
            "currency": draft.currency,
        },
    )
    logger.info("draft_created", draft_id=draft.id, external_ref=external_ref, provider=provider)
    return draft


def find_by_external_ref(
    db: Session,
    external_ref: str,
    *,
    for_update: bool = False,
) -> OrderDraft | None:
    stmt = select(OrderDraft).where(OrderDraft.external_ref == external_ref)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def get_draft(db: Session, draft_id: str) -> OrderDraft | None:
    return db.get(OrderDraft, draft_id)


def _locked(db: Session, draft_id: str) -> OrderDraft:
    draft = db.get(OrderDraft, draft_id, with_for_update=True)
    if draft is None:
        raise DraftNotFoundError(draft_id)
    return draft


def mark_completed(db: Session, draft_id: str, order_id: str) -> OrderDraft:
    """Move a pending draft to ``completed``.

    From a terminal state this is a no-op and the draft comes back unchanged, so a
    repeated call is indistinguishable from the first one.
    """

    draft = _locked(db, draft_id)
    if draft.status in TERMINAL_STATUSES:
        return draft

    now = utcnow()
    draft.status = DraftStatusV1.COMPLETED.value
    draft.order_id = order_id
    draft.completed_at = now
    draft.updated_at = now

    log_event(
        db,
        entity_type=EntityTypeV1.DRAFT,
        entity_id=draft.id,
        event_type=EventTypeV1.DRAFT_COMPLETED,
        event_payload={"external_ref": draft.external_ref, "order_id": order_id},
    )
    return draft


def mark_failed(db: Session, draft_id: str) -> OrderDraft:
    draft = _locked(db, draft_id)
    if draft.status in TERMINAL_STATUSES:
        return draft

    draft.status = DraftStatusV1.FAILED.value
    draft.updated_at = utcnow()

    log_event(
        db,
        entity_type=EntityTypeV1.DRAFT,
        entity_id=draft.id,
        event_type=EventTypeV1.DRAFT_FAILED,
        event_payload={"external_ref": draft.external_ref},
    )
    return draft
