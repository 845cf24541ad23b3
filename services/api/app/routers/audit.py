from __future__ import annotations

from fastapi import APIRouter, Depends
from packages.shared.schemas.events import EntityTypeV1, EventV1
from services.api.app.db.deps import get_db
from services.api.app.db.models import EventLog
from services.api.app.routers.common import iso
from sqlalchemy.orm import Session

router = APIRouter()


@router.get("/v1/events", response_model=list[EventV1])
def list_events(
    entity_id: str | None = None,
    entity_type: EntityTypeV1 | None = None,
    db: Session = Depends(get_db),
) -> list[EventV1]:
    query = db.query(EventLog)
    if entity_id:
        query = query.filter(EventLog.entity_id == entity_id)
    if entity_type is not None:
        query = query.filter(EventLog.entity_type == entity_type.value)

    rows = query.order_by(EventLog.created_at.desc()).limit(200).all()

    return [
        EventV1(
            id=r.id,
            entity_type=r.entity_type,
            entity_id=r.entity_id,
            event_type=r.event_type,
            payload=r.event_payload_json,
            created_at=iso(r.created_at),
        )
        for r in rows
    ]
