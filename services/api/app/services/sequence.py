"""Named, period-scoped sequence counters.

Each ``(counter_name, period_key)`` pair is its own row holding the next value to hand
out. Allocation locks that row, so callers targeting the same key are serialized by
the store while different period keys never touch the same row.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from packages.shared.schemas.payment import ResetPolicyV1
from services.api.app.db.models import SequenceCounter, utcnow
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)

GLOBAL_PERIOD_KEY = "global"


def business_timezone() -> ZoneInfo:
    name = os.getenv("MESA_BUSINESS_TZ", "UTC").strip() or "UTC"
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise ValueError(f"Unknown MESA_BUSINESS_TZ={name!r}.") from e


def period_key_for(now: datetime, policy: ResetPolicyV1 | str, tz: ZoneInfo | None = None) -> str:
    """Bucket ``now`` into the period key for ``policy``.

    Naive datetimes are taken as UTC; the bucket is computed on the business calendar.
    """

    policy = ResetPolicyV1(policy)
    if policy is ResetPolicyV1.NEVER:
        return GLOBAL_PERIOD_KEY

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(tz or business_timezone())

    if policy is ResetPolicyV1.YEARLY:
        return f"year-{local:%Y}"
    if policy is ResetPolicyV1.MONTHLY:
        return f"month-{local:%Y-%m}"
    return f"day-{local:%Y-%m-%d}"


def allocate(db: Session, counter_name: str, period_key: str) -> int:
    """Hand out the next value for ``(counter_name, period_key)``.

    Runs inside the caller's transaction: the value is only spent once the caller
    commits, and it is never handed out again after that. Values start at 1.
    """

    row = _locked_row(db, counter_name, period_key)
    if row is None:
        row = _create_row(db, counter_name, period_key)

    value = row.next_value
    row.next_value = value + 1
    row.updated_at = utcnow()
    db.flush()

    logger.debug("sequence_allocated", counter=counter_name, period_key=period_key, value=value)
    return value


def peek(db: Session, counter_name: str, period_key: str) -> int:
    """The value the next allocation would return, without allocating it."""
    row = db.get(SequenceCounter, (counter_name, period_key))
    return 1 if row is None else row.next_value


def _locked_row(db: Session, counter_name: str, period_key: str) -> SequenceCounter | None:
    stmt = (
        select(SequenceCounter)
        .where(
            SequenceCounter.counter_name == counter_name,
            SequenceCounter.period_key == period_key,
        )
        .with_for_update()
    )
    return db.execute(stmt).scalar_one_or_none()


def _create_row(db: Session, counter_name: str, period_key: str) -> SequenceCounter:
    # Two first allocations for a new period can both miss the row. The loser's
    # insert fails inside its savepoint and it falls back to locking the winner's row.
    try:
        with db.begin_nested():
            row = SequenceCounter(counter_name=counter_name, period_key=period_key, next_value=1)
            db.add(row)
        return row
    except IntegrityError:
        row = _locked_row(db, counter_name, period_key)
        if row is None:
            raise
        return row
