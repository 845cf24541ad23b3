from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from packages.shared.schemas.payment import ResetPolicyV1
from services.api.app.db.database import db_session, run_in_transaction
from services.api.app.services import sequence
from sqlalchemy.orm import Session


def _allocate_once(counter: str, period_key: str) -> int:
    session = db_session()
    try:
        return run_in_transaction(
            session,
            lambda tx: sequence.allocate(tx, counter, period_key),
            name="test_allocate",
        )
    finally:
        session.close()


@pytest.mark.parametrize(
    ("policy", "expected"),
    [
        (ResetPolicyV1.NEVER, "global"),
        (ResetPolicyV1.YEARLY, "year-2026"),
        (ResetPolicyV1.MONTHLY, "month-2026-03"),
        (ResetPolicyV1.DAILY, "day-2026-03-07"),
    ],
)
def test_period_key_for_each_policy(policy: ResetPolicyV1, expected: str) -> None:
    now = datetime(2026, 3, 7, 15, 30, tzinfo=timezone.utc)
    assert sequence.period_key_for(now, policy, tz=ZoneInfo("UTC")) == expected


def test_period_key_uses_business_timezone(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MESA_BUSINESS_TZ", "America/Guatemala")
    # 03:00 UTC on Jan 1st is still Dec 31st in Guatemala (UTC-6).
    now = datetime(2026, 1, 1, 3, 0)
    assert sequence.period_key_for(now, "daily") == "day-2025-12-31"
    assert sequence.period_key_for(now, "yearly") == "year-2025"


def test_unknown_business_timezone_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MESA_BUSINESS_TZ", "Mars/Olympus_Mons")
    with pytest.raises(ValueError, match="MESA_BUSINESS_TZ"):
        sequence.period_key_for(datetime(2026, 1, 1), ResetPolicyV1.DAILY)


def test_sequential_allocation_is_gap_free(db: Session) -> None:
    values = [_allocate_once("invoiceNumbering", "global") for _ in range(5)]

    assert values == [1, 2, 3, 4, 5]
    assert sequence.peek(db, "invoiceNumbering", "global") == 6


def test_period_keys_are_independent(db: Session) -> None:
    assert _allocate_once("invoiceNumbering", "day-2026-03-07") == 1
    assert _allocate_once("invoiceNumbering", "day-2026-03-07") == 2
    assert _allocate_once("invoiceNumbering", "day-2026-03-08") == 1
    assert _allocate_once("receipts", "day-2026-03-07") == 1

    assert sequence.peek(db, "invoiceNumbering", "day-2026-03-07") == 3
    assert sequence.peek(db, "invoiceNumbering", "day-2026-03-08") == 2


def test_uncommitted_allocation_is_not_spent(db: Session) -> None:
    assert sequence.allocate(db, "invoiceNumbering", "global") == 1
    db.rollback()

    assert _allocate_once("invoiceNumbering", "global") == 1


def test_concurrent_allocation_hands_out_distinct_values(db: Session) -> None:
    workers = 8
    per_worker = 5

    def _run(_: int) -> list[int]:
        return [_allocate_once("invoiceNumbering", "global") for _ in range(per_worker)]

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = [v for chunk in pool.map(_run, range(workers)) for v in chunk]

    total = workers * per_worker
    assert sorted(results) == list(range(1, total + 1))
    assert sequence.peek(db, "invoiceNumbering", "global") == total + 1
