from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest
from packages.shared.schemas.payment import PaymentOutcomeV1, ResetPolicyV1
from services.api.app.db.database import db_session, run_in_transaction
from services.api.app.db.models import Order
from services.api.app.models.invoice import NumberingConfig
from services.api.app.services import drafts, invoicing, sequence
from services.api.app.services.errors import NumberingDisabledError, OrderNotFoundError
from services.api.app.services.settlement import settle
from sqlalchemy.orm import Session


def _paid_order(db: Session, external_ref: str) -> str:
    run_in_transaction(
        db,
        lambda tx: drafts.create_draft(
            tx,
            external_ref=external_ref,
            provider="mock",
            amount_cents=4500,
            currency="GTQ",
            payload={"items": [{"name": "pepian", "quantity": 1}]},
        ),
    )
    return settle(db, external_ref, PaymentOutcomeV1.SUCCEEDED).order_id


def _enable(db: Session, **overrides) -> NumberingConfig:
    fields = {"enabled": True, "series": "A", "prefix": "INV-", "padding": 6}
    fields.update(overrides)
    return invoicing.save_numbering_config(db, NumberingConfig(**fields))


def test_issue_is_idempotent(db: Session) -> None:
    _enable(db)
    order_id = _paid_order(db, "mock_1")

    first = invoicing.issue_invoice(db, order_id)
    second = invoicing.issue_invoice(db, order_id)

    assert first.invoice_number == "INV-A000001"
    assert first.series == "A"
    assert first.replayed is False
    assert second.replayed is True
    assert (second.invoice_number, second.series, second.issued_at) == (
        first.invoice_number,
        first.series,
        first.issued_at,
    )

    order = db.get(Order, order_id)
    assert order.invoice_number == "INV-A000001"
    assert sequence.peek(db, invoicing.INVOICE_COUNTER, sequence.GLOBAL_PERIOD_KEY) == 2


def test_distinct_orders_get_consecutive_numbers(db: Session) -> None:
    _enable(db, prefix="", padding=3)
    numbers = [
        invoicing.issue_invoice(db, _paid_order(db, f"mock_{i}")).invoice_number for i in range(3)
    ]

    assert numbers == ["A001", "A002", "A003"]


def test_unknown_order(db: Session) -> None:
    _enable(db)

    with pytest.raises(OrderNotFoundError):
        invoicing.issue_invoice(db, "does-not-exist")


def test_numbering_not_configured(db: Session) -> None:
    order_id = _paid_order(db, "mock_1")

    with pytest.raises(NumberingDisabledError):
        invoicing.issue_invoice(db, order_id)

    assert db.get(Order, order_id).invoice_number is None


def test_numbering_disabled_spends_no_value(db: Session) -> None:
    _enable(db, enabled=False)
    order_id = _paid_order(db, "mock_1")

    with pytest.raises(NumberingDisabledError):
        invoicing.issue_invoice(db, order_id)

    assert sequence.peek(db, invoicing.INVOICE_COUNTER, sequence.GLOBAL_PERIOD_KEY) == 1


def test_config_round_trips_through_tax_profile(db: Session) -> None:
    assert invoicing.load_numbering_config(db) == NumberingConfig()

    saved = _enable(db, suffix="-GT", reset_policy=ResetPolicyV1.MONTHLY)

    loaded = invoicing.load_numbering_config(db)
    assert loaded == saved
    assert loaded.reset_policy is ResetPolicyV1.MONTHLY


def test_daily_reset_starts_each_day_at_one(db: Session) -> None:
    _enable(db, prefix="", series="", padding=0, reset_policy=ResetPolicyV1.DAILY)
    day_one = datetime(2025, 3, 14, 15, 0)
    day_two = datetime(2025, 3, 15, 9, 30)

    a = invoicing.issue_invoice(db, _paid_order(db, "mock_a"), now=day_one)
    b = invoicing.issue_invoice(db, _paid_order(db, "mock_b"), now=day_one)
    c = invoicing.issue_invoice(db, _paid_order(db, "mock_c"), now=day_two)

    assert [a.invoice_number, b.invoice_number, c.invoice_number] == ["1", "2", "1"]
    assert a.series is None
    assert sequence.peek(db, invoicing.INVOICE_COUNTER, "day-2025-03-14") == 3
    assert sequence.peek(db, invoicing.INVOICE_COUNTER, "day-2025-03-15") == 2


def test_daily_reset_follows_business_timezone(db: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MESA_BUSINESS_TZ", "America/Guatemala")
    _enable(db, prefix="", series="", padding=0, reset_policy=ResetPolicyV1.DAILY)

    # 03:00 UTC on the 15th is still the evening of the 14th in Guatemala (UTC-6).
    invoicing.issue_invoice(db, _paid_order(db, "mock_a"), now=datetime(2025, 3, 15, 3, 0))

    assert sequence.peek(db, invoicing.INVOICE_COUNTER, "day-2025-03-14") == 2
    assert sequence.peek(db, invoicing.INVOICE_COUNTER, "day-2025-03-15") == 1


def test_concurrent_issue_for_one_order_spends_one_number(db: Session) -> None:
    _enable(db)
    order_id = _paid_order(db, "mock_1")
    db.rollback()

    def _issue(_: int) -> str:
        session = db_session()
        try:
            return invoicing.issue_invoice(session, order_id).invoice_number
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=6) as pool:
        numbers = list(pool.map(_issue, range(6)))

    assert set(numbers) == {"INV-A000001"}
    assert sequence.peek(db, invoicing.INVOICE_COUNTER, sequence.GLOBAL_PERIOD_KEY) == 2


def test_concurrent_issue_for_many_orders_is_gapless(db: Session) -> None:
    _enable(db, prefix="", series="", padding=0)
    order_ids = [_paid_order(db, f"mock_{i}") for i in range(8)]
    db.rollback()

    def _issue(order_id: str) -> str:
        session = db_session()
        try:
            return invoicing.issue_invoice(session, order_id).invoice_number
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = list(pool.map(_issue, order_ids))

    assert sorted(int(n) for n in numbers) == list(range(1, 9))
