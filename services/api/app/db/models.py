from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC. Columns are plain DateTime so every backend returns the value as written."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    payload_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    payment_provider: Mapped[str] = mapped_column(String, nullable=False)
    payment_status: Mapped[str] = mapped_column(String, nullable=False)
    payment_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    # One order per processor payment attempt, enforced by the store as well.
    payment_external_ref: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    payment_created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)

    invoice_number: Mapped[str | None] = mapped_column(String, nullable=True)
    invoice_series: Mapped[str | None] = mapped_column(String, nullable=True)
    invoice_issued_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)


class OrderDraft(Base):
    __tablename__ = "order_drafts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    external_ref: Mapped[str] = mapped_column(String, nullable=False, unique=True)

    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    provider: Mapped[str] = mapped_column(String, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payload_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    order_id: Mapped[str | None] = mapped_column(ForeignKey("orders.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    counter_name: Mapped[str] = mapped_column(String, primary_key=True)
    period_key: Mapped[str] = mapped_column(String, primary_key=True)
    next_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)


class TaxProfile(Base):
    __tablename__ = "tax_profiles"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    invoice_numbering_json: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)


class EventLog(Base):
    __tablename__ = "event_log"

    id: Mapped[str] = mapped_column(String, primary_key=True)

    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    event_payload_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
