"""SQLAlchemy 2.0 ORM models backing the SQL document store.

One table per document collection:
    1. transactions: one row per escrow transaction document.

Design decisions:
    - Document IDs are uuid4 hex strings generated by the store.
    - Decimal for amounts (no floating point rounding errors).
    - Timestamps are always returned timezone-aware in UTC, even on SQLite.
    - statusHistory is plain JSON, not JSONB, so entry order survives a round trip.
    - A version column gives optimistic concurrency on every UPDATE.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from brewmaster_escrow.domain.transaction import DOCUMENT_FIELDS


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    # Document key -> mapped attribute, used by SqlAlchemyDocumentStore.
    document_fields = {}


# ---------------------------------------------------------------------------
# Column types
# ---------------------------------------------------------------------------
class UTCDateTime(TypeDecorator):
    """DateTime that stores UTC and always loads an aware datetime."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class TimestampMap(TypeDecorator):
    """JSON object of name -> ISO-8601 timestamp, loaded as name -> datetime."""

    impl = JSON
    cache_ok = True

    def process_bind_param(
        self, value: dict[str, datetime] | None, dialect: Any
    ) -> dict[str, str] | None:
        if value is None:
            return None
        return {key: stamp.isoformat() for key, stamp in value.items()}

    def process_result_value(
        self, value: dict[str, str] | None, dialect: Any
    ) -> dict[str, datetime] | None:
        if value is None:
            return None
        return {key: datetime.fromisoformat(stamp) for key, stamp in value.items()}


# ---------------------------------------------------------------------------
# transactions
# ---------------------------------------------------------------------------
class TransactionRecord(Base):
    """An escrow transaction document."""

    __tablename__ = "transactions"

    document_fields = {
        key: attr for attr, key in DOCUMENT_FIELDS.items()
    }

    # --- Primary Key ---
    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=lambda: uuid.uuid4().hex,
    )

    # --- Participants ---
    buyer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    farmer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    listing_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # --- Financials ---
    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False,
        comment="Escrow amount (6 decimal precision)",
    )
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)

    # --- Status ---
    # Not CHECK-constrained: unknown values are decoded leniently by the engine.
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    status_history: Mapped[dict[str, datetime]] = mapped_column(
        TimestampMap,
        nullable=False,
        default=dict,
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    funds_held_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Dispute & Retry ---
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Optimistic concurrency ---
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_transaction_non_negative_amount"),
        CheckConstraint("retry_count >= 0", name="ck_transaction_retry_count"),
        Index("idx_transaction_buyer", "buyer_id"),
        Index("idx_transaction_farmer", "farmer_id"),
        Index("idx_transaction_listing", "listing_id"),
        Index("idx_transaction_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<TransactionRecord id={self.id} status={self.status} "
            f"amount={self.amount}>"
        )


COLLECTION_MODELS: dict[str, type[Base]] = {
    TransactionRecord.__tablename__: TransactionRecord,
}
