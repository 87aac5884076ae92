"""Pydantic schemas for escrow engine inputs and read models.

Inputs are validated before the engine touches the store. Read models use
camelCase aliases so they serialize to the same keys the mobile client
already reads from transaction documents.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from brewmaster_escrow.domain.enums import PaymentMethod, TransactionStatus
from brewmaster_escrow.domain.statistics import FarmerSummary

MAX_TRANSACTION_AMOUNT = Decimal("1000000")

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateTransactionRequest(BaseModel):
    """Input for opening a new escrow transaction on a purchase."""

    model_config = ConfigDict(str_strip_whitespace=True)

    buyer_id: str = Field(..., min_length=1, max_length=128)
    farmer_id: str = Field(..., min_length=1, max_length=128)
    listing_id: str = Field(..., min_length=1, max_length=128)
    amount: Decimal = Field(
        ...,
        ge=0,
        le=MAX_TRANSACTION_AMOUNT,
        description="Amount held in escrow, in the platform currency unit",
        examples=[Decimal("150.00")],
    )
    payment_method: PaymentMethod = Field(
        ...,
        description="Mobile-money channel used to collect the payment",
        examples=[PaymentMethod.MPESA],
    )


class RaiseDisputeRequest(BaseModel):
    """Input for raising a dispute against a transaction."""

    model_config = ConfigDict(str_strip_whitespace=True)

    reason: str = Field(
        ...,
        min_length=10,
        max_length=500,
        description="Why the buyer or farmer disputes the transaction",
        examples=["damaged beans"],
    )


# ---------------------------------------------------------------------------
# Read Models
# ---------------------------------------------------------------------------


class TransactionView(BaseModel):
    """Serializable snapshot of a transaction."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str
    buyer_id: str
    farmer_id: str
    listing_id: str
    amount: Decimal
    status: TransactionStatus
    payment_method: PaymentMethod
    created_at: datetime
    updated_at: datetime | None = None
    funds_held_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    dispute_reason: str | None = None
    retry_count: int = 0
    failure_reason: str | None = None
    status_history: dict[str, datetime] = Field(default_factory=dict)


class TransactionStatusView(BaseModel):
    """Lightweight status check with the operations currently allowed."""

    transaction_id: str
    status: TransactionStatus
    retry_count: int
    max_retries: int
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )


class UserStatistics(BaseModel):
    """Earnings summary for a farmer."""

    model_config = ConfigDict(populate_by_name=True)

    total_earnings: Decimal = Field(alias="totalEarnings")
    completed_count: int = Field(alias="completedTransactions")
    pending_count: int = Field(alias="pendingTransactions")
    total_count: int = Field(alias="totalTransactions")

    @classmethod
    def from_summary(cls, summary: FarmerSummary) -> UserStatistics:
        return cls(
            total_earnings=summary.total_earnings,
            completed_count=summary.completed_count,
            pending_count=summary.pending_count,
            total_count=summary.total_count,
        )
