"""The escrow Transaction record and its document mapping.

A Transaction is an immutable value: every engine operation derives a new
instance with dataclasses.replace and persists only the fields that changed.

Document keys are camelCase because the same documents are read by the
mobile client; attribute names stay snake_case.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from brewmaster_escrow.domain.enums import (
    TERMINAL_STATUSES,
    DecodeFallbackHook,
    PaymentMethod,
    TransactionStatus,
)

TRANSACTIONS_COLLECTION = "transactions"

# Attribute name -> document key
DOCUMENT_FIELDS: dict[str, str] = {
    "buyer_id": "buyerId",
    "farmer_id": "farmerId",
    "listing_id": "listingId",
    "amount": "amount",
    "status": "status",
    "payment_method": "paymentMethod",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "funds_held_at": "fundsHeldAt",
    "delivered_at": "deliveredAt",
    "completed_at": "completedAt",
    "dispute_reason": "disputeReason",
    "retry_count": "retryCount",
    "failure_reason": "failureReason",
    "status_history": "statusHistory",
}

# Milestone timestamp written the first time a status is reached.
_MILESTONES: dict[TransactionStatus, str] = {
    TransactionStatus.FUNDS_HELD: "funds_held_at",
    TransactionStatus.DELIVERED: "delivered_at",
    TransactionStatus.COMPLETED: "completed_at",
}


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps float inputs like 10.5 exact instead of binary-expanding them
    return Decimal(str(value))


@dataclass(frozen=True)
class Transaction:
    """One escrow record spanning pending -> completed | disputed | cancelled."""

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
    status_history: dict[str, datetime] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def new(
        cls,
        buyer_id: str,
        farmer_id: str,
        listing_id: str,
        amount: Decimal,
        payment_method: PaymentMethod,
        now: datetime,
    ) -> Transaction:
        """Build an unsaved pending transaction; the store assigns the ID."""
        return cls(
            id="",
            buyer_id=buyer_id,
            farmer_id=farmer_id,
            listing_id=listing_id,
            amount=_to_decimal(amount),
            status=TransactionStatus.PENDING,
            payment_method=payment_method,
            created_at=now,
            updated_at=now,
            status_history={TransactionStatus.PENDING.value: now},
        )

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_retry(self, max_retries: int) -> bool:
        """Check if a failed payment may be re-attempted."""
        return self.retry_count < max_retries and self.status == TransactionStatus.PENDING

    def can_release_funds(self) -> bool:
        """Check if funds can be released to the farmer."""
        return (
            self.status == TransactionStatus.DELIVERED
            and self.funds_held_at is not None
            and self.completed_at is None
        )

    # ------------------------------------------------------------------
    # Derivations
    # ------------------------------------------------------------------

    def with_status(self, new_status: TransactionStatus, now: datetime, **changes: Any) -> Transaction:
        """Return a copy moved to ``new_status`` with history and milestones updated.

        Milestone timestamps are only written if they were never set before.
        """
        history = dict(self.status_history)
        history[new_status.value] = now

        milestone = _MILESTONES.get(new_status)
        if milestone is not None and getattr(self, milestone) is None:
            changes[milestone] = now

        return dataclasses.replace(
            self,
            status=new_status,
            status_history=history,
            updated_at=now,
            **changes,
        )

    def with_failed_attempt(self, reason: str, now: datetime) -> Transaction:
        """Return a copy recording one more failed payment attempt."""
        return dataclasses.replace(
            self,
            retry_count=self.retry_count + 1,
            failure_reason=reason,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Document mapping
    # ------------------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored document shape (ID excluded)."""
        doc: dict[str, Any] = {}
        for attr, key in DOCUMENT_FIELDS.items():
            value = getattr(self, attr)
            if isinstance(value, (TransactionStatus, PaymentMethod)):
                value = value.value
            elif attr == "status_history":
                value = dict(value)
            doc[key] = value
        return doc

    def changed_fields(self, previous: Transaction) -> dict[str, Any]:
        """Document fields that differ from ``previous``, for a partial update."""
        current = self.to_document()
        before = previous.to_document()
        return {key: value for key, value in current.items() if before.get(key) != value}

    @classmethod
    def from_document(
        cls,
        doc_id: str,
        data: dict[str, Any],
        on_unknown: DecodeFallbackHook | None = None,
    ) -> Transaction:
        """Deserialize a stored document.

        Unknown enum values fall back to pending / mpesa instead of failing;
        ``on_unknown`` is told about every fallback.
        """
        return cls(
            id=doc_id,
            buyer_id=data["buyerId"],
            farmer_id=data["farmerId"],
            listing_id=data["listingId"],
            amount=_to_decimal(data["amount"]),
            status=TransactionStatus.decode(data.get("status"), on_unknown),
            payment_method=PaymentMethod.decode(data.get("paymentMethod"), on_unknown),
            created_at=data["createdAt"],
            updated_at=data.get("updatedAt"),
            funds_held_at=data.get("fundsHeldAt"),
            delivered_at=data.get("deliveredAt"),
            completed_at=data.get("completedAt"),
            dispute_reason=data.get("disputeReason"),
            retry_count=data.get("retryCount") or 0,
            failure_reason=data.get("failureReason"),
            status_history=dict(data.get("statusHistory") or {}),
        )
