"""Farmer earnings statistics computed from a snapshot of transactions."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from brewmaster_escrow.domain.enums import OPEN_STATUSES, TransactionStatus
from brewmaster_escrow.domain.transaction import Transaction


@dataclass(frozen=True)
class FarmerSummary:
    total_earnings: Decimal
    completed_count: int
    pending_count: int
    total_count: int


def summarize_farmer_transactions(transactions: Iterable[Transaction]) -> FarmerSummary:
    """Fold a farmer's transactions into earnings and counts.

    Each transaction lands in at most one bucket, so a transaction counted as
    pending is never also counted as completed. Disputed and cancelled
    transactions only contribute to the total.
    """
    total_earnings = Decimal("0")
    completed = 0
    pending = 0
    total = 0

    for transaction in transactions:
        total += 1
        if transaction.status == TransactionStatus.COMPLETED:
            total_earnings += transaction.amount
            completed += 1
        elif transaction.status in OPEN_STATUSES:
            pending += 1

    return FarmerSummary(
        total_earnings=total_earnings,
        completed_count=completed,
        pending_count=pending,
        total_count=total,
    )
