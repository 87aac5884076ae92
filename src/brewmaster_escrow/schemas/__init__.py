"""Pydantic schemas for engine inputs and read models."""

from brewmaster_escrow.schemas.transaction import (
    CreateTransactionRequest,
    RaiseDisputeRequest,
    TransactionStatusView,
    TransactionView,
    UserStatistics,
)

__all__ = [
    "CreateTransactionRequest",
    "RaiseDisputeRequest",
    "TransactionStatusView",
    "TransactionView",
    "UserStatistics",
]
