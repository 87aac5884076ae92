"""Domain exceptions for the escrow engine.

These exceptions are framework-agnostic and represent business rule violations.
Each carries the transaction ID, the attempted operation and the status the
transaction was in, so callers can render their own user-facing message.
"""

from __future__ import annotations


class EscrowError(Exception):
    """Base exception for all escrow engine errors."""

    def __init__(
        self,
        message: str,
        code: str = "ESCROW_ERROR",
        transaction_id: str | None = None,
        operation: str | None = None,
        current_status: str | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.transaction_id = transaction_id
        self.operation = operation
        self.current_status = current_status
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "transaction_id": self.transaction_id,
            "operation": self.operation,
            "current_status": self.current_status,
        }


# --- Lookup Errors ---


class TransactionNotFoundError(EscrowError):
    """Raised when an operation targets an unknown transaction ID."""

    def __init__(self, transaction_id: str, operation: str | None = None) -> None:
        super().__init__(
            message=f"Transaction not found: {transaction_id}",
            code="TRANSACTION_NOT_FOUND",
            transaction_id=transaction_id,
            operation=operation,
        )


# --- State Machine Errors ---


class InvalidTransitionError(EscrowError):
    """Raised when an operation is attempted from a status that does not allow it.

    Example: confirm_delivery on a pending transaction (funds not held yet).
    """

    def __init__(self, transaction_id: str, operation: str, current_status: str) -> None:
        super().__init__(
            message=f"Cannot {operation} transaction {transaction_id} in status {current_status}",
            code="INVALID_TRANSITION",
            transaction_id=transaction_id,
            operation=operation,
            current_status=current_status,
        )


class FundsNotReleasableError(EscrowError):
    """Raised when receipt is confirmed on a transaction whose funds cannot be released."""

    def __init__(self, transaction_id: str, current_status: str, reason: str) -> None:
        super().__init__(
            message=f"Cannot release funds for transaction {transaction_id}: {reason}",
            code="FUNDS_NOT_RELEASABLE",
            transaction_id=transaction_id,
            operation="confirm_receipt_and_release",
            current_status=current_status,
        )
        self.reason = reason


# --- Payment Errors ---


class PaymentFailedError(EscrowError):
    """Raised when the gateway rejects a transfer; the transaction is left unchanged."""

    def __init__(
        self,
        transaction_id: str,
        operation: str,
        current_status: str,
        reason: str,
    ) -> None:
        super().__init__(
            message=f"Payment failed for transaction {transaction_id}: {reason}",
            code="PAYMENT_FAILED",
            transaction_id=transaction_id,
            operation=operation,
            current_status=current_status,
        )
        self.reason = reason


class RetryExhaustedError(EscrowError):
    """Raised when payment collection failed on every allowed attempt."""

    def __init__(self, transaction_id: str, retry_count: int, reason: str | None) -> None:
        super().__init__(
            message=f"Payment failed after {retry_count} retries for transaction {transaction_id}",
            code="RETRY_EXHAUSTED",
            transaction_id=transaction_id,
            operation="attempt_payment",
            current_status="cancelled",
        )
        self.retry_count = retry_count
        self.last_failure_reason = reason


# --- Input Errors ---


class TransactionValidationError(EscrowError):
    """Raised when operation input is rejected before touching the store."""

    def __init__(self, operation: str, errors: list[dict], transaction_id: str | None = None) -> None:
        super().__init__(
            message=f"Invalid input for {operation}: {len(errors)} error(s)",
            code="VALIDATION_ERROR",
            transaction_id=transaction_id,
            operation=operation,
        )
        self.errors = errors


# --- Storage Errors ---


class StoreError(EscrowError):
    """Wraps any failure raised by the backing document store."""

    def __init__(
        self,
        message: str,
        transaction_id: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code="STORE_ERROR",
            transaction_id=transaction_id,
            operation=operation,
        )
