"""Domain layer: pure business logic with zero framework dependencies."""

from brewmaster_escrow.domain.enums import (
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    PaymentMethod,
    TransactionStatus,
)
from brewmaster_escrow.domain.exceptions import (
    EscrowError,
    FundsNotReleasableError,
    InvalidTransitionError,
    PaymentFailedError,
    RetryExhaustedError,
    StoreError,
    TransactionNotFoundError,
    TransactionValidationError,
)
from brewmaster_escrow.domain.protocols import (
    DocumentStore,
    GatewayResult,
    LockProvider,
    PaymentGateway,
    StoredDocument,
)
from brewmaster_escrow.domain.state_machine import (
    EscrowStateMachine,
    validate_transition,
)
from brewmaster_escrow.domain.statistics import FarmerSummary, summarize_farmer_transactions
from brewmaster_escrow.domain.transaction import TRANSACTIONS_COLLECTION, Transaction

__all__ = [
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",
    "PaymentMethod",
    "TransactionStatus",
    "EscrowError",
    "FundsNotReleasableError",
    "InvalidTransitionError",
    "PaymentFailedError",
    "RetryExhaustedError",
    "StoreError",
    "TransactionNotFoundError",
    "TransactionValidationError",
    "DocumentStore",
    "GatewayResult",
    "LockProvider",
    "PaymentGateway",
    "StoredDocument",
    "EscrowStateMachine",
    "validate_transition",
    "FarmerSummary",
    "summarize_farmer_transactions",
    "TRANSACTIONS_COLLECTION",
    "Transaction",
]
