"""Domain enumerations for the escrow engine.

Values are the identifiers stored in the document store, so they must not
be renamed. They are framework-agnostic (no SQLAlchemy, no pydantic imports).
"""

from __future__ import annotations

import enum
from collections.abc import Callable

# Called with (field_name, raw_value) when a stored value is not recognised.
DecodeFallbackHook = Callable[[str, object], None]


class TransactionStatus(enum.StrEnum):
    """Lifecycle states of an escrow transaction.

    State transitions are enforced by the EscrowStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    PENDING = "pending"
    FUNDS_HELD = "fundsHeld"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"

    @classmethod
    def decode(
        cls, value: object, on_unknown: DecodeFallbackHook | None = None
    ) -> TransactionStatus:
        """Decode a stored status, falling back to PENDING on unknown values."""
        try:
            return cls(value)
        except ValueError:
            if on_unknown is not None:
                on_unknown("status", value)
            return cls.PENDING


class PaymentMethod(enum.StrEnum):
    """External mobile-money channel used to collect the buyer's payment."""

    MPESA = "mpesa"
    MTN_MOBILE_MONEY = "mtnMobileMoney"

    @classmethod
    def decode(
        cls, value: object, on_unknown: DecodeFallbackHook | None = None
    ) -> PaymentMethod:
        """Decode a stored payment method, falling back to MPESA on unknown values."""
        try:
            return cls(value)
        except ValueError:
            if on_unknown is not None:
                on_unknown("paymentMethod", value)
            return cls.MPESA


TERMINAL_STATUSES = frozenset({TransactionStatus.COMPLETED, TransactionStatus.CANCELLED})

# Statuses that still have money moving through escrow.
OPEN_STATUSES = frozenset(
    {TransactionStatus.PENDING, TransactionStatus.FUNDS_HELD, TransactionStatus.DELIVERED}
)
