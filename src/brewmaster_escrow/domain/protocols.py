"""Collaborator protocols for the escrow engine.

Defines the interfaces the engine depends on: the document store, the
payment gateway and the per-transaction lock provider. These are Protocols
(structural subtyping), so concrete implementations don't need to inherit
from a base class, they just need to match the shape.

The domain layer has ZERO imports from SQLAlchemy, Redis, or any external service.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from brewmaster_escrow.domain.transaction import Transaction


@dataclass(frozen=True)
class StoredDocument:
    """A document returned by a query, paired with its store-assigned ID."""

    id: str
    fields: dict[str, Any]


@runtime_checkable
class DocumentStore(Protocol):
    """Key-value document store addressed by collection name and document ID.

    Concrete implementations:
        - infrastructure/memory_store.py           (process-local)
        - infrastructure/database/document_store.py (SQLAlchemy async)
    """

    async def insert(self, collection: str, fields: dict[str, Any]) -> str:
        """Insert a document and return its generated ID."""
        ...

    async def get_by_id(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return the document fields, or None if the ID is unknown."""
        ...

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge ``fields`` into an existing document; other fields are untouched."""
        ...

    async def query_equals(
        self,
        collection: str,
        field: str,
        value: Any,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[StoredDocument]:
        """Return documents whose ``field`` equals ``value``, optionally ordered."""
        ...


@dataclass(frozen=True)
class GatewayResult:
    """Outcome of one call to the payment gateway.

    Attributes:
        success: Whether the money moved.
        failure_reason: Gateway explanation when it did not.
        reference: Gateway-side reference for a successful transfer.
    """

    success: bool
    failure_reason: str | None = None
    reference: str | None = None

    @classmethod
    def ok(cls, reference: str | None = None) -> GatewayResult:
        return cls(success=True, reference=reference)

    @classmethod
    def failed(cls, reason: str) -> GatewayResult:
        return cls(success=False, failure_reason=reason)


@runtime_checkable
class PaymentGateway(Protocol):
    """Mobile-money gateway used to collect and release escrowed funds.

    Concrete implementations:
        - services/payment_gateway.py (SimulatedPaymentGateway)
    """

    async def collect_payment(self, transaction: Transaction) -> GatewayResult:
        """Collect the buyer's payment into escrow."""
        ...

    async def release_funds(self, transaction: Transaction) -> GatewayResult:
        """Transfer escrowed funds to the farmer."""
        ...


@runtime_checkable
class LockProvider(Protocol):
    """Provides mutual exclusion keyed by transaction ID.

    Concrete implementations:
        - infrastructure/locks.py (InProcessLockProvider, RedisLockProvider)
    """

    def lock(self, transaction_id: str) -> AbstractAsyncContextManager[None]:
        """Return an async context manager holding the lock for ``transaction_id``."""
        ...
