"""Transaction repository over an injected DocumentStore.

The repository is the only place that knows transactions live in the
"transactions" collection and how records map to documents. Any exception
raised by the store is re-raised as StoreError so the engine deals with a
single storage failure type.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from brewmaster_escrow.domain.exceptions import StoreError
from brewmaster_escrow.domain.transaction import TRANSACTIONS_COLLECTION, Transaction
from brewmaster_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from brewmaster_escrow.domain.enums import DecodeFallbackHook
    from brewmaster_escrow.domain.protocols import DocumentStore

logger = get_logger(__name__)


@contextmanager
def _store_call(operation: str, transaction_id: str | None = None) -> Iterator[None]:
    try:
        yield
    except StoreError:
        raise
    except Exception as exc:
        logger.error(
            "store.call_failed",
            operation=operation,
            transaction_id=transaction_id,
            error=str(exc),
        )
        raise StoreError(
            f"Document store failed during {operation}: {exc}",
            transaction_id=transaction_id,
            operation=operation,
        ) from exc


class TransactionRepository:
    """Data access for escrow transactions."""

    def __init__(
        self,
        store: DocumentStore,
        on_decode_fallback: DecodeFallbackHook | None = None,
        collection: str = TRANSACTIONS_COLLECTION,
    ) -> None:
        self._store = store
        self._on_decode_fallback = on_decode_fallback
        self._collection = collection

    async def add(self, transaction: Transaction) -> Transaction:
        """Insert a new transaction and return it with the store-assigned ID."""
        with _store_call("insert"):
            doc_id = await self._store.insert(self._collection, transaction.to_document())
        return dataclasses.replace(transaction, id=doc_id)

    async def get_by_id(self, transaction_id: str) -> Transaction | None:
        """Fetch a transaction by ID, or None if absent."""
        with _store_call("get_by_id", transaction_id):
            data = await self._store.get_by_id(self._collection, transaction_id)
        if data is None:
            return None
        return self._decode(transaction_id, data)

    async def save(self, previous: Transaction, updated: Transaction) -> Transaction:
        """Persist the fields of ``updated`` that differ from ``previous``."""
        changes = updated.changed_fields(previous)
        if not changes:
            return updated
        with _store_call("update", updated.id):
            await self._store.update(self._collection, updated.id, changes)
        return updated

    async def find_by(self, field: str, value: Any) -> list[Transaction]:
        """Fetch transactions whose document ``field`` equals ``value``, newest first."""
        with _store_call(f"query:{field}"):
            docs = await self._store.query_equals(
                self._collection,
                field,
                value,
                order_by="createdAt",
                descending=True,
            )
        return [self._decode(doc.id, doc.fields) for doc in docs]

    async def find_by_buyer(self, buyer_id: str) -> list[Transaction]:
        return await self.find_by("buyerId", buyer_id)

    async def find_by_farmer(self, farmer_id: str) -> list[Transaction]:
        return await self.find_by("farmerId", farmer_id)

    async def find_by_listing(self, listing_id: str) -> list[Transaction]:
        return await self.find_by("listingId", listing_id)

    def _decode(self, doc_id: str, data: dict[str, Any]) -> Transaction:
        def on_unknown(field: str, raw_value: object) -> None:
            logger.warning(
                "transaction.unknown_enum_value",
                transaction_id=doc_id,
                field=field,
                raw_value=raw_value,
            )
            if self._on_decode_fallback is not None:
                self._on_decode_fallback(field, raw_value)

        return Transaction.from_document(doc_id, data, on_unknown=on_unknown)
