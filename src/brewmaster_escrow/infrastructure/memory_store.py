"""Process-local document store.

Keeps documents in plain dicts keyed by collection and ID. Values are deep
copied on the way in and out so callers can never mutate stored state by
accident. Suitable for tests, demos and single-process deployments.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any

from brewmaster_escrow.domain.protocols import StoredDocument
from brewmaster_escrow.logging_config import get_logger

logger = get_logger(__name__)


class InMemoryDocumentStore:
    """DocumentStore backed by nested dictionaries."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def insert(self, collection: str, fields: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self._collection(collection)[doc_id] = copy.deepcopy(fields)
        logger.debug("memory_store.inserted", collection=collection, doc_id=doc_id)
        return doc_id

    async def get_by_id(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        docs = self._collection(collection)
        if doc_id not in docs:
            raise KeyError(f"No document {doc_id!r} in collection {collection!r}")
        docs[doc_id].update(copy.deepcopy(fields))

    async def query_equals(
        self,
        collection: str,
        field: str,
        value: Any,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[StoredDocument]:
        matches = [
            StoredDocument(id=doc_id, fields=copy.deepcopy(doc))
            for doc_id, doc in self._collection(collection).items()
            if doc.get(field) == value
        ]
        if order_by is not None:
            matches.sort(key=lambda doc: doc.fields[order_by], reverse=descending)
        return matches

    def __len__(self) -> int:
        return sum(len(docs) for docs in self._collections.values())
