"""Infrastructure: document stores, locks and the transaction repository."""

from brewmaster_escrow.infrastructure.locks import InProcessLockProvider, RedisLockProvider
from brewmaster_escrow.infrastructure.memory_store import InMemoryDocumentStore
from brewmaster_escrow.infrastructure.repositories import TransactionRepository

__all__ = [
    "InMemoryDocumentStore",
    "InProcessLockProvider",
    "RedisLockProvider",
    "TransactionRepository",
]
