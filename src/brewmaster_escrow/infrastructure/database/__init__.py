"""Database infrastructure: engine, ORM models, and the SQL document store."""

from brewmaster_escrow.infrastructure.database.document_store import SqlAlchemyDocumentStore
from brewmaster_escrow.infrastructure.database.engine import (
    create_engine_for_url,
    create_session_factory,
    create_tables,
)
from brewmaster_escrow.infrastructure.database.orm_models import (
    COLLECTION_MODELS,
    Base,
    TransactionRecord,
)

__all__ = [
    "COLLECTION_MODELS",
    "Base",
    "TransactionRecord",
    "SqlAlchemyDocumentStore",
    "create_engine_for_url",
    "create_session_factory",
    "create_tables",
]
