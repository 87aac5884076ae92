"""DocumentStore adapter over SQLAlchemy async sessions.

Each collection maps to one ORM model (see orm_models.COLLECTION_MODELS);
document keys map to mapped attributes through the model's document_fields.
Every call runs in its own session and commits before returning. The
mapper's version column only covers the load-and-flush inside one update
call; reads and writes run in separate sessions, so callers in several
processes serialise through RedisLockProvider.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from brewmaster_escrow.domain.protocols import StoredDocument
from brewmaster_escrow.infrastructure.database.orm_models import COLLECTION_MODELS

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from brewmaster_escrow.infrastructure.database.orm_models import Base


class SqlAlchemyDocumentStore:
    """DocumentStore backed by one SQL table per collection."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        models: dict[str, type[Base]] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._models = models if models is not None else COLLECTION_MODELS

    def _model(self, collection: str) -> type[Base]:
        try:
            return self._models[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    @staticmethod
    def _attributes(model: type[Base], fields: dict[str, Any]) -> dict[str, Any]:
        unknown = fields.keys() - model.document_fields.keys()
        if unknown:
            raise ValueError(f"Unknown fields for {model.__tablename__}: {sorted(unknown)}")
        return {model.document_fields[key]: value for key, value in fields.items()}

    @staticmethod
    def _to_fields(model: type[Base], record: Base) -> dict[str, Any]:
        return {key: getattr(record, attr) for key, attr in model.document_fields.items()}

    async def insert(self, collection: str, fields: dict[str, Any]) -> str:
        model = self._model(collection)
        record = model(**self._attributes(model, fields))
        async with self._session_factory() as session, session.begin():
            session.add(record)
            await session.flush()
            return record.id

    async def get_by_id(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        model = self._model(collection)
        async with self._session_factory() as session:
            record = await session.get(model, doc_id)
            if record is None:
                return None
            return self._to_fields(model, record)

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        model = self._model(collection)
        attributes = self._attributes(model, fields)
        async with self._session_factory() as session, session.begin():
            record = await session.get(model, doc_id)
            if record is None:
                raise KeyError(f"No document {doc_id!r} in collection {collection!r}")
            for attr, value in attributes.items():
                setattr(record, attr, value)

    async def query_equals(
        self,
        collection: str,
        field: str,
        value: Any,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[StoredDocument]:
        model = self._model(collection)
        (attr,) = self._attributes(model, {field: value})
        stmt = select(model).where(getattr(model, attr) == value)
        if order_by is not None:
            order_column = getattr(model, model.document_fields[order_by])
            stmt = stmt.order_by(order_column.desc() if descending else order_column.asc())

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                StoredDocument(id=record.id, fields=self._to_fields(model, record))
                for record in result.scalars().all()
            ]
