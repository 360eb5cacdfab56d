from __future__ import annotations

import json
import logging
from typing import Any, Callable, List, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ..utils.hashing import serialize_value
from ..utils.identifiers import generate_uuid7
from .adapter import FindOptions, Record, StorageAdapter, TransactionContext, apply_find_options
from .models import StoredRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_json(data: Any) -> Any:
    """Normalise enums, datetimes and pydantic models into plain JSON values."""
    return json.loads(json.dumps(data, default=serialize_value))


def _to_record(row: StoredRecord) -> Record:
    record = dict(row.data or {})
    record["id"] = row.id
    return record


class _SessionOps:
    """Tenant/collection-scoped statements shared by the adapter and transaction handle."""

    def __init__(self, session: Session, tenant_id: str, *, lock_reads: bool = False) -> None:
        self.session = session
        self.tenant_id = tenant_id
        self.lock_reads = lock_reads

    def _row(self, collection: str, id: str) -> Optional[StoredRecord]:
        stmt = select(StoredRecord).where(
            StoredRecord.id == id,
            StoredRecord.tenant_id == self.tenant_id,
            StoredRecord.collection == collection,
        )
        if self.lock_reads and self.session.get_bind().dialect.name != "sqlite":
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalars().first()

    def create(self, collection: str, data: Record) -> Record:
        payload = _to_json({k: v for k, v in data.items() if k != "id"})
        row = StoredRecord(
            id=generate_uuid7(),
            tenant_id=self.tenant_id,
            collection=collection,
            data=payload,
        )
        self.session.add(row)
        self.session.flush()
        return _to_record(row)

    def find_by_id(self, collection: str, id: str) -> Optional[Record]:
        row = self._row(collection, id)
        return _to_record(row) if row else None

    def find_many(self, collection: str, options: Optional[FindOptions] = None) -> List[Record]:
        stmt = (
            select(StoredRecord)
            .where(
                StoredRecord.tenant_id == self.tenant_id,
                StoredRecord.collection == collection,
            )
            .order_by(StoredRecord.id.asc())
        )
        rows = self.session.execute(stmt).scalars().all()
        return apply_find_options([_to_record(row) for row in rows], options)

    def update(self, collection: str, id: str, patch: Record) -> Record:
        row = self._row(collection, id)
        if row is None:
            raise KeyError(f"{collection} record '{id}' not found")
        merged = dict(row.data or {})
        merged.update(_to_json({k: v for k, v in patch.items() if k != "id"}))
        # Reassign so the JSON column is flagged dirty.
        row.data = merged
        self.session.flush()
        return _to_record(row)

    def delete(self, collection: str, id: str) -> None:
        row = self._row(collection, id)
        if row is not None:
            self.session.delete(row)
            self.session.flush()


class SQLAlchemyTransaction(TransactionContext):
    def __init__(self, ops: _SessionOps) -> None:
        self._ops = ops

    def create(self, collection: str, data: Record) -> Record:
        return self._ops.create(collection, data)

    def find_by_id(self, collection: str, id: str) -> Optional[Record]:
        return self._ops.find_by_id(collection, id)

    def find_many(self, collection: str, options: Optional[FindOptions] = None) -> List[Record]:
        return self._ops.find_many(collection, options)

    def update(self, collection: str, id: str, patch: Record) -> Record:
        return self._ops.update(collection, id, patch)

    def delete(self, collection: str, id: str) -> None:
        self._ops.delete(collection, id)


class SQLAlchemyStorage(StorageAdapter):
    """
    StorageAdapter over the ``records`` table.

    Each call opens a short-lived session from ``session_factory``; a
    transaction keeps one session open for the whole callback and reads
    with ``SELECT ... FOR UPDATE`` on dialects that support it.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def _run(self, tenant_id: str, fn: Callable[[_SessionOps], T], *, lock_reads: bool = False) -> T:
        with self.session_factory() as session:
            with session.begin():
                return fn(_SessionOps(session, tenant_id, lock_reads=lock_reads))

    def create(self, tenant_id: str, collection: str, data: Record) -> Record:
        return self._run(tenant_id, lambda ops: ops.create(collection, data))

    def find_by_id(self, tenant_id: str, collection: str, id: str) -> Optional[Record]:
        return self._run(tenant_id, lambda ops: ops.find_by_id(collection, id))

    def find_many(
        self,
        tenant_id: str,
        collection: str,
        options: Optional[FindOptions] = None,
    ) -> List[Record]:
        return self._run(tenant_id, lambda ops: ops.find_many(collection, options))

    def update(self, tenant_id: str, collection: str, id: str, patch: Record) -> Record:
        return self._run(tenant_id, lambda ops: ops.update(collection, id, patch))

    def delete(self, tenant_id: str, collection: str, id: str) -> None:
        self._run(tenant_id, lambda ops: ops.delete(collection, id))

    def transaction(self, tenant_id: str, fn: Callable[[TransactionContext], T]) -> T:
        try:
            return self._run(
                tenant_id,
                lambda ops: fn(SQLAlchemyTransaction(ops)),
                lock_reads=True,
            )
        except Exception:
            logger.debug(
                "Storage transaction rolled back",
                extra={"tenant_id": tenant_id},
            )
            raise
