"""
Tenant-scoped document storage contract.

Every operation takes the tenant id first (or, on a transaction handle, is
bound to the tenant the transaction was opened for), so cross-tenant reads
and writes cannot be expressed through this interface.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

Record = Dict[str, Any]


class FindOptions(BaseModel):
    where: Dict[str, Any] = Field(default_factory=dict)
    # (field, "asc" | "desc") pairs, applied left to right
    order_by: List[Tuple[str, str]] = Field(default_factory=list)
    limit: Optional[int] = Field(None, ge=0)
    offset: int = Field(0, ge=0)


class TransactionContext:
    """Handle passed to a transaction callback; the only way to read or write inside it."""

    def create(self, collection: str, data: Record) -> Record:
        raise NotImplementedError

    def find_by_id(self, collection: str, id: str) -> Optional[Record]:
        raise NotImplementedError

    def find_many(self, collection: str, options: Optional[FindOptions] = None) -> List[Record]:
        raise NotImplementedError

    def update(self, collection: str, id: str, patch: Record) -> Record:
        raise NotImplementedError

    def delete(self, collection: str, id: str) -> None:
        raise NotImplementedError


class StorageAdapter:
    def create(self, tenant_id: str, collection: str, data: Record) -> Record:
        raise NotImplementedError

    def find_by_id(self, tenant_id: str, collection: str, id: str) -> Optional[Record]:
        raise NotImplementedError

    def find_many(
        self,
        tenant_id: str,
        collection: str,
        options: Optional[FindOptions] = None,
    ) -> List[Record]:
        raise NotImplementedError

    def update(self, tenant_id: str, collection: str, id: str, patch: Record) -> Record:
        raise NotImplementedError

    def delete(self, tenant_id: str, collection: str, id: str) -> None:
        raise NotImplementedError

    def transaction(self, tenant_id: str, fn: Callable[[TransactionContext], T]) -> T:
        """
        Run ``fn`` atomically. Commits when ``fn`` returns, rolls back and
        re-raises when it raises.
        """
        raise NotImplementedError


def apply_find_options(records: List[Record], options: Optional[FindOptions]) -> List[Record]:
    """Equality filter, stable multi-key sort and pagination over decoded records."""
    if options is None:
        return records
    rows = [
        record
        for record in records
        if all(record.get(key) == value for key, value in options.where.items())
    ]
    # Sort by the last key first so earlier keys take precedence.
    for field, direction in reversed(options.order_by):
        rows.sort(
            key=lambda record: (record.get(field) is not None, record.get(field)),
            reverse=direction.lower() == "desc",
        )
    rows = rows[options.offset:]
    if options.limit is not None:
        rows = rows[: options.limit]
    return rows
