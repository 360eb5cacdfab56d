from __future__ import annotations

from sqlalchemy import Column, DateTime, Index, String, func
from sqlalchemy.types import JSON

from ..database import Base
from ..utils.identifiers import generate_uuid7


class StoredRecord(Base):
    """
    One document in a tenant-scoped collection.

    Sessions, modules, evidence, upload records and audit events all live in
    this table, distinguished by ``collection``.
    """

    __tablename__ = "records"

    id = Column(String(36), primary_key=True, index=True, default=generate_uuid7)
    tenant_id = Column(String(64), nullable=False, index=True)
    collection = Column(String(64), nullable=False)
    data = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_records_tenant_collection", "tenant_id", "collection"),
    )

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<StoredRecord id={self.id} collection={self.collection} tenant={self.tenant_id}>"
