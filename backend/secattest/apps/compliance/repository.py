from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ...storage import FindOptions, StorageAdapter
from .models import UPLOADS_COLLECTION
from .schemas import ComplianceUploadRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ComplianceUploadRepository:
    def __init__(self, storage: StorageAdapter) -> None:
        self.storage = storage

    def create(self, tenant_id: str, data: Dict[str, Any]) -> ComplianceUploadRecord:
        now = _utcnow()
        record = self.storage.create(
            tenant_id,
            UPLOADS_COLLECTION,
            {**data, "tenant_id": tenant_id, "created_at": now, "updated_at": now},
        )
        return ComplianceUploadRecord.model_validate(record)

    def find_by_id(self, tenant_id: str, upload_id: str) -> Optional[ComplianceUploadRecord]:
        record = self.storage.find_by_id(tenant_id, UPLOADS_COLLECTION, upload_id)
        return ComplianceUploadRecord.model_validate(record) if record else None

    def find_by_evidence_id(
        self,
        tenant_id: str,
        evidence_id: str,
        provider: str,
    ) -> Optional[ComplianceUploadRecord]:
        records = self.storage.find_many(
            tenant_id,
            UPLOADS_COLLECTION,
            FindOptions(where={"evidence_id": evidence_id, "provider": provider}, limit=1),
        )
        return ComplianceUploadRecord.model_validate(records[0]) if records else None

    def update(self, tenant_id: str, upload_id: str, patch: Dict[str, Any]) -> ComplianceUploadRecord:
        record = self.storage.update(
            tenant_id,
            UPLOADS_COLLECTION,
            upload_id,
            {**patch, "updated_at": _utcnow()},
        )
        return ComplianceUploadRecord.model_validate(record)

    def list_by_tenant(
        self,
        tenant_id: str,
        *,
        status: Optional[str] = None,
        provider: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[ComplianceUploadRecord], int]:
        where: Dict[str, Any] = {}
        if status:
            where["status"] = status
        if provider:
            where["provider"] = provider
        records = self.storage.find_many(
            tenant_id,
            UPLOADS_COLLECTION,
            FindOptions(where=where, order_by=[("created_at", "desc")]),
        )
        total = len(records)
        page = records[offset: offset + limit]
        return [ComplianceUploadRecord.model_validate(record) for record in page], total
