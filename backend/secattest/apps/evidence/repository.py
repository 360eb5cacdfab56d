from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ...storage import FindOptions, StorageAdapter
from ...utils.timestamps import as_utc
from .schemas import EVIDENCE_COLLECTION, TrainingEvidence


class EvidenceRepository:
    """
    Evidence is write-once: no update or delete.
    """

    def __init__(self, storage: StorageAdapter) -> None:
        self.storage = storage

    def create(self, tenant_id: str, data: Dict[str, Any]) -> TrainingEvidence:
        record = self.storage.create(tenant_id, EVIDENCE_COLLECTION, {**data, "tenant_id": tenant_id})
        return TrainingEvidence.model_validate(record)

    def find_by_id(self, tenant_id: str, evidence_id: str) -> Optional[TrainingEvidence]:
        record = self.storage.find_by_id(tenant_id, EVIDENCE_COLLECTION, evidence_id)
        return TrainingEvidence.model_validate(record) if record else None

    def find_by_session_id(self, tenant_id: str, session_id: str) -> Optional[TrainingEvidence]:
        records = self.storage.find_many(
            tenant_id,
            EVIDENCE_COLLECTION,
            FindOptions(where={"session_id": session_id}, limit=1),
        )
        return TrainingEvidence.model_validate(records[0]) if records else None

    def list_by_tenant(
        self,
        tenant_id: str,
        *,
        employee_id: Optional[str] = None,
        status: Optional[str] = None,
        generated_from: Optional[datetime] = None,
        generated_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[TrainingEvidence], int]:
        where: Dict[str, Any] = {}
        if employee_id:
            where["employee_id"] = employee_id
        records = self.storage.find_many(
            tenant_id,
            EVIDENCE_COLLECTION,
            FindOptions(where=where, order_by=[("generated_at", "desc")]),
        )
        items = [TrainingEvidence.model_validate(record) for record in records]
        if status:
            items = [item for item in items if item.evidence.session.status.value == status]
        generated_from, generated_to = as_utc(generated_from), as_utc(generated_to)
        if generated_from:
            items = [item for item in items if item.generated_at >= generated_from]
        if generated_to:
            items = [item for item in items if item.generated_at <= generated_to]
        total = len(items)
        return items[offset: offset + limit], total
