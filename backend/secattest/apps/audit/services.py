from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ...storage import FindOptions, StorageAdapter
from ...utils.timestamps import as_utc
from . import schemas
from .models import AUDIT_EVENTS_COLLECTION, AuditEventType

logger = logging.getLogger(__name__)

# Audit records carry identifiers, scores and counts. Anything that could hold
# employee free text, rubrics or generated instructional material is dropped.
CONTENT_KEYS = frozenset(
    {
        "content",
        "free_text_response",
        "instruction",
        "llm_rationale",
        "narrative",
        "question",
        "rationale",
        "response",
        "rubric",
        "scenarios",
        "quiz",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _strip_content(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {key: value for key, value in (metadata or {}).items() if key not in CONTENT_KEYS}


def create_audit_event(
    storage: StorageAdapter,
    *,
    tenant_id: str,
    data: schemas.AuditEventCreate,
) -> schemas.AuditEventRead:
    record = storage.create(
        tenant_id,
        AUDIT_EVENTS_COLLECTION,
        {
            "tenant_id": tenant_id,
            "event_type": data.event_type,
            "employee_id": data.employee_id,
            "ip_address": data.ip_address,
            "metadata": _strip_content(data.metadata),
            "occurred_at": data.occurred_at or _utcnow(),
        },
    )
    return schemas.AuditEventRead.model_validate(record)


def log_event(
    storage: StorageAdapter,
    *,
    tenant_id: str,
    event_type: AuditEventType,
    employee_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> Optional[schemas.AuditEventRead]:
    """
    Best-effort audit event logger.
    - For critical events, raise on failure.
    - For non-critical events, log warning and continue.
    """
    try:
        return create_audit_event(
            storage,
            tenant_id=tenant_id,
            data=schemas.AuditEventCreate(
                event_type=event_type,
                employee_id=employee_id,
                ip_address=ip_address,
                metadata=metadata or {},
            ),
        )
    except Exception:
        logger.warning(
            "Failed to log audit event",
            extra={
                "tenant_id": tenant_id,
                "event_type": getattr(event_type, "value", event_type),
                "employee_id": employee_id,
                "critical": critical,
            },
        )
        if critical:
            raise
        return None


def list_audit_events(
    storage: StorageAdapter,
    *,
    tenant_id: str,
    event_type: Optional[AuditEventType] = None,
    employee_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[schemas.AuditEventRead]:
    where: Dict[str, Any] = {}
    if event_type:
        where["event_type"] = event_type.value
    if employee_id:
        where["employee_id"] = employee_id
    records = storage.find_many(
        tenant_id,
        AUDIT_EVENTS_COLLECTION,
        FindOptions(where=where, order_by=[("occurred_at", "desc")]),
    )
    events = [schemas.AuditEventRead.model_validate(record) for record in records]
    start, end = as_utc(start), as_utc(end)
    if start:
        events = [event for event in events if event.occurred_at >= start]
    if end:
        events = [event for event in events if event.occurred_at <= end]
    return events
