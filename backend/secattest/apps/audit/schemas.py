from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .models import AuditEventType


class AuditEventCreate(BaseModel):
    event_type: AuditEventType
    employee_id: Optional[str] = None
    ip_address: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: Optional[datetime] = None


class AuditEventRead(BaseModel):
    id: str
    tenant_id: str
    event_type: AuditEventType
    employee_id: Optional[str] = None
    ip_address: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime
