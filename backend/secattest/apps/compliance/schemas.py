from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .models import UploadErrorCode, UploadStatus


class UploadFailure(BaseModel):
    error_code: UploadErrorCode
    message: str
    retryable: bool


class UploadResult(BaseModel):
    success: bool
    provider_reference_id: Optional[str] = None
    failure: Optional[UploadFailure] = None

    @classmethod
    def ok(cls, provider_reference_id: Optional[str]) -> "UploadResult":
        return cls(success=True, provider_reference_id=provider_reference_id)

    @classmethod
    def fail(cls, error_code: UploadErrorCode, message: str, *, retryable: bool) -> "UploadResult":
        return cls(
            success=False,
            failure=UploadFailure(error_code=error_code, message=message, retryable=retryable),
        )


class ComplianceUploadRecord(BaseModel):
    id: str
    tenant_id: str
    evidence_id: str
    session_id: Optional[str] = None
    provider: str
    status: UploadStatus
    attempt_count: int = 0
    max_attempts: int
    provider_reference_id: Optional[str] = None
    last_error: Optional[str] = None
    last_error_code: Optional[UploadErrorCode] = None
    retryable: Optional[bool] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
