from __future__ import annotations

import logging
import random
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from ...config import TenantSettings
from ...storage import StorageAdapter
from ..audit import services as audit_services
from ..audit.models import AuditEventType
from ..evidence.pdf_renderer import render_evidence_pdf
from ..evidence.repository import EvidenceRepository
from ..evidence.schemas import TrainingEvidence
from .models import UploadErrorCode, UploadStatus
from .providers import ComplianceProvider, get_provider
from .repository import ComplianceUploadRepository
from .schemas import ComplianceUploadRecord, UploadFailure

logger = logging.getLogger(__name__)

Renderer = Callable[[TrainingEvidence], bytes]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_delay_ms(
    attempt: int,
    initial_delay_ms: int,
    max_delay_ms: int,
    *,
    jitter: Callable[[], float] = random.random,
) -> float:
    """Exponential backoff for the 0-based ``attempt``, capped, plus up to 50% jitter."""
    capped = min(initial_delay_ms * (2 ** attempt), max_delay_ms)
    return capped + jitter() * 0.5 * capped


def _fail(
    repo: ComplianceUploadRepository,
    tenant_id: str,
    upload: ComplianceUploadRecord,
    failure: UploadFailure,
    attempt_count: int,
) -> ComplianceUploadRecord:
    now = _utcnow()
    return repo.update(
        tenant_id,
        upload.id,
        {
            "status": UploadStatus.FAILED,
            "attempt_count": attempt_count,
            "last_error": failure.message,
            "last_error_code": failure.error_code,
            "retryable": failure.retryable,
            "completed_at": now,
        },
    )


def _record_precondition_failure(
    repo: ComplianceUploadRepository,
    tenant_id: str,
    *,
    evidence_id: str,
    session_id: Optional[str],
    provider: str,
    max_attempts: int,
    failure: UploadFailure,
) -> ComplianceUploadRecord:
    return repo.create(
        tenant_id,
        {
            "evidence_id": evidence_id,
            "session_id": session_id,
            "provider": provider,
            "status": UploadStatus.FAILED,
            "attempt_count": 0,
            "max_attempts": max_attempts,
            "last_error": failure.message,
            "last_error_code": failure.error_code,
            "retryable": failure.retryable,
            "completed_at": _utcnow(),
        },
    )


def dispatch_upload(
    storage: StorageAdapter,
    settings: TenantSettings,
    evidence_id: str,
    *,
    providers: Optional[Dict[str, ComplianceProvider]] = None,
    renderer: Optional[Renderer] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[ComplianceUploadRecord]:
    """
    Deliver one evidence record to the tenant's compliance provider.

    Returns None when the tenant has no integration (or an unknown provider)
    and the existing upload record when one is already on file; in both cases
    nothing else is read or sent. Otherwise returns the final upload record.
    """
    config = settings.compliance
    if config is None:
        return None

    tenant_id = settings.tenant_id
    provider = (providers or {}).get(config.provider) or get_provider(config.provider)
    if provider is None:
        logger.warning(
            "Unknown compliance provider",
            extra={"tenant_id": tenant_id, "provider": config.provider},
        )
        return None

    uploads = ComplianceUploadRepository(storage)
    existing = uploads.find_by_evidence_id(tenant_id, evidence_id, config.provider)
    if existing is not None:
        return existing

    max_attempts = config.retry.max_attempts

    evidence = EvidenceRepository(storage).find_by_id(tenant_id, evidence_id)
    if evidence is None:
        failure = UploadFailure(
            error_code=UploadErrorCode.EVIDENCE_NOT_FOUND,
            message=f"Evidence '{evidence_id}' not found",
            retryable=False,
        )
        logger.error(
            "Compliance upload failed",
            extra={"tenant_id": tenant_id, "evidence_id": evidence_id, "error_code": failure.error_code.value},
        )
        return _record_precondition_failure(
            uploads,
            tenant_id,
            evidence_id=evidence_id,
            session_id=None,
            provider=config.provider,
            max_attempts=max_attempts,
            failure=failure,
        )

    render = renderer or (lambda ev: render_evidence_pdf(ev, settings.display_name))
    try:
        pdf = render(evidence)
    except Exception as exc:
        failure = UploadFailure(
            error_code=UploadErrorCode.PDF_RENDER_FAILED,
            message=f"Failed to render evidence PDF: {exc}",
            retryable=False,
        )
        logger.error(
            "Compliance upload failed",
            extra={"tenant_id": tenant_id, "evidence_id": evidence_id, "error_code": failure.error_code.value},
        )
        return _record_precondition_failure(
            uploads,
            tenant_id,
            evidence_id=evidence_id,
            session_id=evidence.session_id,
            provider=config.provider,
            max_attempts=max_attempts,
            failure=failure,
        )

    upload = uploads.create(
        tenant_id,
        {
            "evidence_id": evidence_id,
            "session_id": evidence.session_id,
            "provider": config.provider,
            "status": UploadStatus.PENDING,
            "attempt_count": 0,
            "max_attempts": max_attempts,
        },
    )

    failure: Optional[UploadFailure] = None
    for attempt in range(1, max_attempts + 1):
        result = provider.upload_evidence(pdf, evidence, config)

        if result.success:
            upload = uploads.update(
                tenant_id,
                upload.id,
                {
                    "status": UploadStatus.SUCCEEDED,
                    "attempt_count": attempt,
                    "provider_reference_id": result.provider_reference_id,
                    "last_error": None,
                    "last_error_code": None,
                    "retryable": None,
                    "completed_at": _utcnow(),
                },
            )
            logger.info(
                "Compliance upload succeeded",
                extra={
                    "tenant_id": tenant_id,
                    "evidence_id": evidence_id,
                    "provider": config.provider,
                    "attempt": attempt,
                },
            )
            audit_services.log_event(
                storage,
                tenant_id=tenant_id,
                event_type=AuditEventType.INTEGRATION_PUSH_SUCCESS,
                employee_id=evidence.employee_id,
                metadata={
                    "evidence_id": evidence_id,
                    "session_id": evidence.session_id,
                    "provider": config.provider,
                    "upload_id": upload.id,
                    "attempt_count": attempt,
                    "provider_reference_id": result.provider_reference_id,
                },
            )
            return upload

        failure = result.failure or UploadFailure(
            error_code=UploadErrorCode.SERVER_ERROR,
            message="Provider reported failure without detail",
            retryable=True,
        )
        upload = uploads.update(
            tenant_id,
            upload.id,
            {
                "attempt_count": attempt,
                "last_error": failure.message,
                "last_error_code": failure.error_code,
                "retryable": failure.retryable,
            },
        )
        if not failure.retryable:
            break
        if attempt < max_attempts:
            delay_ms = compute_delay_ms(
                attempt - 1,
                config.retry.initial_delay_ms,
                config.retry.max_delay_ms,
            )
            logger.info(
                "Compliance upload attempt failed, retrying",
                extra={
                    "tenant_id": tenant_id,
                    "evidence_id": evidence_id,
                    "provider": config.provider,
                    "attempt": attempt,
                    "error_code": failure.error_code.value,
                    "delay_ms": round(delay_ms),
                },
            )
            sleep(delay_ms / 1000)

    upload = _fail(uploads, tenant_id, upload, failure, upload.attempt_count)
    logger.error(
        "Compliance upload failed",
        extra={
            "tenant_id": tenant_id,
            "evidence_id": evidence_id,
            "provider": config.provider,
            "attempts": upload.attempt_count,
            "error_code": failure.error_code.value,
        },
    )
    audit_services.log_event(
        storage,
        tenant_id=tenant_id,
        event_type=AuditEventType.INTEGRATION_PUSH_FAILURE,
        employee_id=evidence.employee_id,
        metadata={
            "evidence_id": evidence_id,
            "session_id": evidence.session_id,
            "provider": config.provider,
            "upload_id": upload.id,
            "attempt_count": upload.attempt_count,
            "error_code": failure.error_code.value,
            "retryable": failure.retryable,
        },
    )
    return upload
