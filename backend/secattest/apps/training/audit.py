"""
Training audit events: one per state-changing workflow operation.

Metadata is limited to identifiers, scores and counts.
"""

from __future__ import annotations

from typing import List, Optional

from ...storage import StorageAdapter
from ..audit import services as audit_services
from ..audit.models import AuditEventType


def log_session_started(
    storage: StorageAdapter,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    role_profile_id: str,
    role_profile_version: int,
    module_count: int,
    attempt_number: int,
) -> None:
    audit_services.log_event(
        storage,
        tenant_id=tenant_id,
        event_type=AuditEventType.TRAINING_SESSION_STARTED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "role_profile_id": role_profile_id,
            "role_profile_version": role_profile_version,
            "module_count": module_count,
            "attempt_number": attempt_number,
        },
    )


def log_module_completed(
    storage: StorageAdapter,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    module_index: int,
    module_score: float,
    scenario_count: int,
    quiz_count: int,
) -> None:
    audit_services.log_event(
        storage,
        tenant_id=tenant_id,
        event_type=AuditEventType.TRAINING_MODULE_COMPLETED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "module_index": module_index,
            "module_score": module_score,
            "scenario_count": scenario_count,
            "quiz_count": quiz_count,
        },
    )


def log_quiz_submitted(
    storage: StorageAdapter,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    module_index: int,
    answer_count: int,
    module_score: float,
) -> None:
    audit_services.log_event(
        storage,
        tenant_id=tenant_id,
        event_type=AuditEventType.TRAINING_QUIZ_SUBMITTED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "module_index": module_index,
            "answer_count": answer_count,
            "module_score": module_score,
        },
    )


def log_evaluation_completed(
    storage: StorageAdapter,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    aggregate_score: float,
    passed: bool,
    attempt_number: int,
    weak_areas: List[str],
) -> None:
    audit_services.log_event(
        storage,
        tenant_id=tenant_id,
        event_type=AuditEventType.TRAINING_EVALUATION_COMPLETED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "aggregate_score": aggregate_score,
            "passed": passed,
            "attempt_number": attempt_number,
            "weak_area_count": len(weak_areas),
        },
    )


def log_remediation_initiated(
    storage: StorageAdapter,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    attempt_number: int,
    weak_area_count: int,
    module_count: int,
) -> None:
    audit_services.log_event(
        storage,
        tenant_id=tenant_id,
        event_type=AuditEventType.TRAINING_REMEDIATION_INITIATED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "attempt_number": attempt_number,
            "weak_area_count": weak_area_count,
            "module_count": module_count,
        },
    )


def log_session_abandoned(
    storage: StorageAdapter,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    attempt_number: int,
    modules_completed: int,
    total_modules: int,
) -> None:
    audit_services.log_event(
        storage,
        tenant_id=tenant_id,
        event_type=AuditEventType.TRAINING_SESSION_ABANDONED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "attempt_number": attempt_number,
            "modules_completed": modules_completed,
            "total_modules": total_modules,
        },
    )


def log_session_exhausted(
    storage: StorageAdapter,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    attempt_number: int,
    aggregate_score: Optional[float],
) -> None:
    audit_services.log_event(
        storage,
        tenant_id=tenant_id,
        event_type=AuditEventType.TRAINING_SESSION_EXHAUSTED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "attempt_number": attempt_number,
            "aggregate_score": aggregate_score,
        },
    )
