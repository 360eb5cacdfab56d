# backend/secattest/apps/evidence/schemas.py
#
# Evidence timestamps inside the body are ISO-8601 strings, not datetimes, so
# the persisted body re-serialises to exactly the bytes that were hashed.

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..training.models import ResponseType, SessionStatus

EVIDENCE_COLLECTION = "training_evidence"
EVIDENCE_SCHEMA_VERSION = 1


class EvidenceSessionSummary(BaseModel):
    session_id: str
    employee_id: str
    tenant_id: str
    attempt_number: int
    total_attempts: int
    status: SessionStatus
    created_at: str
    completed_at: Optional[str] = None


class PolicyAttestation(BaseModel):
    config_hash: str
    role_profile_id: str
    role_profile_version: int
    app_version: str
    pass_threshold: float
    max_attempts: int


class EvidenceOption(BaseModel):
    key: str
    text: str


class EvidenceAnswer(BaseModel):
    selected_option: Optional[str] = None
    free_text_response: Optional[str] = None
    score: float
    llm_rationale: Optional[str] = None
    submitted_at: str


class EvidenceScenario(BaseModel):
    scenario_id: str
    narrative: str
    response_type: ResponseType
    options: Optional[List[EvidenceOption]] = None
    employee_answer: Optional[EvidenceAnswer] = None


class EvidenceQuizQuestion(BaseModel):
    question_id: str
    question: str
    response_type: ResponseType
    options: Optional[List[EvidenceOption]] = None
    employee_answer: Optional[EvidenceAnswer] = None


class EvidenceModule(BaseModel):
    module_index: int
    title: str
    topic_area: str
    module_score: Optional[float] = None
    scenarios: List[EvidenceScenario] = Field(default_factory=list)
    quiz_questions: List[EvidenceQuizQuestion] = Field(default_factory=list)
    completed_at: Optional[str] = None


class ModuleScoreSummary(BaseModel):
    module_index: int
    title: str
    topic_area: str
    score: Optional[float] = None


class EvidenceOutcome(BaseModel):
    aggregate_score: Optional[float] = None
    passed: Optional[bool] = None
    pass_threshold: float
    weak_areas: List[str] = Field(default_factory=list)
    module_scores: List[ModuleScoreSummary] = Field(default_factory=list)


class EvidenceBody(BaseModel):
    session: EvidenceSessionSummary
    policy_attestation: PolicyAttestation
    modules: List[EvidenceModule]
    outcome: EvidenceOutcome


class TrainingEvidence(BaseModel):
    id: str
    tenant_id: str
    session_id: str
    employee_id: str
    schema_version: int = EVIDENCE_SCHEMA_VERSION
    content_hash: str
    generated_at: datetime
    evidence: EvidenceBody


class EvidenceSummary(BaseModel):
    id: str
    session_id: str
    employee_id: str
    status: SessionStatus
    aggregate_score: Optional[float] = None
    passed: Optional[bool] = None
    attempt_number: int
    content_hash: str
    generated_at: datetime


class EvidenceListOut(BaseModel):
    items: List[EvidenceSummary]
    total: int
    limit: int
    offset: int


def to_summary(evidence: TrainingEvidence) -> EvidenceSummary:
    return EvidenceSummary(
        id=evidence.id,
        session_id=evidence.session_id,
        employee_id=evidence.employee_id,
        status=evidence.evidence.session.status,
        aggregate_score=evidence.evidence.outcome.aggregate_score,
        passed=evidence.evidence.outcome.passed,
        attempt_number=evidence.evidence.session.attempt_number,
        content_hash=evidence.content_hash,
        generated_at=evidence.generated_at,
    )
