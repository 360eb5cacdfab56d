from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from ...config import TenantSettings
from ...errors import ExpectedTerminalState, NotFound
from ...storage import StorageAdapter
from ...utils.hashing import compute_content_hash
from ..audit import services as audit_services
from ..audit.models import AuditEventType
from ..training.models import ModuleStatus
from ..training.repository import TrainingRepository
from ..training.schemas import QuestionOption, QuizAnswer, ScenarioResponse, TrainingModule, TrainingSession
from ..training.scoring import is_passing
from ..workflow import is_terminal_session_state
from .repository import EvidenceRepository
from .schemas import (
    EVIDENCE_SCHEMA_VERSION,
    EvidenceAnswer,
    EvidenceBody,
    EvidenceModule,
    EvidenceOption,
    EvidenceOutcome,
    EvidenceQuizQuestion,
    EvidenceScenario,
    EvidenceSessionSummary,
    ModuleScoreSummary,
    PolicyAttestation,
    TrainingEvidence,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _options(options: Optional[List[QuestionOption]]) -> Optional[List[EvidenceOption]]:
    # `correct` flags never leave the server.
    if options is None:
        return None
    return [EvidenceOption(key=option.key, text=option.text) for option in options]


def _answer(response: Optional[ScenarioResponse | QuizAnswer]) -> Optional[EvidenceAnswer]:
    if response is None:
        return None
    return EvidenceAnswer(
        selected_option=response.selected_option,
        free_text_response=response.free_text_response,
        score=response.score,
        llm_rationale=response.llm_rationale,
        submitted_at=response.submitted_at.isoformat(),
    )


def _module_evidence(module: TrainingModule) -> EvidenceModule:
    scenarios: List[EvidenceScenario] = []
    quiz_questions: List[EvidenceQuizQuestion] = []
    if module.content is not None:
        responses = {response.scenario_id: response for response in module.scenario_responses}
        answers = {answer.question_id: answer for answer in module.quiz_answers}
        scenarios = [
            EvidenceScenario(
                scenario_id=scenario.id,
                narrative=scenario.narrative,
                response_type=scenario.response_type,
                options=_options(scenario.options),
                employee_answer=_answer(responses.get(scenario.id)),
            )
            for scenario in module.content.scenarios
        ]
        quiz_questions = [
            EvidenceQuizQuestion(
                question_id=question.id,
                question=question.question,
                response_type=question.response_type,
                options=_options(question.options),
                employee_answer=_answer(answers.get(question.id)),
            )
            for question in module.content.quiz
        ]
    return EvidenceModule(
        module_index=module.module_index,
        title=module.title,
        topic_area=module.topic_area,
        module_score=module.module_score,
        scenarios=scenarios,
        quiz_questions=quiz_questions,
        completed_at=_iso(module.updated_at) if module.status == ModuleStatus.SCORED else None,
    )


def build_evidence_body(
    session: TrainingSession,
    modules: List[TrainingModule],
    settings: TenantSettings,
) -> EvidenceBody:
    threshold = settings.training.pass_threshold
    aggregate = session.aggregate_score
    return EvidenceBody(
        session=EvidenceSessionSummary(
            session_id=session.id,
            employee_id=session.employee_id,
            tenant_id=session.tenant_id,
            attempt_number=session.attempt_number,
            total_attempts=settings.training.max_attempts,
            status=session.status,
            created_at=session.created_at.isoformat(),
            completed_at=_iso(session.completed_at),
        ),
        policy_attestation=PolicyAttestation(
            config_hash=session.config_hash,
            role_profile_id=session.role_profile_id,
            role_profile_version=session.role_profile_version,
            app_version=session.app_version,
            pass_threshold=threshold,
            max_attempts=settings.training.max_attempts,
        ),
        modules=[_module_evidence(module) for module in modules],
        outcome=EvidenceOutcome(
            aggregate_score=aggregate,
            passed=is_passing(aggregate, threshold) if aggregate is not None else None,
            pass_threshold=threshold,
            weak_areas=list(session.weak_areas or []),
            module_scores=[
                ModuleScoreSummary(
                    module_index=module.module_index,
                    title=module.title,
                    topic_area=module.topic_area,
                    score=module.module_score,
                )
                for module in modules
            ],
        ),
    )


def generate_evidence(
    storage: StorageAdapter,
    settings: TenantSettings,
    session_id: str,
) -> TrainingEvidence:
    """
    Produce the evidence record for a terminal session, exactly once.

    A second call for the same session returns the stored record untouched:
    no module reads, no hashing, no write.
    """
    tenant_id = settings.tenant_id
    sessions = TrainingRepository(storage)
    evidence_repo = EvidenceRepository(storage)

    session = sessions.find_session_by_id(tenant_id, session_id)
    if session is None:
        raise NotFound(entity="TrainingSession", id=session_id)
    if not is_terminal_session_state(session.status):
        raise ExpectedTerminalState(session_id=session_id, status=session.status.value)

    existing = evidence_repo.find_by_session_id(tenant_id, session_id)
    if existing is not None:
        return existing

    modules = sessions.find_modules_by_session(tenant_id, session_id, session.attempt_number)
    body = build_evidence_body(session, modules, settings)
    content_hash = compute_content_hash(body.model_dump(mode="json"))

    evidence = evidence_repo.create(
        tenant_id,
        {
            "session_id": session.id,
            "employee_id": session.employee_id,
            "schema_version": EVIDENCE_SCHEMA_VERSION,
            "content_hash": content_hash,
            "generated_at": _utcnow(),
            "evidence": body.model_dump(mode="json"),
        },
    )
    logger.info(
        "Training evidence generated",
        extra={"tenant_id": tenant_id, "session_id": session.id, "evidence_id": evidence.id},
    )

    audit_services.log_event(
        storage,
        tenant_id=tenant_id,
        event_type=AuditEventType.EVIDENCE_GENERATED,
        employee_id=session.employee_id,
        metadata={
            "evidence_id": evidence.id,
            "session_id": session.id,
            "content_hash": content_hash,
            "outcome": session.status.value,
        },
    )
    return evidence


def verify_content_hash(evidence: TrainingEvidence) -> bool:
    return compute_content_hash(evidence.evidence.model_dump(mode="json")) == evidence.content_hash
