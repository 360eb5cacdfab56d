"""
Training workflow operations.

Every operation re-reads the state it needs, applies the session/module
transition tables, and writes through the versioned repository. Nothing is
cached between calls.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from ...config import TenantSettings
from ...errors import Conflict, NotFound, ValidationFailed
from ...storage import StorageAdapter
from ..compliance.orchestrator import Renderer, dispatch_upload
from ..compliance.providers import ComplianceProvider
from ..evidence.generator import generate_evidence
from ..evidence.schemas import TrainingEvidence
from ..workflow import (
    can_transition_session,
    is_terminal_session_state,
    transition_module,
    transition_session,
)
from . import audit as training_audit
from . import evaluation, generation
from .models import ModuleEvent, ModuleStatus, ResponseType, SessionEvent, SessionStatus
from .redaction import redact_optional
from .repository import TrainingRepository, VersionConflict
from .schemas import (
    Curriculum,
    CurriculumModule,
    EvaluationOut,
    PublicModule,
    QuizAnswer,
    QuizQuestion,
    QuizResultOut,
    QuizSubmission,
    RoleProfile,
    Scenario,
    ScenarioResponse,
    ScenarioResultOut,
    ScenarioSubmission,
    TrainingModule,
    TrainingSession,
    TrainingStateOut,
    to_public_module,
)
from .scoring import (
    compute_aggregate_score,
    compute_module_score,
    identify_weak_areas,
    is_passing,
    score_multiple_choice,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def _require_active_session(repo: TrainingRepository, tenant_id: str, employee_id: str) -> TrainingSession:
    session = repo.find_active_session(tenant_id, employee_id)
    if session is None:
        raise NotFound(entity="TrainingSession", id=employee_id)
    return session


def _require_in_progress(repo: TrainingRepository, tenant_id: str, employee_id: str) -> TrainingSession:
    session = _require_active_session(repo, tenant_id, employee_id)
    if session.status != SessionStatus.IN_PROGRESS:
        raise Conflict(reason=f"Session is '{session.status.value}', expected 'in-progress'")
    return session


def _require_module(
    repo: TrainingRepository,
    session: TrainingSession,
    module_index: int,
) -> TrainingModule:
    module = repo.find_module(session.tenant_id, session.id, module_index, session.attempt_number)
    if module is None:
        raise NotFound(entity="TrainingModule", id=f"{session.id}:{module_index}")
    return module


def _module_rows(session_id: str, attempt_number: int, curriculum: Curriculum) -> List[dict]:
    return [
        {
            "session_id": session_id,
            "attempt_number": attempt_number,
            "module_index": index,
            "title": outline.title,
            "topic_area": outline.topic_area,
            "job_expectation_indices": outline.job_expectation_indices,
            "status": ModuleStatus.LOCKED,
            "content": None,
            "scenario_responses": [],
            "quiz_answers": [],
            "module_score": None,
        }
        for index, outline in enumerate(curriculum.modules)
    ]


def _state(repo: TrainingRepository, session: TrainingSession) -> TrainingStateOut:
    modules = repo.find_modules_by_session(session.tenant_id, session.id, session.attempt_number)
    return TrainingStateOut(session=session, modules=[to_public_module(module) for module in modules])


def _score_item(
    item: Scenario | QuizQuestion,
    prompt: str,
    response_type: ResponseType,
    selected_option: Optional[str],
    free_text_response: Optional[str],
    evaluator: Optional[evaluation.EvaluationService],
) -> Tuple[float, Optional[str]]:
    if response_type != item.response_type:
        raise ValidationFailed(
            reason=f"Item '{item.id}' expects a '{item.response_type.value}' response"
        )

    if item.response_type == ResponseType.MULTIPLE_CHOICE:
        options = item.options or []
        if not selected_option:
            raise ValidationFailed(reason=f"Item '{item.id}' requires a selected option")
        if selected_option not in {option.key for option in options}:
            raise ValidationFailed(reason=f"Option '{selected_option}' is not valid for item '{item.id}'")
        correct = next(option.key for option in options if option.correct)
        return score_multiple_choice(selected_option, correct), None

    if not free_text_response or not free_text_response.strip():
        raise ValidationFailed(reason=f"Item '{item.id}' requires a free-text response")
    if evaluator is None:
        raise evaluation.EvaluationError(
            code=evaluation.AI_UNAVAILABLE,
            message="No evaluation service configured",
        )
    result = evaluation.evaluate_free_text(
        evaluator,
        question=prompt,
        rubric=item.rubric or "",
        response=free_text_response,
    )
    return result.score, result.rationale


def _stored_text(value: Optional[str], keep_text: bool) -> Optional[str]:
    return redact_optional(value) if keep_text else None


def _rollback_module(repo: TrainingRepository, tenant_id: str, module: TrainingModule) -> None:
    try:
        repo.update_module(tenant_id, module.id, {"status": ModuleStatus.LOCKED}, module.version)
    except Exception:
        logger.warning(
            "Failed to roll back module after content generation error",
            extra={
                "tenant_id": tenant_id,
                "session_id": module.session_id,
                "module_index": module.module_index,
            },
        )


def _finalize_terminal_session(
    storage: StorageAdapter,
    settings: TenantSettings,
    session: TrainingSession,
    *,
    providers: Optional[Dict[str, ComplianceProvider]] = None,
    renderer: Optional[Renderer] = None,
) -> Optional[TrainingEvidence]:
    """Evidence and upload after a terminal transition; failures never undo the transition."""
    try:
        evidence = generate_evidence(storage, settings, session.id)
    except Exception:
        logger.warning(
            "Evidence generation failed after terminal transition",
            extra={"tenant_id": settings.tenant_id, "session_id": session.id},
        )
        return None

    dispatch_evidence_upload(storage, settings, evidence, providers=providers, renderer=renderer)
    return evidence


def dispatch_evidence_upload(
    storage: StorageAdapter,
    settings: TenantSettings,
    evidence: TrainingEvidence,
    *,
    providers: Optional[Dict[str, ComplianceProvider]] = None,
    renderer: Optional[Renderer] = None,
) -> None:
    try:
        dispatch_upload(storage, settings, evidence.id, providers=providers, renderer=renderer)
    except Exception:
        logger.warning(
            "Compliance upload dispatch failed",
            extra={
                "tenant_id": settings.tenant_id,
                "session_id": evidence.session_id,
                "evidence_id": evidence.id,
            },
        )


# ---------------------------------------------------------------------------
# SESSION LIFECYCLE
# ---------------------------------------------------------------------------


def start_training(
    storage: StorageAdapter,
    settings: TenantSettings,
    employee_id: str,
    *,
    role_profile: RoleProfile,
    generator: generation.ContentGenerator,
) -> TrainingStateOut:
    """
    Start a new session, or move a failed session into remediation.

    Any other non-terminal session blocks a new start.
    """
    tenant_id = settings.tenant_id
    repo = TrainingRepository(storage)

    active = repo.find_active_session(tenant_id, employee_id)
    if active is not None:
        if active.status in (SessionStatus.FAILED, SessionStatus.IN_REMEDIATION):
            return _start_remediation(
                storage,
                settings,
                active,
                role_profile=role_profile,
                generator=generator,
            )
        raise Conflict(reason="An active training session already exists")

    curriculum = generation.generate_curriculum(
        generator,
        role_profile,
        max_modules=settings.training.max_modules,
    )
    session = repo.create_session(
        tenant_id,
        {
            "employee_id": employee_id,
            "role_profile_id": role_profile.id,
            "role_profile_version": role_profile.version,
            "config_hash": settings.config_hash,
            "app_version": settings.app_version,
            "status": transition_session(
                SessionStatus.CURRICULUM_GENERATING, SessionEvent.CURRICULUM_GENERATED
            ),
            "attempt_number": 1,
            "curriculum": curriculum,
            "aggregate_score": None,
            "weak_areas": None,
            "completed_at": None,
        },
    )
    modules = repo.create_modules(tenant_id, _module_rows(session.id, 1, curriculum))

    training_audit.log_session_started(
        storage,
        tenant_id=tenant_id,
        employee_id=employee_id,
        session_id=session.id,
        role_profile_id=role_profile.id,
        role_profile_version=role_profile.version,
        module_count=len(modules),
        attempt_number=session.attempt_number,
    )
    return TrainingStateOut(session=session, modules=[to_public_module(module) for module in modules])


def _start_remediation(
    storage: StorageAdapter,
    settings: TenantSettings,
    session: TrainingSession,
    *,
    role_profile: RoleProfile,
    generator: generation.ContentGenerator,
) -> TrainingStateOut:
    tenant_id = settings.tenant_id
    repo = TrainingRepository(storage)

    if not settings.training.enable_remediation:
        raise Conflict(reason="Remediation is disabled for this tenant")

    if session.status == SessionStatus.FAILED:
        session = repo.update_session(
            tenant_id,
            session.id,
            {
                "status": transition_session(session.status, SessionEvent.REMEDIATION_STARTED),
                "attempt_number": session.attempt_number + 1,
                "aggregate_score": None,
            },
            session.version,
        )

    weak_areas = list(session.weak_areas or [])
    existing = repo.find_modules_by_session(tenant_id, session.id, session.attempt_number)
    if existing:
        # A previous remediation call created this attempt's modules but never
        # finished; resume with them.
        curriculum = Curriculum(
            modules=[
                CurriculumModule(
                    title=module.title,
                    topic_area=module.topic_area,
                    job_expectation_indices=module.job_expectation_indices,
                )
                for module in existing
            ],
            generated_at=existing[0].created_at,
        )
        modules = existing
    else:
        curriculum = generation.generate_remediation_curriculum(
            generator,
            weak_areas,
            role_profile,
            max_modules=settings.training.max_modules,
        )
        modules = repo.create_modules(
            tenant_id, _module_rows(session.id, session.attempt_number, curriculum)
        )

    session = repo.update_session(
        tenant_id,
        session.id,
        {
            "status": transition_session(session.status, SessionEvent.REMEDIATION_MODULES_READY),
            "curriculum": curriculum,
            "aggregate_score": None,
            "weak_areas": None,
        },
        session.version,
    )

    training_audit.log_remediation_initiated(
        storage,
        tenant_id=tenant_id,
        employee_id=session.employee_id,
        session_id=session.id,
        attempt_number=session.attempt_number,
        weak_area_count=len(weak_areas),
        module_count=len(modules),
    )
    return TrainingStateOut(session=session, modules=[to_public_module(module) for module in modules])


def get_training_state(
    storage: StorageAdapter,
    settings: TenantSettings,
    employee_id: str,
) -> TrainingStateOut:
    repo = TrainingRepository(storage)
    session = repo.find_active_session(settings.tenant_id, employee_id)
    if session is None:
        history = repo.find_session_history(settings.tenant_id, employee_id, limit=1)
        session = history[0] if history else None
    if session is None:
        return TrainingStateOut()
    return _state(repo, session)


def abandon_session(
    storage: StorageAdapter,
    settings: TenantSettings,
    employee_id: str,
    *,
    providers: Optional[Dict[str, ComplianceProvider]] = None,
    renderer: Optional[Renderer] = None,
) -> TrainingSession:
    tenant_id = settings.tenant_id
    repo = TrainingRepository(storage)

    session = _require_active_session(repo, tenant_id, employee_id)
    if not can_transition_session(session.status, SessionEvent.SESSION_ABANDONED):
        raise Conflict(reason=f"Session in '{session.status.value}' cannot be abandoned")

    session = repo.update_session(
        tenant_id,
        session.id,
        {
            "status": transition_session(session.status, SessionEvent.SESSION_ABANDONED),
            "completed_at": _utcnow(),
        },
        session.version,
    )

    modules = repo.find_modules_by_session(tenant_id, session.id, session.attempt_number)
    training_audit.log_session_abandoned(
        storage,
        tenant_id=tenant_id,
        employee_id=employee_id,
        session_id=session.id,
        attempt_number=session.attempt_number,
        modules_completed=sum(1 for module in modules if module.status == ModuleStatus.SCORED),
        total_modules=len(modules),
    )

    _finalize_terminal_session(storage, settings, session, providers=providers, renderer=renderer)
    return session


# ---------------------------------------------------------------------------
# MODULE LIFECYCLE
# ---------------------------------------------------------------------------


def generate_module_content(
    storage: StorageAdapter,
    settings: TenantSettings,
    employee_id: str,
    module_index: int,
    *,
    role_profile: RoleProfile,
    generator: generation.ContentGenerator,
) -> PublicModule:
    tenant_id = settings.tenant_id
    repo = TrainingRepository(storage)

    session = _require_in_progress(repo, tenant_id, employee_id)
    module = _require_module(repo, session, module_index)

    if module.content is not None:
        return to_public_module(module)
    if module.status != ModuleStatus.LOCKED:
        raise Conflict(reason=f"Module {module_index} is '{module.status.value}', expected 'locked'")
    if module_index > 0:
        previous = repo.find_module(tenant_id, session.id, module_index - 1, session.attempt_number)
        if previous is None or previous.status != ModuleStatus.SCORED:
            raise Conflict(reason=f"Module {module_index - 1} must be completed first")
    if module_index >= len(session.curriculum.modules):
        raise NotFound(entity="CurriculumModule", id=f"{session.id}:{module_index}")

    module = repo.update_module(
        tenant_id,
        module.id,
        {"status": transition_module(module.status, ModuleEvent.GENERATE_CONTENT)},
        module.version,
    )

    # Any failure before content-ready returns the module to locked.
    try:
        content = generation.generate_module_content(
            generator,
            session.curriculum.modules[module_index],
            role_profile,
        )
        ready = repo.update_module(
            tenant_id,
            module.id,
            {
                "status": transition_module(module.status, ModuleEvent.CONTENT_READY),
                "content": content.model_copy(update={"generated_at": _utcnow()}),
            },
            module.version,
        )
    except Exception:
        _rollback_module(repo, tenant_id, module)
        raise
    return to_public_module(ready)


def submit_scenario(
    storage: StorageAdapter,
    settings: TenantSettings,
    employee_id: str,
    module_index: int,
    submission: ScenarioSubmission,
    *,
    evaluator: Optional[evaluation.EvaluationService] = None,
) -> ScenarioResultOut:
    tenant_id = settings.tenant_id
    repo = TrainingRepository(storage)

    session = _require_in_progress(repo, tenant_id, employee_id)
    module = _require_module(repo, session, module_index)

    if module.status not in (ModuleStatus.LEARNING, ModuleStatus.SCENARIO_ACTIVE) or module.content is None:
        raise Conflict(
            reason=f"Module {module_index} is '{module.status.value}', expected 'learning' or 'scenario-active'"
        )

    scenario = next((s for s in module.content.scenarios if s.id == submission.scenario_id), None)
    if scenario is None:
        raise ValidationFailed(reason=f"Unknown scenario '{submission.scenario_id}'")
    if any(response.scenario_id == scenario.id for response in module.scenario_responses):
        raise Conflict(reason=f"Scenario '{scenario.id}' has already been answered")

    score, rationale = _score_item(
        scenario,
        scenario.narrative,
        submission.response_type,
        submission.selected_option,
        submission.free_text_response,
        evaluator,
    )
    keep_text = settings.retention.transcripts_enabled
    rationale = redact_optional(rationale)
    response = ScenarioResponse(
        scenario_id=scenario.id,
        response_type=submission.response_type,
        selected_option=submission.selected_option,
        free_text_response=_stored_text(submission.free_text_response, keep_text),
        score=score,
        llm_rationale=rationale if keep_text else None,
        submitted_at=_utcnow(),
    )
    responses = [*module.scenario_responses, response]

    status = module.status
    if status == ModuleStatus.LEARNING:
        status = ModuleStatus(transition_module(status, ModuleEvent.START_SCENARIO))
    answered = {item.scenario_id for item in responses}
    if all(s.id in answered for s in module.content.scenarios):
        status = ModuleStatus(transition_module(status, ModuleEvent.SCENARIOS_COMPLETE))

    module = repo.update_module(
        tenant_id,
        module.id,
        {"status": status, "scenario_responses": responses},
        module.version,
    )
    return ScenarioResultOut(
        scenario_id=scenario.id,
        score=score,
        llm_rationale=rationale,
        module=to_public_module(module),
    )


def submit_quiz(
    storage: StorageAdapter,
    settings: TenantSettings,
    employee_id: str,
    module_index: int,
    submission: QuizSubmission,
    *,
    evaluator: Optional[evaluation.EvaluationService] = None,
) -> QuizResultOut:
    tenant_id = settings.tenant_id
    repo = TrainingRepository(storage)

    session = _require_in_progress(repo, tenant_id, employee_id)
    module = _require_module(repo, session, module_index)

    if module.status != ModuleStatus.QUIZ_ACTIVE or module.content is None:
        raise Conflict(reason=f"Module {module_index} is '{module.status.value}', expected 'quiz-active'")

    questions = {question.id: question for question in module.content.quiz}
    seen = set()
    for answer in submission.answers:
        if answer.question_id in seen:
            raise ValidationFailed(reason=f"Duplicate answer for question '{answer.question_id}'")
        if answer.question_id not in questions:
            raise ValidationFailed(reason=f"Unknown question '{answer.question_id}'")
        seen.add(answer.question_id)
    if len(seen) != len(questions):
        raise ValidationFailed(reason="Every quiz question must be answered exactly once")

    keep_text = settings.retention.transcripts_enabled
    answers: List[QuizAnswer] = []
    for submitted in submission.answers:
        question = questions[submitted.question_id]
        score, rationale = _score_item(
            question,
            question.question,
            submitted.response_type,
            submitted.selected_option,
            submitted.free_text_response,
            evaluator,
        )
        answers.append(
            QuizAnswer(
                question_id=question.id,
                response_type=submitted.response_type,
                selected_option=submitted.selected_option,
                free_text_response=_stored_text(submitted.free_text_response, keep_text),
                score=score,
                llm_rationale=_stored_text(rationale, keep_text),
                submitted_at=_utcnow(),
            )
        )

    module_score = compute_module_score(
        [response.score for response in module.scenario_responses],
        [answer.score for answer in answers],
    )
    module = repo.update_module(
        tenant_id,
        module.id,
        {
            "status": transition_module(module.status, ModuleEvent.QUIZ_SCORED),
            "quiz_answers": answers,
            "module_score": module_score,
        },
        module.version,
    )

    training_audit.log_module_completed(
        storage,
        tenant_id=tenant_id,
        employee_id=employee_id,
        session_id=session.id,
        module_index=module_index,
        module_score=module_score,
        scenario_count=len(module.scenario_responses),
        quiz_count=len(answers),
    )
    training_audit.log_quiz_submitted(
        storage,
        tenant_id=tenant_id,
        employee_id=employee_id,
        session_id=session.id,
        module_index=module_index,
        answer_count=len(answers),
        module_score=module_score,
    )

    session_status = _complete_session_if_done(repo, session, employee_id)
    return QuizResultOut(
        module_score=module_score,
        answers=answers,
        module=to_public_module(module),
        session_status=session_status,
    )


def _complete_session_if_done(
    repo: TrainingRepository,
    session: TrainingSession,
    employee_id: str,
) -> SessionStatus:
    modules = repo.find_modules_by_session(session.tenant_id, session.id, session.attempt_number)
    if not modules or any(module.status != ModuleStatus.SCORED for module in modules):
        return session.status

    # Re-read: another request may have completed this session already.
    current = repo.find_active_session(session.tenant_id, employee_id)
    if current is None or current.id != session.id:
        return session.status
    if not can_transition_session(current.status, SessionEvent.ALL_MODULES_SCORED):
        return current.status
    try:
        updated = repo.update_session(
            session.tenant_id,
            current.id,
            {"status": transition_session(current.status, SessionEvent.ALL_MODULES_SCORED)},
            current.version,
        )
    except VersionConflict:
        # evaluate_session performs the same flip, so the session is not stuck.
        logger.warning(
            "Session completion lost a concurrent update",
            extra={"tenant_id": session.tenant_id, "session_id": session.id},
        )
        return current.status
    return updated.status


# ---------------------------------------------------------------------------
# EVALUATION
# ---------------------------------------------------------------------------


def evaluate_session(
    storage: StorageAdapter,
    settings: TenantSettings,
    employee_id: str,
    *,
    providers: Optional[Dict[str, ComplianceProvider]] = None,
    renderer: Optional[Renderer] = None,
) -> EvaluationOut:
    tenant_id = settings.tenant_id
    training = settings.training
    repo = TrainingRepository(storage)

    session = _require_active_session(repo, tenant_id, employee_id)
    modules = repo.find_modules_by_session(tenant_id, session.id, session.attempt_number)
    all_scored = bool(modules) and all(module.status == ModuleStatus.SCORED for module in modules)

    if session.status == SessionStatus.IN_PROGRESS and all_scored:
        session = repo.update_session(
            tenant_id,
            session.id,
            {"status": transition_session(session.status, SessionEvent.ALL_MODULES_SCORED)},
            session.version,
        )
    if session.status != SessionStatus.EVALUATING:
        raise Conflict(reason=f"Session is '{session.status.value}', expected 'evaluating'")
    if not all_scored:
        raise Conflict(reason="All modules must be scored before evaluation")

    aggregate = compute_aggregate_score(module.module_score for module in modules)
    passed = is_passing(aggregate, training.pass_threshold)
    attempts_remain = training.enable_remediation and session.attempt_number < training.max_attempts

    if passed:
        event, weak_areas = SessionEvent.EVALUATION_PASSED, []
    elif attempts_remain:
        event, weak_areas = SessionEvent.EVALUATION_FAILED, identify_weak_areas(modules, training.pass_threshold)
    else:
        event, weak_areas = SessionEvent.EVALUATION_EXHAUSTED, identify_weak_areas(modules, training.pass_threshold)

    status = transition_session(session.status, event)
    patch = {"status": status, "aggregate_score": aggregate, "weak_areas": weak_areas}
    terminal = is_terminal_session_state(status)
    if terminal:
        patch["completed_at"] = _utcnow()
    session = repo.update_session(tenant_id, session.id, patch, session.version)

    training_audit.log_evaluation_completed(
        storage,
        tenant_id=tenant_id,
        employee_id=employee_id,
        session_id=session.id,
        aggregate_score=aggregate,
        passed=passed,
        attempt_number=session.attempt_number,
        weak_areas=weak_areas,
    )
    if session.status == SessionStatus.EXHAUSTED:
        training_audit.log_session_exhausted(
            storage,
            tenant_id=tenant_id,
            employee_id=employee_id,
            session_id=session.id,
            attempt_number=session.attempt_number,
            aggregate_score=aggregate,
        )

    evidence = None
    if terminal:
        evidence = _finalize_terminal_session(
            storage, settings, session, providers=providers, renderer=renderer
        )

    return EvaluationOut(
        session=session,
        aggregate_score=aggregate,
        passed=passed,
        weak_areas=weak_areas,
        evidence_id=evidence.id if evidence else None,
    )


# ---------------------------------------------------------------------------
# EVIDENCE
# ---------------------------------------------------------------------------


def generate_session_evidence(
    storage: StorageAdapter,
    settings: TenantSettings,
    session_id: str,
    *,
    providers: Optional[Dict[str, ComplianceProvider]] = None,
    renderer: Optional[Renderer] = None,
) -> TrainingEvidence:
    """Explicit (re)generation: precondition errors propagate, the upload stays best-effort."""
    evidence = generate_evidence(storage, settings, session_id)
    dispatch_evidence_upload(storage, settings, evidence, providers=providers, renderer=renderer)
    return evidence
