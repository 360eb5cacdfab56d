# backend/secattest/apps/training/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import ModuleStatus, ResponseType, SessionStatus


# ---------------------------------------------------------------------------
# ROLE PROFILE + CURRICULUM
# ---------------------------------------------------------------------------


class RoleProfile(BaseModel):
    """
    The employee's role, as resolved by the caller.

    job_expectations are short statements ("Handles customer payment data")
    that curriculum modules point back into by index.
    """

    id: str
    version: int = Field(1, ge=1)
    job_title: str = ""
    job_expectations: List[str] = Field(default_factory=list)


class CurriculumModule(BaseModel):
    title: str
    topic_area: str
    job_expectation_indices: List[int] = Field(default_factory=list)


class Curriculum(BaseModel):
    modules: List[CurriculumModule]
    generated_at: datetime


# ---------------------------------------------------------------------------
# MODULE CONTENT (server-side, carries answer keys and rubrics)
# ---------------------------------------------------------------------------


class QuestionOption(BaseModel):
    key: str
    text: str
    correct: bool = False


class Scenario(BaseModel):
    id: str
    narrative: str
    response_type: ResponseType
    options: Optional[List[QuestionOption]] = None
    rubric: Optional[str] = None


class QuizQuestion(BaseModel):
    id: str
    question: str
    response_type: ResponseType
    options: Optional[List[QuestionOption]] = None
    rubric: Optional[str] = None


class ModuleContent(BaseModel):
    instruction: str
    scenarios: List[Scenario]
    quiz: List[QuizQuestion]
    generated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# RESPONSES (append-only)
# ---------------------------------------------------------------------------


class ScenarioResponse(BaseModel):
    scenario_id: str
    response_type: ResponseType
    selected_option: Optional[str] = None
    free_text_response: Optional[str] = None
    score: float = Field(..., ge=0, le=1)
    llm_rationale: Optional[str] = None
    submitted_at: datetime


class QuizAnswer(BaseModel):
    question_id: str
    response_type: ResponseType
    selected_option: Optional[str] = None
    free_text_response: Optional[str] = None
    score: float = Field(..., ge=0, le=1)
    llm_rationale: Optional[str] = None
    submitted_at: datetime


# ---------------------------------------------------------------------------
# STORED RECORDS
# ---------------------------------------------------------------------------


class TrainingSession(BaseModel):
    id: str
    tenant_id: str
    employee_id: str
    role_profile_id: str
    role_profile_version: int
    config_hash: str
    app_version: str
    status: SessionStatus
    attempt_number: int = Field(1, ge=1)
    curriculum: Curriculum
    aggregate_score: Optional[float] = Field(None, ge=0, le=1)
    weak_areas: Optional[List[str]] = None
    version: int = 1
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class TrainingModule(BaseModel):
    id: str
    tenant_id: str
    session_id: str
    attempt_number: int = 1
    module_index: int = Field(..., ge=0)
    title: str
    topic_area: str
    job_expectation_indices: List[int] = Field(default_factory=list)
    status: ModuleStatus
    content: Optional[ModuleContent] = None
    scenario_responses: List[ScenarioResponse] = Field(default_factory=list)
    quiz_answers: List[QuizAnswer] = Field(default_factory=list)
    module_score: Optional[float] = Field(None, ge=0, le=1)
    version: int = 1
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# SUBMISSIONS
# ---------------------------------------------------------------------------


class ScenarioSubmission(BaseModel):
    scenario_id: str = Field(..., min_length=1)
    response_type: ResponseType
    selected_option: Optional[str] = None
    free_text_response: Optional[str] = None


class QuizAnswerSubmission(BaseModel):
    question_id: str = Field(..., min_length=1)
    response_type: ResponseType
    selected_option: Optional[str] = None
    free_text_response: Optional[str] = None


class QuizSubmission(BaseModel):
    answers: List[QuizAnswerSubmission] = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# CLIENT-SAFE PROJECTIONS (no rubrics, no `correct` flags)
# ---------------------------------------------------------------------------


class PublicOption(BaseModel):
    key: str
    text: str


class PublicScenario(BaseModel):
    id: str
    narrative: str
    response_type: ResponseType
    options: Optional[List[PublicOption]] = None


class PublicQuizQuestion(BaseModel):
    id: str
    question: str
    response_type: ResponseType
    options: Optional[List[PublicOption]] = None


class PublicModuleContent(BaseModel):
    instruction: str
    scenarios: List[PublicScenario]
    quiz: List[PublicQuizQuestion]


class PublicModule(BaseModel):
    id: str
    module_index: int
    attempt_number: int
    title: str
    topic_area: str
    status: ModuleStatus
    content: Optional[PublicModuleContent] = None
    scenario_responses: List[ScenarioResponse] = Field(default_factory=list)
    quiz_answers: List[QuizAnswer] = Field(default_factory=list)
    module_score: Optional[float] = None
    version: int


class TrainingStateOut(BaseModel):
    session: Optional[TrainingSession] = None
    modules: List[PublicModule] = Field(default_factory=list)


class ScenarioResultOut(BaseModel):
    scenario_id: str
    score: float
    llm_rationale: Optional[str] = None
    module: PublicModule


class QuizResultOut(BaseModel):
    module_score: float
    answers: List[QuizAnswer]
    module: PublicModule
    session_status: SessionStatus


class EvaluationOut(BaseModel):
    session: TrainingSession
    aggregate_score: float
    passed: bool
    weak_areas: List[str] = Field(default_factory=list)
    evidence_id: Optional[str] = None


class TranscriptPurgeOut(BaseModel):
    tenant_id: str
    modules_processed: int = 0
    modules_purged: int = 0
    modules_skipped: int = 0


def _public_options(options: Optional[List[QuestionOption]]) -> Optional[List[PublicOption]]:
    if options is None:
        return None
    return [PublicOption(key=option.key, text=option.text) for option in options]


def to_public_content(content: ModuleContent) -> PublicModuleContent:
    return PublicModuleContent(
        instruction=content.instruction,
        scenarios=[
            PublicScenario(
                id=scenario.id,
                narrative=scenario.narrative,
                response_type=scenario.response_type,
                options=_public_options(scenario.options),
            )
            for scenario in content.scenarios
        ],
        quiz=[
            PublicQuizQuestion(
                id=question.id,
                question=question.question,
                response_type=question.response_type,
                options=_public_options(question.options),
            )
            for question in content.quiz
        ],
    )


def to_public_module(module: TrainingModule) -> PublicModule:
    return PublicModule(
        id=module.id,
        module_index=module.module_index,
        attempt_number=module.attempt_number,
        title=module.title,
        topic_area=module.topic_area,
        status=module.status,
        content=to_public_content(module.content) if module.content else None,
        scenario_responses=module.scenario_responses,
        quiz_answers=module.quiz_answers,
        module_score=module.module_score,
        version=module.version,
    )
