from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("APP_VERSION", "test-1.0.0")

from secattest.config import TenantSettings  # noqa: E402
from secattest.database import Base, enable_sqlite_write_locks  # noqa: E402
from secattest.storage import models as storage_models  # noqa: E402
from secattest.storage.sqlalchemy_adapter import SQLAlchemyStorage  # noqa: E402


@pytest.fixture()
def storage():
    # One shared connection so every session sees the same in-memory database.
    engine = enable_sqlite_write_locks(
        create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    )
    Base.metadata.create_all(bind=engine, tables=[storage_models.StoredRecord.__table__])
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    try:
        yield SQLAlchemyStorage(TestingSession)
    finally:
        engine.dispose()


@pytest.fixture()
def tenant_settings() -> TenantSettings:
    return TenantSettings(tenant_id="acme", display_name="Acme Corp", app_version="test-1.0.0")


# ---------------------------------------------------------------------------
# TRAINING FAKES
# ---------------------------------------------------------------------------

from datetime import datetime, timezone  # noqa: E402
from types import SimpleNamespace  # noqa: E402

from secattest.apps.training import services as training_services  # noqa: E402
from secattest.apps.training.evaluation import EvaluationResult, EvaluationService  # noqa: E402
from secattest.apps.training.generation import ContentGenerator  # noqa: E402
from secattest.apps.training.models import ResponseType  # noqa: E402
from secattest.apps.training.schemas import (  # noqa: E402
    Curriculum,
    CurriculumModule,
    ModuleContent,
    QuestionOption,
    QuizAnswerSubmission,
    QuizQuestion,
    QuizSubmission,
    RoleProfile,
    Scenario,
    ScenarioSubmission,
)


class FakeGenerator(ContentGenerator):
    def __init__(self, topics=("Phishing", "Passwords")):
        self.topics = list(topics)
        self.fail_content_with = None
        self.calls = []

    def generate_curriculum(self, role_profile, *, max_modules):
        self.calls.append("curriculum")
        return Curriculum(
            modules=[
                CurriculumModule(title=f"{topic} basics", topic_area=topic, job_expectation_indices=[0])
                for topic in self.topics[:max_modules]
            ],
            generated_at=datetime.now(timezone.utc),
        )

    def generate_module_content(self, outline, role_profile):
        self.calls.append(f"content:{outline.topic_area}")
        if self.fail_content_with is not None:
            raise self.fail_content_with
        return ModuleContent(
            instruction=f"How to handle {outline.topic_area.lower()} risks.",
            scenarios=[
                Scenario(
                    id="s1",
                    narrative="An unexpected invoice arrives from a known supplier.",
                    response_type=ResponseType.MULTIPLE_CHOICE,
                    options=[
                        QuestionOption(key="a", text="Pay it"),
                        QuestionOption(key="b", text="Verify with the supplier", correct=True),
                    ],
                ),
            ],
            quiz=[
                QuizQuestion(
                    id="q1",
                    question="What is the first step when in doubt?",
                    response_type=ResponseType.MULTIPLE_CHOICE,
                    options=[
                        QuestionOption(key="a", text="Report it", correct=True),
                        QuestionOption(key="b", text="Ignore it"),
                    ],
                ),
                QuizQuestion(
                    id="q2",
                    question="Explain how you would escalate.",
                    response_type=ResponseType.FREE_TEXT,
                    rubric="Mentions the security team and the reporting channel.",
                ),
            ],
        )

    def generate_remediation_curriculum(self, weak_areas, role_profile, *, max_modules):
        self.calls.append("remediation")
        return Curriculum(
            modules=[
                CurriculumModule(title=f"{area} refresher", topic_area=area, job_expectation_indices=[0])
                for area in weak_areas[:max_modules]
            ],
            generated_at=datetime.now(timezone.utc),
        )


class FakeEvaluator(EvaluationService):
    def __init__(self, score: float = 1.0):
        self.score = score
        self.calls = 0

    def evaluate_free_text(self, question, rubric, response):
        self.calls += 1
        return EvaluationResult(score=self.score, rationale="Scored against rubric.")


def _complete_module(storage, settings, employee_id, index, kit, correct=True):
    training_services.generate_module_content(
        storage,
        settings,
        employee_id,
        index,
        role_profile=kit.role_profile,
        generator=kit.generator,
    )
    training_services.submit_scenario(
        storage,
        settings,
        employee_id,
        index,
        ScenarioSubmission(
            scenario_id="s1",
            response_type=ResponseType.MULTIPLE_CHOICE,
            selected_option="b" if correct else "a",
        ),
        evaluator=kit.evaluator,
    )
    return training_services.submit_quiz(
        storage,
        settings,
        employee_id,
        index,
        QuizSubmission(
            answers=[
                QuizAnswerSubmission(
                    question_id="q1",
                    response_type=ResponseType.MULTIPLE_CHOICE,
                    selected_option="a" if correct else "b",
                ),
                QuizAnswerSubmission(
                    question_id="q2",
                    response_type=ResponseType.FREE_TEXT,
                    free_text_response="I would report it to the security team.",
                ),
            ]
        ),
        evaluator=kit.evaluator,
    )


@pytest.fixture()
def training_kit():
    """
    Fake collaborators plus helpers that drive a session through its modules.

    ``kit.complete(storage, settings, employee_id, correct=...)`` answers every
    module of the current attempt; with ``correct=False`` every module scores 0
    (the evaluator fake is switched to 0.0 for the free-text question).
    """
    kit = SimpleNamespace(
        generator=FakeGenerator(),
        evaluator=FakeEvaluator(),
        role_profile=RoleProfile(
            id="role-eng",
            version=2,
            job_title="Engineer",
            job_expectations=["Handles customer data", "Deploys production code"],
        ),
    )

    def start(storage, settings, employee_id):
        return training_services.start_training(
            storage,
            settings,
            employee_id,
            role_profile=kit.role_profile,
            generator=kit.generator,
        )

    def complete_module(storage, settings, employee_id, index, correct=True):
        kit.evaluator.score = 1.0 if correct else 0.0
        return _complete_module(storage, settings, employee_id, index, kit, correct=correct)

    def complete(storage, settings, employee_id, correct=True):
        state = training_services.get_training_state(storage, settings, employee_id)
        result = None
        for module in state.modules:
            result = complete_module(storage, settings, employee_id, module.module_index, correct=correct)
        return result

    kit.start = start
    kit.complete_module = complete_module
    kit.complete = complete
    return kit
