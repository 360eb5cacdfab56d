# backend/secattest/apps/training/models.py
#
# Enumerations for the training workflow. Sessions and modules themselves are
# stored as documents (see secattest.storage); these enums give their status
# fields and workflow events a closed vocabulary.

from __future__ import annotations

import enum

SESSIONS_COLLECTION = "training_sessions"
MODULES_COLLECTION = "training_modules"


class SessionStatus(str, enum.Enum):
    CURRICULUM_GENERATING = "curriculum-generating"
    IN_PROGRESS = "in-progress"
    EVALUATING = "evaluating"
    PASSED = "passed"
    FAILED = "failed"
    IN_REMEDIATION = "in-remediation"
    EXHAUSTED = "exhausted"
    ABANDONED = "abandoned"


class SessionEvent(str, enum.Enum):
    CURRICULUM_GENERATED = "curriculum-generated"
    ALL_MODULES_SCORED = "all-modules-scored"
    EVALUATION_PASSED = "evaluation-passed"
    EVALUATION_FAILED = "evaluation-failed"
    EVALUATION_EXHAUSTED = "evaluation-exhausted"
    SESSION_ABANDONED = "session-abandoned"
    REMEDIATION_STARTED = "remediation-started"
    REMEDIATION_MODULES_READY = "remediation-modules-ready"


class ModuleStatus(str, enum.Enum):
    LOCKED = "locked"
    CONTENT_GENERATING = "content-generating"
    LEARNING = "learning"
    SCENARIO_ACTIVE = "scenario-active"
    QUIZ_ACTIVE = "quiz-active"
    SCORED = "scored"


class ModuleEvent(str, enum.Enum):
    GENERATE_CONTENT = "generate-content"
    CONTENT_READY = "content-ready"
    START_SCENARIO = "start-scenario"
    SCENARIOS_COMPLETE = "scenarios-complete"
    QUIZ_SCORED = "quiz-scored"


class ResponseType(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    FREE_TEXT = "free-text"
