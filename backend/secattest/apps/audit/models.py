from __future__ import annotations

import enum

AUDIT_EVENTS_COLLECTION = "audit_events"


class AuditEventType(str, enum.Enum):
    TRAINING_SESSION_STARTED = "training-session-started"
    TRAINING_MODULE_COMPLETED = "training-module-completed"
    TRAINING_QUIZ_SUBMITTED = "training-quiz-submitted"
    TRAINING_EVALUATION_COMPLETED = "training-evaluation-completed"
    TRAINING_REMEDIATION_INITIATED = "training-remediation-initiated"
    TRAINING_SESSION_ABANDONED = "training-session-abandoned"
    TRAINING_SESSION_EXHAUSTED = "training-session-exhausted"
    EVIDENCE_GENERATED = "evidence-generated"
    EVIDENCE_EXPORTED = "evidence-exported"
    INTEGRATION_PUSH_SUCCESS = "integration-push-success"
    INTEGRATION_PUSH_FAILURE = "integration-push-failure"
