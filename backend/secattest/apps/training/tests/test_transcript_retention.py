from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from secattest.apps.audit import services as audit_services
from secattest.apps.evidence import generator as evidence_generator
from secattest.apps.evidence.repository import EvidenceRepository
from secattest.apps.training import retention
from secattest.apps.training import router as training_router
from secattest.apps.training import services as training_services
from secattest.apps.training.repository import TrainingRepository, VersionConflict
from secattest.config import RetentionSettings

EMPLOYEE = "emp-1"
LATER = datetime.now(timezone.utc) + timedelta(days=45)


@pytest.fixture()
def retained_settings(tenant_settings):
    return tenant_settings.model_copy(update={"retention": RetentionSettings(transcript_retention_days=30)})


def _modules(storage, session_id):
    return TrainingRepository(storage).find_modules_by_session("acme", session_id)


def _free_text(module):
    return [answer for answer in module.quiz_answers if answer.question_id == "q2"][0]


def test_no_retention_period_leaves_everything(storage, tenant_settings, training_kit):
    training_kit.start(storage, tenant_settings, EMPLOYEE)
    training_kit.complete(storage, tenant_settings, EMPLOYEE)
    training_services.evaluate_session(storage, tenant_settings, EMPLOYEE)

    result = retention.purge_transcripts(storage, tenant_settings, now=LATER)

    assert result.model_dump() == {
        "tenant_id": "acme",
        "modules_processed": 0,
        "modules_purged": 0,
        "modules_skipped": 0,
    }


def test_expired_transcripts_of_finished_sessions_are_cleared(storage, retained_settings, training_kit):
    training_kit.start(storage, retained_settings, EMPLOYEE)
    training_kit.complete(storage, retained_settings, EMPLOYEE)
    session = training_services.evaluate_session(storage, retained_settings, EMPLOYEE).session
    audit_before = audit_services.list_audit_events(storage, tenant_id="acme")

    result = retention.purge_transcripts(storage, retained_settings, now=LATER)

    assert (result.modules_processed, result.modules_purged, result.modules_skipped) == (2, 2, 0)
    for module in _modules(storage, session.id):
        answer = _free_text(module)
        assert answer.free_text_response is None
        assert answer.llm_rationale is None
        assert answer.score == 1.0
        assert module.quiz_answers[0].selected_option == "a"
        assert module.module_score == 1.0
    assert audit_services.list_audit_events(storage, tenant_id="acme") == audit_before

    evidence = EvidenceRepository(storage).find_by_session_id("acme", session.id)
    assert evidence_generator.verify_content_hash(evidence)


def test_active_sessions_are_skipped(storage, retained_settings, training_kit):
    state = training_kit.start(storage, retained_settings, EMPLOYEE)
    training_kit.complete_module(storage, retained_settings, EMPLOYEE, 0)

    result = retention.purge_transcripts(storage, retained_settings, now=LATER)

    assert (result.modules_processed, result.modules_purged, result.modules_skipped) == (2, 0, 2)
    first = _modules(storage, state.session.id)[0]
    assert _free_text(first).free_text_response == "I would report it to the security team."


def test_recent_modules_are_not_touched(storage, retained_settings, training_kit):
    training_kit.start(storage, retained_settings, EMPLOYEE)
    training_services.abandon_session(storage, retained_settings, EMPLOYEE)

    result = retention.purge_transcripts(storage, retained_settings)

    assert result.modules_processed == 0


def test_purge_is_idempotent(storage, retained_settings, training_kit):
    training_kit.start(storage, retained_settings, EMPLOYEE)
    training_kit.complete(storage, retained_settings, EMPLOYEE)
    training_services.evaluate_session(storage, retained_settings, EMPLOYEE)
    retention.purge_transcripts(storage, retained_settings, now=LATER)

    again = retention.purge_transcripts(storage, retained_settings, now=LATER + timedelta(days=45))

    assert again.modules_processed == 2
    assert again.modules_purged == 0


def test_concurrent_module_write_is_retried_next_run(storage, retained_settings, training_kit, monkeypatch):
    training_kit.start(storage, retained_settings, EMPLOYEE)
    training_kit.complete(storage, retained_settings, EMPLOYEE)
    session = training_services.evaluate_session(storage, retained_settings, EMPLOYEE).session

    def stale(self, tenant_id, module_id, patch, expected_version):
        raise VersionConflict(entity="TrainingModule", id=module_id)

    monkeypatch.setattr(TrainingRepository, "update_module", stale)
    result = retention.purge_transcripts(storage, retained_settings, now=LATER)
    assert (result.modules_purged, result.modules_skipped) == (0, 2)

    monkeypatch.undo()
    result = retention.purge_transcripts(storage, retained_settings, now=LATER)
    assert result.modules_purged == 2
    assert all(_free_text(module).free_text_response is None for module in _modules(storage, session.id))


# ---------------------------------------------------------------------------
# ROUTE
# ---------------------------------------------------------------------------


def test_purge_route_is_registered():
    paths = {(route.path, tuple(sorted(route.methods))) for route in training_router.router.routes}
    assert ("/training/retention/purge", ("POST",)) in paths


@pytest.mark.parametrize(
    "configured,header",
    [(None, "Bearer anything"), ("s3cret", None), ("s3cret", "Bearer wrong"), ("s3cret", "s3cret")],
)
def test_purge_secret_is_required(monkeypatch, configured, header):
    if configured is None:
        monkeypatch.delenv("PURGE_SECRET", raising=False)
    else:
        monkeypatch.setenv("PURGE_SECRET", configured)

    with pytest.raises(HTTPException) as exc_info:
        training_router.require_purge_secret(authorization=header)
    assert exc_info.value.status_code == 401


def test_purge_route_runs_for_the_callers_tenant(storage, retained_settings, training_kit, monkeypatch):
    monkeypatch.setenv("PURGE_SECRET", "s3cret")
    training_router.require_purge_secret(authorization="Bearer s3cret")

    training_kit.start(storage, retained_settings, EMPLOYEE)
    training_services.abandon_session(storage, retained_settings, EMPLOYEE)
    ctx = training_router.TrainingContext(tenant_id="acme", employee_id="ops", settings=retained_settings)

    result = training_router.purge_expired_transcripts(ctx=ctx, storage=storage)

    assert result.tenant_id == "acme"
    assert result.modules_processed == 0
