from __future__ import annotations

import pytest

from secattest.apps.audit import services as audit_services
from secattest.apps.audit.models import AuditEventType
from secattest.apps.compliance.models import UploadErrorCode, UploadStatus
from secattest.apps.compliance.orchestrator import compute_delay_ms, dispatch_upload
from secattest.apps.compliance.providers import ComplianceProvider
from secattest.apps.compliance.repository import ComplianceUploadRepository
from secattest.apps.compliance.schemas import UploadResult
from secattest.apps.evidence.repository import EvidenceRepository
from secattest.apps.training import services as training_services
from secattest.config import ComplianceSettings, RetrySettings, TenantSettings


class ScriptedProvider(ComplianceProvider):
    name = "sprinto"

    def __init__(self, *results: UploadResult) -> None:
        self.results = list(results)
        self.calls = []

    def upload_evidence(self, pdf, evidence, config):
        self.calls.append((pdf, evidence.id, config.workflow_check_id))
        return self.results[min(len(self.calls), len(self.results)) - 1]


SERVER_ERROR = UploadResult.fail(UploadErrorCode.SERVER_ERROR, "Sprinto returned 500", retryable=True)
AUTH_FAILED = UploadResult.fail(UploadErrorCode.AUTH_FAILED, "Sprinto rejected credentials (401)", retryable=False)


def _settings(max_attempts: int = 2) -> TenantSettings:
    return TenantSettings(
        tenant_id="acme",
        display_name="Acme Corp",
        compliance=ComplianceSettings(
            api_key_ref="literal-key",
            workflow_check_id="check-1",
            retry=RetrySettings(max_attempts=max_attempts, initial_delay_ms=10, max_delay_ms=100),
        ),
    )


@pytest.fixture
def evidence(storage, tenant_settings, training_kit):
    training_kit.start(storage, tenant_settings, "emp-1")
    session = training_services.abandon_session(storage, tenant_settings, "emp-1")
    return EvidenceRepository(storage).find_by_session_id("acme", session.id)


def _dispatch(storage, evidence_id, provider, *, settings=None, renderer=None, sleeps=None):
    return dispatch_upload(
        storage,
        settings or _settings(),
        evidence_id,
        providers={"sprinto": provider},
        renderer=renderer or (lambda ev: b"%PDF-test"),
        sleep=(sleeps.append if sleeps is not None else lambda seconds: None),
    )


def test_retryable_failure_exhausts_attempts(storage, evidence):
    provider = ScriptedProvider(SERVER_ERROR)
    sleeps = []

    upload = _dispatch(storage, evidence.id, provider, sleeps=sleeps)

    assert len(provider.calls) == 2
    assert upload.status == UploadStatus.FAILED
    assert upload.attempt_count == 2
    assert upload.last_error_code == UploadErrorCode.SERVER_ERROR
    assert upload.retryable is True
    assert upload.completed_at is not None
    assert len(sleeps) == 1
    assert 0.010 <= sleeps[0] <= 0.015

    failures = audit_services.list_audit_events(
        storage, tenant_id="acme", event_type=AuditEventType.INTEGRATION_PUSH_FAILURE
    )
    assert len(failures) == 1
    assert failures[0].metadata["error_code"] == "SERVER_ERROR"
    assert failures[0].metadata["attempt_count"] == 2


def test_non_retryable_failure_stops_after_one_attempt(storage, evidence):
    provider = ScriptedProvider(AUTH_FAILED)
    sleeps = []

    upload = _dispatch(storage, evidence.id, provider, settings=_settings(5), sleeps=sleeps)

    assert len(provider.calls) == 1
    assert sleeps == []
    assert upload.status == UploadStatus.FAILED
    assert upload.attempt_count == 1
    assert upload.last_error_code == UploadErrorCode.AUTH_FAILED
    assert upload.retryable is False


def test_success_after_retry_records_reference(storage, evidence):
    provider = ScriptedProvider(SERVER_ERROR, UploadResult.ok("UNDER_REVIEW"))

    upload = _dispatch(storage, evidence.id, provider, settings=_settings(3))

    assert len(provider.calls) == 2
    assert provider.calls[0] == (b"%PDF-test", evidence.id, "check-1")
    assert upload.status == UploadStatus.SUCCEEDED
    assert upload.attempt_count == 2
    assert upload.provider_reference_id == "UNDER_REVIEW"
    assert upload.last_error is None
    assert upload.session_id == evidence.session_id

    successes = audit_services.list_audit_events(
        storage, tenant_id="acme", event_type=AuditEventType.INTEGRATION_PUSH_SUCCESS
    )
    assert [event.metadata["upload_id"] for event in successes] == [upload.id]


def test_existing_upload_short_circuits(storage, evidence):
    first = _dispatch(storage, evidence.id, ScriptedProvider(AUTH_FAILED))
    provider = ScriptedProvider(UploadResult.ok("x"))

    second = _dispatch(storage, evidence.id, provider)

    assert provider.calls == []
    assert second.id == first.id
    assert second.status == UploadStatus.FAILED
    assert ComplianceUploadRepository(storage).list_by_tenant("acme")[1] == 1


def test_no_integration_configured_is_a_no_op(storage, evidence, tenant_settings):
    provider = ScriptedProvider(UploadResult.ok("x"))
    assert _dispatch(storage, evidence.id, provider, settings=tenant_settings) is None
    assert provider.calls == []
    assert ComplianceUploadRepository(storage).list_by_tenant("acme")[1] == 0


def test_missing_evidence_records_failure_without_calling_provider(storage):
    provider = ScriptedProvider(UploadResult.ok("x"))

    upload = _dispatch(storage, "missing-evidence", provider)

    assert provider.calls == []
    assert upload.status == UploadStatus.FAILED
    assert upload.attempt_count == 0
    assert upload.last_error_code == UploadErrorCode.EVIDENCE_NOT_FOUND
    assert upload.session_id is None


def test_render_failure_records_failure(storage, evidence):
    provider = ScriptedProvider(UploadResult.ok("x"))

    def broken_renderer(ev):
        raise RuntimeError("font missing")

    upload = _dispatch(storage, evidence.id, provider, renderer=broken_renderer)

    assert provider.calls == []
    assert upload.last_error_code == UploadErrorCode.PDF_RENDER_FAILED
    assert "font missing" in upload.last_error
    assert upload.retryable is False


def test_default_renderer_produces_pdf(storage, evidence):
    provider = ScriptedProvider(UploadResult.ok("ok"))
    dispatch_upload(storage, _settings(), evidence.id, providers={"sprinto": provider}, sleep=lambda s: None)
    assert provider.calls[0][0].startswith(b"%PDF")


def test_compute_delay_ms_doubles_and_caps():
    no_jitter = lambda: 0.0  # noqa: E731
    assert [compute_delay_ms(n, 1000, 5000, jitter=no_jitter) for n in range(4)] == [1000, 2000, 4000, 5000]
    assert compute_delay_ms(0, 1000, 5000, jitter=lambda: 1.0) == 1500
    assert compute_delay_ms(10, 1000, 5000, jitter=lambda: 1.0) == 7500


def test_terminal_transition_dispatches_upload(storage, training_kit):
    settings = _settings()
    provider = ScriptedProvider(UploadResult.ok("UNDER_REVIEW"))
    training_kit.start(storage, settings, "emp-1")
    training_kit.complete(storage, settings, "emp-1")

    result = training_services.evaluate_session(
        storage,
        settings,
        "emp-1",
        providers={"sprinto": provider},
        renderer=lambda ev: b"%PDF-test",
    )

    upload = ComplianceUploadRepository(storage).find_by_evidence_id("acme", result.evidence_id, "sprinto")
    assert upload.status == UploadStatus.SUCCEEDED
    assert len(provider.calls) == 1


def test_upload_failure_never_undoes_terminal_transition(storage, training_kit):
    settings = _settings()

    class ExplodingProvider(ComplianceProvider):
        name = "sprinto"

        def upload_evidence(self, pdf, evidence, config):
            raise ConnectionError("boom")

    training_kit.start(storage, settings, "emp-1")
    session = training_services.abandon_session(
        storage, settings, "emp-1", providers={"sprinto": ExplodingProvider()}
    )

    assert session.status.value == "abandoned"
    assert EvidenceRepository(storage).find_by_session_id("acme", session.id) is not None
