from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterator, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status

from ...config import TenantSettings
from ...database import get_storage
from ...errors import Conflict, ExpectedTerminalState, NotFound, ValidationFailed
from ...storage import StorageAdapter
from ..audit import services as audit_services
from ..audit.models import AuditEventType
from ..compliance.providers import ComplianceProvider
from ..evidence import schemas as evidence_schemas
from ..evidence.pdf_renderer import render_evidence_pdf
from ..evidence.repository import EvidenceRepository
from ..workflow import InvalidTransition
from . import schemas as training_schemas
from . import retention, services
from .evaluation import AI_UNAVAILABLE, EvaluationError, EvaluationService
from .generation import ContentGenerator, GenerationError
from .repository import VersionConflict

router = APIRouter(prefix="/training", tags=["training"])

_MAX_PAGE_SIZE = 200


# ---------------------------------------------------------------------------
# REQUEST CONTEXT
# ---------------------------------------------------------------------------


@dataclass
class TrainingContext:
    """
    Everything a training endpoint needs about the caller and the tenant.

    Identity comes from headers set by the upstream authentication layer;
    collaborators come from ``app.state``.
    """

    tenant_id: str
    employee_id: str
    settings: TenantSettings
    generator: Optional[ContentGenerator] = None
    evaluator: Optional[EvaluationService] = None
    role_profile_source: Optional[Callable[[str, str], training_schemas.RoleProfile]] = None
    providers: Optional[Dict[str, ComplianceProvider]] = field(default=None)

    def role_profile(self) -> training_schemas.RoleProfile:
        if self.role_profile_source is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Role profile source is not configured.",
            )
        profile = self.role_profile_source(self.tenant_id, self.employee_id)
        if profile is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No role profile found for this employee.",
            )
        return profile

    def content_generator(self) -> ContentGenerator:
        if self.generator is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Content generator is not configured.",
            )
        return self.generator


def get_training_context(
    request: Request,
    x_tenant_id: str = Header(..., alias="X-Tenant-Id"),
    x_employee_id: str = Header(..., alias="X-Employee-Id"),
) -> TrainingContext:
    state = request.app.state
    settings_source = getattr(state, "tenant_settings", None)
    settings = settings_source(x_tenant_id) if settings_source else TenantSettings(tenant_id=x_tenant_id)
    if settings is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown tenant.")
    return TrainingContext(
        tenant_id=x_tenant_id,
        employee_id=x_employee_id,
        settings=settings,
        generator=getattr(state, "content_generator", None),
        evaluator=getattr(state, "evaluation_service", None),
        role_profile_source=getattr(state, "role_profiles", None),
        providers=getattr(state, "compliance_providers", None),
    )


@contextmanager
def _http_errors() -> Iterator[None]:
    """Map workflow errors onto stable HTTP status families."""
    try:
        yield
    except (Conflict, VersionConflict, InvalidTransition, ExpectedTerminalState) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValidationFailed as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (GenerationError, EvaluationError) as exc:
        code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if exc.code == AI_UNAVAILABLE
            else status.HTTP_422_UNPROCESSABLE_ENTITY
        )
        raise HTTPException(status_code=code, detail={"code": exc.code, "message": exc.message}) from exc


def _normalize_pagination(limit: int, offset: int) -> tuple[int, int]:
    if limit <= 0:
        limit = 50
    if limit > _MAX_PAGE_SIZE:
        limit = _MAX_PAGE_SIZE
    if offset < 0:
        offset = 0
    return limit, offset


# ---------------------------------------------------------------------------
# SESSION
# ---------------------------------------------------------------------------


@router.get("/session", response_model=training_schemas.TrainingStateOut)
def read_training_state(
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    return services.get_training_state(storage, ctx.settings, ctx.employee_id)


@router.post(
    "/session",
    response_model=training_schemas.TrainingStateOut,
    status_code=status.HTTP_201_CREATED,
)
def create_training_session(
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    with _http_errors():
        return services.start_training(
            storage,
            ctx.settings,
            ctx.employee_id,
            role_profile=ctx.role_profile(),
            generator=ctx.content_generator(),
        )


@router.post("/evaluate", response_model=training_schemas.EvaluationOut)
def evaluate_training_session(
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    with _http_errors():
        return services.evaluate_session(
            storage, ctx.settings, ctx.employee_id, providers=ctx.providers
        )


@router.post("/abandon", response_model=training_schemas.TrainingSession)
def abandon_training_session(
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    with _http_errors():
        return services.abandon_session(
            storage, ctx.settings, ctx.employee_id, providers=ctx.providers
        )


# ---------------------------------------------------------------------------
# MODULES
# ---------------------------------------------------------------------------


@router.post("/module/{module_index}/content", response_model=training_schemas.PublicModule)
def generate_module_content(
    module_index: int,
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    with _http_errors():
        return services.generate_module_content(
            storage,
            ctx.settings,
            ctx.employee_id,
            module_index,
            role_profile=ctx.role_profile(),
            generator=ctx.content_generator(),
        )


@router.post("/module/{module_index}/scenario", response_model=training_schemas.ScenarioResultOut)
def submit_scenario_response(
    module_index: int,
    payload: training_schemas.ScenarioSubmission,
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    with _http_errors():
        return services.submit_scenario(
            storage,
            ctx.settings,
            ctx.employee_id,
            module_index,
            payload,
            evaluator=ctx.evaluator,
        )


@router.post("/module/{module_index}/quiz", response_model=training_schemas.QuizResultOut)
def submit_quiz_answers(
    module_index: int,
    payload: training_schemas.QuizSubmission,
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    with _http_errors():
        return services.submit_quiz(
            storage,
            ctx.settings,
            ctx.employee_id,
            module_index,
            payload,
            evaluator=ctx.evaluator,
        )


# ---------------------------------------------------------------------------
# EVIDENCE
# ---------------------------------------------------------------------------


@router.get("/evidence", response_model=evidence_schemas.EvidenceListOut)
def list_evidence(
    employee_id: Optional[str] = None,
    outcome: Optional[str] = None,
    generated_from: Optional[datetime] = None,
    generated_to: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    limit, offset = _normalize_pagination(limit, offset)
    items, total = EvidenceRepository(storage).list_by_tenant(
        ctx.tenant_id,
        employee_id=employee_id,
        status=outcome,
        generated_from=generated_from,
        generated_to=generated_to,
        limit=limit,
        offset=offset,
    )
    return evidence_schemas.EvidenceListOut(
        items=[evidence_schemas.to_summary(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


def _require_evidence(storage: StorageAdapter, tenant_id: str, session_id: str):
    evidence = EvidenceRepository(storage).find_by_session_id(tenant_id, session_id)
    if evidence is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No evidence recorded for this session.",
        )
    return evidence


@router.get("/evidence/{session_id}", response_model=evidence_schemas.TrainingEvidence)
def read_evidence(
    session_id: str,
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    return _require_evidence(storage, ctx.tenant_id, session_id)


@router.post("/evidence/{session_id}/generate", response_model=evidence_schemas.TrainingEvidence)
def generate_evidence(
    session_id: str,
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    with _http_errors():
        return services.generate_session_evidence(
            storage, ctx.settings, session_id, providers=ctx.providers
        )


@router.get("/evidence/{session_id}/pdf", response_class=Response)
def download_evidence_pdf(
    session_id: str,
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    evidence = _require_evidence(storage, ctx.tenant_id, session_id)
    pdf = render_evidence_pdf(evidence, ctx.settings.display_name)
    audit_services.log_event(
        storage,
        tenant_id=ctx.tenant_id,
        event_type=AuditEventType.EVIDENCE_EXPORTED,
        employee_id=ctx.employee_id,
        metadata={"evidence_id": evidence.id, "session_id": session_id, "format": "pdf"},
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="evidence-{session_id}.pdf"'},
    )


# ---------------------------------------------------------------------------
# RETENTION
# ---------------------------------------------------------------------------


def require_purge_secret(authorization: Optional[str] = Header(None)) -> None:
    """Purges are triggered by a scheduler holding ``PURGE_SECRET``."""
    secret = os.getenv("PURGE_SECRET")
    if not secret or authorization != f"Bearer {secret}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing authorization.",
            headers={"WWW-Authenticate": "Bearer"},
        )


@router.post(
    "/retention/purge",
    response_model=training_schemas.TranscriptPurgeOut,
    dependencies=[Depends(require_purge_secret)],
)
def purge_expired_transcripts(
    ctx: TrainingContext = Depends(get_training_context),
    storage: StorageAdapter = Depends(get_storage),
):
    return retention.purge_transcripts(storage, ctx.settings)
