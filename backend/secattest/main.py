# backend/secattest/main.py
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .apps.training.router import router as training_router


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ]


def create_app() -> FastAPI:
    """
    Build the API. Deployments attach their collaborators to ``app.state``:

    - tenant_settings(tenant_id) -> TenantSettings
    - role_profiles(tenant_id, employee_id) -> RoleProfile
    - content_generator: ContentGenerator
    - evaluation_service: EvaluationService
    - compliance_providers: optional {name: ComplianceProvider} overrides
    """
    app = FastAPI(title="Security Training Attestation API", version=__version__)
    cors_origins = _allowed_origins()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials="*" not in cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", tags=["health"])
    def read_root():
        return {"status": "ok", "message": "secattest backend is running"}

    @app.get("/health", tags=["health"])
    def health():
        return {"status": "ok"}

    app.include_router(training_router)
    return app


app = create_app()
