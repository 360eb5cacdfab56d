# backend/secattest/config.py
"""
Immutable tenant configuration snapshots.

A TenantSettings instance is resolved once per request by the caller and
passed into every workflow operation. Nothing in this package keeps tenant
settings in module-level state.
"""

from __future__ import annotations

import os
import re
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .utils.hashing import compute_content_hash

DEFAULT_PASS_THRESHOLD = 0.70
_ENV_REF = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class TrainingSettings(_Frozen):
    pass_threshold: float = Field(DEFAULT_PASS_THRESHOLD, ge=0, le=1)
    max_attempts: int = Field(3, ge=1, le=10)
    max_modules: int = Field(8, ge=1, le=20)
    enable_remediation: bool = True


class RetrySettings(_Frozen):
    max_attempts: int = Field(5, ge=1, le=10)
    initial_delay_ms: int = Field(5000, ge=0)
    max_delay_ms: int = Field(300000, ge=0)


class ComplianceSettings(_Frozen):
    provider: Literal["sprinto"] = "sprinto"
    api_key_ref: str = Field(..., min_length=1)
    workflow_check_id: str = Field(..., min_length=1)
    region: Literal["us", "eu", "india"] = "us"
    retry: RetrySettings = Field(default_factory=RetrySettings)

    def resolve_api_key(self) -> str:
        """
        Resolve ``${ENV_VAR}`` references at dispatch time; literal keys are
        returned unchanged. A missing variable resolves to an empty string,
        which the provider reports as an authentication failure.
        """
        match = _ENV_REF.match(self.api_key_ref)
        if not match:
            return self.api_key_ref
        return os.getenv(match.group(1), "")


class RetentionSettings(_Frozen):
    transcripts_enabled: bool = True
    # None keeps transcripts until the session record itself is removed.
    transcript_retention_days: Optional[int] = Field(None, ge=1)


class TenantSettings(_Frozen):
    tenant_id: str = Field(..., min_length=1)
    display_name: str = ""
    app_version: str = Field(default_factory=lambda: os.getenv("APP_VERSION", "unknown"))
    training: TrainingSettings = Field(default_factory=TrainingSettings)
    compliance: Optional[ComplianceSettings] = None
    retention: RetentionSettings = Field(default_factory=RetentionSettings)

    @property
    def config_hash(self) -> str:
        """Provenance hash of the effective settings (secrets excluded)."""
        payload = self.model_dump(mode="json", exclude={"app_version"})
        if payload.get("compliance"):
            payload["compliance"].pop("api_key_ref", None)
        return compute_content_hash(payload)
