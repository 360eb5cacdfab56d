from __future__ import annotations

import json
import logging
import os
import uuid
from typing import Dict, Optional, Tuple

from ...config import ComplianceSettings
from ..evidence.schemas import TrainingEvidence
from .models import UploadErrorCode
from .schemas import UploadResult

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SEC = int(os.getenv("COMPLIANCE_HTTP_TIMEOUT_SEC", "30"))


class ComplianceProvider:
    """Delivers a rendered evidence document to an external compliance platform."""

    name: str = ""

    def upload_evidence(
        self,
        pdf: bytes,
        evidence: TrainingEvidence,
        config: ComplianceSettings,
    ) -> UploadResult:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Sprinto
# ---------------------------------------------------------------------------

SPRINTO_ENDPOINTS = {
    "us": "https://app.sprinto.com/dev-api/graphql",
    "eu": "https://eu.sprinto.com/dev-api/graphql",
    "india": "https://in.sprinto.com/dev-api/graphql",
}

UPLOAD_MUTATION = """mutation UploadWorkflowCheckEvidence(
  $workflowCheckPk: UUID!,
  $evidenceRecordDate: DateTime!,
  $evidenceFile: Upload!
) {
  uploadWorkflowCheckEvidence(
    workflowCheckPk: $workflowCheckPk,
    evidenceRecordDate: $evidenceRecordDate,
    evidenceFile: $evidenceFile
  ) {
    message
    workflowCheck {
      evidenceStatus
    }
  }
}"""

NON_RETRYABLE_GRAPHQL_ERRORS = {
    "Incorrect check ID": UploadErrorCode.INVALID_CHECK_ID,
    "Check in review": UploadErrorCode.CHECK_LOCKED,
    "Unsupported file format": UploadErrorCode.UNSUPPORTED_FORMAT,
}


def get_sprinto_endpoint(region: str) -> str:
    url = SPRINTO_ENDPOINTS.get(region)
    if not url:
        raise ValueError(f"Unknown Sprinto region: {region}. Expected one of: us, eu, india")
    return url


def _encode_multipart(
    fields: Dict[str, str],
    file_field: str,
    filename: str,
    content: bytes,
    content_type: str,
) -> Tuple[bytes, str]:
    boundary = f"----secattest{uuid.uuid4().hex}"
    parts = []
    for name, value in fields.items():
        parts.append(
            (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                f"{value}\r\n"
            ).encode("utf-8")
        )
    parts.append(
        (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{file_field}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n"
        ).encode("utf-8")
        + content
        + b"\r\n"
    )
    parts.append(f"--{boundary}--\r\n".encode("utf-8"))
    return b"".join(parts), f"multipart/form-data; boundary={boundary}"


def _post(url: str, body: bytes, headers: Dict[str, str]) -> Tuple[int, str]:
    """POST and return (status, body). Status 0 means the request never got a response."""
    import urllib.error
    import urllib.request

    req = urllib.request.Request(url, data=body, method="POST")
    for key, value in headers.items():
        req.add_header(key, value)
    try:
        with urllib.request.urlopen(req, timeout=HTTP_TIMEOUT_SEC) as resp:
            return resp.status, resp.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read().decode("utf-8", errors="replace")
    except Exception as exc:  # noqa: BLE001
        return 0, str(exc)


def classify_http_status(status: int, detail: str) -> UploadResult:
    if status in (401, 403):
        return UploadResult.fail(
            UploadErrorCode.AUTH_FAILED,
            f"Sprinto rejected credentials ({status})",
            retryable=False,
        )
    if status == 429:
        return UploadResult.fail(
            UploadErrorCode.RATE_LIMITED,
            "Sprinto returned 429 Too Many Requests",
            retryable=True,
        )
    if status >= 500:
        return UploadResult.fail(
            UploadErrorCode.SERVER_ERROR,
            f"Sprinto returned {status}",
            retryable=True,
        )
    return UploadResult.fail(
        UploadErrorCode.CLIENT_ERROR,
        f"Sprinto returned {status}: {detail[:200]}",
        retryable=False,
    )


def classify_graphql_errors(errors: list) -> UploadResult:
    first = errors[0] if errors else {}
    message = first.get("message") if isinstance(first, dict) else None
    message = message or "Unknown GraphQL error"
    code = NON_RETRYABLE_GRAPHQL_ERRORS.get(message)
    if code is not None:
        return UploadResult.fail(code, message, retryable=False)
    return UploadResult.fail(UploadErrorCode.GRAPHQL_ERROR, message, retryable=True)


class SprintoProvider(ComplianceProvider):
    name = "sprinto"

    def upload_evidence(
        self,
        pdf: bytes,
        evidence: TrainingEvidence,
        config: ComplianceSettings,
    ) -> UploadResult:
        endpoint = get_sprinto_endpoint(config.region)
        operations = json.dumps(
            {
                "query": UPLOAD_MUTATION,
                "variables": {
                    "workflowCheckPk": config.workflow_check_id,
                    "evidenceRecordDate": evidence.generated_at.date().isoformat(),
                    "evidenceFile": None,
                },
            }
        )
        body, content_type = _encode_multipart(
            {"operations": operations, "map": json.dumps({"0": ["variables.evidenceFile"]})},
            "0",
            f"evidence-{evidence.session_id}.pdf",
            pdf,
            "application/pdf",
        )

        status, text = _post(
            endpoint,
            body,
            {"api-key": config.resolve_api_key(), "Content-Type": content_type},
        )
        if status == 0:
            return UploadResult.fail(
                UploadErrorCode.NETWORK_ERROR,
                f"Network error uploading to Sprinto: {text[:200]}",
                retryable=True,
            )
        if not 200 <= status < 300:
            return classify_http_status(status, text)

        try:
            payload = json.loads(text)
        except ValueError:
            return UploadResult.fail(
                UploadErrorCode.PARSE_ERROR,
                "Failed to parse Sprinto response as JSON",
                retryable=True,
            )
        if not isinstance(payload, dict):
            return UploadResult.fail(
                UploadErrorCode.PARSE_ERROR,
                "Unexpected Sprinto response shape",
                retryable=True,
            )

        if payload.get("errors"):
            return classify_graphql_errors(payload["errors"])

        upload = (payload.get("data") or {}).get("uploadWorkflowCheckEvidence") or {}
        reference = (upload.get("workflowCheck") or {}).get("evidenceStatus")
        return UploadResult.ok(reference)


PROVIDERS = {
    SprintoProvider.name: SprintoProvider,
}


def get_provider(name: str) -> Optional[ComplianceProvider]:
    provider_cls = PROVIDERS.get(name)
    return provider_cls() if provider_cls else None
