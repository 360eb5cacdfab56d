from __future__ import annotations

import enum

UPLOADS_COLLECTION = "compliance_uploads"


class UploadStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class UploadErrorCode(str, enum.Enum):
    EVIDENCE_NOT_FOUND = "EVIDENCE_NOT_FOUND"
    PDF_RENDER_FAILED = "PDF_RENDER_FAILED"
    AUTH_FAILED = "AUTH_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    CLIENT_ERROR = "CLIENT_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    GRAPHQL_ERROR = "GRAPHQL_ERROR"
    INVALID_CHECK_ID = "INVALID_CHECK_ID"
    CHECK_LOCKED = "CHECK_LOCKED"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
