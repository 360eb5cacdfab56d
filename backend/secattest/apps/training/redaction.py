"""
Secret redaction for free-text transcripts.

Employee answers and evaluator rationales pass through ``redact`` before they
are stored, so credentials pasted into a training answer never reach storage
or evidence. Each match is replaced by a typed marker such as
``[REDACTED:API_KEY]``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple

# (category, pattern). Applied in order; later patterns see earlier markers.
SECRET_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("API_KEY", re.compile(r"AKIA[A-Z0-9]{16}")),
    ("API_KEY", re.compile(r"(?:sk|pk)-[a-zA-Z0-9]{20,}")),
    ("BEARER", re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*")),
    ("CONNECTION_STRING", re.compile(r"(?:mongodb|postgres|postgresql|mysql|redis)://\S+")),
    ("PASSWORD", re.compile(r"password\s*[=:]\s*[^\s;,&\"']+", re.IGNORECASE)),
    ("PASSWORD", re.compile(r"secret\s*[=:]\s*[^\s;,&\"']+", re.IGNORECASE)),
    ("TOKEN", re.compile(r"token\s*[=:]\s*[^\s;,&\"']+", re.IGNORECASE)),
]


def _marker(category: str) -> str:
    return f"[REDACTED:{category}]"


@dataclass
class RedactionResult:
    text: str
    redaction_count: int = 0
    redaction_types: List[str] = field(default_factory=list)


def redact(text: str) -> RedactionResult:
    if not text:
        return RedactionResult(text=text)

    count = 0
    types: List[str] = []
    for category, pattern in SECRET_PATTERNS:
        text, found = pattern.subn(_marker(category), text)
        if found:
            count += found
            if category not in types:
                types.append(category)
    return RedactionResult(text=text, redaction_count=count, redaction_types=types)


def redact_optional(value: Optional[str]) -> Optional[str]:
    """``None`` and empty strings pass through unchanged."""
    if not value:
        return value
    return redact(value).text
