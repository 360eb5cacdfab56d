"""
Precondition errors shared by the training, evidence and compliance apps.

Each error carries structured fields so callers branch on type and fields,
never on message text.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class NotFound(Exception):
    entity: str
    id: str

    def __str__(self) -> str:
        return f"{self.entity} '{self.id}' not found"


@dataclass
class ExpectedTerminalState(Exception):
    session_id: str
    status: str

    def __str__(self) -> str:
        return (
            f"Session '{self.session_id}' is in '{self.status}' state, "
            "expected terminal state (passed, exhausted, or abandoned)"
        )


@dataclass
class Conflict(Exception):
    reason: str

    def __str__(self) -> str:
        return self.reason


@dataclass
class ValidationFailed(Exception):
    reason: str

    def __str__(self) -> str:
        return self.reason
