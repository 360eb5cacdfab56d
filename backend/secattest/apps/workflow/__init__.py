from .engine import (
    InvalidTransition,
    can_transition,
    can_transition_module,
    can_transition_session,
    is_terminal,
    is_terminal_module_state,
    is_terminal_session_state,
    transition,
    transition_module,
    transition_session,
)
from .registry import WORKFLOWS

__all__ = [
    "InvalidTransition",
    "WORKFLOWS",
    "can_transition",
    "can_transition_module",
    "can_transition_session",
    "is_terminal",
    "is_terminal_module_state",
    "is_terminal_session_state",
    "transition",
    "transition_module",
    "transition_session",
]
