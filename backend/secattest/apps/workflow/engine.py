from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Union

from .registry import WORKFLOWS

SESSION = "training_session"
MODULE = "training_module"

StateLike = Union[str, Enum]


@dataclass
class InvalidTransition(Exception):
    entity_type: str
    current_state: str
    event: str

    def __str__(self) -> str:
        return f"Invalid {self.entity_type} transition: '{self.event}' from '{self.current_state}'"


def _value(item: StateLike) -> str:
    return item.value if isinstance(item, Enum) else str(item)


def _table(entity_type: str) -> Dict[str, Dict[str, str]]:
    workflow = WORKFLOWS.get(entity_type)
    if not workflow:
        raise KeyError(f"No workflow registered for {entity_type}")
    return workflow["transitions"]


def transition(entity_type: str, state: StateLike, event: StateLike) -> str:
    current, name = _value(state), _value(event)
    next_state = _table(entity_type).get(current, {}).get(name)
    if next_state is None:
        raise InvalidTransition(entity_type=entity_type, current_state=current, event=name)
    return next_state


def can_transition(entity_type: str, state: StateLike, event: StateLike) -> bool:
    return _value(event) in _table(entity_type).get(_value(state), {})


def is_terminal(entity_type: str, state: StateLike) -> bool:
    table = _table(entity_type)
    current = _value(state)
    return current in table and not table[current]


def transition_session(state: StateLike, event: StateLike) -> str:
    return transition(SESSION, state, event)


def can_transition_session(state: StateLike, event: StateLike) -> bool:
    return can_transition(SESSION, state, event)


def is_terminal_session_state(state: StateLike) -> bool:
    return is_terminal(SESSION, state)


def transition_module(state: StateLike, event: StateLike) -> str:
    return transition(MODULE, state, event)


def can_transition_module(state: StateLike, event: StateLike) -> bool:
    return can_transition(MODULE, state, event)


def is_terminal_module_state(state: StateLike) -> bool:
    return is_terminal(MODULE, state)
