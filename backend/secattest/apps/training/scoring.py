"""
Deterministic scoring and aggregation.

Pure functions only: nothing here reads or writes storage.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, Sequence

from ...config import DEFAULT_PASS_THRESHOLD


class ScoredModule(Protocol):
    topic_area: str
    module_score: Optional[float]


def _mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def score_multiple_choice(selected: str, correct: str) -> float:
    """Exact, case-sensitive match; no partial credit."""
    return 1.0 if selected == correct else 0.0


def compute_module_score(
    scenario_scores: Iterable[float],
    quiz_scores: Iterable[float],
) -> Optional[float]:
    return _mean([*scenario_scores, *quiz_scores])


def compute_aggregate_score(module_scores: Iterable[float]) -> Optional[float]:
    return _mean(list(module_scores))


def is_passing(aggregate_score: float, threshold: float = DEFAULT_PASS_THRESHOLD) -> bool:
    return aggregate_score >= threshold


def identify_weak_areas(
    modules: Iterable[ScoredModule],
    threshold: float = DEFAULT_PASS_THRESHOLD,
) -> List[str]:
    # Module order is preserved and repeated topics are kept.
    return [
        module.topic_area
        for module in modules
        if module.module_score is not None and module.module_score < threshold
    ]
