from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

MAX_RESPONSE_LENGTH = 2000

AI_UNAVAILABLE = "ai_unavailable"
EVALUATION_FAILED = "evaluation_failed"


@dataclass
class EvaluationError(Exception):
    code: str
    message: str

    def __str__(self) -> str:
        return self.message


class EvaluationResult(BaseModel):
    score: float
    rationale: str = ""


class EvaluationService:
    """Scores a free-text answer against a rubric. Implemented by an AI-backed service."""

    def evaluate_free_text(self, question: str, rubric: str, response: str) -> EvaluationResult:
        raise NotImplementedError


def evaluate_free_text(
    service: EvaluationService,
    *,
    question: str,
    rubric: str,
    response: str,
) -> EvaluationResult:
    """
    Delegate free-text scoring and validate what comes back.

    - responses over MAX_RESPONSE_LENGTH characters -> evaluation_failed
    - any unexpected service exception -> ai_unavailable
    - a score outside [0, 1] -> evaluation_failed
    """
    if len(response) > MAX_RESPONSE_LENGTH:
        raise EvaluationError(
            code=EVALUATION_FAILED,
            message=f"Response exceeds maximum length of {MAX_RESPONSE_LENGTH} characters",
        )

    try:
        result = service.evaluate_free_text(question, rubric, response)
    except EvaluationError:
        raise
    except Exception as exc:
        logger.warning(
            "Evaluation service call failed",
            extra={"error_type": type(exc).__name__},
        )
        raise EvaluationError(code=AI_UNAVAILABLE, message="Evaluation service unavailable") from exc

    if not isinstance(result, EvaluationResult):
        try:
            result = EvaluationResult.model_validate(result)
        except ValidationError as exc:
            raise EvaluationError(code=EVALUATION_FAILED, message="Malformed evaluation result") from exc
    if not 0 <= result.score <= 1:
        raise EvaluationError(
            code=EVALUATION_FAILED,
            message=f"Evaluation score {result.score} is outside the range [0, 1]",
        )
    return result
