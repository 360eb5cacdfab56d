"""
Content-generation contract and the structural checks applied to its output.

The generator itself (an AI-backed service) lives outside this package; what
it returns is validated here before anything is persisted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from pydantic import ValidationError

from .models import ResponseType
from .schemas import (
    Curriculum,
    CurriculumModule,
    ModuleContent,
    QuestionOption,
    RoleProfile,
)

logger = logging.getLogger(__name__)

AI_UNAVAILABLE = "ai_unavailable"
GENERATION_FAILED = "generation_failed"
PLANNING_FAILED = "planning_failed"


@dataclass
class GenerationError(Exception):
    code: str
    message: str

    def __str__(self) -> str:
        return self.message


class ContentGenerator:
    def generate_curriculum(self, role_profile: RoleProfile, *, max_modules: int) -> Curriculum:
        raise NotImplementedError

    def generate_module_content(
        self,
        outline: CurriculumModule,
        role_profile: RoleProfile,
    ) -> ModuleContent:
        raise NotImplementedError

    def generate_remediation_curriculum(
        self,
        weak_areas: List[str],
        role_profile: RoleProfile,
        *,
        max_modules: int,
    ) -> Curriculum:
        raise NotImplementedError


def _call(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except GenerationError:
        raise
    except ValidationError as exc:
        raise GenerationError(code=GENERATION_FAILED, message="Generated content failed validation") from exc
    except Exception as exc:
        logger.warning(
            "Content generator call failed",
            extra={"operation": getattr(fn, "__name__", "unknown"), "error_type": type(exc).__name__},
        )
        raise GenerationError(code=AI_UNAVAILABLE, message="Content generation service unavailable") from exc


def _coerce(model, value):
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise GenerationError(
            code=GENERATION_FAILED,
            message=f"Generator returned a malformed {model.__name__}",
        ) from exc


def _check_options(item_id: str, options: Optional[List[QuestionOption]]) -> None:
    if not options:
        raise GenerationError(
            code=GENERATION_FAILED,
            message=f"Multiple-choice item '{item_id}' has no options",
        )
    correct = sum(1 for option in options if option.correct)
    if correct != 1:
        raise GenerationError(
            code=GENERATION_FAILED,
            message=f"Multiple-choice item '{item_id}' must have exactly one correct option, found {correct}",
        )


def _check_curriculum(curriculum: Curriculum, role_profile: RoleProfile, max_modules: int, code: str) -> None:
    if not curriculum.modules:
        raise GenerationError(code=code, message="Curriculum contains no modules")
    if len(curriculum.modules) > max_modules:
        raise GenerationError(
            code=code,
            message=f"Curriculum has {len(curriculum.modules)} modules, maximum is {max_modules}",
        )
    expectation_count = len(role_profile.job_expectations)
    for module in curriculum.modules:
        for index in module.job_expectation_indices:
            if not 0 <= index < expectation_count:
                raise GenerationError(
                    code=code,
                    message=f"Module '{module.title}' references job expectation {index} out of range",
                )


def generate_curriculum(
    generator: ContentGenerator,
    role_profile: RoleProfile,
    *,
    max_modules: int,
) -> Curriculum:
    curriculum = _coerce(Curriculum, _call(generator.generate_curriculum, role_profile, max_modules=max_modules))
    _check_curriculum(curriculum, role_profile, max_modules, GENERATION_FAILED)
    return curriculum


def generate_module_content(
    generator: ContentGenerator,
    outline: CurriculumModule,
    role_profile: RoleProfile,
) -> ModuleContent:
    content = _coerce(ModuleContent, _call(generator.generate_module_content, outline, role_profile))
    if not content.instruction.strip():
        raise GenerationError(code=GENERATION_FAILED, message="Module content has no instruction text")
    if not content.scenarios:
        raise GenerationError(code=GENERATION_FAILED, message="Module content has no scenarios")
    if not content.quiz:
        raise GenerationError(code=GENERATION_FAILED, message="Module content has no quiz questions")

    seen = set()
    for item_id, response_type, options in [
        *((s.id, s.response_type, s.options) for s in content.scenarios),
        *((q.id, q.response_type, q.options) for q in content.quiz),
    ]:
        if item_id in seen:
            raise GenerationError(code=GENERATION_FAILED, message=f"Duplicate item id '{item_id}'")
        seen.add(item_id)
        if response_type == ResponseType.MULTIPLE_CHOICE:
            _check_options(item_id, options)
    return content


def _overlaps(topic: str, weak_areas: List[str]) -> bool:
    topic = topic.lower()
    return any(topic in area.lower() or area.lower() in topic for area in weak_areas)


def generate_remediation_curriculum(
    generator: ContentGenerator,
    weak_areas: List[str],
    role_profile: RoleProfile,
    *,
    max_modules: int,
) -> Curriculum:
    curriculum = _coerce(
        Curriculum,
        _call(
            generator.generate_remediation_curriculum,
            weak_areas,
            role_profile,
            max_modules=max_modules,
        ),
    )
    _check_curriculum(curriculum, role_profile, max_modules, PLANNING_FAILED)
    for module in curriculum.modules:
        if not _overlaps(module.topic_area, weak_areas):
            raise GenerationError(
                code=PLANNING_FAILED,
                message=f"Remediation module topic '{module.topic_area}' does not address any weak area",
            )
    return curriculum
