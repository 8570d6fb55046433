"""Scoring engine.

``score_submission`` validates the assessment and the answer set against the
registered type, then produces a 0-100 integer score. Manually graded types
return ``score=None`` with ``requires_review=True``; a teacher later supplies
the score, optionally from rubric points (see ``rubric_total``).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel

from classroom.common.utils import to_finite_number
from classroom.features.assessments.registry import KindLike, TypeRegistry, registry as default_registry
from classroom.features.assessments.schemas import (
    AssessmentKind,
    ChallengeBase,
    EvaluationBase,
    RubricCriterion,
)

DEFAULT_MAX_SCORE = 100


@dataclass(frozen=True)
class ScoreResult:
    score: Optional[int]
    correct: Optional[int] = None
    total: Optional[int] = None
    requires_review: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def infer_kind(assessment: Union[Mapping[str, Any], BaseModel]) -> AssessmentKind:
    if isinstance(assessment, ChallengeBase):
        return AssessmentKind.challenge
    if isinstance(assessment, EvaluationBase):
        return AssessmentKind.evaluation
    if isinstance(assessment, Mapping) and "payload" in assessment and "questions" not in assessment:
        return AssessmentKind.challenge
    return AssessmentKind.evaluation


def score_submission(
    assessment: Union[Mapping[str, Any], BaseModel],
    answers: Any,
    kind: Optional[KindLike] = None,
    *,
    registry: TypeRegistry = default_registry,
) -> ScoreResult:
    """Score one answer set against an evaluation or challenge.

    Raises ``PayloadValidationError`` when the payload or answers do not match
    the declared type and ``UnknownAssessmentType`` for unregistered tags.
    """
    resolved_kind = AssessmentKind(kind) if kind is not None else infer_kind(assessment)
    definition = registry.parse_definition(assessment, resolved_kind)
    schema = registry.get(getattr(definition, "type", None), resolved_kind)
    parsed_answers = registry.parse_answers(schema, answers)
    if schema.scorer is None:
        return ScoreResult(score=None, requires_review=True)
    tally = schema.scorer(definition, parsed_answers)
    if tally is None:
        return ScoreResult(score=None, requires_review=True)
    return ScoreResult(score=tally.percentage, correct=tally.correct, total=tally.total)


def _criteria(rubric: Iterable[Union[RubricCriterion, Mapping[str, Any]]]) -> list[RubricCriterion]:
    out: list[RubricCriterion] = []
    for crit in rubric or []:
        out.append(crit if isinstance(crit, RubricCriterion) else RubricCriterion.model_validate(crit))
    return out


def _whole(value: float) -> Union[int, float]:
    return int(value) if float(value).is_integer() else round(value, 2)


def rubric_total(
    rubric: Iterable[Union[RubricCriterion, Mapping[str, Any]]],
    rubric_scores: Optional[Mapping[str, Any]],
    max_score: Optional[float] = None,
) -> Union[int, float]:
    """Sum awarded rubric points, each capped at its criterion weight, clamped to [0, max_score]."""
    awarded = 0.0
    scores = rubric_scores or {}
    for crit in _criteria(rubric):
        raw = scores.get(crit.key)
        if raw is None and crit.label:
            raw = scores.get(crit.label)
        points = to_finite_number(raw)
        if points is None:
            continue
        awarded += min(max(points, 0.0), float(crit.weight))
    ceiling = float(max_score) if max_score is not None else float(DEFAULT_MAX_SCORE)
    return _whole(min(max(awarded, 0.0), ceiling))


__all__ = ["ScoreResult", "score_submission", "rubric_total", "infer_kind", "DEFAULT_MAX_SCORE"]
