"""Type schema registry.

One entry per (kind, type) pair binds the definition model, the answers
adapter and the scorer. Submission scoring, review tooling and the leaderboard
all resolve types here, so adding a type means registering one ``TypeSchema``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from classroom.common.exceptions import PayloadValidationError, UnknownAssessmentType
from classroom.features.assessments import scorers
from classroom.features.assessments.schemas import (
    AssessmentKind,
    ChallengeType,
    DragDropEvaluation,
    EvaluationType,
    FillBlankChallenge,
    FillBlankEvaluation,
    ManualChallenge,
    ManualEvaluation,
    MatchingChallenge,
    MatchingEvaluation,
    MultipleChoiceChallenge,
    QuizEvaluation,
    SelectImageChallenge,
    choice_answers_adapter,
    fill_blank_answers_adapter,
    fill_blank_challenge_answers_adapter,
    free_answers_adapter,
    mapping_answers_adapter,
    quiz_answers_adapter,
)

logger = logging.getLogger("assessments.registry")

ScoreFn = Callable[[Any, Any], Optional[scorers.Tally]]
KindLike = Union[AssessmentKind, str]


@dataclass(frozen=True)
class TypeSchema:
    kind: AssessmentKind
    type: str
    definition_model: Type[BaseModel]
    answers_adapter: TypeAdapter
    scorer: Optional[ScoreFn] = None

    @property
    def auto_scorable(self) -> bool:
        return self.scorer is not None


def _kind(kind: KindLike) -> AssessmentKind:
    try:
        return AssessmentKind(kind)
    except ValueError as exc:
        raise UnknownAssessmentType("assessment", kind) from exc


def _errors(exc: ValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


class TypeRegistry:
    def __init__(self) -> None:
        self._schemas: Dict[Tuple[AssessmentKind, str], TypeSchema] = {}

    def register(self, schema: TypeSchema) -> TypeSchema:
        key = (schema.kind, schema.type)
        if key in self._schemas:
            logger.info("replacing registered type kind=%s type=%s", schema.kind.value, schema.type)
        self._schemas[key] = schema
        return schema

    def types(self, kind: KindLike) -> list[str]:
        k = _kind(kind)
        return sorted(t for (sk, t) in self._schemas if sk is k)

    def get(self, type_: Any, kind: KindLike = AssessmentKind.evaluation) -> TypeSchema:
        k = _kind(kind)
        schema = self._schemas.get((k, str(type_ or "")))
        if schema is None:
            raise UnknownAssessmentType(k.value, type_)
        return schema

    def scorer_for(self, type_: Any, kind: KindLike = AssessmentKind.evaluation) -> Optional[ScoreFn]:
        """Return the scorer for a type, or None when the type is manually graded."""
        return self.get(type_, kind).scorer

    def parse_definition(self, record: Union[Mapping[str, Any], BaseModel], kind: KindLike) -> BaseModel:
        if isinstance(record, BaseModel):
            return record
        if not isinstance(record, Mapping):
            raise PayloadValidationError(f"{_kind(kind).value}_record_must_be_object")
        schema = self.get(record.get("type"), kind)
        try:
            return schema.definition_model.model_validate(dict(record))
        except ValidationError as exc:
            raise PayloadValidationError(f"invalid_{schema.type}_payload", _errors(exc)) from exc

    def parse_answers(self, schema: TypeSchema, answers: Any) -> Any:
        try:
            return schema.answers_adapter.validate_python(answers)
        except ValidationError as exc:
            raise PayloadValidationError(f"invalid_{schema.type}_answers", _errors(exc)) from exc


registry = TypeRegistry()


def _register_defaults(target: TypeRegistry) -> None:
    ev = AssessmentKind.evaluation
    ch = AssessmentKind.challenge
    entries: Iterable[TypeSchema] = (
        TypeSchema(ev, EvaluationType.quiz.value, QuizEvaluation, quiz_answers_adapter, scorers.score_quiz),
        TypeSchema(ev, EvaluationType.fill_blank.value, FillBlankEvaluation, fill_blank_answers_adapter, scorers.score_fill_blank),
        TypeSchema(ev, EvaluationType.matching.value, MatchingEvaluation, mapping_answers_adapter, scorers.score_matching),
        TypeSchema(ev, EvaluationType.dragdrop.value, DragDropEvaluation, mapping_answers_adapter, scorers.score_dragdrop),
        TypeSchema(ev, EvaluationType.coding.value, ManualEvaluation, free_answers_adapter),
        TypeSchema(ev, EvaluationType.open_ended.value, ManualEvaluation, free_answers_adapter),
        TypeSchema(ch, ChallengeType.multiple_choice.value, MultipleChoiceChallenge, choice_answers_adapter, scorers.score_choice),
        TypeSchema(ch, ChallengeType.select_image.value, SelectImageChallenge, choice_answers_adapter, scorers.score_choice),
        TypeSchema(ch, ChallengeType.matching.value, MatchingChallenge, mapping_answers_adapter, scorers.score_matching_challenge),
        TypeSchema(ch, ChallengeType.fill_blank.value, FillBlankChallenge, fill_blank_challenge_answers_adapter, scorers.score_fill_blank_challenge),
        TypeSchema(ch, ChallengeType.open_ended.value, ManualChallenge, free_answers_adapter),
        TypeSchema(ch, ChallengeType.sign_practice.value, ManualChallenge, free_answers_adapter),
    )
    for entry in entries:
        target.register(entry)


_register_defaults(registry)


def scorer_for(type_: Any, kind: KindLike = AssessmentKind.evaluation) -> Optional[ScoreFn]:
    return registry.scorer_for(type_, kind)


__all__ = ["TypeSchema", "TypeRegistry", "ScoreFn", "registry", "scorer_for"]
