"""Typed payload shapes for evaluations and challenges.

Each assessment record carries a ``type`` tag that selects exactly one of the
definition models below; answer sets are parsed with the matching answers
adapter. Unknown extra keys (media urls, storage paths) are preserved.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

from classroom.features.assessments.policy import Schedule


class AssessmentKind(str, Enum):
    evaluation = "evaluation"
    challenge = "challenge"


class EvaluationType(str, Enum):
    quiz = "quiz"
    fill_blank = "fill_blank"
    matching = "matching"
    dragdrop = "dragdrop"
    coding = "coding"
    open_ended = "open_ended"


class ChallengeType(str, Enum):
    multiple_choice = "multiple_choice"
    fill_blank = "fill_blank"
    select_image = "select_image"
    matching = "matching"
    open_ended = "open_ended"
    sign_practice = "sign_practice"


class ReviewStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    needs_revision = "needs_revision"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


def _as_str(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


# ---------------------------------------------------------------------------
# Evaluation payloads
# ---------------------------------------------------------------------------

class QuizQuestion(_Payload):
    text: str = ""
    options: List[Any]
    correct: int = Field(validation_alias=AliasChoices("correct", "correct_index"))


class FillBlankQuestion(_Payload):
    prompt: str = Field(default="", validation_alias=AliasChoices("prompt", "text"))
    blanks: List[str] = Field(default_factory=list)
    answer: Optional[str] = None

    @field_validator("blanks", mode="before")
    @classmethod
    def _blanks_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [_as_str(v) for v in value] if isinstance(value, list) else value

    @property
    def expected_answers(self) -> List[str]:
        if self.blanks:
            return list(self.blanks)
        if self.answer is not None:
            return [self.answer]
        return []


class MatchingPair(_Payload):
    id: Optional[str] = None
    left_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("left_id", "leftId"))
    right_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("right_id", "rightId"))
    left: str = ""
    right: str = ""

    @field_validator("id", "left_id", "right_id", mode="before")
    @classmethod
    def _ids(cls, value: Any) -> Any:
        return _as_str(value)

    @model_validator(mode="after")
    def _has_key(self) -> "MatchingPair":
        if not (self.id or self.left_id):
            raise ValueError("matching pair requires an id")
        return self

    @property
    def key(self) -> str:
        return str(self.id or self.left_id)

    @property
    def designated_right_id(self) -> str:
        return str(self.right_id or self.id or self.left_id)


class MatchingPayload(_Payload):
    pairs: List[MatchingPair] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _bare_list(cls, value: Any) -> Any:
        if value is None:
            return {"pairs": []}
        if isinstance(value, list):
            return {"pairs": value}
        return value


class DragDropItem(_Payload):
    id: str
    label: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> Any:
        return _as_str(value)


class DragDropBoard(_Payload):
    items: List[DragDropItem] = Field(default_factory=list)
    targets: List[DragDropItem] = Field(default_factory=list)
    mapping: Dict[str, str] = Field(default_factory=dict)

    @field_validator("mapping", mode="before")
    @classmethod
    def _mapping(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): _as_str(v) for k, v in value.items() if v is not None}
        return value


class DragDropPayload(_Payload):
    dragdrop: DragDropBoard


class _Definition(_Payload):
    id: Optional[str] = None
    title: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _record_id(cls, value: Any) -> Any:
        return _as_str(value)


class EvaluationBase(_Definition):
    activity_id: Optional[str] = None
    start_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    attempts_allowed: int = Field(default=1, ge=1)

    @field_validator("attempts_allowed", mode="before")
    @classmethod
    def _default_attempts(cls, value: Any) -> Any:
        return 1 if value is None else value

    @property
    def schedule(self) -> Schedule:
        return Schedule(start_at=self.start_at, due_at=self.due_at, attempts_allowed=self.attempts_allowed)


class QuizEvaluation(EvaluationBase):
    type: Literal["quiz"] = "quiz"
    questions: List[QuizQuestion]


class FillBlankEvaluation(EvaluationBase):
    type: Literal["fill_blank"] = "fill_blank"
    questions: List[FillBlankQuestion]


class MatchingEvaluation(EvaluationBase):
    type: Literal["matching"] = "matching"
    questions: MatchingPayload


class DragDropEvaluation(EvaluationBase):
    type: Literal["dragdrop"] = "dragdrop"
    questions: DragDropPayload


class ManualEvaluation(EvaluationBase):
    type: Literal["coding", "open_ended"]
    questions: Any = None


# ---------------------------------------------------------------------------
# Challenge payloads
# ---------------------------------------------------------------------------

class RubricCriterion(_Payload):
    id: Optional[str] = None
    label: str = ""
    weight: float = Field(default=0, ge=0)

    @field_validator("weight", mode="before")
    @classmethod
    def _weight(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def key(self) -> str:
        return str(self.id or self.label)


class ChoiceOption(_Payload):
    id: str
    text: Optional[str] = None
    label: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> Any:
        return _as_str(value)


class ChoicePayload(_Payload):
    prompt: str = ""
    options: List[ChoiceOption]
    correct_index: Optional[int] = None

    @property
    def correct_option_id(self) -> Optional[str]:
        idx = self.correct_index
        if idx is None or idx < 0 or idx >= len(self.options):
            return None
        return self.options[idx].id


class FillBlankSection(_Payload):
    id: Optional[str] = None
    label: str = ""
    answer: Optional[str] = None


class FillBlankChallengePayload(_Payload):
    prompt: str = ""
    answer: Optional[str] = None
    sections: List[FillBlankSection] = Field(default_factory=list)

    def section_key(self, index: int) -> str:
        section = self.sections[index]
        return str(section.id or f"section-{index}")


class ChallengeBase(_Definition):
    class_id: Optional[str] = None
    teacher_id: Optional[str] = None
    rubric: List[RubricCriterion] = Field(default_factory=list)
    max_score: Optional[float] = Field(default=None, ge=0)

    @field_validator("rubric", mode="before")
    @classmethod
    def _rubric(cls, value: Any) -> Any:
        return [] if value is None else value


class MultipleChoiceChallenge(ChallengeBase):
    type: Literal["multiple_choice"] = "multiple_choice"
    payload: ChoicePayload


class SelectImageChallenge(ChallengeBase):
    type: Literal["select_image"] = "select_image"
    payload: ChoicePayload


class FillBlankChallenge(ChallengeBase):
    type: Literal["fill_blank"] = "fill_blank"
    payload: FillBlankChallengePayload = Field(default_factory=FillBlankChallengePayload)


class MatchingChallenge(ChallengeBase):
    type: Literal["matching"] = "matching"
    payload: MatchingPayload = Field(default_factory=MatchingPayload)


class ManualChallenge(ChallengeBase):
    type: Literal["open_ended", "sign_practice"]
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("payload", mode="before")
    @classmethod
    def _payload(cls, value: Any) -> Any:
        return {} if value is None else value


AssessmentDefinition = Union[EvaluationBase, ChallengeBase]


# ---------------------------------------------------------------------------
# Answer sets
# ---------------------------------------------------------------------------

def _normalise_selection(value: Any) -> Any:
    if value is None:
        return []
    return [None if v is None or isinstance(v, bool) else v for v in value] if isinstance(value, list) else value


def _normalise_mapping(value: Any) -> Any:
    """Accept ``{left: right}``, ``{"mapping": {...}}`` or a list of match objects."""
    if value is None:
        return {}
    if isinstance(value, dict) and isinstance(value.get("mapping"), dict):
        value = value["mapping"]
    if isinstance(value, dict) and isinstance(value.get("matches"), list):
        value = value["matches"]
    if isinstance(value, list):
        out: Dict[str, str] = {}
        for entry in value:
            if not isinstance(entry, dict):
                raise ValueError("match entries must be objects")
            key = entry.get("pairId", entry.get("pair_id", entry.get("itemId")))
            selected = entry.get("selectedId", entry.get("right", entry.get("targetId")))
            if key is None or selected is None:
                continue
            out[str(key)] = str(_as_str(selected))
        return out
    if isinstance(value, dict):
        return {str(k): str(_as_str(v)) for k, v in value.items() if v is not None and not isinstance(v, (dict, list))}
    return value


class ChoiceAnswers(_Payload):
    selected: Optional[str] = None

    @field_validator("selected", mode="before")
    @classmethod
    def _selected(cls, value: Any) -> Any:
        return _as_str(value)


class SectionAnswer(_Payload):
    section_id: str = Field(validation_alias=AliasChoices("sectionId", "section_id"))
    text: str = ""


class FillBlankChallengeAnswers(_Payload):
    text: Optional[str] = None
    sections: List[SectionAnswer] = Field(default_factory=list)


QuizAnswers = Annotated[List[Optional[int]], BeforeValidator(_normalise_selection)]
FillBlankAnswers = List[Union[str, List[str], None]]
MappingAnswers = Annotated[Dict[str, str], BeforeValidator(_normalise_mapping)]

quiz_answers_adapter: TypeAdapter = TypeAdapter(QuizAnswers)
fill_blank_answers_adapter: TypeAdapter = TypeAdapter(FillBlankAnswers)
mapping_answers_adapter: TypeAdapter = TypeAdapter(MappingAnswers)
choice_answers_adapter: TypeAdapter = TypeAdapter(ChoiceAnswers)
fill_blank_challenge_answers_adapter: TypeAdapter = TypeAdapter(FillBlankChallengeAnswers)
free_answers_adapter: TypeAdapter = TypeAdapter(Any)
