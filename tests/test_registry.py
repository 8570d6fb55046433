import pytest
from pydantic import BaseModel, TypeAdapter

from classroom.common.exceptions import UnknownAssessmentType
from classroom.features.assessments.registry import TypeRegistry, TypeSchema, registry, scorer_for
from classroom.features.assessments.schemas import AssessmentKind
from classroom.features.assessments.scorers import Tally
from classroom.features.assessments.scoring import score_submission


def test_manual_types_have_no_scorer():
    assert scorer_for("open_ended") is None
    assert scorer_for("coding") is None
    assert scorer_for("sign_practice", "challenge") is None
    assert scorer_for("open_ended", AssessmentKind.challenge) is None


def test_auto_types_have_scorers():
    for type_ in ("quiz", "fill_blank", "matching", "dragdrop"):
        assert scorer_for(type_) is not None
    for type_ in ("multiple_choice", "select_image", "matching", "fill_blank"):
        assert scorer_for(type_, "challenge") is not None


def test_same_tag_resolves_per_kind():
    assert registry.get("matching", "evaluation") is not registry.get("matching", "challenge")


def test_unknown_type_and_kind():
    with pytest.raises(UnknownAssessmentType) as exc:
        registry.get("essay")
    assert exc.value.message == "unknown_evaluation_type:essay"
    with pytest.raises(UnknownAssessmentType):
        registry.get("quiz", "survey")


def test_registered_types_are_listed():
    assert registry.types("evaluation") == ["coding", "dragdrop", "fill_blank", "matching", "open_ended", "quiz"]


class _TrueFalse(BaseModel):
    type: str = "true_false"
    questions: list


def test_new_type_is_one_registration():
    local = TypeRegistry()
    local.register(
        TypeSchema(
            AssessmentKind.evaluation,
            "true_false",
            _TrueFalse,
            TypeAdapter(list),
            lambda d, a: Tally(sum(1 for q, x in zip(d.questions, a) if q == x), len(d.questions)),
        )
    )
    result = score_submission({"type": "true_false", "questions": [True, False]}, [True, True], registry=local)
    assert result.score == 50
