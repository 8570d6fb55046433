"""Assessment modelling: type registry, scoring, attempt policy and legacy score extraction."""

from .extraction import extract_score
from .policy import AttemptStatus, Schedule, check_attempt_policy
from .registry import registry, scorer_for
from .schemas import AssessmentKind, ChallengeType, EvaluationType, ReviewStatus
from .scoring import ScoreResult, rubric_total, score_submission

__all__ = [
    "AssessmentKind",
    "AttemptStatus",
    "ChallengeType",
    "EvaluationType",
    "ReviewStatus",
    "Schedule",
    "ScoreResult",
    "check_attempt_policy",
    "extract_score",
    "registry",
    "rubric_total",
    "score_submission",
    "scorer_for",
]
