from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from classroom.common.deps import CurrentUser, is_admin
from classroom.common.exceptions import (
    AccessDenied,
    NotFoundError,
    PayloadValidationError,
    ResponseLocked,
    ReviewConflict,
)
from classroom.common.utils import format_timestamp, current_timestamp, to_finite_number
from classroom.features.assessments.schemas import AssessmentKind, ReviewStatus
from classroom.features.assessments.scoring import DEFAULT_MAX_SCORE, rubric_total, score_submission
from classroom.features.challenges.repository import challenges_repository
from classroom.features.challenges.schemas import (
    ChallengeReviewOut,
    ChallengeReviewRequest,
    ChallengeSubmissionResult,
)

logger = logging.getLogger("challenges.service")


def _max_score(challenge: Dict[str, Any]) -> float:
    value = to_finite_number(challenge.get("max_score"))
    return value if value is not None and value > 0 else float(DEFAULT_MAX_SCORE)


def resolve_review_score(
    challenge: Dict[str, Any],
    review: ChallengeReviewRequest,
    current: Optional[float] = None,
) -> Optional[float]:
    """Explicit score, else rubric total, else the score already stored."""
    ceiling = _max_score(challenge)
    if review.score is not None:
        score = to_finite_number(review.score)
        if score is None or score < 0 or score > ceiling:
            raise PayloadValidationError(
                "score_out_of_range",
                [{"loc": ["score"], "msg": f"score must be between 0 and {ceiling:g}", "type": "value_error"}],
            )
        return score
    if review.rubric_scores:
        return rubric_total(challenge.get("rubric") or [], review.rubric_scores, ceiling)
    return to_finite_number(current)


class ChallengesService:
    def __init__(self, repo=challenges_repository) -> None:
        self.repo = repo

    async def submit(self, challenge_id: str, student_id: str, answers: Any) -> ChallengeSubmissionResult:
        challenge = await self.repo.get_challenge(challenge_id)
        if not challenge:
            raise NotFoundError("challenge_not_found")

        result = score_submission(challenge, answers, AssessmentKind.challenge)

        existing = await self.repo.get_response(challenge_id, student_id)
        if (
            existing
            and existing.get("review_status") == ReviewStatus.approved.value
            and existing.get("reviewed_at")
        ):
            raise ResponseLocked("response_already_reviewed")

        status = ReviewStatus.pending if result.requires_review else ReviewStatus.approved
        record = {
            "challenge_id": challenge_id,
            "student_id": student_id,
            "answers": answers,
            "score": result.score,
            "review_status": status.value,
            "rubric_scores": None,
            "teacher_feedback": None,
            "reviewer_id": None,
            "reviewed_at": None,
            "submitted_at": format_timestamp(current_timestamp()),
        }
        row = await self.repo.upsert_response(record)
        logger.info(
            "challenge response saved challenge_id=%s student_id=%s score=%s status=%s resubmission=%s",
            challenge_id,
            student_id,
            result.score,
            status.value,
            bool(existing),
        )
        response_id = row.get("id")
        return ChallengeSubmissionResult(
            response_id=str(response_id) if response_id is not None else None,
            challenge_id=str(challenge_id),
            score=result.score,
            correct=result.correct,
            total=result.total,
            requires_review=result.requires_review,
            review_status=status,
        )

    async def review(
        self,
        response_id: str,
        reviewer: CurrentUser,
        review: ChallengeReviewRequest,
    ) -> ChallengeReviewOut:
        response = await self.repo.get_response_by_id(response_id)
        if not response:
            raise NotFoundError("response_not_found")
        challenge = await self.repo.get_challenge(str(response.get("challenge_id")))
        if not challenge:
            raise NotFoundError("challenge_not_found")
        if not is_admin(reviewer) and str(challenge.get("teacher_id")) != reviewer.id:
            raise AccessDenied("not_challenge_owner")

        score = resolve_review_score(challenge, review, response.get("score"))
        patch = {
            "score": score,
            "rubric_scores": review.rubric_scores,
            "review_status": review.review_status.value,
            "teacher_feedback": review.teacher_feedback,
            "reviewer_id": reviewer.id,
            "reviewed_at": format_timestamp(current_timestamp()),
        }
        previous = review.expected_reviewed_at
        if previous is None:
            previous = response.get("reviewed_at")
        rows = await self.repo.update_review(response_id, patch, previous)
        if not rows:
            logger.info("review conflict response_id=%s reviewer_id=%s", response_id, reviewer.id)
            raise ReviewConflict("review_conflict")

        logger.info(
            "challenge response reviewed response_id=%s reviewer_id=%s score=%s status=%s",
            response_id,
            reviewer.id,
            score,
            review.review_status.value,
        )
        return ChallengeReviewOut(**{**response, **rows[0]})


challenges_service = ChallengesService()

__all__ = ["challenges_service", "ChallengesService", "resolve_review_score"]
