from __future__ import annotations

from fastapi import APIRouter, Depends

from classroom.common.deps import CurrentUser, require_role
from classroom.common.exceptions import AssessmentError
from classroom.common.http import to_http_exception
from classroom.features.challenges.schemas import (
    ChallengeReviewOut,
    ChallengeReviewRequest,
    ChallengeSubmissionRequest,
    ChallengeSubmissionResult,
)
from classroom.features.challenges.service import challenges_service

router = APIRouter(prefix="/challenges", tags=["challenges"])


@router.post("/{challenge_id}/responses", response_model=ChallengeSubmissionResult)
async def submit_response(
    challenge_id: str,
    payload: ChallengeSubmissionRequest,
    current_user: CurrentUser = Depends(require_role("student")),
):
    try:
        return await challenges_service.submit(challenge_id, current_user.id, payload.answers)
    except AssessmentError as exc:
        raise to_http_exception(exc) from exc


@router.patch(
    "/responses/{response_id}/review",
    response_model=ChallengeReviewOut,
    summary="Review a challenge response",
    description=(
        "Only the challenge's teacher (or an admin) may review. An explicit score wins over "
        "rubric points. Returns 409 when another review was saved after the one the reviewer loaded."
    ),
)
async def review_response(
    response_id: str,
    payload: ChallengeReviewRequest,
    current_user: CurrentUser = Depends(require_role("teacher")),
):
    try:
        return await challenges_service.review(response_id, current_user, payload)
    except AssessmentError as exc:
        raise to_http_exception(exc) from exc
