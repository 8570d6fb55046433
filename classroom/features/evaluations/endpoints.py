from __future__ import annotations

from fastapi import APIRouter, Depends

from classroom.common.deps import CurrentUser, require_role
from classroom.common.exceptions import AssessmentError
from classroom.common.http import to_http_exception
from classroom.features.evaluations.schemas import (
    AttemptStatusOut,
    EvaluationSubmissionRequest,
    EvaluationSubmissionResult,
)
from classroom.features.evaluations.service import evaluations_service

router = APIRouter(prefix="/evaluations", tags=["evaluations"])


@router.get(
    "/{evaluation_id}/attempts",
    response_model=AttemptStatusOut,
    summary="Attempt status for the current student",
)
async def attempt_status(
    evaluation_id: str,
    current_user: CurrentUser = Depends(require_role("student")),
):
    try:
        return await evaluations_service.attempt_status(evaluation_id, current_user.id)
    except AssessmentError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    "/{evaluation_id}/responses",
    response_model=EvaluationSubmissionResult,
    status_code=201,
    summary="Submit an attempt",
    description=(
        "Validates the answers against the evaluation type, scores them on the server "
        "and records the attempt. Rejected attempts return 409 with the policy reason "
        "(NOT_YET_OPEN, EXPIRED or ATTEMPTS_EXHAUSTED)."
    ),
)
async def submit_response(
    evaluation_id: str,
    payload: EvaluationSubmissionRequest,
    current_user: CurrentUser = Depends(require_role("student")),
):
    try:
        return await evaluations_service.submit(
            evaluation_id,
            current_user.id,
            payload.answers,
            class_id=payload.class_id,
            client_score=payload.client_score,
        )
    except AssessmentError as exc:
        raise to_http_exception(exc) from exc
