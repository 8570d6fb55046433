from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from classroom.features.assessments.schemas import ReviewStatus


class ChallengeSubmissionRequest(BaseModel):
    answers: Any


class ChallengeSubmissionResult(BaseModel):
    response_id: Optional[str] = None
    challenge_id: str
    score: Optional[int] = None
    correct: Optional[int] = None
    total: Optional[int] = None
    requires_review: bool = False
    review_status: ReviewStatus


class ChallengeReviewRequest(BaseModel):
    """Teacher review of one challenge response.

    ``score`` wins over ``rubric_scores``; when both are absent the stored score
    is kept. ``expected_reviewed_at`` is the ``reviewed_at`` value the
    reviewer saw; when omitted the currently stored value is used.
    """

    score: Optional[float] = None
    rubric_scores: Optional[Dict[str, float]] = None
    review_status: ReviewStatus = ReviewStatus.approved
    teacher_feedback: Optional[str] = Field(default=None, max_length=5000)
    expected_reviewed_at: Optional[str] = None

    @field_validator("teacher_feedback")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class ChallengeReviewOut(BaseModel):
    id: str
    challenge_id: str
    student_id: str
    score: Optional[float] = None
    rubric_scores: Optional[Dict[str, Any]] = None
    review_status: ReviewStatus
    teacher_feedback: Optional[str] = None
    reviewer_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
