from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from classroom.features.assessments.policy import AttemptStatus


class EvaluationSubmissionRequest(BaseModel):
    answers: Any
    class_id: Optional[str] = None
    client_score: Optional[float] = Field(
        default=None,
        description="Score computed by the browser. Recorded for comparison only; the server score is persisted.",
    )


class AttemptStatusOut(BaseModel):
    evaluation_id: str
    status: AttemptStatus
    attempts_used: int
    attempts_allowed: int
    attempts_remaining: int
    start_at: Optional[datetime] = None
    due_at: Optional[datetime] = None


class EvaluationSubmissionResult(BaseModel):
    response_id: str
    evaluation_id: str
    score: Optional[int] = None
    correct: Optional[int] = None
    total: Optional[int] = None
    requires_review: bool = False
    attempt_number: Optional[int] = None
    attempts_allowed: int
    completed_at: Optional[datetime] = None
