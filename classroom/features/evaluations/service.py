from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from classroom.common.exceptions import NotFoundError, PolicyViolation
from classroom.common.utils import current_timestamp, parse_timestamp, to_finite_number
from classroom.features.assessments.policy import AttemptDecision, Schedule, evaluate
from classroom.features.assessments.schemas import AssessmentKind
from classroom.features.assessments.scoring import score_submission
from classroom.features.evaluations.repository import evaluations_repository
from classroom.features.evaluations.schemas import AttemptStatusOut, EvaluationSubmissionResult

logger = logging.getLogger("evaluations.service")


class EvaluationsService:
    def __init__(self, repo=evaluations_repository) -> None:
        self.repo = repo

    async def _load(self, evaluation_id: str) -> dict:
        evaluation = await self.repo.get_evaluation(evaluation_id)
        if not evaluation:
            raise NotFoundError("evaluation_not_found")
        return evaluation

    async def decide(
        self,
        evaluation: dict,
        student_id: str,
        now: Optional[datetime] = None,
    ) -> AttemptDecision:
        schedule = Schedule.from_record(evaluation)
        used = await self.repo.count_attempts(str(evaluation["id"]), student_id)
        return evaluate(now or current_timestamp(), schedule, used)

    async def attempt_status(
        self,
        evaluation_id: str,
        student_id: str,
        now: Optional[datetime] = None,
    ) -> AttemptStatusOut:
        evaluation = await self._load(evaluation_id)
        decision = await self.decide(evaluation, student_id, now)
        schedule = Schedule.from_record(evaluation)
        return AttemptStatusOut(
            evaluation_id=str(evaluation_id),
            status=decision.status,
            attempts_used=decision.attempts_used,
            attempts_allowed=decision.attempts_allowed,
            attempts_remaining=decision.attempts_remaining,
            start_at=schedule.start_at,
            due_at=schedule.due_at,
        )

    async def submit(
        self,
        evaluation_id: str,
        student_id: str,
        answers: Any,
        class_id: Optional[str] = None,
        client_score: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> EvaluationSubmissionResult:
        """Score and persist one attempt.

        Validation and scoring run before admission so a malformed payload never
        consumes an attempt. The policy pre-check gives a precise reason; the
        store function repeats it atomically with the insert.
        """
        evaluation = await self._load(evaluation_id)
        result = score_submission(evaluation, answers, AssessmentKind.evaluation)

        client_value = to_finite_number(client_score)
        if client_value is not None and result.score is not None and round(client_value) != result.score:
            logger.warning(
                "client score mismatch evaluation_id=%s student_id=%s client=%s server=%s",
                evaluation_id,
                student_id,
                client_value,
                result.score,
            )

        decision = await self.decide(evaluation, student_id, now)
        if not decision.allowed:
            logger.info(
                "attempt rejected evaluation_id=%s student_id=%s status=%s used=%d allowed=%d",
                evaluation_id,
                student_id,
                decision.status.value,
                decision.attempts_used,
                decision.attempts_allowed,
            )
            raise PolicyViolation(decision.status)

        row = await self.repo.record_attempt(str(evaluation_id), student_id, answers, result.score)
        logger.info(
            "attempt recorded evaluation_id=%s student_id=%s attempt=%s score=%s",
            evaluation_id,
            student_id,
            row.get("attempt_number"),
            result.score,
        )

        await self._mark_progress(evaluation, student_id, class_id)

        return EvaluationSubmissionResult(
            response_id=str(row.get("id")),
            evaluation_id=str(evaluation_id),
            score=result.score,
            correct=result.correct,
            total=result.total,
            requires_review=result.requires_review,
            attempt_number=row.get("attempt_number"),
            attempts_allowed=decision.attempts_allowed,
            completed_at=parse_timestamp(row.get("completed_at")),
        )

    async def _mark_progress(self, evaluation: dict, student_id: str, class_id: Optional[str]) -> None:
        """Mark the evaluation's lesson completed in the class that owns the lesson.

        ``class_id`` from the client is only a hint; progress is never written
        to another class or for a student outside the class.
        """
        activity_id = evaluation.get("activity_id")
        if not activity_id:
            return
        try:
            lesson = await self.repo.get_activity_lesson(str(activity_id))
            if not lesson or not lesson.get("class_id"):
                logger.debug("no lesson for activity_id=%s; progress not marked", activity_id)
                return
            lesson_class = str(lesson["class_id"])
            if class_id and str(class_id) != lesson_class:
                logger.warning(
                    "class mismatch evaluation_id=%s student_id=%s client_class=%s lesson_class=%s",
                    evaluation.get("id"),
                    student_id,
                    class_id,
                    lesson_class,
                )
            class_id = lesson_class
            if not await self.repo.is_enrolled(class_id, student_id):
                logger.info(
                    "student not enrolled; progress not marked student_id=%s class_id=%s", student_id, class_id
                )
                return
            await self.repo.mark_lesson_completed(student_id, class_id, str(lesson["id"]))
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "progress update failed evaluation_id=%s student_id=%s class_id=%s: %s",
                evaluation.get("id"),
                student_id,
                class_id,
                exc,
            )


evaluations_service = EvaluationsService()

__all__ = ["evaluations_service", "EvaluationsService"]
