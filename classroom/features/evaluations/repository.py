from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from postgrest.exceptions import APIError

from classroom.common.exceptions import PolicyViolation
from classroom.common.utils import current_timestamp
from classroom.db.supabase import get_supabase
from classroom.features.assessments.policy import AttemptStatus

logger = logging.getLogger("evaluations.repository")

SUBMIT_FUNCTION = "submit_evaluation_response"


def policy_status_from_error(exc: Exception) -> Optional[AttemptStatus]:
    """Map an error raised by the admission function to its AttemptStatus."""
    message = str(getattr(exc, "message", None) or "").strip().upper()
    for status in AttemptStatus:
        if status is not AttemptStatus.OPEN and message == status.value:
            return status
    code = str(getattr(exc, "code", None) or "")
    if code == "23505" or "UQ_STUDENT_RESPONSES_ATTEMPT" in message:
        return AttemptStatus.ATTEMPTS_EXHAUSTED
    return None


class EvaluationsRepository:
    """Data access for evaluations and their student responses."""

    _EVALUATIONS = "evaluations"
    _RESPONSES = "student_responses"
    _ACTIVITIES = "activities"
    _LESSONS = "lessons"
    _ENROLLMENTS = "class_enrollments"
    _PROGRESS = "student_progress"

    async def get_evaluation(self, evaluation_id: str) -> Optional[Dict[str, Any]]:
        client = await get_supabase()
        resp = await client.table(self._EVALUATIONS).select("*").eq("id", evaluation_id).limit(1).execute()
        rows = resp.data or []
        return rows[0] if rows else None

    async def count_attempts(self, evaluation_id: str, student_id: str) -> int:
        client = await get_supabase()
        resp = await (
            client.table(self._RESPONSES)
            .select("id", count="exact")
            .eq("evaluation_id", evaluation_id)
            .eq("student_id", student_id)
            .execute()
        )
        count = getattr(resp, "count", None)
        if count is None:
            count = len(resp.data or [])
        return int(count)

    async def record_attempt(
        self,
        evaluation_id: str,
        student_id: str,
        answers: Any,
        score: Optional[int],
    ) -> Dict[str, Any]:
        """Admit and insert one attempt in a single store-side transaction.

        The store function re-checks the window and the attempt count under a
        per-(evaluation, student) lock, so concurrent submissions cannot exceed
        ``attempts_allowed``.
        """
        client = await get_supabase()
        params = {
            "p_evaluation_id": evaluation_id,
            "p_student_id": student_id,
            "p_answers": answers,
            "p_score": score,
        }
        try:
            resp = await client.rpc(SUBMIT_FUNCTION, params).execute()
        except APIError as exc:
            status = policy_status_from_error(exc)
            if status is not None:
                logger.info(
                    "attempt rejected by store evaluation_id=%s student_id=%s status=%s",
                    evaluation_id,
                    student_id,
                    status.value,
                )
                raise PolicyViolation(status) from exc
            raise
        data = resp.data
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise RuntimeError("submit_evaluation_response returned no row")
        return data

    async def get_activity_lesson(self, activity_id: str) -> Optional[Dict[str, Any]]:
        """Return the ``{id, class_id}`` lesson row that owns an activity."""
        client = await get_supabase()
        resp = await client.table(self._ACTIVITIES).select("lesson_id").eq("id", activity_id).limit(1).execute()
        rows = resp.data or []
        lesson_id = rows[0].get("lesson_id") if rows else None
        if not lesson_id:
            return None
        resp = await client.table(self._LESSONS).select("id,class_id").eq("id", lesson_id).limit(1).execute()
        rows = resp.data or []
        return rows[0] if rows else None

    async def is_enrolled(self, class_id: str, student_id: str) -> bool:
        client = await get_supabase()
        resp = await (
            client.table(self._ENROLLMENTS)
            .select("class_id")
            .eq("class_id", class_id)
            .eq("student_id", student_id)
            .limit(1)
            .execute()
        )
        return bool(resp.data)

    async def mark_lesson_completed(self, student_id: str, class_id: str, lesson_id: str) -> None:
        client = await get_supabase()
        await client.table(self._PROGRESS).upsert(
            {
                "student_id": student_id,
                "class_id": class_id,
                "lesson_id": lesson_id,
                "progress_percentage": 100,
                "completed": True,
                "last_accessed": current_timestamp().isoformat(),
            },
            on_conflict="student_id,class_id,lesson_id",
        ).execute()


evaluations_repository = EvaluationsRepository()

__all__ = ["evaluations_repository", "EvaluationsRepository", "policy_status_from_error"]
