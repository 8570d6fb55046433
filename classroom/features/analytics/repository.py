"""Read-only store access for aggregation.

Evaluations have no class reference, so class-scoped reads traverse
class -> lessons -> activities -> evaluations -> student_responses. Every stage
goes through ``fetch_in``, which returns nothing for an empty id list instead
of sending an empty ``IN`` filter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from supabase import AsyncClient

from classroom.db.supabase import get_service_supabase, get_supabase

logger = logging.getLogger("analytics.repository")

ClientFactory = Callable[[], Awaitable[AsyncClient]]


def _unique(values: Iterable[Any]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        if value is None or value == "":
            continue
        seen.setdefault(str(value), None)
    return list(seen)


@dataclass
class ClassHierarchy:
    class_id: str
    lesson_ids: List[str] = field(default_factory=list)
    activity_ids: List[str] = field(default_factory=list)
    evaluation_ids: List[str] = field(default_factory=list)


class AnalyticsRepository:
    def __init__(self, client_factory: ClientFactory = get_supabase) -> None:
        self._client_factory = client_factory

    async def client(self) -> AsyncClient:
        return await self._client_factory()

    async def fetch_in(
        self,
        table: str,
        columns: str,
        column: str,
        ids: Sequence[str],
        stage: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        if not ids:
            logger.debug("aggregation gap table=%s stage=%s: no ids, skipping query", table, stage or column)
            return []
        client = await self.client()
        resp = await client.table(table).select(columns).in_(column, list(ids)).execute()
        return resp.data or []

    async def _select(self, table: str, columns: str, **filters: Any) -> List[Dict[str, Any]]:
        client = await self.client()
        query = client.table(table).select(columns)
        for key, value in filters.items():
            query = query.eq(key, value)
        resp = await query.execute()
        return resp.data or []

    async def resolve_hierarchy(self, class_id: str) -> ClassHierarchy:
        """Collect lesson, activity and evaluation ids below a class."""
        hierarchy = ClassHierarchy(class_id=str(class_id))
        lessons = await self._select("lessons", "id", class_id=class_id)
        hierarchy.lesson_ids = _unique(row.get("id") for row in lessons)
        activities = await self.fetch_in("activities", "id", "lesson_id", hierarchy.lesson_ids, "activities")
        hierarchy.activity_ids = _unique(row.get("id") for row in activities)
        evaluations = await self.fetch_in("evaluations", "id", "activity_id", hierarchy.activity_ids, "evaluations")
        hierarchy.evaluation_ids = _unique(row.get("id") for row in evaluations)
        if not hierarchy.evaluation_ids:
            logger.debug(
                "aggregation gap class_id=%s lessons=%d activities=%d evaluations=0",
                class_id,
                len(hierarchy.lesson_ids),
                len(hierarchy.activity_ids),
            )
        return hierarchy

    async def get_class(self, class_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._select("classes", "id,name,teacher_id", id=class_id)
        return rows[0] if rows else None

    async def get_classes(self, class_ids: Sequence[str]) -> List[Dict[str, Any]]:
        return await self.fetch_in("classes", "id,name,teacher_id", "id", class_ids, "classes")

    async def list_classes(self) -> List[Dict[str, Any]]:
        return await self._select("classes", "id,name,teacher_id")

    async def list_enrollments(self, class_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if class_id is None:
            return await self._select("class_enrollments", "class_id,student_id,teacher_id")
        return await self._select("class_enrollments", "class_id,student_id,teacher_id", class_id=class_id)

    async def list_student_enrollments(self, student_id: str) -> List[Dict[str, Any]]:
        return await self._select("class_enrollments", "class_id,student_id,teacher_id", student_id=student_id)

    async def is_enrolled(self, class_id: str, student_id: str) -> bool:
        rows = await self._select("class_enrollments", "class_id", class_id=class_id, student_id=student_id)
        return bool(rows)

    async def list_progress(self, class_id: Optional[str] = None) -> List[Dict[str, Any]]:
        columns = "class_id,student_id,lesson_id,progress_percentage,completed"
        if class_id is None:
            return await self._select("student_progress", columns)
        return await self._select("student_progress", columns, class_id=class_id)

    async def list_evaluation_responses(self, evaluation_ids: Sequence[str]) -> List[Dict[str, Any]]:
        return await self.fetch_in(
            "student_responses",
            "id,student_id,evaluation_id,score,answers,completed_at",
            "evaluation_id",
            evaluation_ids,
            "student_responses",
        )

    async def list_all_evaluation_responses(self) -> List[Dict[str, Any]]:
        return await self._select("student_responses", "id,student_id,evaluation_id,score,answers")

    async def list_challenges(self, class_id: str) -> List[Dict[str, Any]]:
        return await self._select("challenges", "*", class_id=class_id)

    async def list_challenge_responses(self, challenge_ids: Sequence[str]) -> List[Dict[str, Any]]:
        return await self.fetch_in(
            "challenge_responses",
            "id,challenge_id,student_id,answers,score,review_status",
            "challenge_id",
            challenge_ids,
            "challenge_responses",
        )

    async def list_user_roles(self) -> List[Dict[str, Any]]:
        return await self._select("users", "id,role")

    async def get_users(self, user_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        rows = await self.fetch_in("users", "id,full_name,email,role", "id", _unique(user_ids), "users")
        return {str(row["id"]): row for row in rows if row.get("id") is not None}


analytics_repository = AnalyticsRepository(get_supabase)
platform_repository = AnalyticsRepository(get_service_supabase)

__all__ = [
    "AnalyticsRepository",
    "ClassHierarchy",
    "analytics_repository",
    "platform_repository",
]
