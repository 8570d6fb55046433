"""Aggregation over stored responses.

Everything here is recomputed from the store on each call. Class-scoped
evaluation metrics walk the lesson/activity/evaluation hierarchy; challenge
leaderboards score each response with the registered per-type scorer.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from classroom.common.deps import CurrentUser, is_admin
from classroom.common.exceptions import AccessDenied, AssessmentError, NotFoundError
from classroom.common.utils import mean, safe_json_loads, to_finite_number
from classroom.core.config import get_settings
from classroom.features.analytics.repository import (
    AnalyticsRepository,
    analytics_repository,
    platform_repository,
)
from classroom.features.analytics.schema import (
    ClassMetrics,
    LeaderboardEntry,
    PlatformCounts,
    PlatformMetrics,
    RankedStudent,
    RankedTeacher,
    StudentBoard,
    StudentBreakdown,
    UserSummary,
)
from classroom.features.assessments.extraction import extract_score
from classroom.features.assessments.registry import TypeRegistry, registry as default_registry
from classroom.features.assessments.schemas import AssessmentKind
from classroom.features.assessments.scorers import Tally, percentage

logger = logging.getLogger("analytics.service")

T = TypeVar("T")

_STUDENT_ROLES = {"student", "estudiante"}
# Admins count as teachers for platform metrics when no teacher roles exist.
_TEACHER_ROLES = {"teacher", "docente", "admin"}
_CLASS_METRICS_CONCURRENCY = 8


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def effective_score(response: Mapping[str, Any]) -> Optional[float]:
    """Stored score when finite, else whatever the answers blob yields."""
    explicit = to_finite_number(response.get("score"))
    if explicit is not None:
        return explicit
    extracted = extract_score(response.get("answers"))
    return float(extracted) if extracted is not None else None


def student_averages(responses: Iterable[Mapping[str, Any]]) -> Dict[str, Tuple[float, int]]:
    """Map student id to (mean effective score, number of scored responses)."""
    buckets: Dict[str, List[float]] = defaultdict(list)
    for response in responses:
        sid = response.get("student_id")
        if not sid:
            continue
        score = effective_score(response)
        if score is None:
            continue
        buckets[str(sid)].append(score)
    return {sid: (sum(vals) / len(vals), len(vals)) for sid, vals in buckets.items()}


def rank_students(averages: Mapping[str, Tuple[float, int]], limit: int) -> List[RankedStudent]:
    ordered = sorted(averages.items(), key=lambda kv: (-kv[1][0], -kv[1][1], kv[0]))
    return [RankedStudent(id=sid, avg=avg, count=count) for sid, (avg, count) in ordered[: max(limit, 0)]]


def rank_teachers(counts: Mapping[str, int], limit: int) -> List[RankedTeacher]:
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [RankedTeacher(id=tid, count=count) for tid, count in ordered[: max(limit, 0)]]


def teacher_enrollment_counts(
    enrollments: Iterable[Mapping[str, Any]],
    class_teachers: Optional[Mapping[str, Optional[str]]] = None,
) -> Dict[str, int]:
    """Count enrollments per teacher; rows without ``teacher_id`` fall back to the class teacher."""
    counts: Dict[str, int] = defaultdict(int)
    class_teachers = class_teachers or {}
    for row in enrollments:
        tid = row.get("teacher_id") or class_teachers.get(str(row.get("class_id")))
        if tid:
            counts[str(tid)] += 1
    return dict(counts)


def progress_values(rows: Iterable[Mapping[str, Any]]) -> List[float]:
    values = []
    for row in rows:
        number = to_finite_number(row.get("progress_percentage"))
        if number is not None:
            values.append(number)
    return values


def _user_summary(users: Mapping[str, Mapping[str, Any]], user_id: Optional[str]) -> Optional[UserSummary]:
    if not user_id:
        return None
    row = users.get(str(user_id))
    if not row:
        return None
    return UserSummary(
        id=str(row.get("id")),
        full_name=row.get("full_name"),
        email=row.get("email"),
        role=row.get("role"),
    )


def _decode_answers(answers: Any) -> Any:
    if isinstance(answers, (str, bytes)):
        return safe_json_loads(answers, default=answers)
    return answers


def build_leaderboard(
    challenges: Sequence[Mapping[str, Any]],
    responses: Iterable[Mapping[str, Any]],
    registry: TypeRegistry = default_registry,
) -> List[LeaderboardEntry]:
    """Rank students by correct/total across auto-gradable challenges.

    Manual types add nothing to either side. Sorted by the exact
    correct/total ratio, then correct count, then student id.
    """
    definitions: Dict[str, Tuple[Any, Any]] = {}
    for challenge in challenges:
        cid = challenge.get("id")
        if cid is None:
            continue
        try:
            definition = registry.parse_definition(challenge, AssessmentKind.challenge)
            schema = registry.get(challenge.get("type"), AssessmentKind.challenge)
        except AssessmentError as exc:
            logger.warning("leaderboard skips challenge_id=%s: %s", cid, exc)
            continue
        definitions[str(cid)] = (definition, schema)

    tallies: Dict[str, Tally] = {}
    for response in responses:
        sid = response.get("student_id")
        entry = definitions.get(str(response.get("challenge_id")))
        if not sid or entry is None:
            continue
        definition, schema = entry
        current = tallies.setdefault(str(sid), Tally(0, 0))
        if schema.scorer is None:
            continue
        try:
            answers = registry.parse_answers(schema, _decode_answers(response.get("answers")))
        except AssessmentError:
            answers = registry.parse_answers(schema, {})
        tally = schema.scorer(definition, answers)
        if tally is None:
            continue
        tallies[str(sid)] = Tally(current.correct + tally.correct, current.total + tally.total)

    board = [
        LeaderboardEntry(student_id=sid, correct=t.correct, total=t.total, percentage=percentage(t.correct, t.total))
        for sid, t in tallies.items()
    ]
    board.sort(key=lambda e: (-(e.correct / e.total if e.total else 0.0), -e.correct, e.student_id))
    return board


async def _safe(label: str, awaitable: Awaitable[T], default: T) -> T:
    try:
        return await awaitable
    except Exception as exc:  # noqa: BLE001
        logger.warning("aggregation stage failed stage=%s: %s", label, exc)
        return default


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AnalyticsService:
    def __init__(
        self,
        repo: AnalyticsRepository = analytics_repository,
        platform_repo: AnalyticsRepository = platform_repository,
    ) -> None:
        self.repo = repo
        self.platform_repo = platform_repo

    async def get_class(self, class_id: str, repo: Optional[AnalyticsRepository] = None) -> Dict[str, Any]:
        row = await (repo or self.repo).get_class(class_id)
        if not row:
            raise NotFoundError("class_not_found")
        return row

    async def ensure_class_access(
        self,
        class_row: Mapping[str, Any],
        user: CurrentUser,
        allow_enrolled: bool = False,
    ) -> None:
        if is_admin(user) or str(class_row.get("teacher_id")) == user.id:
            return
        if allow_enrolled and await self.repo.is_enrolled(str(class_row["id"]), user.id):
            return
        raise AccessDenied("class_access_denied")

    async def build_class_metrics(
        self,
        class_id: str,
        *,
        class_row: Optional[Mapping[str, Any]] = None,
        repo: Optional[AnalyticsRepository] = None,
        top_n: Optional[int] = None,
    ) -> ClassMetrics:
        repo = repo or self.repo
        if class_row is None:
            class_row = await self.get_class(class_id, repo)
        limit = top_n if top_n is not None else get_settings().metrics_top_n

        hierarchy = await repo.resolve_hierarchy(class_id)
        responses, enrollments, progress = await asyncio.gather(
            repo.list_evaluation_responses(hierarchy.evaluation_ids),
            repo.list_enrollments(class_id),
            repo.list_progress(class_id),
        )

        scores = [s for s in (effective_score(r) for r in responses) if s is not None]
        top_students = rank_students(student_averages(responses), limit)
        teacher_id = class_row.get("teacher_id")
        top_teachers = rank_teachers(
            teacher_enrollment_counts(enrollments, {str(class_id): teacher_id}), limit
        )
        student_ids = {str(r["student_id"]) for r in enrollments if r.get("student_id")}
        student_ids |= {str(r["student_id"]) for r in progress if r.get("student_id")}

        users = await repo.get_users(
            [s.id for s in top_students] + [t.id for t in top_teachers] + ([teacher_id] if teacher_id else [])
        )
        for student in top_students:
            student.user = _user_summary(users, student.id)
        for teacher in top_teachers:
            teacher.user = _user_summary(users, teacher.id)

        return ClassMetrics(
            class_id=str(class_id),
            name=class_row.get("name") or str(class_id),
            teacher_id=str(teacher_id) if teacher_id else None,
            teacher=_user_summary(users, teacher_id),
            avg_score=mean(scores),
            avg_progress=mean(progress_values(progress)),
            enrollments=len(enrollments),
            students_total=len(student_ids),
            evaluations_count=len(hierarchy.evaluation_ids),
            responses_count=len(scores),
            top_students=top_students,
            top_teachers=top_teachers,
        )

    async def class_student_breakdown(self, class_id: str) -> List[StudentBreakdown]:
        await self.get_class(class_id)
        hierarchy = await self.repo.resolve_hierarchy(class_id)
        enrollments, progress, responses = await asyncio.gather(
            self.repo.list_enrollments(class_id),
            self.repo.list_progress(class_id),
            self.repo.list_evaluation_responses(hierarchy.evaluation_ids),
        )
        student_ids = list(dict.fromkeys(str(r["student_id"]) for r in enrollments if r.get("student_id")))
        if not student_ids:
            return []

        lesson_ids = set(hierarchy.lesson_ids)
        total_lessons = len(lesson_ids)
        completed: Dict[str, set] = defaultdict(set)
        for row in progress:
            lesson = row.get("lesson_id")
            if row.get("completed") is True and lesson is not None and str(lesson) in lesson_ids:
                completed[str(row.get("student_id"))].add(str(lesson))

        per_student: Dict[str, List[Mapping[str, Any]]] = defaultdict(list)
        for response in responses:
            if response.get("student_id"):
                per_student[str(response["student_id"])].append(response)

        users = await self.repo.get_users(student_ids)
        out: List[StudentBreakdown] = []
        for sid in student_ids:
            done = len(completed.get(sid, ()))
            mine = per_student.get(sid, [])
            scores = [s for s in (effective_score(r) for r in mine) if s is not None]
            user = users.get(sid) or {}
            out.append(
                StudentBreakdown(
                    student_id=sid,
                    full_name=user.get("full_name"),
                    email=user.get("email"),
                    overall_progress=percentage(done, total_lessons),
                    completed_lessons=done,
                    total_lessons=total_lessons,
                    average_score=mean(scores),
                    total_evaluations=len(mine),
                )
            )
        out.sort(key=lambda s: ((s.full_name or s.email or "").lower(), s.student_id))
        return out

    async def class_leaderboard(self, class_id: str, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        limit = limit if limit is not None else get_settings().leaderboard_limit
        challenges = await self.repo.list_challenges(class_id)
        challenge_ids = [str(c["id"]) for c in challenges if c.get("id") is not None]
        if not challenge_ids:
            logger.debug("aggregation gap class_id=%s stage=challenges", class_id)
            return []
        responses = await self.repo.list_challenge_responses(challenge_ids)
        board = build_leaderboard(challenges, responses)[: max(limit, 0)]
        users = await self.repo.get_users([e.student_id for e in board])
        for entry in board:
            user = users.get(entry.student_id) or {}
            entry.name = user.get("full_name")
            entry.email = user.get("email")
        return board

    async def student_boards(self, student_id: str, limit: Optional[int] = None) -> List[StudentBoard]:
        enrollments = await self.repo.list_student_enrollments(student_id)
        class_ids = list(dict.fromkeys(str(r["class_id"]) for r in enrollments if r.get("class_id")))
        if not class_ids:
            return []
        classes = {str(c["id"]): c for c in await self.repo.get_classes(class_ids)}
        boards = await asyncio.gather(
            *(_safe(f"leaderboard:{cid}", self.class_leaderboard(cid, limit), []) for cid in class_ids)
        )
        out = []
        for cid, entries in zip(class_ids, boards):
            rank = next((i for i, e in enumerate(entries, start=1) if e.student_id == student_id), None)
            out.append(
                StudentBoard(
                    class_id=cid,
                    class_name=(classes.get(cid) or {}).get("name"),
                    entries=entries,
                    my_rank=rank,
                )
            )
        return out

    async def build_platform_metrics(self) -> PlatformMetrics:
        repo = self.platform_repo
        settings = get_settings()
        users, classes, enrollments, progress, responses = await asyncio.gather(
            _safe("users", repo.list_user_roles(), []),
            _safe("classes", repo.list_classes(), []),
            _safe("enrollments", repo.list_enrollments(), []),
            _safe("progress", repo.list_progress(), []),
            _safe("responses", repo.list_all_evaluation_responses(), []),
        )

        roles = [str(u.get("role") or "").strip().lower() for u in users]
        students_direct = sum(1 for r in roles if r in _STUDENT_ROLES)
        teachers_direct = sum(1 for r in roles if r in _TEACHER_ROLES)
        enrolled_students = {str(e["student_id"]) for e in enrollments if e.get("student_id")}
        class_teachers = {str(c["teacher_id"]) for c in classes if c.get("teacher_id")}
        seen_students = (
            enrolled_students
            | {str(p["student_id"]) for p in progress if p.get("student_id")}
            | {str(r["student_id"]) for r in responses if r.get("student_id")}
        )
        counts = PlatformCounts(
            students=students_direct or len(enrolled_students) or len(seen_students),
            teachers=teachers_direct or len(class_teachers),
        )

        scores = [s for s in (effective_score(r) for r in responses) if s is not None]
        top_students = rank_students(student_averages(responses), settings.metrics_top_n)
        class_teacher_map = {str(c.get("id")): c.get("teacher_id") for c in classes}
        top_teachers = rank_teachers(teacher_enrollment_counts(enrollments, class_teacher_map), settings.metrics_top_n)

        user_map = await _safe(
            "users:join", repo.get_users([s.id for s in top_students] + [t.id for t in top_teachers]), {}
        )
        for student in top_students:
            student.user = _user_summary(user_map, student.id)
        for teacher in top_teachers:
            teacher.user = _user_summary(user_map, teacher.id)

        semaphore = asyncio.Semaphore(_CLASS_METRICS_CONCURRENCY)

        async def _one(row: Mapping[str, Any]) -> ClassMetrics:
            cid = str(row.get("id"))
            async with semaphore:
                empty = ClassMetrics(class_id=cid, name=row.get("name") or cid, teacher_id=row.get("teacher_id"))
                return await _safe(
                    f"class:{cid}",
                    self.build_class_metrics(cid, class_row=row, repo=repo),
                    empty,
                )

        classes_metrics = await asyncio.gather(*(_one(c) for c in classes if c.get("id") is not None))

        logger.info(
            "platform metrics students=%d teachers=%d responses=%d classes=%d",
            counts.students,
            counts.teachers,
            len(scores),
            len(classes_metrics),
        )
        return PlatformMetrics(
            counts=counts,
            avg_score=mean(scores),
            overall_avg_progress=mean(progress_values(progress)),
            top_students=top_students,
            top_teachers=top_teachers,
            total_responses=len(scores),
            classes_metrics=list(classes_metrics),
        )


analytics_service = AnalyticsService()

__all__ = [
    "analytics_service",
    "AnalyticsService",
    "build_leaderboard",
    "effective_score",
    "rank_students",
    "rank_teachers",
    "student_averages",
]
