import pytest

from classroom.common.deps import CurrentUser
from classroom.common.exceptions import AccessDenied, NotFoundError
from classroom.features.analytics.repository import AnalyticsRepository
from classroom.features.analytics.service import (
    AnalyticsService,
    build_leaderboard,
    effective_score,
    rank_students,
    student_averages,
)
from fakesupabase import FakeSupabase


def _service(db: FakeSupabase) -> AnalyticsService:
    async def factory():
        return db

    repo = AnalyticsRepository(factory)
    return AnalyticsService(repo, repo)


def _class_tables():
    return {
        "classes": [
            {"id": "class-1", "name": "LSC Basico", "teacher_id": "t1"},
            {"id": "class-empty", "name": "Sin lecciones", "teacher_id": "t2"},
        ],
        "lessons": [{"id": "l1", "class_id": "class-1"}, {"id": "l2", "class_id": "class-1"}],
        "activities": [{"id": "a1", "lesson_id": "l1"}, {"id": "a2", "lesson_id": "l2"}],
        "evaluations": [{"id": "e1", "activity_id": "a1"}, {"id": "e2", "activity_id": "a2"}],
        "student_responses": [
            {"id": "r1", "student_id": "s1", "evaluation_id": "e1", "score": 80, "answers": {}},
            {"id": "r2", "student_id": "s1", "evaluation_id": "e2", "score": 100, "answers": {}},
            {"id": "r3", "student_id": "s2", "evaluation_id": "e1", "score": None, "answers": {"score": 90}},
            {"id": "r4", "student_id": "s3", "evaluation_id": "e1", "score": None, "answers": {"text": "?"}},
            {"id": "r5", "student_id": "s9", "evaluation_id": "other", "score": 10, "answers": {}},
        ],
        "class_enrollments": [
            {"class_id": "class-1", "student_id": "s1", "teacher_id": "t1"},
            {"class_id": "class-1", "student_id": "s2", "teacher_id": None},
            {"class_id": "class-1", "student_id": "s3", "teacher_id": "t1"},
        ],
        "student_progress": [
            {"class_id": "class-1", "student_id": "s1", "lesson_id": "l1", "progress_percentage": 100, "completed": True},
            {"class_id": "class-1", "student_id": "s1", "lesson_id": "l2", "progress_percentage": 50, "completed": False},
            {"class_id": "class-1", "student_id": "s2", "lesson_id": "l1", "progress_percentage": 100, "completed": True},
        ],
        "users": [
            {"id": "s1", "full_name": "Ana", "email": "ana@aula.test", "role": "estudiante"},
            {"id": "s2", "full_name": "Beto", "email": "beto@aula.test", "role": "student"},
            {"id": "s3", "full_name": "Carla", "email": "carla@aula.test", "role": "student"},
            {"id": "t1", "full_name": "Profe Uno", "email": "t1@aula.test", "role": "docente"},
            {"id": "t2", "full_name": "Profe Dos", "email": "t2@aula.test", "role": "teacher"},
        ],
    }


def test_effective_score_prefers_explicit_value():
    assert effective_score({"score": 70, "answers": {"score": 10}}) == 70
    assert effective_score({"score": None, "answers": '{"score": 12}'}) == 12
    assert effective_score({"score": "nan", "answers": {}}) is None


def test_student_averages_ignore_unscored():
    averages = student_averages(
        [
            {"student_id": "s1", "score": 60},
            {"student_id": "s1", "score": None, "answers": {}},
            {"student_id": "s1", "score": 80},
        ]
    )
    assert averages == {"s1": (70.0, 2)}


def test_rank_students_ties_by_count_then_id():
    ranked = rank_students({"b": (80.0, 1), "a": (80.0, 1), "c": (80.0, 3), "d": (95.0, 1)}, 3)
    assert [r.id for r in ranked] == ["d", "c", "a"]


@pytest.mark.anyio("asyncio")
async def test_class_metrics():
    svc = _service(FakeSupabase(_class_tables()))
    metrics = await svc.build_class_metrics("class-1", top_n=5)

    assert metrics.evaluations_count == 2
    assert metrics.responses_count == 3
    assert metrics.avg_score == pytest.approx((80 + 100 + 90) / 3)
    assert metrics.avg_progress == pytest.approx((100 + 50 + 100) / 3)
    assert metrics.enrollments == 3
    assert metrics.students_total == 3
    assert [s.id for s in metrics.top_students] == ["s1", "s2"]
    assert metrics.top_students[0].avg == 90
    assert metrics.top_students[0].user.full_name == "Ana"
    assert [(t.id, t.count) for t in metrics.top_teachers] == [("t1", 3)]
    assert metrics.teacher.full_name == "Profe Uno"


@pytest.mark.anyio("asyncio")
async def test_class_with_no_lessons_short_circuits():
    db = FakeSupabase(_class_tables())
    metrics = await _service(db).build_class_metrics("class-empty")

    assert metrics.avg_score is None
    assert metrics.evaluations_count == 0
    assert metrics.top_students == []
    assert not any(table in ("activities", "evaluations", "student_responses") for table, _, _ in db.in_calls)


@pytest.mark.anyio("asyncio")
async def test_missing_class():
    with pytest.raises(NotFoundError):
        await _service(FakeSupabase(_class_tables())).build_class_metrics("nope")


@pytest.mark.anyio("asyncio")
async def test_student_breakdown():
    rows = await _service(FakeSupabase(_class_tables())).class_student_breakdown("class-1")
    by_id = {r.student_id: r for r in rows}

    assert [r.full_name for r in rows] == ["Ana", "Beto", "Carla"]
    assert by_id["s1"].completed_lessons == 1
    assert by_id["s1"].total_lessons == 2
    assert by_id["s1"].overall_progress == 50
    assert by_id["s1"].average_score == 90
    assert by_id["s1"].total_evaluations == 2
    assert by_id["s3"].average_score is None
    assert by_id["s3"].total_evaluations == 1
    assert by_id["s3"].overall_progress == 0


@pytest.mark.anyio("asyncio")
async def test_class_access_rules():
    db = FakeSupabase(_class_tables())
    svc = _service(db)
    row = await svc.get_class("class-1")

    await svc.ensure_class_access(row, CurrentUser(id="t1", email="", role="teacher"))
    await svc.ensure_class_access(row, CurrentUser(id="x", email="", role="admin"))
    await svc.ensure_class_access(row, CurrentUser(id="s1", email="", role="student"), allow_enrolled=True)
    with pytest.raises(AccessDenied):
        await svc.ensure_class_access(row, CurrentUser(id="s1", email="", role="student"))
    with pytest.raises(AccessDenied):
        await svc.ensure_class_access(row, CurrentUser(id="t2", email="", role="teacher"))


CHALLENGES = [
    {
        "id": "mc",
        "type": "multiple_choice",
        "payload": {"options": [{"id": "a"}, {"id": "b"}], "correct_index": 0},
    },
    {
        "id": "match",
        "type": "matching",
        "payload": {"pairs": [{"id": "p1", "left": "1", "right": "uno"}, {"id": "p2", "left": "2", "right": "dos"}]},
    },
    {"id": "open", "type": "open_ended", "payload": {}},
    {"id": "broken", "type": "multiple_choice", "payload": {"prompt": "no options"}},
]


def test_leaderboard_counts_correct_over_total():
    responses = [
        {"challenge_id": "mc", "student_id": "s1", "answers": {"selected": "a"}},
        {"challenge_id": "match", "student_id": "s1", "answers": {"matches": [{"pairId": "p1", "right": "p1"}]}},
        {"challenge_id": "open", "student_id": "s1", "answers": {"text": "essay"}},
        {"challenge_id": "mc", "student_id": "s2", "answers": '{"selected": "b"}'},
        {"challenge_id": "open", "student_id": "s3", "answers": {"text": "only manual"}},
        {"challenge_id": "broken", "student_id": "s4", "answers": {"selected": "a"}},
    ]
    board = build_leaderboard(CHALLENGES, responses)

    assert [(e.student_id, e.correct, e.total, e.percentage) for e in board] == [
        ("s1", 2, 3, 67),
        ("s2", 0, 1, 0),
        ("s3", 0, 0, 0),
    ]


def test_leaderboard_ties_break_on_correct_then_id():
    responses = [
        {"challenge_id": "mc", "student_id": "zoe", "answers": {"selected": "a"}},
        {"challenge_id": "mc", "student_id": "ana", "answers": {"selected": "a"}},
        {"challenge_id": "match", "student_id": "bob", "answers": {"p1": "p1", "p2": "p2"}},
    ]
    board = build_leaderboard(CHALLENGES, responses)
    assert [e.student_id for e in board] == ["bob", "ana", "zoe"]


def test_leaderboard_malformed_answers_count_as_wrong():
    board = build_leaderboard(CHALLENGES, [{"challenge_id": "mc", "student_id": "s1", "answers": ["a"]}])
    assert [(e.correct, e.total) for e in board] == [(0, 1)]


def test_leaderboard_empty_pairs_add_nothing():
    challenges = [{"id": "m0", "type": "matching", "payload": {"pairs": []}}]
    board = build_leaderboard(challenges, [{"challenge_id": "m0", "student_id": "s1", "answers": {}}])
    assert (board[0].correct, board[0].total, board[0].percentage) == (0, 0, 0)


@pytest.mark.anyio("asyncio")
async def test_class_leaderboard_and_student_boards():
    tables = _class_tables()
    tables["challenges"] = [dict(c, class_id="class-1") for c in CHALLENGES[:2]]
    tables["challenge_responses"] = [
        {"id": "x1", "challenge_id": "mc", "student_id": "s1", "answers": {"selected": "a"}},
        {"id": "x2", "challenge_id": "mc", "student_id": "s2", "answers": {"selected": "b"}},
    ]
    svc = _service(FakeSupabase(tables))

    board = await svc.class_leaderboard("class-1", limit=10)
    assert [(e.student_id, e.name) for e in board] == [("s1", "Ana"), ("s2", "Beto")]

    boards = await svc.student_boards("s2", limit=10)
    assert len(boards) == 1
    assert boards[0].class_name == "LSC Basico"
    assert boards[0].my_rank == 2


@pytest.mark.anyio("asyncio")
async def test_student_boards_tolerate_broken_class():
    tables = _class_tables()
    tables["class_enrollments"].append({"class_id": "class-empty", "student_id": "s1", "teacher_id": "t2"})
    db = FakeSupabase(tables)
    db.failures["challenges"] = RuntimeError("boom")
    boards = await _service(db).student_boards("s1")
    assert [b.entries for b in boards] == [[], []]


@pytest.mark.anyio("asyncio")
async def test_platform_metrics():
    svc = _service(FakeSupabase(_class_tables()))
    metrics = await svc.build_platform_metrics()

    assert metrics.counts.students == 3
    assert metrics.counts.teachers == 2
    assert metrics.total_responses == 4
    assert metrics.avg_score == pytest.approx((80 + 100 + 90 + 10) / 4)
    assert metrics.top_students[0].id == "s1"
    assert metrics.top_teachers[0].id == "t1"
    assert metrics.top_teachers[0].count == 3
    assert {c.class_id for c in metrics.classes_metrics} == {"class-1", "class-empty"}


@pytest.mark.anyio("asyncio")
async def test_platform_counts_fall_back_without_roles():
    tables = _class_tables()
    tables["users"] = []
    metrics = await _service(FakeSupabase(tables)).build_platform_metrics()
    assert metrics.counts.students == 3
    assert metrics.counts.teachers == 2


@pytest.mark.anyio("asyncio")
async def test_platform_metrics_survive_failing_table():
    db = FakeSupabase(_class_tables())
    db.failures["student_progress"] = RuntimeError("permission denied")
    metrics = await _service(db).build_platform_metrics()
    assert metrics.overall_avg_progress is None
    assert metrics.total_responses == 4
    # per-class metrics degrade to empty entries instead of failing the dashboard
    class_one = next(c for c in metrics.classes_metrics if c.class_id == "class-1")
    assert class_one.avg_score is None


def test_effective_score_tolerates_undecodable_answers():
    assert effective_score({"score": None, "answers": b"\xff\xfe\xfa"}) is None
    board = build_leaderboard(CHALLENGES, [{"challenge_id": "mc", "student_id": "s1", "answers": b"\xff\xfe\xfa"}])
    assert [(e.correct, e.total) for e in board] == [(0, 1)]


def test_leaderboard_orders_on_exact_ratio_not_rounded_percentage():
    big = {
        "id": "big",
        "type": "matching",
        "payload": {"pairs": [{"id": f"p{i}", "left": str(i), "right": str(i)} for i in range(100)]},
    }
    small = {
        "id": "small",
        "type": "matching",
        "payload": {"pairs": [{"id": f"q{i}", "left": str(i), "right": str(i)} for i in range(3)]},
    }
    responses = [
        {"challenge_id": "big", "student_id": "many", "answers": {f"p{i}": f"p{i}" for i in range(33)}},
        {"challenge_id": "small", "student_id": "few", "answers": {"q0": "q0"}},
    ]
    board = build_leaderboard([big, small], responses)

    assert [(e.student_id, e.correct, e.total, e.percentage) for e in board] == [
        ("few", 1, 3, 33),
        ("many", 33, 100, 33),
    ]
