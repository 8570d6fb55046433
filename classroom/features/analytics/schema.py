from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class UserSummary(BaseModel):
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


class RankedStudent(BaseModel):
    id: str
    avg: float
    count: int
    user: Optional[UserSummary] = None


class RankedTeacher(BaseModel):
    id: str
    count: int
    user: Optional[UserSummary] = None


class ClassMetrics(BaseModel):
    class_id: str
    name: Optional[str] = None
    teacher_id: Optional[str] = None
    teacher: Optional[UserSummary] = None
    avg_score: Optional[float] = None
    avg_progress: Optional[float] = None
    enrollments: int = 0
    students_total: int = 0
    evaluations_count: int = 0
    responses_count: int = 0
    top_students: List[RankedStudent] = Field(default_factory=list)
    top_teachers: List[RankedTeacher] = Field(default_factory=list)


class StudentBreakdown(BaseModel):
    student_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    overall_progress: int = 0
    completed_lessons: int = 0
    total_lessons: int = 0
    average_score: Optional[float] = None
    total_evaluations: int = 0


class LeaderboardEntry(BaseModel):
    student_id: str
    correct: int = 0
    total: int = 0
    percentage: int = 0
    name: Optional[str] = None
    email: Optional[str] = None


class StudentBoard(BaseModel):
    class_id: str
    class_name: Optional[str] = None
    entries: List[LeaderboardEntry] = Field(default_factory=list)
    my_rank: Optional[int] = None


class PlatformCounts(BaseModel):
    students: int = 0
    teachers: int = 0


class PlatformMetrics(BaseModel):
    counts: PlatformCounts
    avg_score: Optional[float] = None
    overall_avg_progress: Optional[float] = None
    top_students: List[RankedStudent] = Field(default_factory=list)
    top_teachers: List[RankedTeacher] = Field(default_factory=list)
    total_responses: int = 0
    classes_metrics: List[ClassMetrics] = Field(default_factory=list)
