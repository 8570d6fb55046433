from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from classroom.common.deps import CurrentUser, get_current_user, require_role
from classroom.common.exceptions import AssessmentError
from classroom.common.http import to_http_exception
from classroom.features.analytics.schema import (
    ClassMetrics,
    LeaderboardEntry,
    PlatformMetrics,
    StudentBoard,
    StudentBreakdown,
)
from classroom.features.analytics.service import analytics_service

router = APIRouter(prefix="/analytics", tags=["analytics"])


## ------------------- Teacher -------------------


@router.get("/classes/{class_id}/metrics", response_model=ClassMetrics)
async def class_metrics(
    class_id: str,
    current_user: CurrentUser = Depends(require_role("teacher")),
):
    try:
        class_row = await analytics_service.get_class(class_id)
        await analytics_service.ensure_class_access(class_row, current_user)
        return await analytics_service.build_class_metrics(class_id, class_row=class_row)
    except AssessmentError as exc:
        raise to_http_exception(exc) from exc


@router.get("/classes/{class_id}/students", response_model=List[StudentBreakdown])
async def class_students(
    class_id: str,
    current_user: CurrentUser = Depends(require_role("teacher")),
):
    try:
        class_row = await analytics_service.get_class(class_id)
        await analytics_service.ensure_class_access(class_row, current_user)
        return await analytics_service.class_student_breakdown(class_id)
    except AssessmentError as exc:
        raise to_http_exception(exc) from exc


## ------------------- Leaderboards -------------------


@router.get("/classes/{class_id}/leaderboard", response_model=List[LeaderboardEntry])
async def class_leaderboard(
    class_id: str,
    limit: Optional[int] = Query(None, ge=1, le=100, description="Maximum entries to return"),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        class_row = await analytics_service.get_class(class_id)
        await analytics_service.ensure_class_access(class_row, current_user, allow_enrolled=True)
        return await analytics_service.class_leaderboard(class_id, limit)
    except AssessmentError as exc:
        raise to_http_exception(exc) from exc


@router.get("/me/leaderboards", response_model=List[StudentBoard])
async def my_leaderboards(
    limit: Optional[int] = Query(None, ge=1, le=100),
    current_user: CurrentUser = Depends(require_role("student")),
):
    return await analytics_service.student_boards(current_user.id, limit)


## ------------------- Admin -------------------


@router.get("/platform", response_model=PlatformMetrics)
async def platform_metrics(current_user: CurrentUser = Depends(require_role("admin"))):
    return await analytics_service.build_platform_metrics()
