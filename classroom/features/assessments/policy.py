"""Attempt admission policy.

Pure and stateless: callers count prior responses for the (student,
evaluation) pair and pass that number in. Window checks take precedence over
the attempt count, so a closed evaluation reports its window state even when
attempts remain.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from classroom.common.utils import current_timestamp, parse_timestamp


class AttemptStatus(str, Enum):
    OPEN = "OPEN"
    NOT_YET_OPEN = "NOT_YET_OPEN"
    EXPIRED = "EXPIRED"
    ATTEMPTS_EXHAUSTED = "ATTEMPTS_EXHAUSTED"


class Schedule(BaseModel):
    start_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    attempts_allowed: int = Field(default=1, ge=1)

    @field_validator("start_at", "due_at", mode="before")
    @classmethod
    def _aware(cls, value: Any) -> Optional[datetime]:
        if value is None or value == "":
            return None
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError("invalid timestamp")
        return parsed

    @field_validator("attempts_allowed", mode="before")
    @classmethod
    def _default_attempts(cls, value: Any) -> Any:
        return 1 if value is None else value

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Schedule":
        return cls(
            start_at=record.get("start_at"),
            due_at=record.get("due_at"),
            attempts_allowed=record.get("attempts_allowed"),
        )


@dataclass(frozen=True)
class AttemptDecision:
    status: AttemptStatus
    attempts_used: int
    attempts_allowed: int

    @property
    def allowed(self) -> bool:
        return self.status is AttemptStatus.OPEN

    @property
    def attempts_remaining(self) -> int:
        return max(self.attempts_allowed - self.attempts_used, 0)


def evaluate(now: datetime, schedule: Schedule, attempts_used: int) -> AttemptDecision:
    """Decide whether a new attempt may be submitted at ``now``."""
    now = parse_timestamp(now) or current_timestamp()
    used = max(int(attempts_used or 0), 0)
    if schedule.start_at is not None and now < schedule.start_at:
        status = AttemptStatus.NOT_YET_OPEN
    elif schedule.due_at is not None and now > schedule.due_at:
        status = AttemptStatus.EXPIRED
    elif used >= schedule.attempts_allowed:
        status = AttemptStatus.ATTEMPTS_EXHAUSTED
    else:
        status = AttemptStatus.OPEN
    return AttemptDecision(status=status, attempts_used=used, attempts_allowed=schedule.attempts_allowed)


def check_attempt_policy(
    schedule: Schedule | Mapping[str, Any],
    attempts_used: int,
    now: Optional[datetime] = None,
) -> AttemptStatus:
    if not isinstance(schedule, Schedule):
        schedule = Schedule.from_record(schedule)
    return evaluate(now or current_timestamp(), schedule, attempts_used).status


__all__ = ["AttemptStatus", "AttemptDecision", "Schedule", "evaluate", "check_attempt_policy"]
