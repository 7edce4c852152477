"""Workout session records.

All timestamps are integer epoch milliseconds, all durations integer
seconds. The live session is mutated only through copies made by the
workout reducer; history entries are frozen once written.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tempo_timer.config import (
    DEFAULT_REPS_PER_SET,
    DEFAULT_REST_TIME,
    DEFAULT_STRETCH_TIME,
    DEFAULT_TIME_PER_REP,
    DEFAULT_TOTAL_SETS,
)


class Phase(str, Enum):
    SETUP = "setup"
    TRANSITION = "transition"
    PREPARE = "prepare"
    COUNTDOWN = "countdown"  # the stretch / warm-up phase
    WORK = "work"
    REST = "rest"
    COMPLETE = "complete"


# Phases the tick engine decrements in.
TIMED_PHASES = frozenset({Phase.COUNTDOWN, Phase.WORK, Phase.REST})

# Phases whose snapshot is never persisted.
TRANSIENT_PHASES = frozenset({Phase.SETUP, Phase.TRANSITION})


class TimerSettings(BaseModel):
    time_per_rep: int = Field(default=DEFAULT_TIME_PER_REP, gt=0)
    rest_time: int = Field(default=DEFAULT_REST_TIME, gt=0)
    stretch_time: int = Field(default=DEFAULT_STRETCH_TIME, gt=0)
    reps_per_set: int = Field(default=DEFAULT_REPS_PER_SET, gt=0)

    @property
    def work_time(self) -> int:
        """Seconds in one work phase."""
        return self.time_per_rep * self.reps_per_set


class WorkoutSettings(TimerSettings):
    total_sets: int = Field(default=DEFAULT_TOTAL_SETS, gt=0)

    def timer_settings(self) -> TimerSettings:
        return TimerSettings(**self.model_dump(exclude={"total_sets"}))


class WorkoutStatistics(BaseModel):
    total_time_exercised: int = Field(default=0, ge=0)
    total_time_rested: int = Field(default=0, ge=0)
    total_time_stretched: int = Field(default=0, ge=0)
    total_time_paused: int = Field(default=0, ge=0)
    total_reps_completed: int = Field(default=0, ge=0)
    workout_start_time: Optional[int] = None
    workout_end_time: Optional[int] = None
    last_active_time: int = 0
    pause_start_time: Optional[int] = None

    @property
    def active_time(self) -> int:
        """Stretch + work + rest seconds; pauses excluded."""
        return self.total_time_stretched + self.total_time_exercised + self.total_time_rested


class WorkoutSession(BaseModel):
    phase: Phase = Phase.SETUP
    current_set: int = Field(default=0, ge=0)
    total_sets: int = Field(default=DEFAULT_TOTAL_SETS, gt=0)
    current_rep: int = Field(default=1, ge=1)
    time_remaining: int = Field(default=0, ge=0)
    is_paused: bool = False
    settings: TimerSettings = Field(default_factory=TimerSettings)
    statistics: WorkoutStatistics = Field(default_factory=WorkoutStatistics)
    transition_target: Optional[Phase] = None

    @classmethod
    def fresh(cls, settings: WorkoutSettings, now_ms: int = 0) -> "WorkoutSession":
        """A new session in setup built from saved workout settings."""
        return cls(
            phase=Phase.SETUP,
            total_sets=settings.total_sets,
            settings=settings.timer_settings(),
            statistics=WorkoutStatistics(last_active_time=now_ms),
        )

    @property
    def is_tickable(self) -> bool:
        return self.phase in TIMED_PHASES and not self.is_paused and self.time_remaining > 0

    def workout_settings(self) -> WorkoutSettings:
        return WorkoutSettings(total_sets=self.total_sets, **self.settings.model_dump())


class WorkoutHistoryEntry(BaseModel):
    """Frozen snapshot of one completed session."""

    model_config = ConfigDict(frozen=True)

    id: str
    unique_id: str
    date: int
    total_sets: int
    reps_per_set: int
    time_per_rep: int
    rest_time: int
    stretch_time: int
    statistics: WorkoutStatistics
    server_synced: bool = False
    sync_attempts: int = 0
    last_sync_attempt: Optional[int] = None

    def dedup_key(self) -> tuple[int, int, int]:
        return (self.date, self.total_sets, self.reps_per_set)


class AchievementState(BaseModel):
    id: str
    unlocked: bool = False
    unlocked_at: Optional[int] = None
    progress: Optional[int] = None


class AchievementAccumulatedData(BaseModel):
    """Cumulative counters across every completed session."""

    cumulative_sets: int = Field(default=0, ge=0)
    cumulative_reps: int = Field(default=0, ge=0)
    cumulative_time_seconds: int = Field(default=0, ge=0)
    weekly_streak: int = Field(default=0, ge=0)
    last_workout_date: Optional[str] = None  # ISO date, local time
    total_workout_days: int = Field(default=0, ge=0)
    consecutive_no_pause_workouts: int = Field(default=0, ge=0)
    rest_skip_attempts: int = Field(default=0, ge=0)


class ExperienceState(BaseModel):
    total_xp: int = Field(default=0, ge=0)
    current_level: int = Field(default=1, ge=1)
    last_level_up_time: Optional[int] = None
