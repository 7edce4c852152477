"""Interval workout timer: session engine, achievements and experience."""

__version__ = "0.3.0"

from .config import TimerConfig
from .models import (
    Phase,
    TimerSettings,
    WorkoutHistoryEntry,
    WorkoutSession,
    WorkoutSettings,
    WorkoutStatistics,
)
from .scheduler import APSchedulerDriver, ManualScheduler
from .storage import MemoryBackend, SqliteBackend, WorkoutStore
from .workout import CompletionResult, TransitionRejected, WorkoutController

__all__ = [
    "APSchedulerDriver",
    "CompletionResult",
    "ManualScheduler",
    "MemoryBackend",
    "Phase",
    "SqliteBackend",
    "TimerConfig",
    "TimerSettings",
    "TransitionRejected",
    "WorkoutController",
    "WorkoutHistoryEntry",
    "WorkoutSession",
    "WorkoutSettings",
    "WorkoutStatistics",
    "WorkoutStore",
    "__version__",
]
