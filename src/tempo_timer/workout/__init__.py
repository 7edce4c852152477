"""Workout session engine: phase reducer, tick function and controller."""

from . import statistics
from .phases import (
    PAUSABLE_PHASES,
    Action,
    PhasePolicy,
    TransitionResult,
    WorkoutEvent,
    transition,
)
from .ticker import (
    completed_sets,
    current_rep,
    elapsed_time,
    progress_percent,
    remaining_time,
    rep_for,
    tick,
    total_duration,
)
from .controller import CompletionResult, TransitionRejected, WorkoutController

__all__ = [
    "Action",
    "CompletionResult",
    "PAUSABLE_PHASES",
    "PhasePolicy",
    "TransitionRejected",
    "TransitionResult",
    "WorkoutController",
    "WorkoutEvent",
    "completed_sets",
    "current_rep",
    "elapsed_time",
    "progress_percent",
    "remaining_time",
    "rep_for",
    "statistics",
    "tick",
    "total_duration",
    "transition",
]
