"""Phase state machine for a workout session.

transition() is a pure reducer: (session, action) -> TransitionResult. It
never raises for a refused action; the refusal reason is returned and the
session is handed back untouched. The tick engine calls the same reducer
with Action.BOUNDARY when a timed phase reaches zero.

    setup --START--> transition --(delay)--> prepare
    prepare --CONTINUE_TO_STRETCH--> transition --(delay)--> countdown
    countdown --0/SKIP--> work --0/SKIP--> rest | complete
    rest --0/SKIP--> work (next set)
    any --RESET--> transition --(delay)--> setup
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from tempo_timer.models import TIMED_PHASES, Phase, WorkoutSession, WorkoutStatistics
from tempo_timer.workout import statistics


class Action(str, Enum):
    START = "start"
    CONTINUE_TO_STRETCH = "continue_to_stretch"
    FINISH_TRANSITION = "finish_transition"
    BOUNDARY = "boundary"
    SKIP = "skip"
    RESET = "reset"
    TOGGLE_PAUSE = "toggle_pause"


class WorkoutEvent(str, Enum):
    WORKOUT_STARTED = "workout_started"
    PHASE_CHANGED = "phase_changed"
    TICK = "tick"
    REP_ADVANCED = "rep_advanced"
    PAUSED = "paused"
    RESUMED = "resumed"
    WORKOUT_COMPLETED = "workout_completed"
    WORKOUT_RESET = "workout_reset"


# Refusal reasons
REJECT_NOT_IN_SETUP = "start_requires_setup"
REJECT_NOT_IN_PREPARE = "continue_requires_prepare"
REJECT_NO_TRANSITION = "no_pending_transition"
REJECT_NOTHING_TO_SKIP = "nothing_to_skip"
REJECT_REST_SKIP = "rest_skip_disallowed"
REJECT_COMPLETE = "session_complete"
REJECT_NOT_STARTED = "not_started"
REJECT_IN_TRANSITION = "in_transition"
REJECT_NO_BOUNDARY = "no_boundary"

PAUSABLE_PHASES = frozenset({Phase.PREPARE, Phase.COUNTDOWN, Phase.WORK, Phase.REST})


@dataclass(frozen=True)
class PhasePolicy:
    allow_rest_skip: bool = False


@dataclass
class TransitionResult:
    session: WorkoutSession
    events: list[WorkoutEvent] = field(default_factory=list)
    rejected: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.rejected is None


def _reject(session: WorkoutSession, reason: str) -> TransitionResult:
    return TransitionResult(session=session, rejected=reason)


# ---- Phase entry helpers (operate on a private copy) ----

def _enter_work(s: WorkoutSession, next_set: int) -> None:
    s.phase = Phase.WORK
    s.current_set = next_set
    s.time_remaining = s.settings.work_time
    s.current_rep = 1


def _enter_rest(s: WorkoutSession) -> None:
    # currentSet is only advanced when the next work phase starts
    s.phase = Phase.REST
    s.time_remaining = s.settings.rest_time
    s.current_rep = 1


def _enter_complete(s: WorkoutSession, now_ms: int) -> None:
    stats = s.statistics
    if s.is_paused:
        stats = statistics.end_pause(stats, now_ms)
    s.statistics = statistics.stamp_end(stats, now_ms)
    s.phase = Phase.COMPLETE
    s.time_remaining = 0
    s.is_paused = False
    s.transition_target = None


def _finish_work(s: WorkoutSession, now_ms: int, events: list[WorkoutEvent]) -> None:
    if s.current_set >= s.total_sets:
        _enter_complete(s, now_ms)
        events.append(WorkoutEvent.WORKOUT_COMPLETED)
    else:
        _enter_rest(s)


def _advance_timed_phase(s: WorkoutSession, now_ms: int, events: list[WorkoutEvent]) -> None:
    """Apply the per-phase reset rules shared by BOUNDARY and SKIP."""
    if s.phase == Phase.COUNTDOWN:
        _enter_work(s, max(s.current_set, 1))
    elif s.phase == Phase.WORK:
        _finish_work(s, now_ms, events)
    elif s.phase == Phase.REST:
        _enter_work(s, min(s.current_set + 1, s.total_sets))
    events.insert(0, WorkoutEvent.PHASE_CHANGED)


def _enter_transition(s: WorkoutSession, target: Phase) -> None:
    s.phase = Phase.TRANSITION
    s.transition_target = target


def _finish_transition(s: WorkoutSession, now_ms: int, events: list[WorkoutEvent]) -> None:
    target = s.transition_target
    s.transition_target = None
    if target == Phase.PREPARE:
        s.phase = Phase.PREPARE
        s.time_remaining = s.settings.stretch_time
    elif target == Phase.COUNTDOWN:
        s.phase = Phase.COUNTDOWN
        s.time_remaining = s.settings.stretch_time
        if s.current_set == 0:
            s.current_set = 1
        s.current_rep = 1
    else:
        s.phase = Phase.SETUP
        s.current_set = 0
        s.current_rep = 1
        s.time_remaining = 0
        s.is_paused = False
        s.statistics = WorkoutStatistics(last_active_time=now_ms)
        events.append(WorkoutEvent.WORKOUT_RESET)
    events.insert(0, WorkoutEvent.PHASE_CHANGED)


# ---- Reducer ----

def transition(
    session: WorkoutSession,
    action: Action,
    now_ms: int,
    policy: PhasePolicy = PhasePolicy(),
) -> TransitionResult:
    """Apply one action to the session and return the outcome."""
    phase = session.phase

    if action == Action.RESET:
        s = session.model_copy(deep=True)
        _enter_transition(s, Phase.SETUP)
        s.is_paused = False
        return TransitionResult(s, [WorkoutEvent.PHASE_CHANGED])

    if phase == Phase.COMPLETE:
        return _reject(session, REJECT_COMPLETE)

    if action == Action.START:
        if phase != Phase.SETUP:
            return _reject(session, REJECT_NOT_IN_SETUP)
        s = session.model_copy(deep=True)
        s.statistics = statistics.start_tracking(now_ms)
        s.current_set = 0
        s.current_rep = 1
        s.time_remaining = 0
        s.is_paused = False
        _enter_transition(s, Phase.PREPARE)
        return TransitionResult(s, [WorkoutEvent.WORKOUT_STARTED, WorkoutEvent.PHASE_CHANGED])

    if action == Action.CONTINUE_TO_STRETCH:
        if phase != Phase.PREPARE:
            return _reject(session, REJECT_NOT_IN_PREPARE)
        s = session.model_copy(deep=True)
        _enter_transition(s, Phase.COUNTDOWN)
        return TransitionResult(s, [WorkoutEvent.PHASE_CHANGED])

    if action == Action.FINISH_TRANSITION:
        if phase != Phase.TRANSITION:
            return _reject(session, REJECT_NO_TRANSITION)
        s = session.model_copy(deep=True)
        events: list[WorkoutEvent] = []
        _finish_transition(s, now_ms, events)
        return TransitionResult(s, events)

    if action == Action.TOGGLE_PAUSE:
        if phase == Phase.SETUP:
            return _reject(session, REJECT_NOT_STARTED)
        if phase not in PAUSABLE_PHASES:
            return _reject(session, REJECT_IN_TRANSITION)
        s = session.model_copy(deep=True)
        s.is_paused = not s.is_paused
        if s.is_paused:
            s.statistics = statistics.begin_pause(s.statistics, now_ms)
            return TransitionResult(s, [WorkoutEvent.PAUSED])
        s.statistics = statistics.end_pause(s.statistics, now_ms)
        return TransitionResult(s, [WorkoutEvent.RESUMED])

    if action == Action.BOUNDARY:
        if phase not in TIMED_PHASES or session.time_remaining > 0:
            return _reject(session, REJECT_NO_BOUNDARY)
        s = session.model_copy(deep=True)
        events = []
        _advance_timed_phase(s, now_ms, events)
        return TransitionResult(s, events)

    if action == Action.SKIP:
        if phase not in TIMED_PHASES:
            return _reject(session, REJECT_NOTHING_TO_SKIP)
        if phase == Phase.REST and not policy.allow_rest_skip:
            return _reject(session, REJECT_REST_SKIP)
        s = session.model_copy(deep=True)
        events = []
        _advance_timed_phase(s, now_ms, events)
        return TransitionResult(s, events)

    raise ValueError(f"Unknown action: {action!r}")
