"""Per-second tick function and derived timing read-outs.

tick() only does bookkeeping: decrement, feed the phase counter, track
reps during work. Reaching zero is handed to the phase reducer in the same
call, so no extra tick is spent on the transition.
"""

from __future__ import annotations

from tempo_timer.models import Phase, TimerSettings, WorkoutSession
from tempo_timer.workout import statistics
from tempo_timer.workout.phases import Action, TransitionResult, WorkoutEvent, transition


def rep_for(settings: TimerSettings, time_remaining: int) -> int:
    """Rep number (1-based) at a given point of the work phase."""
    elapsed = settings.work_time - time_remaining
    return min(elapsed // settings.time_per_rep + 1, settings.reps_per_set)


def tick(session: WorkoutSession, now_ms: int) -> TransitionResult:
    """Advance the session by one second."""
    if not session.is_tickable:
        return TransitionResult(session)

    s = session.model_copy(deep=True)
    s.time_remaining -= 1
    s.statistics = statistics.record_tick(s.statistics, s.phase, now_ms)
    events = [WorkoutEvent.TICK]

    if s.phase == Phase.WORK:
        rep = rep_for(s.settings, s.time_remaining)
        if rep > s.current_rep:
            s.current_rep = rep
            s.statistics = statistics.record_rep(s.statistics)
            events.append(WorkoutEvent.REP_ADVANCED)

    if s.time_remaining == 0:
        boundary = transition(s, Action.BOUNDARY, now_ms)
        return TransitionResult(boundary.session, events + boundary.events)

    return TransitionResult(s, events)


# ---- Read-outs ----

def total_duration(settings: TimerSettings, total_sets: int) -> int:
    """Planned seconds for a full session: stretch, every set, rests between."""
    return settings.stretch_time + total_sets * settings.work_time + (total_sets - 1) * settings.rest_time


def remaining_time(session: WorkoutSession) -> int:
    settings = session.settings
    phase = session.phase
    if phase == Phase.PREPARE:
        remaining = total_duration(settings, session.total_sets)
    elif phase == Phase.COUNTDOWN:
        remaining = (
            session.time_remaining
            + session.total_sets * settings.work_time
            + (session.total_sets - 1) * settings.rest_time
        )
    elif phase == Phase.WORK:
        sets_left = session.total_sets - session.current_set
        remaining = session.time_remaining + sets_left * (settings.work_time + settings.rest_time)
    elif phase == Phase.REST:
        sets_left = session.total_sets - session.current_set
        remaining = (
            session.time_remaining
            + sets_left * settings.work_time
            + (sets_left - 1) * settings.rest_time
        )
    else:
        remaining = 0
    return max(0, remaining)


def elapsed_time(session: WorkoutSession) -> int:
    """Active seconds spent so far (pauses excluded)."""
    return session.statistics.active_time


def completed_sets(session: WorkoutSession) -> int:
    if session.phase == Phase.WORK:
        return session.current_set - 1
    if session.phase == Phase.REST:
        return session.current_set
    if session.phase == Phase.COMPLETE:
        return session.total_sets
    return 0


def progress_percent(session: WorkoutSession) -> float:
    return completed_sets(session) / session.total_sets * 100


def current_rep(session: WorkoutSession) -> int:
    if session.phase != Phase.WORK:
        return 1
    return rep_for(session.settings, session.time_remaining)
