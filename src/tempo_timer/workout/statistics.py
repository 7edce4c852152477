"""Statistics accumulator for the live session.

Pure functions: each takes a WorkoutStatistics and returns an updated copy.
Pause time is rounded to whole seconds when it is added, so many short
pauses cannot drift the total.
"""

from __future__ import annotations

from tempo_timer.models import Phase, WorkoutStatistics

# Which counter a tick in each timed phase feeds.
PHASE_COUNTERS = {
    Phase.COUNTDOWN: "total_time_stretched",
    Phase.WORK: "total_time_exercised",
    Phase.REST: "total_time_rested",
}


def round_ms_to_seconds(ms: int) -> int:
    """Half-up rounding of a non-negative millisecond span."""
    return (max(0, ms) + 500) // 1000


def start_tracking(now_ms: int) -> WorkoutStatistics:
    """Zeroed statistics with the workout start stamped."""
    return WorkoutStatistics(workout_start_time=now_ms, last_active_time=now_ms)


def record_tick(stats: WorkoutStatistics, phase: Phase, now_ms: int, seconds: int = 1) -> WorkoutStatistics:
    update = {"last_active_time": now_ms}
    counter = PHASE_COUNTERS.get(phase)
    if counter is not None:
        update[counter] = getattr(stats, counter) + seconds
    return stats.model_copy(update=update)


def record_rep(stats: WorkoutStatistics) -> WorkoutStatistics:
    return stats.model_copy(update={"total_reps_completed": stats.total_reps_completed + 1})


def begin_pause(stats: WorkoutStatistics, now_ms: int) -> WorkoutStatistics:
    if stats.pause_start_time is not None:
        return stats
    return stats.model_copy(update={"pause_start_time": now_ms, "last_active_time": now_ms})


def end_pause(stats: WorkoutStatistics, now_ms: int) -> WorkoutStatistics:
    if stats.pause_start_time is None:
        return stats.model_copy(update={"last_active_time": now_ms})
    paused = round_ms_to_seconds(now_ms - stats.pause_start_time)
    return stats.model_copy(update={
        "total_time_paused": stats.total_time_paused + paused,
        "pause_start_time": None,
        "last_active_time": now_ms,
    })


def restart_pause_window(stats: WorkoutStatistics, now_ms: int) -> WorkoutStatistics:
    """Restart an open pause at now_ms.

    Used when a paused session is restored, so time the process was not
    running is not counted as paused time.
    """
    if stats.pause_start_time is None:
        return stats
    return stats.model_copy(update={"pause_start_time": now_ms, "last_active_time": now_ms})


def stamp_end(stats: WorkoutStatistics, now_ms: int) -> WorkoutStatistics:
    if stats.workout_end_time is not None:
        return stats
    return stats.model_copy(update={"workout_end_time": now_ms, "last_active_time": now_ms})
