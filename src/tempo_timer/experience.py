"""Experience points and levels.

Level L needs xp_required(L) more XP than level L-1; a player's level is
the highest level whose cumulative threshold does not exceed their total.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from tempo_timer.models import ExperienceState, WorkoutSession
from tempo_timer.scheduler import wall_clock_ms

logger = logging.getLogger("tempo_timer.experience")

# ---- Constants ----

XP_SOURCES = {
    "workout_complete": 150,
    "perfect_workout": 50,  # no pauses
    "long_workout": 100,
    "achievement_unlock": 250,
}

SOURCE_LABELS = {
    "workout_complete": "Workout Complete",
    "perfect_workout": "Perfect Workout",
    "long_workout": "Long Workout",
    "achievement_unlock": "Achievement Unlocked",
}

LONG_WORKOUT_SECONDS = 30 * 60
LEVEL_CAP = 1000
MILESTONE_LEVELS = [5, 10, 25, 50, 75, 100]

LEVEL_TITLES = {
    1: "Beginner",
    5: "Trainee",
    10: "Dedicated",
    15: "Committed",
    20: "Strong",
    25: "Warrior",
    30: "Champion",
    40: "Master",
    50: "Legend",
    75: "Elite",
    100: "Grandmaster",
}


# ---- Level curve ----

def xp_required(level: int) -> int:
    """XP needed to go from level-1 to level: floor(100 * 1.5^(level-1))."""
    if level <= 1:
        return 0
    n = level - 1
    return 100 * 3 ** n // 2 ** n


def total_xp_for_level(level: int) -> int:
    """Cumulative XP at which level is reached."""
    return sum(xp_required(i) for i in range(2, level + 1))


def calculate_level(total_xp: int) -> int:
    level = 1
    threshold = 0
    while level < LEVEL_CAP:
        step = xp_required(level + 1)
        if threshold + step > total_xp:
            break
        threshold += step
        level += 1
    return level


def get_level_title(level: int) -> str:
    for title_level in sorted(LEVEL_TITLES, reverse=True):
        if level >= title_level:
            return LEVEL_TITLES[title_level]
    return LEVEL_TITLES[1]


def is_milestone(level: int) -> bool:
    return level in MILESTONE_LEVELS


# ---- Results ----

@dataclass(frozen=True)
class XPGain:
    amount: int
    source: str
    level_up: bool = False
    new_level: Optional[int] = None

    @property
    def label(self) -> str:
        return SOURCE_LABELS.get(self.source, self.source)


@dataclass(frozen=True)
class LevelInfo:
    level: int
    xp_required: int
    xp_for_this_level: int
    progress_percent: float
    xp_to_next: int
    title: str


def level_info(state: ExperienceState) -> LevelInfo:
    level = state.current_level
    start = total_xp_for_level(level)
    span = xp_required(level + 1) if level < LEVEL_CAP else 0
    into_level = state.total_xp - start
    if span > 0:
        into_level = max(0, min(into_level, span))
        percent = into_level / span * 100
    else:
        into_level = max(0, into_level)
        percent = 100.0
    return LevelInfo(
        level=level,
        xp_required=span,
        xp_for_this_level=into_level,
        progress_percent=max(0.0, min(100.0, percent)),
        xp_to_next=max(0, start + span - state.total_xp),
        title=get_level_title(level),
    )


class ExperienceCalculator:
    """Awards XP and keeps the persisted level in step with it."""

    def __init__(self, store, clock: Callable[[], int] = wall_clock_ms):
        self.store = store
        self._clock = clock

    @property
    def state(self) -> ExperienceState:
        return self.store.load_experience()

    def award(self, amount: int, source: str, now_ms: Optional[int] = None) -> XPGain:
        if amount < 0:
            raise ValueError(f"XP award cannot be negative (got: {amount})")
        state = self.store.load_experience()
        old_level = state.current_level
        total = state.total_xp + amount
        new_level = calculate_level(total)
        update = {"total_xp": total, "current_level": new_level}
        level_up = new_level > old_level
        if level_up:
            update["last_level_up_time"] = self._clock() if now_ms is None else now_ms
            logger.info(f"Level up: {old_level} -> {new_level}")
        self.store.save_experience(state.model_copy(update=update))
        return XPGain(amount, source, level_up, new_level if level_up else None)

    def process_workout_completion(self, session: WorkoutSession, now_ms: Optional[int] = None) -> list[XPGain]:
        stats = session.statistics
        gains = [self.award(XP_SOURCES["workout_complete"], "workout_complete", now_ms)]
        if stats.total_time_paused == 0:
            gains.append(self.award(XP_SOURCES["perfect_workout"], "perfect_workout", now_ms))
        if stats.active_time >= LONG_WORKOUT_SECONDS:
            gains.append(self.award(XP_SOURCES["long_workout"], "long_workout", now_ms))
        return gains

    def process_achievement_unlock(self, now_ms: Optional[int] = None) -> XPGain:
        return self.award(XP_SOURCES["achievement_unlock"], "achievement_unlock", now_ms)

    def level_info(self) -> LevelInfo:
        return level_info(self.store.load_experience())

    def reset(self) -> None:
        self.store.save_experience(ExperienceState())
        logger.info("Experience reset")
