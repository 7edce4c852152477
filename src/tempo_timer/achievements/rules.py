"""Achievement rule catalogue.

Each rule is a plain record: an unlock predicate over (session, accumulated
data), and for counter-style rules a progress function plus max_progress.
The evaluator walks the list generically; nothing here touches storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from tempo_timer.models import AchievementAccumulatedData, WorkoutSession


class Category(str, Enum):
    CONSISTENCY = "consistency"
    ENDURANCE = "endurance"
    MILESTONE = "milestone"
    DEDICATION = "dedication"
    SPECIAL = "special"


class Rarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


@dataclass(frozen=True)
class SessionFacts:
    """What one completed session contributed."""

    sets: int
    reps: int
    time_seconds: int
    is_new_day: bool
    is_new_week: bool
    perfect: bool
    last_workout_date: Optional[str] = None


UnlockCheck = Callable[[WorkoutSession, AchievementAccumulatedData], bool]
ProgressFn = Callable[[AchievementAccumulatedData], int]


@dataclass(frozen=True)
class AchievementRule:
    id: str
    title: str
    description: str
    icon: str
    category: Category
    rarity: Rarity
    check_unlock: UnlockCheck
    max_progress: Optional[int] = None
    calculate_progress: Optional[ProgressFn] = None
    has_session_progress: Optional[Callable[[SessionFacts], bool]] = None
    describe_session_progress: Optional[Callable[[SessionFacts], str]] = None
    # Progress drops back to zero when a session had any pause
    resets_on_pause: bool = False

    @property
    def tracks_progress(self) -> bool:
        return self.max_progress is not None


def validate_rules(rules: list[AchievementRule]) -> None:
    """Reject catalogues the evaluator cannot handle."""
    seen: set[str] = set()
    for rule in rules:
        if rule.id in seen:
            raise ValueError(f"Duplicate achievement id: {rule.id}")
        seen.add(rule.id)
        if (rule.max_progress is None) != (rule.calculate_progress is None):
            raise ValueError(f"{rule.id}: max_progress and calculate_progress must be declared together")
        if rule.max_progress is not None and rule.max_progress <= 0:
            raise ValueError(f"{rule.id}: max_progress must be positive")


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _start_hour(session: WorkoutSession) -> int:
    start = session.statistics.workout_start_time
    moment = datetime.fromtimestamp(start / 1000) if start is not None else datetime.now()
    return moment.hour


def _format_minutes(seconds: int) -> str:
    if not seconds:
        return "+ 0:00"
    return f"+ {seconds // 60}:{seconds % 60:02d}"


def _always(_facts: SessionFacts) -> bool:
    return True


# ---- Rule families ----

def _workout_days(days: int, rule_id: str, title: str, icon: str, rarity: Rarity) -> AchievementRule:
    return AchievementRule(
        id=rule_id,
        title=title,
        description=f"Complete workouts on {days} different days.",
        icon=icon,
        category=Category.CONSISTENCY,
        rarity=rarity,
        max_progress=days,
        check_unlock=lambda _s, data: data.total_workout_days >= days,
        calculate_progress=lambda data: data.total_workout_days,
        has_session_progress=lambda facts: facts.is_new_day,
        describe_session_progress=lambda facts: "+ 1 day" if facts.is_new_day else "+ 0 days",
    )


def _cumulative_sets(count: int, rule_id: str, title: str, icon: str, rarity: Rarity) -> AchievementRule:
    return AchievementRule(
        id=rule_id,
        title=title,
        description=f"Complete {count:,} total sets across all workouts.",
        icon=icon,
        category=Category.ENDURANCE,
        rarity=rarity,
        max_progress=count,
        check_unlock=lambda _s, data: data.cumulative_sets >= count,
        calculate_progress=lambda data: data.cumulative_sets,
        has_session_progress=lambda facts: facts.sets > 0,
        describe_session_progress=lambda facts: f"+ {_plural(facts.sets, 'set')}",
    )


def _cumulative_reps(count: int, rule_id: str, title: str, icon: str, rarity: Rarity) -> AchievementRule:
    return AchievementRule(
        id=rule_id,
        title=title,
        description=f"Complete {count:,} total reps across all workouts.",
        icon=icon,
        category=Category.ENDURANCE,
        rarity=rarity,
        max_progress=count,
        check_unlock=lambda _s, data: data.cumulative_reps >= count,
        calculate_progress=lambda data: data.cumulative_reps,
        has_session_progress=lambda facts: facts.reps > 0,
        describe_session_progress=lambda facts: f"+ {_plural(facts.reps, 'rep')}",
    )


def _session_minutes(minutes: int, rule_id: str, title: str, icon: str, rarity: Rarity) -> AchievementRule:
    return AchievementRule(
        id=rule_id,
        title=title,
        description=f"Complete a workout lasting {minutes}+ minutes.",
        icon=icon,
        category=Category.MILESTONE,
        rarity=rarity,
        check_unlock=lambda s, _d: s.statistics.active_time // 60 >= minutes,
        has_session_progress=_always,
        describe_session_progress=lambda facts: f"+ {facts.time_seconds // 60} min workout",
    )


def _special(rule_id: str, title: str, description: str, icon: str, rarity: Rarity,
             check: UnlockCheck, note: str) -> AchievementRule:
    return AchievementRule(
        id=rule_id,
        title=title,
        description=description,
        icon=icon,
        category=Category.SPECIAL,
        rarity=rarity,
        check_unlock=check,
        has_session_progress=_always,
        describe_session_progress=lambda _facts: note,
    )


FIFTY_HOURS = 50 * 60 * 60

ALL_RULES: list[AchievementRule] = [
    AchievementRule(
        id="first_workout",
        title="First Steps",
        description="Complete your very first workout.",
        icon="🚀",
        category=Category.MILESTONE,
        rarity=Rarity.COMMON,
        check_unlock=lambda _s, _d: True,
        has_session_progress=_always,
        describe_session_progress=lambda _facts: "+ First workout!",
    ),
    _workout_days(3, "streak_3", "Getting Started", "🌱", Rarity.COMMON),
    _workout_days(7, "streak_7", "Week Warrior", "🔥", Rarity.RARE),
    _workout_days(30, "streak_30", "Monthly Master", "💎", Rarity.EPIC),
    _workout_days(100, "streak_100", "Century Champion", "👑", Rarity.LEGENDARY),
    _workout_days(180, "streak_180", "Half Year Hero", "🌟", Rarity.LEGENDARY),
    _workout_days(365, "streak_365", "Year Warrior", "🏅", Rarity.LEGENDARY),
    AchievementRule(
        id="consistency_king",
        title="Consistency King",
        description="Complete at least one workout per week for 12 weeks.",
        icon="👑",
        category=Category.CONSISTENCY,
        rarity=Rarity.EPIC,
        max_progress=12,
        check_unlock=lambda _s, data: data.weekly_streak >= 12,
        calculate_progress=lambda data: data.weekly_streak,
        has_session_progress=lambda facts: facts.last_workout_date is None or facts.is_new_week,
        describe_session_progress=lambda facts: (
            "+ 1 week" if facts.last_workout_date is None or facts.is_new_week else "+ 0 weeks"
        ),
    ),
    _cumulative_sets(10, "total_10_sets", "Set Starter", "🎯", Rarity.COMMON),
    _cumulative_sets(100, "total_100_sets", "Set Crusher", "💪", Rarity.RARE),
    _cumulative_sets(500, "total_500_sets", "Set Destroyer", "🔨", Rarity.EPIC),
    _cumulative_sets(1000, "total_1000_sets", "Set Master", "⚔️", Rarity.LEGENDARY),
    _cumulative_reps(1000, "total_1000_reps", "Rep Machine", "⚡", Rarity.RARE),
    _cumulative_reps(5000, "total_5000_reps", "Rep Legend", "⭐", Rarity.EPIC),
    _cumulative_reps(10000, "total_10000_reps", "Rep God", "🔥", Rarity.LEGENDARY),
    AchievementRule(
        id="total_50_hours",
        title="Time Master",
        description="Accumulate 50 hours of total workout time (pausing not included).",
        icon="⏰",
        category=Category.ENDURANCE,
        rarity=Rarity.EPIC,
        max_progress=FIFTY_HOURS,
        check_unlock=lambda _s, data: data.cumulative_time_seconds >= FIFTY_HOURS,
        calculate_progress=lambda data: data.cumulative_time_seconds,
        has_session_progress=lambda facts: facts.time_seconds > 0,
        describe_session_progress=lambda facts: _format_minutes(facts.time_seconds),
    ),
    _session_minutes(30, "workout_30_min", "Time Warrior", "⏳", Rarity.RARE),
    _session_minutes(45, "workout_45_min", "Endurance Champion", "🏆", Rarity.EPIC),
    AchievementRule(
        id="single_30_sets",
        title="Endurance Master",
        description="Complete 30+ sets in a single workout.",
        icon="💪",
        category=Category.MILESTONE,
        rarity=Rarity.EPIC,
        check_unlock=lambda s, _d: s.total_sets >= 30,
        has_session_progress=_always,
        describe_session_progress=lambda facts: f"+ {facts.sets} sets in one workout",
    ),
    _special("speed_demon", "Speed Demon", "Complete a workout with 1 second per rep.", "🏃", Rarity.RARE,
             lambda s, _d: s.settings.time_per_rep == 1, "+ Speed workout completed"),
    _special("lightning_fast", "Zen Master", "Complete a workout with 10 seconds per rep.", "🧘", Rarity.EPIC,
             lambda s, _d: s.settings.time_per_rep == 10, "+ Zen workout completed"),
    _special("minimalist", "Minimalist", "Complete a workout with only 1 set.", "1️⃣", Rarity.COMMON,
             lambda s, _d: s.total_sets == 1, "+ Minimal workout completed"),
    _special("maximalist", "Maximalist", "Complete a workout with 25+ sets.", "🔥", Rarity.EPIC,
             lambda s, _d: s.total_sets >= 25, "+ Maximum workout completed"),
    _special("early_bird", "Early Bird", "Complete a workout before 7 AM.", "🐦", Rarity.RARE,
             lambda s, _d: _start_hour(s) < 7, "+ Early morning workout"),
    _special("night_owl", "Night Owl", "Complete a workout after 10 PM.", "🌙", Rarity.RARE,
             lambda s, _d: _start_hour(s) >= 22, "+ Late night workout"),
    AchievementRule(
        id="rest_skipper",
        title="Impatient",
        description="Someone clearly doesn't believe in the power of recovery!",
        icon="⏭️",
        category=Category.SPECIAL,
        rarity=Rarity.COMMON,
        check_unlock=lambda _s, data: data.rest_skip_attempts > 0,
    ),
    AchievementRule(
        id="no_pause_workout",
        title="Unstoppable",
        description="Complete a workout without pausing.",
        icon="🌪️",
        category=Category.DEDICATION,
        rarity=Rarity.RARE,
        check_unlock=lambda s, _d: s.statistics.total_time_paused == 0,
        has_session_progress=lambda facts: facts.perfect,
        describe_session_progress=lambda _facts: "+ No pause workout",
    ),
    AchievementRule(
        id="perfectionist",
        title="Perfectionist",
        description="Complete 10 workouts in a row without pausing.",
        icon="💎",
        category=Category.DEDICATION,
        rarity=Rarity.EPIC,
        max_progress=10,
        check_unlock=lambda _s, data: data.consecutive_no_pause_workouts >= 10,
        calculate_progress=lambda data: data.consecutive_no_pause_workouts,
        has_session_progress=lambda facts: facts.perfect,
        describe_session_progress=lambda _facts: "+ 1 workout without pause",
        resets_on_pause=True,
    ),
]

validate_rules(ALL_RULES)

RULES_BY_ID: dict[str, AchievementRule] = {rule.id: rule for rule in ALL_RULES}


def get_rule(rule_id: str) -> Optional[AchievementRule]:
    return RULES_BY_ID.get(rule_id)
