"""Achievement rules and the completion-time evaluator."""

from .evaluator import (
    AchievementEvaluator,
    AchievementOutcome,
    AchievementView,
    next_weekly_streak,
    week_start,
    workout_date,
)
from .rules import (
    ALL_RULES,
    RULES_BY_ID,
    AchievementRule,
    Category,
    Rarity,
    SessionFacts,
    get_rule,
    validate_rules,
)

__all__ = [
    "ALL_RULES",
    "AchievementEvaluator",
    "AchievementOutcome",
    "AchievementRule",
    "AchievementView",
    "Category",
    "RULES_BY_ID",
    "Rarity",
    "SessionFacts",
    "get_rule",
    "next_weekly_streak",
    "validate_rules",
    "week_start",
    "workout_date",
]
