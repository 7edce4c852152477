"""Configuration for the workout timer core.

Limits and defaults mirror the values the app has always shipped with.
Runtime overrides come from TEMPO_* environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class Bounds:
    minimum: int
    maximum: int

    def clamp(self, value: int) -> int:
        return max(self.minimum, min(self.maximum, int(value)))


# Validation limits (inclusive)
LIMITS: dict[str, Bounds] = {
    "total_sets": Bounds(1, 50),
    "reps_per_set": Bounds(1, 50),
    "time_per_rep": Bounds(1, 10),
    "rest_time": Bounds(15, 90),
    "stretch_time": Bounds(15, 90),
}

# Debug mode relaxes the floor on these so full sessions can be run quickly.
DEBUG_RELAXED_FIELDS = ("rest_time", "stretch_time")

DEFAULT_TIME_PER_REP = 3
DEFAULT_REST_TIME = 30
DEFAULT_STRETCH_TIME = 30
DEFAULT_REPS_PER_SET = 10
DEFAULT_TOTAL_SETS = 10

TRANSITION_DELAY_MS = 700
RESET_DELAY_MS = 700
HISTORY_LIMIT = 2048
STREAK_RESET_DAYS = 14

DEFAULT_DB_PATH = Path.home() / ".tempo" / "tempo.db"


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got: {value!r})")


@dataclass(frozen=True)
class TimerConfig:
    """Runtime configuration for one controller instance."""

    db_path: Path = DEFAULT_DB_PATH
    allow_rest_skip: bool = False
    debug: bool = False
    history_limit: int = HISTORY_LIMIT
    transition_delay_ms: int = TRANSITION_DELAY_MS
    reset_delay_ms: int = RESET_DELAY_MS
    streak_reset_days: int = STREAK_RESET_DAYS
    limits: dict[str, Bounds] = field(default_factory=lambda: dict(LIMITS))

    @classmethod
    def from_env(cls) -> "TimerConfig":
        config = cls(
            db_path=Path(os.environ.get("TEMPO_DB", str(DEFAULT_DB_PATH))).expanduser(),
            allow_rest_skip=_env_flag("TEMPO_ALLOW_REST_SKIP"),
            debug=_env_flag("TEMPO_DEBUG"),
            history_limit=_env_int("TEMPO_HISTORY_LIMIT", HISTORY_LIMIT),
            transition_delay_ms=_env_int("TEMPO_TRANSITION_DELAY_MS", TRANSITION_DELAY_MS),
        )
        config.validate()
        return config

    def validate(self) -> None:
        if self.history_limit < 1:
            raise ValueError(f"history_limit must be positive (got: {self.history_limit})")
        if self.transition_delay_ms < 0 or self.reset_delay_ms < 0:
            raise ValueError("transition delays cannot be negative")

    def bounds_for(self, name: str) -> Bounds:
        bounds = self.limits[name]
        if self.debug and name in DEBUG_RELAXED_FIELDS:
            return Bounds(1, bounds.maximum)
        return bounds

    def clamp_setting(self, name: str, value: int) -> int:
        """Clamp a settings value into its configured bounds."""
        return self.bounds_for(name).clamp(value)
