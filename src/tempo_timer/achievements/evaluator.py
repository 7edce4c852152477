"""Achievement evaluation, run once per completed session."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from tempo_timer.achievements.rules import ALL_RULES, AchievementRule, SessionFacts
from tempo_timer.config import STREAK_RESET_DAYS
from tempo_timer.models import AchievementAccumulatedData, AchievementState, WorkoutSession
from tempo_timer.scheduler import wall_clock_ms

logger = logging.getLogger("tempo_timer.achievements")


@dataclass(frozen=True)
class AchievementView:
    rule: AchievementRule
    state: AchievementState
    session_note: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.rule.id,
            "title": self.rule.title,
            "description": self.rule.description,
            "icon": self.rule.icon,
            "category": self.rule.category.value,
            "rarity": self.rule.rarity.value,
            "unlocked": self.state.unlocked,
            "unlocked_at": self.state.unlocked_at,
            "progress": self.state.progress,
            "max_progress": self.rule.max_progress,
            "session_note": self.session_note,
        }


@dataclass
class AchievementOutcome:
    facts: SessionFacts
    unlocked: list[AchievementView] = field(default_factory=list)
    progressed: list[AchievementView] = field(default_factory=list)


def workout_date(session: WorkoutSession, now_ms: int) -> date:
    """Local calendar date the session started on."""
    start = session.statistics.workout_start_time
    return datetime.fromtimestamp((start if start is not None else now_ms) / 1000).date()


def week_start(day: date) -> date:
    """Monday of the ISO week containing day."""
    return day - timedelta(days=day.weekday())


def next_weekly_streak(
    streak: int,
    last_workout: Optional[date],
    today: date,
    reset_days: int = STREAK_RESET_DAYS,
) -> int:
    """Weekly streak after a workout on today."""
    if last_workout is None:
        return 1
    gap_days = (today - last_workout).days
    if gap_days <= 0:
        return max(streak, 1)
    if gap_days > reset_days:
        return 1
    weeks = (week_start(today) - week_start(last_workout)).days // 7
    if weeks == 0:
        return max(streak, 1)
    if weeks == 1:
        return streak + 1
    return 1


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        logger.warning(f"Ignoring malformed last workout date {value!r}")
        return None


class AchievementEvaluator:
    """Unlocks and progresses achievements from completed sessions.

    Rule definitions are static; per-rule state and the accumulated counters
    live in the store and are reloaded on every evaluation so a second
    process writing the same store is picked up (last write wins).
    """

    def __init__(
        self,
        store,
        rules: list[AchievementRule] = ALL_RULES,
        streak_reset_days: int = STREAK_RESET_DAYS,
        clock: Callable[[], int] = wall_clock_ms,
    ):
        self.store = store
        self.rules = rules
        self.streak_reset_days = streak_reset_days
        self._clock = clock

    # ---- State ----

    def _initial_state(self, rule: AchievementRule) -> AchievementState:
        return AchievementState(id=rule.id, progress=0 if rule.tracks_progress else None)

    def load_states(self) -> dict[str, AchievementState]:
        saved = {state.id: state for state in self.store.load_achievement_states()}
        states: dict[str, AchievementState] = {}
        for rule in self.rules:
            state = saved.get(rule.id) or self._initial_state(rule)
            if rule.tracks_progress:
                progress = min(state.progress or 0, rule.max_progress)
                state = state.model_copy(update={"progress": progress})
            if state.unlocked_at is not None and not state.unlocked:
                state = state.model_copy(update={"unlocked": True})
            states[rule.id] = state
        return states

    def _save_states(self, states: dict[str, AchievementState]) -> None:
        self.store.save_achievement_states([states[rule.id] for rule in self.rules])

    def catalog(self) -> list[AchievementView]:
        states = self.load_states()
        return [AchievementView(rule, states[rule.id]) for rule in self.rules]

    @property
    def accumulated_data(self) -> AchievementAccumulatedData:
        return self.store.load_accumulated_data()

    # ---- Evaluation ----

    def evaluate(self, session: WorkoutSession, now_ms: Optional[int] = None) -> AchievementOutcome:
        now_ms = self._clock() if now_ms is None else now_ms
        data = self.store.load_accumulated_data().model_copy()
        states = self.load_states()
        already_unlocked = {rule_id for rule_id, state in states.items() if state.unlocked}

        # Session-level facts, measured against the counters before this session
        stats = session.statistics
        today = workout_date(session, now_ms)
        last = _parse_date(data.last_workout_date)
        facts = SessionFacts(
            sets=session.total_sets,
            reps=session.total_sets * session.settings.reps_per_set,
            time_seconds=stats.active_time,
            is_new_day=data.last_workout_date != today.isoformat(),
            is_new_week=last is None or week_start(today) != week_start(last),
            perfect=stats.total_time_paused == 0,
            last_workout_date=data.last_workout_date,
        )

        data.cumulative_sets += facts.sets
        data.cumulative_reps += facts.reps
        data.cumulative_time_seconds += facts.time_seconds
        if facts.is_new_day:
            data.total_workout_days += 1

        data.weekly_streak = next_weekly_streak(data.weekly_streak, last, today, self.streak_reset_days)
        if last is None or today > last:
            data.last_workout_date = today.isoformat()

        if facts.perfect:
            data.consecutive_no_pause_workouts += 1
        else:
            data.consecutive_no_pause_workouts = 0
            for rule in self.rules:
                if rule.resets_on_pause and not states[rule.id].unlocked:
                    states[rule.id] = states[rule.id].model_copy(update={"progress": 0})

        data.rest_skip_attempts += self.store.load_rest_skip_attempts()

        outcome = AchievementOutcome(facts=facts)
        for rule in self.rules:
            state = states[rule.id]
            if state.unlocked:
                continue
            if rule.check_unlock(session, data):
                progress = rule.max_progress if rule.tracks_progress else state.progress
                state = self._unlock(state, now_ms, progress)
            elif rule.tracks_progress:
                progress = min(rule.calculate_progress(data), rule.max_progress)
                if progress >= rule.max_progress:
                    state = self._unlock(state, now_ms, progress)
                else:
                    state = state.model_copy(update={"progress": progress})
            states[rule.id] = state
            if state.unlocked:
                outcome.unlocked.append(AchievementView(rule, state, self._note(rule, facts)))
                logger.info(f"Achievement unlocked: {rule.id}")

        unlocked_ids = {view.rule.id for view in outcome.unlocked}
        for rule in self.rules:
            if rule.id in already_unlocked or rule.id in unlocked_ids or not rule.tracks_progress:
                continue
            if rule.has_session_progress is not None and rule.has_session_progress(facts):
                outcome.progressed.append(AchievementView(rule, states[rule.id], self._note(rule, facts)))

        self._save_states(states)
        self.store.save_accumulated_data(data)
        self.store.clear_rest_skip_attempts()
        return outcome

    @staticmethod
    def _unlock(state: AchievementState, now_ms: int, progress: Optional[int]) -> AchievementState:
        return state.model_copy(update={"unlocked": True, "unlocked_at": now_ms, "progress": progress})

    @staticmethod
    def _note(rule: AchievementRule, facts: SessionFacts) -> Optional[str]:
        if rule.describe_session_progress is None:
            return None
        return rule.describe_session_progress(facts)

    def reset(self) -> None:
        """Full reset: every rule locked, every counter zeroed."""
        self.store.save_achievement_states([self._initial_state(rule) for rule in self.rules])
        self.store.save_accumulated_data(AchievementAccumulatedData())
        self.store.clear_rest_skip_attempts()
        logger.info("Achievements reset")
