"""Tests for the achievement catalogue and evaluator."""

from datetime import date, datetime, timedelta

import pytest

from tempo_timer.achievements import (
    ALL_RULES,
    AchievementEvaluator,
    AchievementRule,
    Category,
    Rarity,
    next_weekly_streak,
    validate_rules,
    week_start,
)
from tempo_timer.models import Phase, TimerSettings, WorkoutSession, WorkoutStatistics
from tempo_timer.storage import KEY_ACHIEVEMENT_DATA, MemoryBackend, WorkoutStore


# ---- Helpers ----

def to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def completed_session(
    start: datetime,
    total_sets: int = 3,
    paused: int = 0,
    time_per_rep: int = 3,
    reps_per_set: int = 2,
) -> WorkoutSession:
    """A finished session with realistic statistics, started at `start` (local time)."""
    settings = TimerSettings(time_per_rep=time_per_rep, reps_per_set=reps_per_set, rest_time=5, stretch_time=10)
    exercised = total_sets * settings.work_time
    rested = (total_sets - 1) * settings.rest_time
    start_ms = to_ms(start)
    end_ms = start_ms + (10 + exercised + rested + paused) * 1000
    stats = WorkoutStatistics(
        total_time_stretched=10,
        total_time_exercised=exercised,
        total_time_rested=rested,
        total_time_paused=paused,
        total_reps_completed=total_sets * (reps_per_set - 1),
        workout_start_time=start_ms,
        workout_end_time=end_ms,
        last_active_time=end_ms,
    )
    return WorkoutSession(
        phase=Phase.COMPLETE,
        current_set=total_sets,
        total_sets=total_sets,
        settings=settings,
        statistics=stats,
    )


def make_evaluator(backend=None):
    store = WorkoutStore(backend if backend is not None else MemoryBackend())
    return AchievementEvaluator(store), store


def evaluate(evaluator: AchievementEvaluator, start: datetime, **kwargs):
    session = completed_session(start, **kwargs)
    return evaluator.evaluate(session, session.statistics.workout_end_time)


def unlocked_ids(outcome) -> set[str]:
    return {view.rule.id for view in outcome.unlocked}


def state_of(evaluator: AchievementEvaluator, rule_id: str):
    return evaluator.load_states()[rule_id]


NOON = datetime(2026, 3, 4, 12, 0)


# ---- Catalogue ----

class TestCatalogue:
    def test_ids_unique(self):
        ids = [rule.id for rule in ALL_RULES]
        assert len(ids) == len(set(ids))

    def test_progress_rules_are_consistent(self):
        for rule in ALL_RULES:
            assert (rule.max_progress is None) == (rule.calculate_progress is None), rule.id

    def test_validate_rejects_duplicates(self):
        rule = ALL_RULES[0]
        with pytest.raises(ValueError, match="Duplicate"):
            validate_rules([rule, rule])

    def test_validate_rejects_half_declared_progress(self):
        rule = AchievementRule(
            id="broken", title="Broken", description="", icon="x",
            category=Category.SPECIAL, rarity=Rarity.COMMON,
            check_unlock=lambda _s, _d: False, max_progress=5,
        )
        with pytest.raises(ValueError, match="together"):
            validate_rules([rule])

    def test_catalog_lists_every_rule_locked(self):
        evaluator, _ = make_evaluator()
        views = evaluator.catalog()
        assert len(views) == len(ALL_RULES)
        assert not any(view.state.unlocked for view in views)
        assert state_of(evaluator, "total_10_sets").progress == 0
        assert state_of(evaluator, "first_workout").progress is None


# ---- Session facts and counters ----

class TestAccumulation:
    def test_first_session(self):
        evaluator, store = make_evaluator()
        outcome = evaluate(evaluator, NOON)
        assert outcome.facts.sets == 3
        assert outcome.facts.reps == 6
        assert outcome.facts.time_seconds == 38
        assert outcome.facts.is_new_day
        assert outcome.facts.perfect
        data = store.load_accumulated_data()
        assert data.cumulative_sets == 3
        assert data.cumulative_reps == 6
        assert data.cumulative_time_seconds == 38
        assert data.total_workout_days == 1
        assert data.weekly_streak == 1
        assert data.last_workout_date == "2026-03-04"
        assert unlocked_ids(outcome) == {"first_workout", "no_pause_workout"}

    def test_same_day_counts_one_day(self):
        evaluator, store = make_evaluator()
        evaluate(evaluator, NOON)
        outcome = evaluate(evaluator, NOON + timedelta(hours=3))
        assert not outcome.facts.is_new_day
        data = store.load_accumulated_data()
        assert data.total_workout_days == 1
        assert data.cumulative_sets == 6

    def test_corrupt_accumulated_data_resets_to_zero(self):
        backend = MemoryBackend({KEY_ACHIEVEMENT_DATA: "{not json"})
        evaluator, store = make_evaluator(backend)
        evaluate(evaluator, NOON)
        assert store.load_accumulated_data().cumulative_sets == 3


# ---- Progress-based unlocks ----

class TestProgress:
    def test_unlocks_exactly_at_max_progress(self):
        evaluator, _ = make_evaluator()
        for i in range(3):
            outcome = evaluate(evaluator, NOON + timedelta(minutes=10 * i))
            assert "total_10_sets" not in unlocked_ids(outcome)
        assert state_of(evaluator, "total_10_sets").progress == 9

        outcome = evaluate(evaluator, NOON + timedelta(minutes=30))
        assert "total_10_sets" in unlocked_ids(outcome)
        state = state_of(evaluator, "total_10_sets")
        assert state.unlocked
        assert state.progress == 10

    def test_unlocked_at_is_stable(self):
        evaluator, _ = make_evaluator()
        first = evaluate(evaluator, NOON)
        unlocked_at = state_of(evaluator, "first_workout").unlocked_at
        assert unlocked_at == first.unlocked[0].state.unlocked_at
        later = evaluate(evaluator, NOON + timedelta(days=1))
        assert "first_workout" not in unlocked_ids(later)
        assert state_of(evaluator, "first_workout").unlocked_at == unlocked_at

    def test_distinct_days_milestone(self):
        evaluator, _ = make_evaluator()
        evaluate(evaluator, NOON)
        evaluate(evaluator, NOON + timedelta(days=1))
        assert not state_of(evaluator, "streak_3").unlocked
        assert state_of(evaluator, "streak_3").progress == 2
        outcome = evaluate(evaluator, NOON + timedelta(days=2))
        assert "streak_3" in unlocked_ids(outcome)

    def test_progressed_list(self):
        evaluator, _ = make_evaluator()
        evaluate(evaluator, NOON)
        outcome = evaluate(evaluator, NOON + timedelta(hours=1))
        progressed = {view.rule.id: view for view in outcome.progressed}
        assert "total_10_sets" in progressed
        assert progressed["total_10_sets"].session_note == "+ 3 sets"
        assert progressed["total_10_sets"].state.progress == 6
        # same day: no distinct-day progress this session
        assert "streak_3" not in progressed
        assert "first_workout" not in progressed

    def test_progress_never_exceeds_max(self):
        evaluator, _ = make_evaluator()
        evaluate(evaluator, NOON, total_sets=50)
        for view in evaluator.catalog():
            if view.rule.tracks_progress:
                assert view.state.progress <= view.rule.max_progress, view.rule.id


# ---- Weekly streak ----

class TestWeeklyStreak:
    def test_week_start_is_monday(self):
        assert week_start(date(2026, 3, 4)) == date(2026, 3, 2)
        assert week_start(date(2026, 3, 8)) == date(2026, 3, 2)
        assert week_start(date(2026, 3, 9)) == date(2026, 3, 9)

    def test_first_workout(self):
        assert next_weekly_streak(0, None, date(2026, 3, 4)) == 1

    def test_same_week_unchanged(self):
        assert next_weekly_streak(4, date(2026, 3, 2), date(2026, 3, 6)) == 4

    def test_next_week_increments(self):
        assert next_weekly_streak(4, date(2026, 3, 8), date(2026, 3, 9)) == 5

    def test_skipped_week_resets(self):
        assert next_weekly_streak(4, date(2026, 3, 2), date(2026, 3, 16)) == 1

    def test_long_gap_resets(self):
        assert next_weekly_streak(4, date(2026, 3, 2), date(2026, 3, 22)) == 1

    def test_streak_sequence(self):
        """First workout 1, following ISO week 2, after a 20-day gap back to 1."""
        evaluator, store = make_evaluator()
        monday = datetime(2026, 3, 2, 9, 0)
        evaluate(evaluator, monday)
        assert store.load_accumulated_data().weekly_streak == 1
        next_week = datetime(2026, 3, 11, 9, 0)
        evaluate(evaluator, next_week)
        assert store.load_accumulated_data().weekly_streak == 2
        evaluate(evaluator, next_week + timedelta(days=20))
        data = store.load_accumulated_data()
        assert data.weekly_streak == 1
        assert data.last_workout_date == "2026-03-31"


# ---- No-pause streak ----

class TestNoPauseStreak:
    def test_counter_and_reset(self):
        evaluator, store = make_evaluator()
        for i in range(3):
            evaluate(evaluator, NOON + timedelta(hours=i))
        assert store.load_accumulated_data().consecutive_no_pause_workouts == 3
        assert state_of(evaluator, "perfectionist").progress == 3

        outcome = evaluate(evaluator, NOON + timedelta(hours=4), paused=12)
        assert not outcome.facts.perfect
        assert store.load_accumulated_data().consecutive_no_pause_workouts == 0
        assert state_of(evaluator, "perfectionist").progress == 0

    def test_perfectionist_unlocks_at_ten(self):
        evaluator, _ = make_evaluator()
        for i in range(9):
            evaluate(evaluator, NOON + timedelta(minutes=i))
        assert not state_of(evaluator, "perfectionist").unlocked
        outcome = evaluate(evaluator, NOON + timedelta(minutes=9))
        assert "perfectionist" in unlocked_ids(outcome)

    def test_paused_session_skips_no_pause_rule(self):
        evaluator, _ = make_evaluator()
        outcome = evaluate(evaluator, NOON, paused=5)
        assert "no_pause_workout" not in unlocked_ids(outcome)
        assert "first_workout" in unlocked_ids(outcome)


# ---- Special rules ----

class TestSpecialRules:
    @pytest.mark.parametrize("start,rule_id", [
        (datetime(2026, 3, 4, 6, 30), "early_bird"),
        (datetime(2026, 3, 4, 22, 15), "night_owl"),
    ])
    def test_time_of_day(self, start, rule_id):
        evaluator, _ = make_evaluator()
        assert rule_id in unlocked_ids(evaluate(evaluator, start))

    def test_midday_unlocks_neither(self):
        evaluator, _ = make_evaluator()
        ids = unlocked_ids(evaluate(evaluator, NOON))
        assert "early_bird" not in ids
        assert "night_owl" not in ids

    @pytest.mark.parametrize("kwargs,rule_id", [
        ({"time_per_rep": 1}, "speed_demon"),
        ({"time_per_rep": 10}, "lightning_fast"),
        ({"total_sets": 1}, "minimalist"),
        ({"total_sets": 25}, "maximalist"),
        ({"total_sets": 30}, "single_30_sets"),
    ])
    def test_settings_based(self, kwargs, rule_id):
        evaluator, _ = make_evaluator()
        assert rule_id in unlocked_ids(evaluate(evaluator, NOON, **kwargs))

    def test_long_session(self):
        evaluator, _ = make_evaluator()
        # 30 sets of 10 x 10s work with 5s rests
        ids = unlocked_ids(evaluate(evaluator, NOON, total_sets=30, time_per_rep=10, reps_per_set=10))
        assert "workout_30_min" in ids
        assert "workout_45_min" in ids

    def test_rest_skip_attempts_folded_in(self):
        evaluator, store = make_evaluator()
        store.increment_rest_skip_attempts()
        store.increment_rest_skip_attempts()
        outcome = evaluate(evaluator, NOON)
        assert "rest_skipper" in unlocked_ids(outcome)
        assert store.load_accumulated_data().rest_skip_attempts == 2
        assert store.load_rest_skip_attempts() == 0


# ---- Reset ----

class TestReset:
    def test_reset_locks_everything(self):
        evaluator, store = make_evaluator()
        evaluate(evaluator, NOON)
        evaluator.reset()
        assert not any(view.state.unlocked for view in evaluator.catalog())
        assert store.load_accumulated_data().cumulative_sets == 0

    def test_unlock_survives_without_reset(self):
        evaluator, _ = make_evaluator()
        evaluate(evaluator, NOON)
        evaluate(evaluator, NOON + timedelta(days=1), paused=30)
        assert state_of(evaluator, "no_pause_workout").unlocked
