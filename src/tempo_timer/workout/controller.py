"""Caller-facing workout API.

WorkoutController owns the single live session. Every user action and
every scheduled tick goes through the same path: run the pure reducer,
swap in the new session, persist, then notify listeners. Scheduled
callbacks carry the generation they were created in and are dropped once
a reset or completion has moved the generation on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from tempo_timer.achievements import AchievementEvaluator, AchievementView, SessionFacts
from tempo_timer.config import TimerConfig
from tempo_timer.experience import ExperienceCalculator, XPGain
from tempo_timer.models import TRANSIENT_PHASES, Phase, WorkoutHistoryEntry, WorkoutSession
from tempo_timer.scheduler import ScheduledTask, Scheduler
from tempo_timer.storage import WorkoutStore
from tempo_timer.workout import statistics
from tempo_timer.workout.phases import (
    REJECT_REST_SKIP,
    Action,
    PhasePolicy,
    TransitionResult,
    WorkoutEvent,
    transition,
)
from tempo_timer.workout.ticker import tick

logger = logging.getLogger("tempo_timer.workout")

ADJUSTABLE_FIELDS = ("time_per_rep", "rest_time", "stretch_time", "reps_per_set")

REJECT_SETTINGS_LOCKED = "settings_locked"


class TransitionRejected(Exception):
    """An action was refused in the session's current phase."""

    def __init__(self, reason: str, phase: Optional[Phase] = None):
        self.reason = reason
        self.phase = phase
        where = f" in {phase.value}" if phase is not None else ""
        super().__init__(f"Action rejected{where}: {reason}")


@dataclass
class CompletionResult:
    unlocked: list[AchievementView] = field(default_factory=list)
    progressed: list[AchievementView] = field(default_factory=list)
    facts: Optional[SessionFacts] = None
    xp_gains: list[XPGain] = field(default_factory=list)
    history_entry: Optional[WorkoutHistoryEntry] = None

    @property
    def total_xp(self) -> int:
        return sum(gain.amount for gain in self.xp_gains)

    @property
    def level_up(self) -> Optional[int]:
        """Highest level reached during this completion, if any."""
        levels = [gain.new_level for gain in self.xp_gains if gain.level_up]
        return max(levels) if levels else None


SessionListener = Callable[[WorkoutSession], None]
PhaseListener = Callable[[Phase, WorkoutSession], None]
CompleteListener = Callable[[CompletionResult], None]


class WorkoutController:
    def __init__(
        self,
        store: WorkoutStore,
        scheduler: Scheduler,
        config: Optional[TimerConfig] = None,
        evaluator: Optional[AchievementEvaluator] = None,
        experience: Optional[ExperienceCalculator] = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.config = config or TimerConfig()
        self.policy = PhasePolicy(allow_rest_skip=self.config.allow_rest_skip)
        self.evaluator = evaluator or AchievementEvaluator(
            store, streak_reset_days=self.config.streak_reset_days, clock=scheduler.now_ms
        )
        self.experience = experience or ExperienceCalculator(store, clock=scheduler.now_ms)
        self.last_completion: Optional[CompletionResult] = None

        self._generation = 0
        self._tick_task: Optional[ScheduledTask] = None
        self._transition_task: Optional[ScheduledTask] = None

        self._on_tick: Optional[SessionListener] = None
        self._on_phase_change: Optional[PhaseListener] = None
        self._on_rep: Optional[SessionListener] = None
        self._on_complete: Optional[CompleteListener] = None

        self._session = self._restore()
        if self._session.phase == Phase.COMPLETE:
            # a completion that was saved but never processed
            self._complete()
        self._sync_ticker()

    # ---- Listeners ----

    def set_on_tick(self, callback: Optional[SessionListener]) -> None:
        self._on_tick = callback

    def set_on_phase_change(self, callback: Optional[PhaseListener]) -> None:
        self._on_phase_change = callback

    def set_on_rep(self, callback: Optional[SessionListener]) -> None:
        self._on_rep = callback

    def set_on_complete(self, callback: Optional[CompleteListener]) -> None:
        self._on_complete = callback

    # ---- Read access ----

    @property
    def session(self) -> WorkoutSession:
        return self._session.model_copy(deep=True)

    @property
    def phase(self) -> Phase:
        return self._session.phase

    @property
    def is_ticking(self) -> bool:
        return self._tick_task is not None and self._tick_task.active

    @property
    def has_pending_transition(self) -> bool:
        return self._transition_task is not None and self._transition_task.active

    # ---- User actions ----

    def start_workout(self) -> WorkoutSession:
        return self._dispatch(Action.START)

    def continue_to_stretch(self) -> WorkoutSession:
        return self._dispatch(Action.CONTINUE_TO_STRETCH)

    def toggle_pause(self) -> WorkoutSession:
        return self._dispatch(Action.TOGGLE_PAUSE)

    def skip_phase(self) -> WorkoutSession:
        return self._dispatch(Action.SKIP)

    def reset_workout(self) -> WorkoutSession:
        self._generation += 1
        self._cancel_tasks()
        return self._dispatch(Action.RESET)

    def adjust_sets(self, delta: int) -> int:
        self._require_setup()
        total_sets = self.config.clamp_setting("total_sets", self._session.total_sets + delta)
        self._session = self._session.model_copy(update={"total_sets": total_sets})
        self.store.save_workout_settings(self._session.workout_settings())
        return total_sets

    def adjust_time(self, field_name: str, delta: int) -> int:
        if field_name not in ADJUSTABLE_FIELDS:
            raise ValueError(f"Unknown setting: {field_name!r} (expected one of {', '.join(ADJUSTABLE_FIELDS)})")
        self._require_setup()
        settings = self._session.settings
        value = self.config.clamp_setting(field_name, getattr(settings, field_name) + delta)
        self._session = self._session.model_copy(
            update={"settings": settings.model_copy(update={field_name: value})}
        )
        self.store.save_workout_settings(self._session.workout_settings())
        return value

    def _require_setup(self) -> None:
        if self._session.phase != Phase.SETUP:
            logger.info(f"Settings change rejected in {self._session.phase.value}")
            raise TransitionRejected(REJECT_SETTINGS_LOCKED, self._session.phase)

    # ---- Core update path ----

    def _dispatch(self, action: Action) -> WorkoutSession:
        result = transition(self._session, action, self.scheduler.now_ms(), self.policy)
        if not result.accepted:
            logger.info(f"Rejected {action.value} in {self._session.phase.value}: {result.rejected}")
            if result.rejected == REJECT_REST_SKIP:
                self.store.increment_rest_skip_attempts()
            raise TransitionRejected(result.rejected, self._session.phase)
        self._apply(result, restart_ticker=True)
        return self.session

    def _apply(self, result: TransitionResult, restart_ticker: bool) -> None:
        previous_phase = self._session.phase
        self._session = result.session
        self._persist()

        if self._session.phase == Phase.TRANSITION and not self.has_pending_transition:
            self._schedule_transition()

        completion = None
        if WorkoutEvent.WORKOUT_COMPLETED in result.events:
            completion = self._complete()

        if restart_ticker:
            self._cancel_tick()
        self._sync_ticker()
        self._notify(previous_phase, result.events, completion)

    def _persist(self) -> None:
        if self._session.phase in TRANSIENT_PHASES:
            self.store.clear_session()
        else:
            self.store.save_session(self._session)

    def _notify(
        self,
        previous_phase: Phase,
        events: list[WorkoutEvent],
        completion: Optional[CompletionResult],
    ) -> None:
        session = self.session
        for event in events:
            if event == WorkoutEvent.TICK and self._on_tick is not None:
                self._on_tick(session)
            elif event == WorkoutEvent.REP_ADVANCED and self._on_rep is not None:
                self._on_rep(session)
            elif event == WorkoutEvent.PHASE_CHANGED and self._on_phase_change is not None:
                self._on_phase_change(previous_phase, session)
        if completion is not None and self._on_complete is not None:
            self._on_complete(completion)

    # ---- Scheduling ----

    def _sync_ticker(self) -> None:
        if not self._session.is_tickable:
            self._cancel_tick()
            return
        if self._tick_task is None or not self._tick_task.active:
            generation = self._generation
            self._tick_task = self.scheduler.every(1, lambda: self._handle_tick(generation), name="tempo_tick")

    def _handle_tick(self, generation: int) -> None:
        if generation != self._generation:
            logger.debug("Dropping stale tick")
            return
        result = tick(self._session, self.scheduler.now_ms())
        if not result.events:
            self._cancel_tick()
            return
        self._apply(result, restart_ticker=False)

    def _schedule_transition(self) -> None:
        target = self._session.transition_target
        delay_ms = self.config.reset_delay_ms if target == Phase.SETUP else self.config.transition_delay_ms
        generation = self._generation
        self._transition_task = self.scheduler.later(
            delay_ms / 1000, lambda: self._finish_transition(generation), name="tempo_transition"
        )

    def _finish_transition(self, generation: int) -> None:
        if generation != self._generation:
            logger.debug("Dropping stale transition")
            return
        result = transition(self._session, Action.FINISH_TRANSITION, self.scheduler.now_ms(), self.policy)
        if not result.accepted:
            logger.warning(f"Pending transition could not finish: {result.rejected}")
            return
        self._apply(result, restart_ticker=True)

    def _cancel_tick(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    def _cancel_tasks(self) -> None:
        self._cancel_tick()
        if self._transition_task is not None:
            self._transition_task.cancel()
            self._transition_task = None

    def shutdown(self) -> None:
        """Stop all scheduled work; the persisted session is left as is."""
        self._generation += 1
        self._cancel_tasks()

    # ---- Restore ----

    def _restore(self) -> WorkoutSession:
        now_ms = self.scheduler.now_ms()
        saved = self.store.load_session()
        if saved is None or saved.phase in TRANSIENT_PHASES:
            if saved is not None:
                self.store.clear_session()
            return WorkoutSession.fresh(self.store.load_workout_settings(), now_ms)
        if saved.is_paused:
            saved = saved.model_copy(
                update={"statistics": statistics.restart_pause_window(saved.statistics, now_ms)}
            )
            self.store.save_session(saved)
        logger.info(f"Restored session in {saved.phase.value} (set {saved.current_set}/{saved.total_sets})")
        return saved

    # ---- Completion ----

    def _complete(self) -> Optional[CompletionResult]:
        self._generation += 1
        self._cancel_tasks()

        session = self._session
        entry = self.store.build_history_entry(session)
        if entry is None:
            logger.warning("Completed session has no start time; skipping completion processing")
            return None
        if self.store.load_last_processed_workout() == entry.id:
            logger.debug(f"Workout {entry.id} already processed")
            return None

        self.store.append_history(entry)
        self.store.save_last_processed_workout(entry.id)

        now_ms = self.scheduler.now_ms()
        outcome = self.evaluator.evaluate(session, now_ms)
        gains = self.experience.process_workout_completion(session, now_ms)
        for _ in outcome.unlocked:
            gains.append(self.experience.process_achievement_unlock(now_ms))

        result = CompletionResult(
            unlocked=outcome.unlocked,
            progressed=outcome.progressed,
            facts=outcome.facts,
            xp_gains=gains,
            history_entry=entry,
        )
        self.last_completion = result
        logger.info(
            f"Workout complete: {session.total_sets} sets, {len(outcome.unlocked)} unlocked, +{result.total_xp} XP"
        )
        return result
