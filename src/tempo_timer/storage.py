"""Persistence port: named JSON blobs in a key-value backend.

Every read fails open to a documented default and every write failure is
logged and dropped. The in-memory session stays authoritative either way.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from tempo_timer.config import HISTORY_LIMIT
from tempo_timer.models import (
    AchievementAccumulatedData,
    AchievementState,
    ExperienceState,
    TimerSettings,
    WorkoutHistoryEntry,
    WorkoutSession,
    WorkoutSettings,
)

logger = logging.getLogger("tempo_timer.storage")

# Storage keys
KEY_SESSION = "tempo-workout-state"
KEY_SETTINGS = "tempo-workout-settings"
KEY_HISTORY = "tempo-workout-history"
KEY_LAST_PROCESSED = "tempo-last-processed-workout"
KEY_ACHIEVEMENTS = "tempo-achievements-v2"
KEY_ACHIEVEMENT_DATA = "tempo-achievement-data"
KEY_REST_SKIP_ATTEMPTS = "tempo-rest-skip-attempts"
KEY_EXPERIENCE = "tempo-experience"

ALL_KEYS = (
    KEY_SESSION,
    KEY_SETTINGS,
    KEY_HISTORY,
    KEY_LAST_PROCESSED,
    KEY_ACHIEVEMENTS,
    KEY_ACHIEVEMENT_DATA,
    KEY_REST_SKIP_ATTEMPTS,
    KEY_EXPERIENCE,
)

_READ_ERRORS = (sqlite3.Error, OSError, ValueError, TypeError, ValidationError)


class KeyValueBackend:
    """Minimal string key-value store."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryBackend(KeyValueBackend):
    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class SqliteBackend(KeyValueBackend):
    """Single-table SQLite backend. Last write wins across processes."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def init_tables(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        try:
            # WAL keeps a reader (e.g. a second terminal) from blocking writes
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=5)

    def get(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute("""
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """, (key, value, datetime.now().isoformat()))
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()


def _unique_workout_id(session: WorkoutSession) -> str:
    stats = session.statistics
    random = uuid.uuid4().hex[:6]
    return f"{stats.workout_start_time}_{stats.active_time}_{session.total_sets}_{random}"


class WorkoutStore:
    """Typed, fail-open access to every persisted record."""

    def __init__(self, backend: KeyValueBackend, history_limit: int = HISTORY_LIMIT):
        self.backend = backend
        self.history_limit = history_limit

    # ---- Generic helpers ----

    def _get_item(self, key: str, default: Any) -> Any:
        try:
            raw = self.backend.get(key)
        except _READ_ERRORS as e:
            logger.error(f"Failed to read {key} from storage: {e}")
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error(f"Discarding malformed {key}: {e}")
            return default

    def _set_item(self, key: str, value: Any) -> None:
        try:
            self.backend.set(key, json.dumps(value))
        except (sqlite3.Error, OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write {key} to storage: {e}")

    def _remove_item(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to remove {key} from storage: {e}")

    def _get_model(self, key: str, model: type[BaseModel], default: Any) -> Any:
        data = self._get_item(key, None)
        if data is None:
            return default
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Discarding malformed {key}: {e.error_count()} validation errors")
            return default

    def _set_model(self, key: str, value: BaseModel) -> None:
        self._set_item(key, value.model_dump(mode="json"))

    # ---- Session ----

    def load_session(self) -> Optional[WorkoutSession]:
        return self._get_model(KEY_SESSION, WorkoutSession, None)

    def save_session(self, session: WorkoutSession) -> None:
        self._set_model(KEY_SESSION, session)

    def clear_session(self) -> None:
        self._remove_item(KEY_SESSION)

    # ---- Settings ----

    def load_workout_settings(self) -> WorkoutSettings:
        return self._get_model(KEY_SETTINGS, WorkoutSettings, WorkoutSettings())

    def save_workout_settings(self, settings: WorkoutSettings) -> None:
        self._set_model(KEY_SETTINGS, settings)

    def load_settings(self) -> TimerSettings:
        return self.load_workout_settings().timer_settings()

    def save_settings(self, settings: TimerSettings) -> None:
        total_sets = self.load_workout_settings().total_sets
        self.save_workout_settings(WorkoutSettings(total_sets=total_sets, **settings.model_dump()))

    # ---- History ----

    def load_history(self) -> list[WorkoutHistoryEntry]:
        raw = self._get_item(KEY_HISTORY, [])
        if not isinstance(raw, list):
            logger.error(f"Discarding malformed {KEY_HISTORY}: not a list")
            return []
        entries = []
        for item in raw:
            try:
                entries.append(WorkoutHistoryEntry.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed history entry")
        return entries

    def _save_history(self, entries: list[WorkoutHistoryEntry]) -> None:
        self._set_item(KEY_HISTORY, [e.model_dump(mode="json") for e in entries])

    def build_history_entry(self, session: WorkoutSession) -> Optional[WorkoutHistoryEntry]:
        start = session.statistics.workout_start_time
        if start is None:
            return None
        stats = session.statistics.model_copy(update={"pause_start_time": None})
        return WorkoutHistoryEntry(
            id=str(start),
            unique_id=_unique_workout_id(session),
            date=start,
            total_sets=session.total_sets,
            reps_per_set=session.settings.reps_per_set,
            time_per_rep=session.settings.time_per_rep,
            rest_time=session.settings.rest_time,
            stretch_time=session.settings.stretch_time,
            statistics=stats,
        )

    def append_history(self, entry: WorkoutHistoryEntry) -> bool:
        """Prepend an entry unless it duplicates one already stored.

        Returns True if the entry was written.
        """
        history = self.load_history()
        for existing in history:
            if existing.unique_id == entry.unique_id or existing.dedup_key() == entry.dedup_key():
                logger.debug(f"History entry {entry.id} already stored")
                return False
        updated = [entry, *history][: self.history_limit]
        self._save_history(updated)
        return True

    def update_sync_status(self, entry_id: str, synced: bool, attempt_time: Optional[int] = None) -> bool:
        history = self.load_history()
        for index, entry in enumerate(history):
            if entry_id in (entry.id, entry.unique_id):
                update: dict[str, Any] = {"server_synced": synced}
                if attempt_time is not None:
                    update["last_sync_attempt"] = attempt_time
                    update["sync_attempts"] = entry.sync_attempts + 1
                history[index] = entry.model_copy(update=update)
                self._save_history(history)
                return True
        return False

    def unsynced_history(self) -> list[WorkoutHistoryEntry]:
        return [e for e in self.load_history() if not e.server_synced]

    def clear_history(self) -> None:
        self._remove_item(KEY_HISTORY)

    # ---- Completion marker ----

    def load_last_processed_workout(self) -> Optional[str]:
        value = self._get_item(KEY_LAST_PROCESSED, None)
        return value if isinstance(value, str) else None

    def save_last_processed_workout(self, workout_id: str) -> None:
        self._set_item(KEY_LAST_PROCESSED, workout_id)

    # ---- Achievements ----

    def load_achievement_states(self) -> list[AchievementState]:
        raw = self._get_item(KEY_ACHIEVEMENTS, [])
        if not isinstance(raw, list):
            return []
        states = []
        for item in raw:
            try:
                states.append(AchievementState.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed achievement state")
        return states

    def save_achievement_states(self, states: list[AchievementState]) -> None:
        self._set_item(KEY_ACHIEVEMENTS, [s.model_dump(mode="json") for s in states])

    def load_accumulated_data(self) -> AchievementAccumulatedData:
        return self._get_model(KEY_ACHIEVEMENT_DATA, AchievementAccumulatedData, AchievementAccumulatedData())

    def save_accumulated_data(self, data: AchievementAccumulatedData) -> None:
        self._set_model(KEY_ACHIEVEMENT_DATA, data)

    def load_rest_skip_attempts(self) -> int:
        value = self._get_item(KEY_REST_SKIP_ATTEMPTS, 0)
        return value if isinstance(value, int) and value > 0 else 0

    def increment_rest_skip_attempts(self) -> int:
        attempts = self.load_rest_skip_attempts() + 1
        self._set_item(KEY_REST_SKIP_ATTEMPTS, attempts)
        return attempts

    def clear_rest_skip_attempts(self) -> None:
        self._remove_item(KEY_REST_SKIP_ATTEMPTS)

    # ---- Experience ----

    def load_experience(self) -> ExperienceState:
        return self._get_model(KEY_EXPERIENCE, ExperienceState, ExperienceState())

    def save_experience(self, state: ExperienceState) -> None:
        self._set_model(KEY_EXPERIENCE, state)

    # ---- Backup ----

    def export_data(self) -> str:
        """JSON backup of everything except the live session."""
        data = {
            "exportDate": datetime.now().isoformat(),
            "workout": {
                "settings": self.load_workout_settings().model_dump(mode="json"),
                "history": [e.model_dump(mode="json") for e in self.load_history()],
            },
            "achievements": [s.model_dump(mode="json") for s in self.load_achievement_states()],
            "achievementData": self.load_accumulated_data().model_dump(mode="json"),
            "experience": self.load_experience().model_dump(mode="json"),
        }
        return json.dumps(data, indent=2)

    def import_data(self, payload: str) -> None:
        """Restore a backup produced by export_data.

        Raises ValueError if the payload is not a valid backup; nothing is
        written in that case.
        """
        try:
            data = json.loads(payload)
            workout = data.get("workout") or {}
            settings = WorkoutSettings.model_validate(workout["settings"]) if workout.get("settings") else None
            history = [WorkoutHistoryEntry.model_validate(e) for e in workout.get("history") or []]
            states = [AchievementState.model_validate(s) for s in data.get("achievements") or []]
            accumulated = (
                AchievementAccumulatedData.model_validate(data["achievementData"])
                if data.get("achievementData") else None
            )
            experience = ExperienceState.model_validate(data["experience"]) if data.get("experience") else None
        except (AttributeError, KeyError, ValueError) as e:
            raise ValueError(f"Invalid backup: {e}") from e

        if settings is not None:
            self.save_workout_settings(settings)
        if history:
            self._save_history(history[: self.history_limit])
        if states:
            self.save_achievement_states(states)
        if accumulated is not None:
            self.save_accumulated_data(accumulated)
        if experience is not None:
            self.save_experience(experience)

    def clear_all(self) -> None:
        for key in ALL_KEYS:
            self._remove_item(key)
