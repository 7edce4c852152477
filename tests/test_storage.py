"""Tests for WorkoutStore: fail-open reads, history rules, SQLite backend, backups."""

import json
import sqlite3

import pytest

from tempo_timer.models import (
    AchievementAccumulatedData,
    AchievementState,
    ExperienceState,
    Phase,
    TimerSettings,
    WorkoutSession,
    WorkoutSettings,
    WorkoutStatistics,
)
from tempo_timer.storage import (
    KEY_HISTORY,
    KEY_SESSION,
    KEY_SETTINGS,
    KeyValueBackend,
    MemoryBackend,
    SqliteBackend,
    WorkoutStore,
)


# ---- Helpers ----

class BrokenBackend(KeyValueBackend):
    """Every operation fails like a locked database."""

    def get(self, key):
        raise sqlite3.OperationalError("database is locked")

    def set(self, key, value):
        raise sqlite3.OperationalError("database is locked")

    def delete(self, key):
        raise sqlite3.OperationalError("database is locked")


def finished_session(start_ms: int = 1_000_000, total_sets: int = 3, reps_per_set: int = 2) -> WorkoutSession:
    stats = WorkoutStatistics(
        total_time_stretched=10,
        total_time_exercised=18,
        total_time_rested=10,
        workout_start_time=start_ms,
        workout_end_time=start_ms + 38_000,
        pause_start_time=start_ms + 5_000,
    )
    return WorkoutSession(
        phase=Phase.COMPLETE,
        current_set=total_sets,
        total_sets=total_sets,
        settings=TimerSettings(time_per_rep=3, reps_per_set=reps_per_set, rest_time=5, stretch_time=10),
        statistics=stats,
    )


def make_store(history_limit: int = 2048) -> WorkoutStore:
    return WorkoutStore(MemoryBackend(), history_limit=history_limit)


# ---- Fail-open behaviour ----

class TestFailOpen:
    def test_reads_default_when_backend_fails(self):
        store = WorkoutStore(BrokenBackend())
        assert store.load_session() is None
        assert store.load_workout_settings() == WorkoutSettings()
        assert store.load_history() == []
        assert store.load_achievement_states() == []
        assert store.load_accumulated_data() == AchievementAccumulatedData()
        assert store.load_experience() == ExperienceState()
        assert store.load_rest_skip_attempts() == 0

    def test_writes_do_not_raise(self):
        store = WorkoutStore(BrokenBackend())
        store.save_session(finished_session())
        store.save_experience(ExperienceState(total_xp=10))
        store.clear_session()
        assert store.append_history(store.build_history_entry(finished_session())) is True

    def test_malformed_json_is_absent(self):
        store = WorkoutStore(MemoryBackend({KEY_SESSION: "{oops", KEY_SETTINGS: "[]"}))
        assert store.load_session() is None
        assert store.load_workout_settings() == WorkoutSettings()

    def test_invalid_values_are_absent(self):
        store = WorkoutStore(MemoryBackend({KEY_SETTINGS: json.dumps({"total_sets": -4})}))
        assert store.load_workout_settings() == WorkoutSettings()

    def test_malformed_history_entries_skipped(self):
        store = make_store()
        entry = store.build_history_entry(finished_session())
        raw = [entry.model_dump(mode="json"), {"id": "garbage"}]
        store.backend.set(KEY_HISTORY, json.dumps(raw))
        assert [e.id for e in store.load_history()] == [entry.id]


# ---- Session and settings ----

class TestSessionAndSettings:
    def test_session_round_trip(self):
        store = make_store()
        session = finished_session()
        store.save_session(session)
        assert store.load_session() == session
        store.clear_session()
        assert store.load_session() is None

    def test_settings_keep_total_sets(self):
        store = make_store()
        store.save_workout_settings(WorkoutSettings(total_sets=7))
        store.save_settings(TimerSettings(rest_time=45))
        settings = store.load_workout_settings()
        assert settings.total_sets == 7
        assert settings.rest_time == 45
        assert store.load_settings().rest_time == 45


# ---- History ----

class TestHistory:
    def test_build_entry(self):
        store = make_store()
        entry = store.build_history_entry(finished_session(start_ms=42_000))
        assert entry.id == "42000"
        assert entry.unique_id.startswith("42000_38_3_")
        assert entry.statistics.pause_start_time is None
        assert entry.server_synced is False

    def test_build_entry_requires_start(self):
        store = make_store()
        assert store.build_history_entry(WorkoutSession()) is None

    def test_newest_first(self):
        store = make_store()
        for start in (1_000, 2_000, 3_000):
            store.append_history(store.build_history_entry(finished_session(start_ms=start)))
        assert [e.date for e in store.load_history()] == [3_000, 2_000, 1_000]

    def test_dedup_by_composite_key(self):
        store = make_store()
        assert store.append_history(store.build_history_entry(finished_session()))
        # a rebuilt entry gets a new unique id but the same composite key
        assert not store.append_history(store.build_history_entry(finished_session()))
        assert len(store.load_history()) == 1

    def test_dedup_by_unique_id(self):
        store = make_store()
        entry = store.build_history_entry(finished_session())
        store.append_history(entry)
        assert not store.append_history(entry.model_copy(update={"date": 5}))

    def test_same_start_different_shape_kept(self):
        store = make_store()
        store.append_history(store.build_history_entry(finished_session(total_sets=3)))
        store.append_history(store.build_history_entry(finished_session(total_sets=4)))
        assert len(store.load_history()) == 2

    def test_cap_evicts_oldest(self):
        store = make_store(history_limit=3)
        for start in range(1, 6):
            store.append_history(store.build_history_entry(finished_session(start_ms=start * 1_000)))
        assert [e.date for e in store.load_history()] == [5_000, 4_000, 3_000]

    def test_sync_status(self):
        store = make_store()
        entry = store.build_history_entry(finished_session())
        store.append_history(entry)
        assert store.update_sync_status(entry.id, False, attempt_time=9_000)
        updated = store.load_history()[0]
        assert updated.sync_attempts == 1
        assert updated.last_sync_attempt == 9_000
        assert store.unsynced_history() == [updated]
        store.update_sync_status(entry.unique_id, True)
        assert store.unsynced_history() == []

    def test_sync_status_unknown_entry(self):
        assert not make_store().update_sync_status("missing", True)


# ---- Small records ----

class TestRecords:
    def test_rest_skip_attempts(self):
        store = make_store()
        assert store.increment_rest_skip_attempts() == 1
        assert store.increment_rest_skip_attempts() == 2
        store.clear_rest_skip_attempts()
        assert store.load_rest_skip_attempts() == 0

    def test_last_processed_marker(self):
        store = make_store()
        assert store.load_last_processed_workout() is None
        store.save_last_processed_workout("12345")
        assert store.load_last_processed_workout() == "12345"

    def test_achievement_states(self):
        store = make_store()
        states = [AchievementState(id="first_workout", unlocked=True, unlocked_at=5)]
        store.save_achievement_states(states)
        assert store.load_achievement_states() == states


# ---- SQLite backend ----

class TestSqliteBackend:
    def test_round_trip(self, tmp_path):
        backend = SqliteBackend(tmp_path / "nested" / "tempo.db")
        backend.init_tables()
        backend.set("key", "one")
        backend.set("key", "two")
        assert backend.get("key") == "two"
        backend.delete("key")
        assert backend.get("key") is None

    def test_store_on_sqlite(self, tmp_path):
        backend = SqliteBackend(tmp_path / "tempo.db")
        backend.init_tables()
        WorkoutStore(backend).save_experience(ExperienceState(total_xp=300, current_level=2))
        # a second store on the same file sees the write
        assert WorkoutStore(SqliteBackend(tmp_path / "tempo.db")).load_experience().total_xp == 300

    def test_missing_table_fails_open(self, tmp_path):
        store = WorkoutStore(SqliteBackend(tmp_path / "tempo.db"))
        assert store.load_experience() == ExperienceState()


# ---- Backup ----

class TestBackup:
    def test_export_import(self):
        source = make_store()
        source.save_workout_settings(WorkoutSettings(total_sets=12))
        source.append_history(source.build_history_entry(finished_session()))
        source.save_achievement_states([AchievementState(id="first_workout", unlocked=True, unlocked_at=1)])
        source.save_accumulated_data(AchievementAccumulatedData(cumulative_sets=3))
        source.save_experience(ExperienceState(total_xp=200, current_level=2))
        payload = source.export_data()
        assert "exportDate" in json.loads(payload)

        target = make_store()
        target.import_data(payload)
        assert target.load_workout_settings().total_sets == 12
        assert target.load_history() == source.load_history()
        assert target.load_achievement_states() == source.load_achievement_states()
        assert target.load_accumulated_data().cumulative_sets == 3
        assert target.load_experience().total_xp == 200

    @pytest.mark.parametrize("payload", [
        "not json",
        "[]",
        json.dumps({"workout": {"history": [{"id": "x"}]}}),
        json.dumps({"experience": {"total_xp": -1}}),
    ])
    def test_invalid_backup_writes_nothing(self, payload):
        store = make_store()
        store.save_experience(ExperienceState(total_xp=50))
        with pytest.raises(ValueError, match="Invalid backup"):
            store.import_data(payload)
        assert store.load_experience().total_xp == 50
        assert store.load_history() == []

    def test_clear_all(self):
        store = make_store()
        store.save_session(finished_session())
        store.save_experience(ExperienceState(total_xp=50))
        store.clear_all()
        assert store.backend.data == {}
