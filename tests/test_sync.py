"""Tests for the history sync retry schedule."""

import pytest

from tempo_timer.models import WorkoutHistoryEntry, WorkoutStatistics
from tempo_timer.sync import SYNC_RETRY_DELAYS_MS, due_for_sync, is_due, next_sync_delay


def make_entry(date: int = 1_000, **overrides) -> WorkoutHistoryEntry:
    fields = dict(
        id=str(date),
        unique_id=f"{date}_0_3_abcdef",
        date=date,
        total_sets=3,
        reps_per_set=10,
        time_per_rep=3,
        rest_time=30,
        stretch_time=30,
        statistics=WorkoutStatistics(workout_start_time=date),
    )
    fields.update(overrides)
    return WorkoutHistoryEntry(**fields)


class TestDelays:
    @pytest.mark.parametrize("attempts,expected", [(0, 5_000), (1, 30_000), (5, 3_600_000), (40, 3_600_000)])
    def test_next_sync_delay(self, attempts, expected):
        assert next_sync_delay(attempts) == expected

    def test_negative_attempts(self):
        assert next_sync_delay(-3) == SYNC_RETRY_DELAYS_MS[0]


class TestDue:
    def test_synced_entry_never_due(self):
        assert not is_due(make_entry(server_synced=True), now_ms=10**12)

    def test_waits_for_delay(self):
        entry = make_entry(sync_attempts=1, last_sync_attempt=100_000)
        assert not is_due(entry, now_ms=129_999)
        assert is_due(entry, now_ms=130_000)

    def test_due_for_sync_oldest_first(self):
        entries = [
            make_entry(date=3_000),
            make_entry(date=1_000),
            make_entry(date=2_000, server_synced=True),
            make_entry(date=4_000, sync_attempts=2, last_sync_attempt=50_000),
        ]
        due = due_for_sync(entries, now_ms=60_000)
        assert [e.date for e in due] == [1_000, 3_000]
