"""Retry schedule for pushing completed workouts to a remote endpoint.

Only the schedule lives here: which unsynced history entries are due for
another attempt. The push itself belongs to whatever transport the host
application uses, which reports back through
WorkoutStore.update_sync_status().
"""

from __future__ import annotations

from typing import Iterable

from tempo_timer.models import WorkoutHistoryEntry

# Milliseconds to wait after attempt N before attempt N+1; the last value repeats.
SYNC_RETRY_DELAYS_MS = [
    5_000,
    30_000,
    60_000,
    300_000,
    900_000,
    3_600_000,
]


def next_sync_delay(attempts: int) -> int:
    index = min(max(attempts, 0), len(SYNC_RETRY_DELAYS_MS) - 1)
    return SYNC_RETRY_DELAYS_MS[index]


def is_due(entry: WorkoutHistoryEntry, now_ms: int) -> bool:
    if entry.server_synced:
        return False
    last_attempt = entry.last_sync_attempt or 0
    return now_ms - last_attempt >= next_sync_delay(entry.sync_attempts)


def due_for_sync(entries: Iterable[WorkoutHistoryEntry], now_ms: int) -> list[WorkoutHistoryEntry]:
    """Unsynced entries whose retry delay has elapsed, oldest first."""
    due = [entry for entry in entries if is_due(entry, now_ms)]
    return sorted(due, key=lambda entry: entry.date)
