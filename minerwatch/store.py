"""In-memory snapshot store and activity tracker.

Both are plain process-wide maps owned by the session manager. They carry no
locks: every caller runs on the same event loop, and each read-compare-write
below completes without yielding.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from minerwatch.fingerprint import fingerprint

logger = logging.getLogger(__name__)

Snapshot = dict[str, Any]


@dataclass
class StoredSnapshot:
    data: Snapshot
    received_at: float


class SnapshotStore:
    """Latest telemetry snapshot per device, indexed by key fingerprint."""

    def __init__(self) -> None:
        self._entries: dict[str, StoredSnapshot] = {}

    def put(self, key: str, snapshot: Snapshot, now: float | None = None) -> bool:
        """Store *snapshot* for *key* unless it carries no new data.

        A snapshot replaces the stored one only when nothing is stored yet or
        its ``lastPacketTime`` differs. Equal packet times are dropped, so the
        first writer wins. Returns ``True`` when the store changed.
        """
        digest = fingerprint(key)
        existing = self._entries.get(digest)
        if existing is not None and existing.data.get("lastPacketTime") == snapshot.get("lastPacketTime"):
            return False
        self._entries[digest] = StoredSnapshot(
            data=snapshot,
            received_at=time.time() if now is None else now,
        )
        return True

    def get(self, key: str) -> Snapshot | None:
        entry = self._entries.get(fingerprint(key))
        return entry.data if entry is not None else None

    def received_at(self, key: str) -> float | None:
        """Wall-clock time the current snapshot for *key* arrived, or ``None``."""
        entry = self._entries.get(fingerprint(key))
        return entry.received_at if entry is not None else None

    def discard(self, key: str) -> None:
        self._entries.pop(fingerprint(key), None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return fingerprint(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ActivityTracker:
    """Last client-observed activity per raw device key."""

    def __init__(self) -> None:
        self._seen: dict[str, float] = {}

    def touch(self, key: str, now: float | None = None) -> None:
        self._seen[key] = time.time() if now is None else now

    def last_seen(self, key: str) -> float | None:
        return self._seen.get(key)

    def discard(self, key: str) -> None:
        self._seen.pop(key, None)

    def clear(self) -> None:
        self._seen.clear()

    def idle_keys(self, timeout: float, now: float | None = None) -> list[str]:
        """Keys whose last activity is more than *timeout* seconds old."""
        now = time.time() if now is None else now
        return [key for key, seen in self._seen.items() if now - seen > timeout]

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)
