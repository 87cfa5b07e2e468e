"""Bounded wait for a device's snapshot to show up in the store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from minerwatch.store import SnapshotStore
from minerwatch.telemetry import count_effective_satellites

logger = logging.getLogger(__name__)


class SnapshotReader:
    """Waits for a snapshot, then briefly for a non-zero effective satellite count.

    A fresh session often reports zero usable satellites before its first
    good signal reading, so a snapshot with none gets up to
    *settle_attempts* extra polls. Total wait is bounded by
    ``(attempts + settle_attempts) * interval``.
    """

    def __init__(
        self,
        store: SnapshotStore,
        attempts: int = 45,
        settle_attempts: int = 5,
        interval: float = 1.0,
    ) -> None:
        self.store = store
        self.attempts = attempts
        self.settle_attempts = settle_attempts
        self.interval = interval

    async def wait(self, key: str) -> dict[str, Any] | None:
        """Return the freshest snapshot for *key*, or ``None`` if none arrived."""
        remaining = self.attempts
        while remaining > 0 and key not in self.store:
            await asyncio.sleep(self.interval)
            remaining -= 1

        snapshot = self.store.get(key)
        if snapshot is None:
            logger.info("No data for key %s after %d attempts", key, self.attempts)
            return None

        for _ in range(self.settle_attempts):
            if count_effective_satellites(snapshot) > 0:
                break
            await asyncio.sleep(self.interval)
            snapshot = self.store.get(key) or snapshot

        return snapshot
