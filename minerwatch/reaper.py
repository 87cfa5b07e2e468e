"""Idle reaper — shuts down sessions nobody has asked about recently."""

from __future__ import annotations

import asyncio
import logging
import time

from minerwatch.sessions import SessionManager

logger = logging.getLogger(__name__)


class IdleReaper:
    """Periodically shuts down keys whose last activity exceeds *timeout* seconds."""

    def __init__(self, manager: SessionManager, timeout: float, interval: float = 60.0) -> None:
        self.manager = manager
        self.timeout = timeout
        self.interval = interval
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the background reap loop."""
        if self._running:
            logger.warning("Idle reaper is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._loop(), name="minerwatch-reaper")
        logger.info(
            "Idle reaper started (timeout=%ds, interval=%ds)",
            self.timeout,
            self.interval,
        )

    async def stop(self) -> None:
        """Stop the background reap loop."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Idle reaper stopped")

    @property
    def running(self) -> bool:
        return self._running

    async def run_once(self, now: float | None = None) -> list[str]:
        """Shut down every idle key. Returns the keys that were reaped."""
        now = time.time() if now is None else now
        reaped = self.manager.activity.idle_keys(self.timeout, now)
        for key in reaped:
            logger.info("Inactivity timeout reached for key: %s", key)
            try:
                await self.manager.shutdown(key)
            except Exception as exc:
                logger.error("Failed to shut down idle key %s: %s", key, exc)
        return reaped

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("Reap cycle failed: %s", exc)
