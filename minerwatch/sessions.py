"""Browser session lifecycle for monitored device keys.

One :class:`Session` per device key: a headless browser parked on the GEODNET
console with the method tap installed, plus two background tasks:

  - poll: copies the tapped snapshot into the :class:`SnapshotStore` every
    ``poll_interval`` seconds
  - refresh: replaces the whole session after ``refresh_interval`` seconds

Any automation failure (during setup or while polling) closes the browser
and schedules a fresh setup after a flat ``retry_delay``. Retries never give
up on their own; :meth:`SessionManager.shutdown` (explicit or from the idle
reaper) is what ends them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

from minerwatch.bridge import MethodTap
from minerwatch.config import Settings
from minerwatch.dashboard import open_dashboard, read_snapshot, select_device
from minerwatch.store import ActivityTracker, SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """A live browser dedicated to one device key."""

    key: str
    browser: Any
    page: Any
    poll_task: asyncio.Task | None = None
    refresh_task: asyncio.Task | None = None
    closed: bool = False

    def tasks(self) -> list[asyncio.Task]:
        return [t for t in (self.poll_task, self.refresh_task) if t is not None]


class SessionRegistry:
    """Live sessions by key, plus the keys whose setup is currently running."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._in_progress: set[str] = set()

    def get(self, key: str) -> Session | None:
        return self._sessions.get(key)

    def add(self, session: Session) -> None:
        self._sessions[session.key] = session

    def remove(self, key: str, session: Session | None = None) -> Session | None:
        """Drop the entry for *key*; if *session* is given, only when it is still current."""
        current = self._sessions.get(key)
        if current is None or (session is not None and current is not session):
            return None
        del self._sessions[key]
        return current

    def keys(self) -> list[str]:
        return list(self._sessions)

    def sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def mark_in_progress(self, key: str) -> bool:
        """Claim the setup slot for *key*. Returns ``False`` if already claimed."""
        if key in self._in_progress:
            return False
        self._in_progress.add(key)
        return True

    def clear_in_progress(self, key: str) -> None:
        self._in_progress.discard(key)

    def in_progress(self, key: str) -> bool:
        return key in self._in_progress

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class SessionManager:
    """Creates, supervises, refreshes and tears down sessions.

    Owns the registry, the snapshot store and the activity tracker; request
    handlers and the idle reaper receive the manager rather than touching
    module-level state.
    """

    def __init__(
        self,
        launcher: Any,
        settings: Settings | None = None,
        store: SnapshotStore | None = None,
        activity: ActivityTracker | None = None,
        tap: MethodTap | None = None,
    ) -> None:
        self.launcher = launcher
        self.settings = settings or Settings()
        self.store = store if store is not None else SnapshotStore()
        self.activity = activity if activity is not None else ActivityTracker()
        self.tap = tap or MethodTap()
        self.registry = SessionRegistry()
        self._setups: dict[str, asyncio.Task] = {}
        self._retries: dict[str, asyncio.TimerHandle] = {}
        self._closing = False

    # ── Process lifecycle ──────────────────────────────────────────

    async def start(self) -> None:
        self._closing = False
        await self.launcher.start()
        logger.info("Session manager started")

    async def close(self) -> None:
        """Stop everything: pending retries, running setups, live sessions."""
        self._closing = True
        for handle in self._retries.values():
            handle.cancel()
        self._retries.clear()

        setups = list(self._setups.values())
        for task in setups:
            task.cancel()
        if setups:
            await asyncio.gather(*setups, return_exceptions=True)
        self._setups.clear()

        for session in self.registry.sessions():
            await self._teardown(session)

        self.store.clear()
        self.activity.clear()
        await self.launcher.stop()
        logger.info("Session manager stopped")

    # ── Queries ────────────────────────────────────────────────────

    def is_active(self, key: str) -> bool:
        """Whether *key* has a session, a running setup, or a scheduled retry."""
        return (
            key in self.registry
            or self.registry.in_progress(key)
            or key in self._setups
            or key in self._retries
        )

    @property
    def pending(self) -> int:
        """Number of keys waiting on a setup task or a retry timer."""
        return len(set(self._setups) | set(self._retries))

    def touch(self, key: str) -> None:
        self.activity.touch(key)

    # ── Setup ──────────────────────────────────────────────────────

    def launch(self, key: str) -> asyncio.Task | None:
        """Run :meth:`setup` for *key* in the background."""
        if self._closing:
            logger.debug("Manager closing, not launching %s", key)
            return None
        existing = self._setups.get(key)
        if existing is not None and not existing.done():
            return existing
        task = asyncio.create_task(self.setup(key), name=f"minerwatch-setup-{key}")
        self._setups[key] = task
        task.add_done_callback(lambda t: self._setup_finished(key, t))
        return task

    def _setup_finished(self, key: str, task: asyncio.Task) -> None:
        if self._setups.get(key) is task:
            del self._setups[key]

    async def setup(self, key: str) -> None:
        """Open the console for *key*, install the tap and start its tasks.

        Failures are logged and turned into a retry after ``retry_delay``;
        they are never raised to the caller.
        """
        if key in self.registry:
            logger.info("Session already running for key: %s", key)
            return
        if not self.registry.mark_in_progress(key):
            logger.info("Setup already in progress for key: %s", key)
            return

        started = time.monotonic()
        logger.info("Setting up browser for key: %s", key)
        browser = None
        try:
            browser, page = await self.launcher.open()
            logger.info("[%s] Browser launched in %.0fms", key, (time.monotonic() - started) * 1000)

            await open_dashboard(
                page,
                self.settings.dashboard_url,
                key,
                timeout=self.settings.navigation_timeout,
            )
            await self.tap.install(page)
            await select_device(page, key)

            session = Session(key=key, browser=browser, page=page)
            session.poll_task = asyncio.create_task(
                self._poll(session), name=f"minerwatch-poll-{key}"
            )
            session.refresh_task = asyncio.create_task(
                self._refresh_later(session), name=f"minerwatch-refresh-{key}"
            )
            self.registry.add(session)
            logger.info("Listener for %s started in %.0fms", key, (time.monotonic() - started) * 1000)
        except asyncio.CancelledError:
            logger.info("Setup cancelled for key: %s", key)
            await self._close_browser(key, browser)
            raise
        except Exception as exc:
            logger.error("Error setting up browser for %s: %s", key, exc)
            await self._close_browser(key, browser)
            self._schedule_retry(key)
        finally:
            self.registry.clear_in_progress(key)

    def _schedule_retry(self, key: str) -> None:
        previous = self._retries.pop(key, None)
        if previous is not None:
            previous.cancel()
        if self._closing:
            return
        delay = self.settings.retry_delay
        loop = asyncio.get_running_loop()
        self._retries[key] = loop.call_later(delay, self._retry, key)
        logger.info("Scheduling retry for key %s in %.0fs", key, delay)

    def _retry(self, key: str) -> None:
        self._retries.pop(key, None)
        self.launch(key)

    # ── Background tasks ───────────────────────────────────────────

    async def _poll(self, session: Session) -> None:
        """Copy the tapped snapshot into the store until the session closes."""
        key = session.key
        while not session.closed:
            await asyncio.sleep(self.settings.poll_interval)
            try:
                snapshot = await read_snapshot(self.tap, session.page)
            except Exception as exc:
                if session.closed:
                    return
                logger.error("Error extracting data for %s: %s", key, exc)
                self._detach(session)
                self._schedule_retry(key)
                await self._close_browser(key, session.browser)
                return

            if session.closed or snapshot is None:
                continue
            if self.store.put(key, snapshot):
                logger.debug("Updated data for key: %s", key)

    async def _refresh_later(self, session: Session) -> None:
        await asyncio.sleep(self.settings.refresh_interval)
        if session.closed:
            return
        logger.info("Refreshing browser for key: %s", session.key)
        await self.refresh(session.key)

    # ── Teardown ───────────────────────────────────────────────────

    async def refresh(self, key: str) -> bool:
        """Replace the session for *key* with a freshly set up one."""
        session = self.registry.get(key)
        if session is None:
            return False
        cancelled = self._detach(session)
        # Claim the setup slot before any await so shutdown can see and cancel it.
        self.launch(key)
        await self._finish_teardown(session, cancelled)
        return True

    async def shutdown(self, key: str) -> bool:
        """Stop monitoring *key* and forget its snapshot and activity.

        Returns ``True`` if a session, setup or retry was actually stopped.
        """
        stopped = False

        retry = self._retries.pop(key, None)
        if retry is not None:
            retry.cancel()
            stopped = True

        setup = self._setups.pop(key, None)
        if setup is not None and not setup.done():
            setup.cancel()
            await asyncio.gather(setup, return_exceptions=True)
            stopped = True

        session = self.registry.get(key)
        if session is not None:
            await self._teardown(session)
            stopped = True

        self.store.discard(key)
        self.activity.discard(key)
        if stopped:
            logger.info("Stopped listening for key: %s", key)
        return stopped

    def _detach(self, session: Session) -> list[asyncio.Task]:
        """Close the session's token, unregister it and cancel its other tasks."""
        session.closed = True
        self.registry.remove(session.key, session)
        current = asyncio.current_task()
        cancelled = []
        for task in session.tasks():
            if task is not current and not task.done():
                task.cancel()
                cancelled.append(task)
        return cancelled

    async def _teardown(self, session: Session) -> None:
        await self._finish_teardown(session, self._detach(session))

    async def _finish_teardown(self, session: Session, cancelled: list[asyncio.Task]) -> None:
        if cancelled:
            await asyncio.gather(*cancelled, return_exceptions=True)
        await self._close_browser(session.key, session.browser)

    async def _close_browser(self, key: str, browser: Any) -> None:
        if browser is None:
            return
        try:
            await browser.close()
        except Exception as exc:
            logger.warning("Failed to close browser for %s: %s", key, exc)
