"""Headless Chromium launcher backed by Playwright."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from playwright.async_api import Browser, Page, Playwright, async_playwright

from minerwatch import MinerwatchError
from minerwatch.config import Settings

logger = logging.getLogger(__name__)

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class BrowserLauncher:
    """Owns the Playwright driver and launches one browser per session."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._playwright: Playwright | None = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        async with self._lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
                logger.info("Playwright driver started")

    async def stop(self) -> None:
        async with self._lock:
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
                logger.info("Playwright driver stopped")

    def launch_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "headless": self.settings.headless,
            "args": list(LAUNCH_ARGS),
        }
        if self.settings.browser_executable:
            options["executable_path"] = self.settings.browser_executable
        return options

    async def open(self) -> tuple[Browser, Page]:
        """Launch a browser and open a single page in it."""
        if self._playwright is None:
            await self.start()
        playwright = self._playwright
        if playwright is None:
            raise MinerwatchError("Playwright driver is not running")
        browser = await playwright.chromium.launch(**self.launch_options())
        try:
            page = await browser.new_page(ignore_https_errors=True)
        except Exception:
            await browser.close()
            raise
        return browser, page
