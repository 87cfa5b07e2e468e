"""Navigation steps on the GEODNET console map page.

Each step takes an already-open Playwright page. Timeouts are given in
seconds and converted to Playwright's milliseconds here.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from minerwatch.bridge import MethodTap

logger = logging.getLogger(__name__)

LOADING_SELECTOR = ".ui.active.dimmer.loadingVerifyMountpoint"
SEARCH_SELECTOR = "#mount_query"
RESULT_ROW_SELECTOR = ".mineTableColumn"

_LOADED_JS = """
(selector) => {
    const dimmer = document.querySelector(selector);
    return !dimmer || dimmer.style.display === "none";
}
"""

_SELECT_ROW_JS = """
(key) => {
    for (const row of document.querySelectorAll("tr.mineTableColumn")) {
        const cell = row.firstElementChild;
        if (cell && cell.textContent.includes(key)) {
            cell.click();
            return true;
        }
    }
    return false;
}
"""


async def open_dashboard(page: Any, url: str, key: str, timeout: float = 90.0) -> None:
    """Load the map page and search for *key* until the miner table renders."""
    timeout_ms = timeout * 1000

    started = time.monotonic()
    await page.goto(url, timeout=timeout_ms)
    logger.info("[%s] Navigation completed in %.0fms", key, (time.monotonic() - started) * 1000)

    started = time.monotonic()
    await page.wait_for_function(_LOADED_JS, arg=LOADING_SELECTOR, timeout=timeout_ms)
    logger.info("[%s] Map loaded in %.0fms", key, (time.monotonic() - started) * 1000)

    await page.locator(SEARCH_SELECTOR).press_sequentially(key)

    started = time.monotonic()
    await page.wait_for_selector(RESULT_ROW_SELECTOR, timeout=timeout_ms)
    logger.info("[%s] Miner table loaded in %.0fms", key, (time.monotonic() - started) * 1000)


async def select_device(page: Any, key: str) -> bool:
    """Click the miner table row for *key*. Returns ``False`` if no row matched."""
    clicked = await page.evaluate(_SELECT_ROW_JS, key)
    if not clicked:
        logger.warning("[%s] No miner table row matched", key)
    return bool(clicked)


async def read_snapshot(tap: MethodTap, page: Any) -> dict[str, Any] | None:
    """Combine the tapped realtime telemetry and uptime series into one snapshot.

    Returns ``None`` while no realtime telemetry has been captured.
    """
    payloads = await tap.read(page)
    telemetry = payloads.get("telemetry")
    if not isinstance(telemetry, dict):
        return None
    snapshot = dict(telemetry)
    snapshot["hourly"] = payloads.get("uptime")
    return snapshot
