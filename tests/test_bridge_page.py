"""Tests for the method tap running inside a real Chromium page.

A stub ``Meteor`` answers each call from ``window.replies`` and records
the method names it saw. Skipped when no Chromium build is installed.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from minerwatch.bridge import BridgeError, MethodTap
from minerwatch.browser import LAUNCH_ARGS

STUB_METEOR_JS = """
() => {
    window.calls = [];
    window.replies = {
        getRealData: {lastPacketTime: "T1", satelliteNum: 9},
        getOnLine3DayMiners: {xData: ["2024-01-02 5"]},
        otherMethod: "other",
        constructor: "ctor",
    };
    window.Meteor = {
        connection: {},
        call(name, ...args) {
            window.calls.push(name);
            const callback = typeof args[args.length - 1] === "function" ? args.pop() : null;
            if (name === "failing") {
                if (callback) {
                    callback(new Error("boom"), undefined);
                    return undefined;
                }
                return Promise.reject(new Error("boom"));
            }
            const reply = window.replies[name];
            if (callback) {
                callback(null, reply);
                return undefined;
            }
            window.lastPromise = Promise.resolve(reply);
            return window.lastPromise;
        },
    };
}
"""

CALL_WITH_CALLBACK_JS = """
(name) => new Promise((resolve) => {
    Meteor.call(name, 1, 2, (error, result) => {
        resolve({error: error ? error.message : null, result: result === undefined ? null : result});
    });
})
"""


@pytest_asyncio.fixture
async def page():
    async with async_playwright() as playwright:
        try:
            browser = await playwright.chromium.launch(headless=True, args=LAUNCH_ARGS)
        except PlaywrightError as exc:
            pytest.skip(f"Chromium not available: {exc}")
        page = await browser.new_page()
        await page.set_content("<html><body></body></html>")
        await page.evaluate(STUB_METEOR_JS)
        yield page
        await browser.close()


class TestTapInPage:
    async def test_callback_receives_result_and_slot_filled(self, page):
        tap = MethodTap()
        await tap.install(page)

        delivered = await page.evaluate(CALL_WITH_CALLBACK_JS, "getRealData")

        assert delivered == {"error": None, "result": {"lastPacketTime": "T1", "satelliteNum": 9}}
        payloads = await tap.read(page)
        assert payloads["telemetry"] == {"lastPacketTime": "T1", "satelliteNum": 9}
        assert payloads["uptime"] is None

    async def test_callback_receives_error_unchanged(self, page):
        tap = MethodTap({"failing": "failing"})
        await tap.install(page)

        delivered = await page.evaluate(CALL_WITH_CALLBACK_JS, "failing")

        assert delivered == {"error": "boom", "result": None}
        assert (await tap.read(page)) == {"failing": None}

    async def test_promise_returned_unchanged_and_captured(self, page):
        tap = MethodTap()
        await tap.install(page)

        outcome = await page.evaluate("""
            async () => {
                const returned = Meteor.call("getOnLine3DayMiners");
                const same = returned === window.lastPromise;
                const value = await returned;
                return {same, value};
            }
        """)

        assert outcome == {"same": True, "value": {"xData": ["2024-01-02 5"]}}
        assert (await tap.read(page))["uptime"] == {"xData": ["2024-01-02 5"]}

    async def test_rejected_promise_still_rejects(self, page):
        tap = MethodTap({"failing": "failing"})
        await tap.install(page)

        message = await page.evaluate("""
            () => Meteor.call("failing").then(() => null, (error) => error.message)
        """)

        assert message == "boom"

    async def test_untapped_method_passes_through(self, page):
        tap = MethodTap()
        await tap.install(page)

        delivered = await page.evaluate(CALL_WITH_CALLBACK_JS, "otherMethod")

        assert delivered == {"error": None, "result": "other"}
        assert await tap.read(page) == {"telemetry": None, "uptime": None}
        assert await page.evaluate("() => window.calls") == ["otherMethod"]

    async def test_inherited_method_names_not_tapped(self, page):
        tap = MethodTap()
        await tap.install(page)

        delivered = await page.evaluate(CALL_WITH_CALLBACK_JS, "constructor")

        assert delivered == {"error": None, "result": "ctor"}
        assert await page.evaluate("() => Object.keys(window.__minerwatchTap)") == []

    async def test_second_install_is_noop(self, page):
        tap = MethodTap()
        await tap.install(page)
        await page.evaluate("() => { window.firstTapped = Meteor.call; }")
        await tap.install(page)

        assert await page.evaluate("() => Meteor.call === window.firstTapped") is True
        await page.evaluate(CALL_WITH_CALLBACK_JS, "getRealData")
        assert await page.evaluate("() => window.calls") == ["getRealData"]

    async def test_install_without_meteor(self, page):
        await page.evaluate("() => { delete window.Meteor; }")
        with pytest.raises(BridgeError):
            await MethodTap().install(page)
