"""In-page tap on Meteor method results.

The GEODNET console fetches telemetry through ``Meteor.call``. The tap wraps
that function inside the page so that the results of selected methods are
also copied into ``window.__minerwatchTap``, keyed by slot name. Delivery to
the console's own callbacks and promises is left untouched.

Usage::

    tap = MethodTap()
    await tap.install(page)
    payloads = await tap.read(page)   # {"telemetry": {...}, "uptime": {...}}
"""

from __future__ import annotations

import logging
from typing import Any

from minerwatch import MinerwatchError

logger = logging.getLogger(__name__)

DEFAULT_METHODS = {
    "getRealData": "telemetry",
    "getOnLine3DayMiners": "uptime",
}

_INSTALL_JS = """
(methods) => {
    if (typeof Meteor === "undefined" || !Meteor.connection) {
        return false;
    }
    if (Meteor.call.__minerwatchTapped) {
        return true;
    }
    const tap = window.__minerwatchTap = window.__minerwatchTap || {};
    const originalCall = Meteor.call;
    const tapped = function (name) {
        const args = Array.from(arguments);
        const slot = Object.prototype.hasOwnProperty.call(methods, name) ? methods[name] : undefined;
        const last = args[args.length - 1];
        if (slot && typeof last === "function") {
            args[args.length - 1] = function (error, result) {
                tap[slot] = result;
                return last.call(this, error, result);
            };
            return originalCall.apply(this, args);
        }
        const returned = originalCall.apply(this, args);
        if (slot && returned && typeof returned.then === "function") {
            returned.then((result) => { tap[slot] = result; }, () => {});
        }
        return returned;
    };
    tapped.__minerwatchTapped = true;
    Meteor.call = tapped;
    return true;
}
"""

_READ_JS = """
(slots) => {
    const tap = window.__minerwatchTap || {};
    const out = {};
    for (const slot of slots) {
        out[slot] = tap[slot] === undefined ? null : tap[slot];
    }
    return out;
}
"""


class BridgeError(MinerwatchError):
    """Raised when the tap cannot be installed in a page."""


class MethodTap:
    """Side-channel listener on named Meteor method completions.

    Parameters
    ----------
    methods:
        Mapping of Meteor method name to slot name. Defaults to the realtime
        telemetry and three-day uptime methods used by the console map.
    """

    def __init__(self, methods: dict[str, str] | None = None) -> None:
        self.methods = dict(methods or DEFAULT_METHODS)

    @property
    def slots(self) -> list[str]:
        return list(self.methods.values())

    async def install(self, page: Any) -> None:
        """Wrap ``Meteor.call`` in *page*. Safe to call more than once."""
        installed = await page.evaluate(_INSTALL_JS, self.methods)
        if not installed:
            raise BridgeError("Meteor connection not available in page")
        logger.debug("Method tap installed for %s", ", ".join(self.methods))

    async def read(self, page: Any) -> dict[str, Any]:
        """Return the latest captured payload per slot (``None`` if none yet)."""
        return await page.evaluate(_READ_JS, self.slots)
