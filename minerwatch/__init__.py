"""minerwatch — GEODNET miner telemetry over HTTP.

Keeps one headless browser per monitored device key open against the
GEODNET console, taps the telemetry the console receives over its Meteor
method channel, and serves the latest snapshot as JSON.

Quickstart::

    python -m minerwatch.server
    curl "http://localhost:3000/api/stats?key=ABCDE&autostart=true"
"""

__version__ = "1.0.0"


class MinerwatchError(Exception):
    """Base class for errors raised by minerwatch components."""
