"""Shaping of raw console telemetry into the ``/api/stats`` response."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONSTELLATION_BUCKETS = ("satinfoG", "satinfoR", "satinfoE", "satinfoC")
SNR_THRESHOLD = 32


# ── Response models ───────────────────────────────────────────────

class SatelliteReading(BaseModel):
    sys_channel: str
    snr: float | None = None


class HourlyPoint(BaseModel):
    timestamp: str
    onLineRate: Any
    satRate: Any = None


class StatsResponse(BaseModel):
    total_satellites: Any = None
    effective_satellites: int = 0
    last_packet_time: Any = None
    dataByte: Any = None
    latency: Any = None
    satInfo: list[SatelliteReading] = Field(default_factory=list)
    hourlyData: list[HourlyPoint] | None = None


# ── Helpers ───────────────────────────────────────────────────────

def _sat_info(snapshot: dict[str, Any] | None) -> dict[str, Any]:
    if not snapshot:
        return {}
    info = snapshot.get("satInfo")
    return info if isinstance(info, dict) else {}


def count_effective_satellites(snapshot: dict[str, Any] | None, threshold: float = SNR_THRESHOLD) -> int:
    """Count satellites in the G/R/E/C buckets with SNR at or above *threshold*."""
    info = _sat_info(snapshot)
    count = 0
    for bucket in CONSTELLATION_BUCKETS:
        satellites = info.get(bucket)
        if not isinstance(satellites, list):
            continue
        for sat in satellites:
            snr = sat.get("snr") if isinstance(sat, dict) else None
            if isinstance(snr, (int, float)) and snr >= threshold:
                count += 1
    return count


def aggregate_satellites(snapshot: dict[str, Any] | None) -> list[SatelliteReading]:
    """Flatten every constellation bucket into ``sys_channel``/``snr`` readings."""
    readings: list[SatelliteReading] = []
    for satellites in _sat_info(snapshot).values():
        if not isinstance(satellites, list):
            continue
        for sat in satellites:
            if not isinstance(sat, dict):
                continue
            readings.append(SatelliteReading(
                sys_channel=f"{sat.get('sys', '')}{sat.get('prn', '')}",
                snr=sat.get("snr"),
            ))
    return readings


def hour_to_iso(value: str) -> str:
    """``"2024-01-02 5"`` → ``"2024-01-02T05:00:00Z"``."""
    date_part, _, hour_part = value.strip().partition(" ")
    parsed = datetime.strptime(f"{date_part} {hour_part or '0'}", "%Y-%m-%d %H")
    return parsed.replace(tzinfo=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def process_hourly(series: Any) -> list[HourlyPoint] | None:
    """Reshape the console's uptime series into hourly points.

    Points without an online rate are dropped. Returns ``None`` when no series
    was captured, and an empty list for a series with no hours.
    """
    if not isinstance(series, dict) or not isinstance(series.get("xData"), list):
        return None

    y_data = series.get("yData")
    if not isinstance(y_data, dict):
        y_data = {}
    online = y_data.get("onLineRate")
    if not isinstance(online, list):
        online = []
    sat_rate = y_data.get("satRate")
    if not isinstance(sat_rate, list):
        sat_rate = []

    points: list[HourlyPoint] = []
    for index, label in enumerate(series["xData"]):
        online_rate = online[index] if index < len(online) else None
        if online_rate is None:
            continue
        try:
            timestamp = hour_to_iso(str(label))
        except ValueError:
            logger.debug("Skipping malformed hourly label %r", label)
            continue
        points.append(HourlyPoint(
            timestamp=timestamp,
            onLineRate=online_rate,
            satRate=sat_rate[index] if index < len(sat_rate) else None,
        ))
    return points


def build_stats(snapshot: dict[str, Any]) -> StatsResponse:
    return StatsResponse(
        total_satellites=snapshot.get("satelliteNum"),
        effective_satellites=count_effective_satellites(snapshot),
        last_packet_time=snapshot.get("lastPacketTime"),
        dataByte=snapshot.get("dataByte"),
        latency=snapshot.get("latency"),
        satInfo=aggregate_satellites(snapshot),
        hourlyData=process_hourly(snapshot.get("hourly")),
    )
