"""Aggregations behind the heatmap and analytics overview."""

from __future__ import annotations

import datetime as dt
from collections import Counter, defaultdict
from typing import Iterable, Optional

from microclimate_hub.domain import (
    MAX_REPORT_TEMPERATURE_C,
    MIN_REPORT_TEMPERATURE_C,
    AnalyticsOverview,
    HeatmapData,
    HeatmapPoint,
    Report,
    ReportStatus,
    Severity,
)

TIME_RANGES: dict[str, Optional[dt.timedelta]] = {
    "24h": dt.timedelta(hours=24),
    "7d": dt.timedelta(days=7),
    "30d": dt.timedelta(days=30),
    "all": None,
}

DEFAULT_CELL_DEGREES = 0.01  # ~1.1 km of latitude


def time_range_start(time_range: str, now: dt.datetime) -> Optional[dt.datetime]:
    """Earliest created_at included by a named time range; None means unbounded."""
    if time_range not in TIME_RANGES:
        raise ValueError(f"Unknown time range '{time_range}'; expected one of {sorted(TIME_RANGES)}")
    span = TIME_RANGES[time_range]
    return None if span is None else now - span


def _intensity(temperature_c: float) -> float:
    """Map a temperature onto [0, 1] across the accepted report range."""
    span = MAX_REPORT_TEMPERATURE_C - MIN_REPORT_TEMPERATURE_C
    return round(min(1.0, max(0.0, (temperature_c - MIN_REPORT_TEMPERATURE_C) / span)), 3)


def build_heatmap(reports: Iterable[Report], time_range: str = "7d",
                  cell_degrees: float = DEFAULT_CELL_DEGREES) -> HeatmapData:
    """Bin reports into a lat/lng grid; each cell's intensity follows its mean temperature.

    Rejected reports are left out. Points are ordered hottest first.
    """
    if cell_degrees <= 0:
        raise ValueError("cell_degrees must be positive")
    cells: dict[tuple[int, int], list[Report]] = defaultdict(list)
    for report in reports:
        if report.status == ReportStatus.REJECTED:
            continue
        key = (round(report.location.latitude / cell_degrees), round(report.location.longitude / cell_degrees))
        cells[key].append(report)

    points = []
    max_temp: Optional[float] = None
    for (lat_idx, lng_idx), members in cells.items():
        mean_temp = sum(r.temperature for r in members) / len(members)
        hottest = max(r.temperature for r in members)
        max_temp = hottest if max_temp is None else max(max_temp, hottest)
        points.append(HeatmapPoint(
            lat=round(lat_idx * cell_degrees, 6),
            lng=round(lng_idx * cell_degrees, 6),
            intensity=_intensity(mean_temp),
            reports=len(members),
        ))
    points.sort(key=lambda p: (-p.intensity, -p.reports, p.lat, p.lng))
    return HeatmapData(points=points, time_range=time_range, max_temperature=max_temp)


def build_overview(reports: Iterable[Report]) -> AnalyticsOverview:
    reports = list(reports)
    by_severity = Counter(r.severity.value for r in reports)
    by_status = Counter(r.status.value for r in reports)
    average = round(sum(r.temperature for r in reports) / len(reports), 2) if reports else None
    return AnalyticsOverview(
        total_reports=len(reports),
        active_users=len({r.user_id for r in reports}),
        average_temperature=average,
        by_severity={s.value: by_severity.get(s.value, 0) for s in Severity},
        by_status={s.value: by_status.get(s.value, 0) for s in ReportStatus},
    )
