#!/usr/bin/env python3
"""
Chart Adapter for the Bull Scouter viewer.
===========================================
Derives numeric series from normalized snapshots and binds Chart.js
configurations to named targets on a ChartSurface.  The surface is the
only place charts live: drawing on a target first destroys whatever was
bound to it, so repeated navigation never stacks instances.

Chart types
    sparkline          - one record's score_trend, no axes
    signal_count_chart - BUY / WATCHLIST / MOMENTUM counts per day
    score_dist_chart   - per-day histogram over 4 fixed score bands
    ticker_trajectory  - one ticker's score across dates, point-colored
                         by that day's category

The surface serializes to JSON; the page bootstrap does `new Chart(...)`
for each entry.
"""

import json
from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from schemas import Recommendation, Snapshot, TickerSighting

CATEGORY_COLORS = {
    Recommendation.BUY: "#22c55e",
    Recommendation.WATCHLIST: "#f59e0b",
    Recommendation.MOMENTUM: "#6b7280",
}

# [lo, hi) score bands, lowest first
SCORE_BANDS = ["low", "mid", "watch", "buy"]
_BAND_EDGES = [-np.inf, 50, 65, 75, np.inf]
_BAND_LABELS = {"buy": "75+ (BUY)", "watch": "65-74 (WATCH)", "mid": "50-64", "low": "<50"}
_BAND_COLORS = {"buy": "#22c55e88", "watch": "#f59e0b88", "mid": "#6b728088", "low": "#374151"}

_GRID = {"color": "#1f2937"}
_TICKS = {"maxRotation": 45, "font": {"size": 10}}
_LEGEND_TOP = {"position": "top", "labels": {"boxWidth": 12, "padding": 16}}


# =========================================================================
# Surface
# =========================================================================
@dataclass
class ChartInstance:
    target: str
    kind: str
    config: dict
    destroyed: bool = False

    def destroy(self) -> None:
        self.destroyed = True


@dataclass
class ChartSurface:
    """Registry of live charts keyed by target id."""
    instances: dict = field(default_factory=dict)
    destroyed: int = 0

    def destroy(self, target: str) -> None:
        inst = self.instances.pop(target, None)
        if inst is not None:
            inst.destroy()
            self.destroyed += 1

    def draw(self, target: str, kind: str, config: dict) -> ChartInstance:
        self.destroy(target)
        inst = ChartInstance(target=target, kind=kind, config=config)
        self.instances[target] = inst
        return inst

    def get(self, target: str) -> Optional[ChartInstance]:
        return self.instances.get(target)

    def to_json(self, targets: Optional[Iterable[str]] = None) -> str:
        keep = set(targets) if targets is not None else None
        return json.dumps([
            {"target": t, "config": inst.config}
            for t, inst in self.instances.items()
            if keep is None or t in keep
        ])


# =========================================================================
# Derived series
# =========================================================================
def _count(snap: Snapshot, stat: Optional[int], category: Recommendation) -> int:
    """Use the upstream stat when present, else count the records."""
    if stat is not None:
        return stat
    return len(snap.by_category(category))


def daily_signal_counts(days: Iterable[Snapshot]) -> pd.DataFrame:
    """Counts per category, one row per day, oldest first.

    `days` arrive most recent first, the way the index lists them.
    """
    rows = [{
        "date": d.scan_date,
        "buy": _count(d, d.stats.buy_signals, Recommendation.BUY),
        "watchlist": _count(d, d.stats.watchlist_signals, Recommendation.WATCHLIST),
        "momentum": _count(d, d.stats.momentum_signals, Recommendation.MOMENTUM),
    } for d in days]
    df = pd.DataFrame(rows, columns=["date", "buy", "watchlist", "momentum"])
    return df.iloc[::-1].reset_index(drop=True)


def bucket_scores(scores: Iterable[float]) -> dict:
    """Bucket scores into <50, 50-64, 65-74, 75+."""
    values = pd.Series(list(scores), dtype=float)
    bands = pd.cut(values, bins=_BAND_EDGES, labels=SCORE_BANDS, right=False)
    counts = bands.value_counts()
    return {b: int(counts.get(b, 0)) for b in SCORE_BANDS}


def score_distribution(days: Iterable[Snapshot]) -> pd.DataFrame:
    rows = []
    for d in days:
        row = {"date": d.scan_date}
        row.update(bucket_scores(o.score for o in d.opportunities))
        rows.append(row)
    df = pd.DataFrame(rows, columns=["date"] + SCORE_BANDS)
    return df.iloc[::-1].reset_index(drop=True)


# =========================================================================
# Chart builders
# =========================================================================
def sparkline(surface: ChartSurface, target: str, series: list,
              color: str = "#22c55e") -> Optional[ChartInstance]:
    if len(series) < 2:
        return None
    config = {
        "type": "line",
        "data": {
            "labels": list(range(len(series))),
            "datasets": [{
                "data": list(series),
                "borderColor": color,
                "backgroundColor": color + "33",
                "borderWidth": 1.5,
                "pointRadius": 0,
                "fill": True,
                "tension": 0.3,
            }],
        },
        "options": {
            "responsive": True,
            "maintainAspectRatio": False,
            "plugins": {"legend": {"display": False}, "tooltip": {"enabled": False}},
            "scales": {"x": {"display": False}, "y": {"display": False}},
            "animation": {"duration": 300},
        },
    }
    return surface.draw(target, "sparkline", config)


def signal_count_chart(surface: ChartSurface, target: str,
                       days: list) -> Optional[ChartInstance]:
    df = daily_signal_counts(days)
    if df.empty:
        return None
    line = {"borderWidth": 2, "pointRadius": 3, "fill": False, "tension": 0.2}
    datasets = [
        {**line, "label": "BUY", "data": df["buy"].tolist(),
         "borderColor": CATEGORY_COLORS[Recommendation.BUY],
         "backgroundColor": "rgba(34, 197, 94, 0.1)",
         "pointBackgroundColor": CATEGORY_COLORS[Recommendation.BUY], "fill": True},
        {**line, "label": "WATCHLIST", "data": df["watchlist"].tolist(),
         "borderColor": CATEGORY_COLORS[Recommendation.WATCHLIST],
         "pointBackgroundColor": CATEGORY_COLORS[Recommendation.WATCHLIST]},
        {**line, "label": "MOMENTUM", "data": df["momentum"].tolist(),
         "borderColor": CATEGORY_COLORS[Recommendation.MOMENTUM],
         "pointBackgroundColor": CATEGORY_COLORS[Recommendation.MOMENTUM],
         "borderWidth": 1.5, "pointRadius": 2, "borderDash": [4, 2]},
    ]
    config = {
        "type": "line",
        "data": {"labels": df["date"].tolist(), "datasets": datasets},
        "options": {
            "responsive": True,
            "maintainAspectRatio": False,
            "plugins": {"legend": _LEGEND_TOP},
            "scales": {
                "x": {"grid": _GRID, "ticks": _TICKS},
                "y": {"beginAtZero": True, "grid": _GRID,
                      "ticks": {"stepSize": 1, "font": {"size": 10}}},
            },
        },
    }
    return surface.draw(target, "signal_count", config)


def score_dist_chart(surface: ChartSurface, target: str,
                     days: list) -> Optional[ChartInstance]:
    df = score_distribution(days)
    if df.empty:
        return None
    datasets = [
        {"label": _BAND_LABELS[b], "data": df[b].astype(int).tolist(),
         "backgroundColor": _BAND_COLORS[b]}
        for b in reversed(SCORE_BANDS)
    ]
    config = {
        "type": "bar",
        "data": {"labels": df["date"].tolist(), "datasets": datasets},
        "options": {
            "responsive": True,
            "maintainAspectRatio": False,
            "plugins": {"legend": _LEGEND_TOP},
            "scales": {
                "x": {"stacked": True, "grid": _GRID, "ticks": _TICKS},
                "y": {"stacked": True, "beginAtZero": True, "grid": _GRID,
                      "ticks": {"stepSize": 2, "font": {"size": 10}}},
            },
        },
    }
    return surface.draw(target, "score_distribution", config)


def ticker_trajectory(surface: ChartSurface, target: str,
                      sightings: list[TickerSighting]) -> Optional[ChartInstance]:
    """Sightings must already be chronological."""
    if not sightings:
        surface.destroy(target)
        return None
    colors = [CATEGORY_COLORS[s.recommendation] for s in sightings]
    config = {
        "type": "line",
        "data": {
            "labels": [s.date for s in sightings],
            "datasets": [{
                "label": "Score",
                "data": [s.score for s in sightings],
                "borderColor": CATEGORY_COLORS[Recommendation.BUY],
                "borderWidth": 2,
                "pointRadius": 4,
                "pointBackgroundColor": colors,
                "pointBorderColor": colors,
                "fill": False,
                "tension": 0.2,
            }],
        },
        "options": {
            "responsive": True,
            "maintainAspectRatio": False,
            "plugins": {"legend": {"display": False}},
            "scales": {
                "x": {"grid": _GRID, "ticks": _TICKS},
                "y": {"beginAtZero": False, "grid": _GRID, "ticks": {"font": {"size": 10}}},
            },
        },
    }
    return surface.draw(target, "ticker_trajectory", config)
