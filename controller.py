#!/usr/bin/env python3
"""
Tab/Page Controller for the Bull Scouter viewer.
=================================================
Owns the one explicit ViewState object and decides when each pipeline
(load → normalize → filter/sort → render → chart) runs.

Tabs
    today      - latest.json, loaded at start
    history    - index.json plus the latest N dates, fetched concurrently
                 on activation; individual date failures are skipped
    portfolio  - re-rendered from the loaded snapshot, never fetches

Also drives ticker search across the indexed dates, the past-scan view
for a single date, and the deep-dive page.

Usage:
    async with SnapshotLoader.from_config(cfg) as loader:
        ctl = PageController(loader, cfg)
        await ctl.start()
        await ctl.activate("history")
        html = ctl.render()
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from charts import (ChartSurface, score_dist_chart, signal_count_chart,
                    ticker_trajectory)
from errors import SchemaEmpty, ViewerError
from instrumentation import EventLog, trace_event
from renderer import (RenderBatch, attach_sparklines, canvas, esc,
                      render_cards, render_date_picker, render_deep_dive_page,
                      render_empty_state, render_error_state,
                      render_momentum_rows, render_past_scan,
                      render_portfolio, render_stats, section_block,
                      render_ticker_history, scan_label)
from schemas import (DeepDiveCollection, Recommendation, Snapshot,
                     TickerSighting, ViewerConfig)
from snapshot_loader import SnapshotLoader
from view_engine import SortKey, ViewFilter, apply_view

log = logging.getLogger("viewer.controller")

CARD_SECTIONS = ("buy", "watchlist")
SECTION_TITLES = {"buy": "BUY Signals", "watchlist": "Watchlist", "momentum": "Momentum"}
SORT_LABELS = {
    SortKey.SCORE: "Score", SortKey.CONFIDENCE: "Confidence",
    SortKey.SATELLITE: "Satellite", SortKey.INSIDER: "Insider",
    SortKey.ENTRY: "Entry Timing", SortKey.CATALYST: "Catalyst",
}

SIGNAL_CHART = "signal-chart"
SCORE_DIST_CHART = "score-dist-chart"
TICKER_CHART = "ticker-chart"


class Tab(str, Enum):
    TODAY = "today"
    HISTORY = "history"
    PORTFOLIO = "portfolio"


@dataclass(frozen=True)
class SectionState:
    sort: SortKey = SortKey.SCORE
    view_filter: ViewFilter = ViewFilter()


@dataclass
class ViewState:
    active_tab: Tab = Tab.TODAY
    status: str = "idle"              # idle / loading / ready / empty / error
    snapshot: Optional[Snapshot] = None
    error: Optional[str] = None
    sections: dict = field(default_factory=lambda: {
        s: SectionState() for s in CARD_SECTIONS + ("momentum",)})
    history_dates: list = field(default_factory=list)
    history_days: dict = field(default_factory=dict)    # date -> Snapshot
    history_error: Optional[str] = None
    past_scan: Optional[Snapshot] = None
    past_scan_date: Optional[str] = None
    past_scan_error: Optional[str] = None
    search_ticker: Optional[str] = None
    search_results: list = field(default_factory=list)
    deep_dive: Optional[DeepDiveCollection] = None
    deep_dive_error: Optional[str] = None


class PageController:

    def __init__(self, loader: SnapshotLoader, cfg: Optional[ViewerConfig] = None,
                 surface: Optional[ChartSurface] = None,
                 event_log: Optional[EventLog] = None):
        self.loader = loader
        self.cfg = cfg or ViewerConfig()
        self.surface = surface if surface is not None else ChartSurface()
        self.event_log = event_log
        self.state = ViewState()

    # =====================================================================
    # A. Loading
    # =====================================================================
    async def start(self) -> ViewState:
        await self.load_today()
        await self.activate(Tab.TODAY)
        return self.state

    async def load_today(self) -> ViewState:
        s = self.state
        s.status = "loading"
        try:
            s.snapshot = await self.loader.load_latest()
        except SchemaEmpty as exc:
            log.info(f"Latest scan is empty: {exc}")
            s.snapshot, s.error, s.status = None, None, "empty"
            return s
        except ViewerError as exc:
            log.error(f"Failed to load latest scan: {exc}")
            s.snapshot, s.error, s.status = None, str(exc), "error"
            return s
        s.error = None
        s.status = "ready" if s.snapshot.opportunities else "empty"
        log.info(f"Loaded latest scan {s.snapshot.scan_date}",
                 extra={"date": s.snapshot.scan_date,
                        "count": len(s.snapshot.opportunities)})
        return s

    async def activate(self, tab) -> ViewState:
        """Make `tab` the single active tab and run its data load."""
        tab = Tab(tab)
        self.state.active_tab = tab
        log.debug(f"Activated {tab.value}", extra={"view": tab.value})
        if tab is Tab.HISTORY:
            await self.load_history()
        return self.state

    async def _load_dates(self) -> list:
        if self.state.history_dates:
            return self.state.history_dates
        index = await self.loader.load_index()
        self.state.history_dates = index.dates
        return index.dates

    async def load_history(self) -> dict:
        """Fetch the latest N dates concurrently, skipping failed days."""
        s = self.state
        try:
            dates = await self._load_dates()
        except ViewerError as exc:
            log.error(f"Failed to load index: {exc}")
            s.history_error = str(exc)
            return {}
        s.history_error = None
        window = dates[:self.cfg.data.history_days]
        results = await asyncio.gather(*(self.loader.load_day(d) for d in window),
                                       return_exceptions=True)
        days = {}
        for date, result in zip(window, results):
            if isinstance(result, ViewerError):
                log.warning(f"Skipping {date}: {result}",
                            extra={"date": date, "status": "skipped"})
                continue
            if isinstance(result, BaseException):
                raise result
            days[date] = result
        s.history_days = days
        log.info(f"History loaded: {len(days)}/{len(window)} days",
                 extra={"count": len(days)})
        self._draw_history_charts()
        return days

    async def show_past_scan(self, date: str) -> Optional[Snapshot]:
        s = self.state
        s.past_scan_date = date
        try:
            s.past_scan = await self.loader.load_day(date)
            s.past_scan_error = None
        except ViewerError as exc:
            log.warning(f"Past scan {date} unavailable: {exc}", extra={"date": date})
            s.past_scan, s.past_scan_error = None, f"No scan available for {date}"
        return s.past_scan

    async def search_ticker(self, ticker: str) -> list[TickerSighting]:
        """Every indexed date the ticker appears on, oldest first.

        Dates are walked sequentially through the loader cache; a date
        that fails to load is skipped.  Not found is an empty list.
        """
        ticker = ticker.strip().upper()
        s = self.state
        s.search_ticker = ticker
        try:
            dates = await self._load_dates()
        except ViewerError as exc:
            log.error(f"Search index unavailable: {exc}")
            dates = []
        sightings = []
        for date in dates:
            try:
                snap = await self.loader.load_day(date)
            except ViewerError as exc:
                log.warning(f"Search skipped {date}: {exc}", extra={"date": date})
                continue
            opp = snap.find(ticker)
            if opp is not None:
                sightings.append(TickerSighting(date=date, score=opp.score,
                                                recommendation=opp.recommendation,
                                                price=opp.price))
        sightings.reverse()
        s.search_results = sightings
        log.info(f"Search {ticker}: {len(sightings)} sightings",
                 extra={"ticker": ticker, "count": len(sightings)})
        inst = ticker_trajectory(self.surface, TICKER_CHART, sightings)
        self._chart_event("ticker_trajectory", inst is not None)
        return sightings

    async def load_deep_dive(self) -> Optional[DeepDiveCollection]:
        s = self.state
        try:
            s.deep_dive = await self.loader.load_deep_dive()
            s.deep_dive_error = None
        except SchemaEmpty:
            s.deep_dive, s.deep_dive_error = None, "No deep dive analyses available"
        except ViewerError as exc:
            log.error(f"Failed to load deep dive: {exc}")
            s.deep_dive, s.deep_dive_error = None, str(exc)
        return s.deep_dive

    # =====================================================================
    # B. View controls
    # =====================================================================
    def set_sort(self, section: str, key) -> RenderBatch:
        st = self.state.sections[section]
        self.state.sections[section] = replace(st, sort=SortKey(key))
        return self.render_section(section)

    def set_filter(self, section: str, view_filter: ViewFilter) -> RenderBatch:
        st = self.state.sections[section]
        self.state.sections[section] = replace(st, view_filter=view_filter)
        return self.render_section(section)

    def section_records(self, section: str, key: Optional[SortKey] = None,
                        new_only: Optional[bool] = None) -> list:
        snap = self.state.snapshot
        if snap is None:
            return []
        st = self.state.sections[section]
        view_filter = st.view_filter
        if new_only is not None:
            view_filter = replace(view_filter, new_only=new_only)
        records = snap.by_category(Recommendation(section.upper()))
        return apply_view(records, view_filter, key or st.sort,
                          self.cfg.thresholds.satellite_min)

    # =====================================================================
    # C. Rendering
    # =====================================================================
    def render_section(self, section: str, key: Optional[SortKey] = None,
                       variant: bool = False, new_only: Optional[bool] = None) -> RenderBatch:
        """Re-render one card section and re-bind its sparklines.

        A variant (one sort key, optionally forced new-only) gets its own
        section name so its sparkline anchors never collide with siblings.
        """
        key = SortKey(key) if key is not None else self.state.sections[section].sort
        name = section
        if variant:
            name = f"{section}-{key.value}" + ("-new" if new_only else "")
        with trace_event(self.event_log, "RENDER", "section", target=name):
            batch = render_cards(self.section_records(section, key, new_only), name, self.cfg)
            drawn = attach_sparklines(batch, self.surface)
        for _ in drawn:
            self._chart_event("sparkline", True, name)
        return batch

    def _section_controls(self, section: str) -> str:
        current = self.state.sections[section].sort
        options = "".join(
            f'<option value="{k.value}"{" selected" if k is current else ""}>{label}</option>'
            for k, label in SORT_LABELS.items())
        checked = " checked" if self.state.sections[section].view_filter.new_only else ""
        return (f'<select class="sort-select" data-section="{section}">{options}</select>'
                f'<label class="new-toggle"><input type="checkbox" class="new-only" '
                f'data-section="{section}"{checked}> New only</label>')

    def _card_section(self, section: str, sort_variants: bool) -> str:
        current = self.state.sections[section].sort
        total = len(self.section_records(section))
        if not sort_variants:
            batch = self.render_section(section)
            body = f'<div class="cards" id="cards-{section}">{batch.html}</div>'
        else:
            current_new = self.state.sections[section].view_filter.new_only
            blocks = []
            for key in SortKey:
                for new_only in (False, True):
                    batch = self.render_section(section, key, variant=True, new_only=new_only)
                    shown = key is current and new_only == current_new
                    suffix = "-new" if new_only else ""
                    empty = "" if batch.count else '<p class="muted">No matching signals</p>'
                    blocks.append(f'<div class="cards{"" if shown else " hidden"}" '
                                  f'id="cards-{section}-{key.value}{suffix}" '
                                  f'data-sort="{key.value}" data-new="{int(new_only)}">'
                                  f'{batch.html}{empty}</div>')
            body = "".join(blocks)
        title = f"{SECTION_TITLES[section]} ({total})"
        controls = self._section_controls(section) if sort_variants else ""
        return section_block(section, title, body, visible=total > 0, controls=controls)

    def render_today(self, sort_variants: bool = False) -> str:
        s = self.state
        with trace_event(self.event_log, "RENDER", "today"):
            if s.error:
                return render_error_state(s.error)
            snap = s.snapshot
            if snap is None or not snap.opportunities:
                return render_empty_state("No opportunities in the latest scan")
            parts = [f'<div class="scan-meta">{scan_label(snap)}</div>',
                     render_stats(snap.stats)]
            for section in CARD_SECTIONS:
                parts.append(self._card_section(section, sort_variants))
            momentum = self.section_records("momentum")
            table = (f'<table class="momentum-table"><thead><tr><th>Ticker</th><th>Score</th>'
                     f'<th>Price</th><th>Profile</th><th>Catalyst</th><th>Trend</th></tr></thead>'
                     f'<tbody id="tbody-momentum">{render_momentum_rows(momentum, self.cfg)}'
                     f'</tbody></table>')
            parts.append(section_block("momentum", f"Momentum ({len(momentum)})", table,
                                        visible=bool(momentum)))
            return "".join(parts)

    def render_history(self, all_past_scans: bool = False) -> str:
        """History tab.  With all_past_scans every loaded day gets a
        hidden past-scan block the date picker can reveal."""
        s = self.state
        with trace_event(self.event_log, "RENDER", "history"):
            if s.history_error:
                return render_error_state(s.history_error, "history-error")
            if all_past_scans:
                past = "".join(self._past_scan_block(d, snap, hidden=True)
                               for d, snap in s.history_days.items())
                picker = render_date_picker(list(s.history_days))
            else:
                past = self.render_past_scan()
                picker = render_date_picker(s.history_dates, s.past_scan_date)
            parts = [
                '<div class="chart-row">',
                f'<div class="chart-container"><h3>Daily Signals</h3>{canvas(SIGNAL_CHART)}</div>',
                f'<div class="chart-container"><h3>Score Distribution</h3>{canvas(SCORE_DIST_CHART)}</div>',
                '</div>',
                picker,
                f'<div id="past-scan">{past}</div>',
                f'<div id="ticker-search">{self.render_search()}</div>',
            ]
            return "".join(parts)

    def _past_scan_block(self, date: str, snap: Snapshot, hidden: bool = False) -> str:
        batch = render_past_scan(snap, self.cfg, date)
        attach_sparklines(batch, self.surface)
        cls = "past-scan hidden" if hidden else "past-scan"
        return (f'<div class="{cls}" data-date="{esc(date)}"><h3>Scan {esc(date)}</h3>'
                f'<div class="cards">{batch.html}</div></div>')

    def render_past_scan(self) -> str:
        s = self.state
        if s.past_scan_error:
            return f'<p class="muted">{esc(s.past_scan_error)}</p>'
        if s.past_scan is None:
            return ""
        return self._past_scan_block(s.past_scan_date, s.past_scan)

    def render_search(self) -> str:
        s = self.state
        if s.search_ticker is None:
            return ""
        chart = canvas(TICKER_CHART, 220) if s.search_results else ""
        return (f'<h3>{esc(s.search_ticker)}</h3>{chart}'
                f'{render_ticker_history(s.search_ticker, s.search_results)}')

    def render_portfolio(self) -> str:
        with trace_event(self.event_log, "RENDER", "portfolio"):
            snap = self.state.snapshot
            return render_portfolio(snap.portfolio if snap else None, self.cfg)

    def render_deep_dive(self) -> str:
        s = self.state
        with trace_event(self.event_log, "RENDER", "deep_dive"):
            if s.deep_dive_error:
                return render_empty_state(s.deep_dive_error, "dd-empty")
            if s.deep_dive is None:
                return render_empty_state("Deep dive not loaded", "dd-empty")
            return render_deep_dive_page(s.deep_dive, self.cfg)

    def render(self) -> str:
        """Markup for the active tab."""
        tab = self.state.active_tab
        if tab is Tab.HISTORY:
            return self.render_history()
        if tab is Tab.PORTFOLIO:
            return self.render_portfolio()
        return self.render_today()

    # ---------------------------------------------------------------------
    def _draw_history_charts(self) -> None:
        days = list(self.state.history_days.values())
        self._chart_event("signal_count",
                          signal_count_chart(self.surface, SIGNAL_CHART, days) is not None)
        self._chart_event("score_distribution",
                          score_dist_chart(self.surface, SCORE_DIST_CHART, days) is not None)

    def _chart_event(self, kind: str, drawn: bool, target: str = "") -> None:
        if self.event_log is not None:
            self.event_log.record("CHART", kind, target=target,
                                  status="OK" if drawn else "SKIP")
