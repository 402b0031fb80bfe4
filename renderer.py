#!/usr/bin/env python3
"""
View Renderer for the Bull Scouter viewer.
===========================================
Turns canonical records into HTML fragments: opportunity cards, momentum
table rows, badges, confidence bars, trend indicators, the portfolio
table, ticker history, and deep-dive cards.

Every function here is pure.  The same record and options always produce
the same markup, so a sort or filter change can safely re-render a whole
section.

Rendering is two-phase.  Phase one (render_cards / render_past_scan)
returns a RenderBatch: the markup plus one SparklineAnchor per card.
Phase two (attach_sparklines) takes that batch and binds a sparkline
chart to each anchor whose record has at least two score points.
"""

import html as html_mod
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from charts import CATEGORY_COLORS, ChartSurface, sparkline
from schemas import (Bands, DeepDiveAnalysis, DeepDiveCollection,
                     Framework, Opportunity, PortfolioState, Recommendation,
                     Snapshot, SnapshotStats, TickerSighting, Verdict,
                     ViewerConfig)

# Breakdown key → display label
BREAKDOWN_LABELS = {
    "catalyst": "Catalyst", "social": "Social", "growth_quality": "Growth",
    "margin_quality": "Margin", "fallen_angel": "Fallen Angel",
    "fundamental": "Fundamental", "technical": "Technical",
    "news_boost": "News", "claude_enhancement": "AI",
    "momentum_bonus": "Momentum", "breakout_pattern_bonus": "Breakout",
    "catalyst_pattern_bonus": "Cat Pattern", "fundamental_risk": "Risk",
    "narrative_overlap": "Overlap", "pre_revenue_discount": "Pre-Rev",
    "quality_persistence": "Quality", "controversy_penalty": "Controversy",
    "thesis_decay": "Decay", "revenue_momentum": "Rev Momentum",
    "margin_expansion": "Margins", "price_trend": "Price/RS",
    "volume_expansion": "Volume", "conviction": "Conviction",
    "social_discovery": "Discovery", "insider_buying": "Insider Buy",
    "insider_selling": "Insider Sell",
}

PROFILE_LABELS = {
    "recovery": "Recovery", "acceleration": "Acceleration", "growth": "Growth",
}

CATALYST_LABELS = {
    "fda": "FDA", "launch": "Launch", "earnings": "Earnings", "pdufa": "PDUFA",
    "partnership": "Partnership", "approval": "Approval", "data_readout": "Data",
    "contract": "Contract", "ipo_lockup": "Lockup", "merger": "M&A",
}


# =========================================================================
# A. Primitives
# =========================================================================
def esc(s) -> str:
    return html_mod.escape("" if s is None else str(s))


def num(v, decimals: int = 1) -> str:
    """Compact number: 80.0 → '80', 3.25 → '3.2'."""
    if v is None:
        return "-"
    v = float(v)
    if v.is_integer():
        return str(int(v))
    return f"{v:.{decimals}f}"


def money(v) -> str:
    return "-" if v is None else f"{float(v):,.2f}"


class Bucket(str, Enum):
    FAVORABLE = "favorable"
    CAUTION = "caution"
    CONCERN = "concern"


BUCKET_COLORS = {
    Bucket.FAVORABLE: "#22c55e",
    Bucket.CAUTION: "#f59e0b",
    Bucket.CONCERN: "#ef4444",
}


def bucket(value: float, bands: Bands) -> Bucket:
    """Three-tier bucketing shared by confidence, P/E, entry timing, ..."""
    if bands.higher_is_better:
        if value >= bands.favorable:
            return Bucket.FAVORABLE
        if value >= bands.caution:
            return Bucket.CAUTION
        return Bucket.CONCERN
    if value <= bands.favorable:
        return Bucket.FAVORABLE
    if value <= bands.caution:
        return Bucket.CAUTION
    return Bucket.CONCERN


def trend_direction(series: list) -> Optional[str]:
    """Compare the last two points; fewer than two means no trend yet."""
    if len(series) < 2:
        return None
    last, prev = series[-1], series[-2]
    if last > prev:
        return "improving"
    if last < prev:
        return "declining"
    return "stable"


def trend_icon(direction: Optional[str]) -> str:
    if direction == "improving":
        return '<span class="trend improving">&#x2191; improving</span>'
    if direction == "declining":
        return '<span class="trend declining">&#x2193; declining</span>'
    if direction == "stable":
        return '<span class="trend stable">&#x2192; stable</span>'
    return '<span class="trend new">&#x2728; new</span>'


def trend_arrow(series: list) -> str:
    return {"improving": "&#x2191;", "declining": "&#x2193;",
            "stable": "&#x2192;"}.get(trend_direction(series), "")


# =========================================================================
# B. Card pieces
# =========================================================================
def confidence_bar(confidence: float, bands: Bands) -> str:
    color = BUCKET_COLORS[bucket(confidence, bands)]
    width = max(0.0, min(confidence, 100.0))
    return (f'<div class="conf-bar"><div class="conf-bar-fill" '
            f'style="width:{num(width)}%;background:{color}"></div></div>'
            f'<div class="conf-label">Confidence: {num(confidence)}/100</div>')


def format_breakdown(breakdown: dict) -> str:
    chips = []
    for k, v in breakdown.items():
        if v == 0:
            continue
        cls = "positive" if v > 0 else "negative"
        prefix = "+" if v > 0 else ""
        chips.append(f'<span class="chip {cls}">{esc(BREAKDOWN_LABELS.get(k, k))} '
                     f'{prefix}{num(v)}</span>')
    return " ".join(chips)


def format_events(events: list, limit: int = 3) -> str:
    pills = []
    for ev in events[:limit]:
        cls = ev.direction if ev.direction in ("bull", "bear") else ""
        label = CATALYST_LABELS.get(ev.type, ev.type or "?")
        date = f" {esc(ev.date)}" if ev.date else ""
        pills.append(f'<span class="event-pill {cls}" title="{esc(ev.summary)}">'
                     f'{esc(label)}{date}</span>')
    return " ".join(pills)


def catalyst_countdown(days: Optional[int]) -> str:
    if days is None:
        return ""
    if days <= 0:
        return '<span class="countdown imminent">Imminent</span>'
    if days <= 7:
        return f'<span class="countdown week">{days}d</span>'
    if days <= 30:
        return f'<span class="countdown month">{days}d</span>'
    return f'<span class="countdown later">{days}d</span>'


def aggregate_html(opp: Opportunity) -> str:
    agg = opp.aggregate
    if agg is None or not agg.avg_score:
        return ""
    parts = [f"Avg: <b>{num(agg.avg_score)}</b>", f"Peak: <b>{num(agg.peak_score)}</b>"]
    if agg.buy_pct and agg.buy_pct > 0:
        parts.append(f"BUY: {num(agg.buy_pct)}%")
    if agg.price_change_pct is not None:
        cls = "positive" if agg.price_change_pct >= 0 else "negative"
        sign = "+" if agg.price_change_pct > 0 else ""
        parts.append(f'Price: <span class="{cls}">{sign}{num(agg.price_change_pct)}%</span>')
    return f'<div class="aggregate">{" &middot; ".join(parts)}</div>'


def sub_record_badges(opp: Opportunity, cfg: ViewerConfig) -> str:
    """One badge per optional sub-record that is present."""
    t = cfg.thresholds
    badges = []
    f = opp.fundamentals
    if f is not None:
        if f.pe_ratio is not None and f.pe_ratio > 0:
            b = bucket(f.pe_ratio, t.pe_ratio)
            badges.append(f'<span class="badge fundamentals {b.value}">P/E {num(f.pe_ratio)}</span>')
        else:
            badges.append('<span class="badge fundamentals">Fundamentals</span>')
    if opp.insider is not None:
        i = opp.insider
        badges.append(f'<span class="badge insider" title="{esc(i.summary)}">'
                      f'Insider {i.buys or 0}B/{i.sells or 0}S</span>')
    if opp.congress is not None:
        c = opp.congress
        badges.append(f'<span class="badge congress" title="{esc(c.summary)}">'
                      f'Congress {c.buys or 0}B/{c.sells or 0}S</span>')
    if opp.analyst_distribution is not None:
        a = opp.analyst_distribution
        bulls = (a.strong_buy or 0) + (a.buy or 0)
        total = bulls + (a.hold or 0) + (a.sell or 0) + (a.strong_sell or 0)
        badges.append(f'<span class="badge analysts">Analysts {bulls}/{total} buy</span>')
    if opp.trajectory_match is not None:
        tm = opp.trajectory_match
        sim = f" {num(tm.similarity * 100 if tm.similarity is not None and tm.similarity <= 1 else tm.similarity)}%" \
            if tm.similarity is not None else ""
        badges.append(f'<span class="badge trajectory">{esc(tm.pattern or "Pattern")}{sim}</span>')
    if opp.entry_timing is not None and opp.entry_timing.score is not None:
        et = opp.entry_timing
        b = bucket(et.score, t.entry_timing)
        badges.append(f'<span class="badge entry {b.value}">Entry {num(et.score)}'
                      f'{" " + esc(et.label) if et.label else ""}</span>')
    if opp.checklist is not None:
        cl = opp.checklist
        passed = cl.passed if cl.passed is not None else sum(1 for i in cl.items if i.passed)
        total = cl.total if cl.total is not None else len(cl.items)
        badges.append(f'<span class="badge checklist">Checklist {passed}/{total}</span>')
    if opp.ai_thesis:
        badges.append(f'<span class="badge ai-thesis" title="{esc(opp.ai_thesis)}">AI Thesis</span>')
    if opp.satellite_score is not None:
        badges.append(f'<span class="badge satellite">Satellite {num(opp.satellite_score)}</span>')
    if opp.squeeze_potential:
        badges.append('<span class="badge squeeze">Squeeze</span>')
    return " ".join(badges)


# =========================================================================
# C. Cards, rows and batches
# =========================================================================
@dataclass(frozen=True)
class SparklineAnchor:
    anchor_id: str
    series: tuple
    color: str


@dataclass
class RenderBatch:
    """Markup from phase one plus the anchors phase two needs."""
    section: str
    html: str
    anchors: list = field(default_factory=list)
    count: int = 0


def anchor_id(section: str, ticker: str) -> str:
    return f"spark-{section}-{ticker}"


def render_card(opp: Opportunity, section: str,
                cfg: Optional[ViewerConfig] = None) -> tuple[str, SparklineAnchor]:
    cfg = cfg or ViewerConfig()
    rec = opp.recommendation.value.lower()
    profile_label = PROFILE_LABELS.get(opp.profile, opp.profile or "")
    badge_cls = opp.profile if opp.recommendation is Recommendation.BUY and opp.profile else rec
    catalyst_label = CATALYST_LABELS.get(opp.catalyst_type, opp.catalyst_type or "")
    score = "100+" if opp.score > 100 else num(opp.score)
    tier = f'<span class="tier">T{opp.tier}</span>' if opp.tier is not None else ""
    aid = anchor_id(section, opp.ticker)
    d = cfg.display

    meta = [f'<span class="price">${money(opp.price)}</span>']
    if opp.market_cap_fmt:
        meta.append(f"<span>{esc(opp.market_cap_fmt)}</span>")
    if opp.down_from_high_pct:
        meta.append(f'<span class="negative">-{num(opp.down_from_high_pct)}% from high</span>')
    if opp.short_interest_pct:
        meta.append(f"<span>SI {opp.short_interest_pct:.1f}%</span>")

    catalyst = ""
    if catalyst_label:
        date = f'<span class="catalyst-date">{esc(opp.catalyst_date)}</span>' if opp.catalyst_date else ""
        countdown = catalyst_countdown(opp.days_to_catalyst)
        countdown = f'<span class="catalyst-countdown">{countdown}</span>' if countdown else ""
        catalyst = (f'<div class="catalyst"><span class="catalyst-type">{esc(catalyst_label)}</span>'
                    f'{date}{countdown}</div>')

    events = format_events(opp.events, d.max_events)
    events = f'<div class="events">{events}</div>' if events else ""
    note = f'<div class="hysteresis">{esc(opp.hysteresis_note)}</div>' if opp.hysteresis_note else ""
    since = f" &middot; since {esc(opp.first_detected[:10])}" if opp.first_detected else ""
    scans = f"{opp.scans_tracked} scans" if opp.scans_tracked is not None else "first scan"
    badges = sub_record_badges(opp, cfg)
    badges = f'<div class="badges">{badges}</div>' if badges else ""

    markup = (
        f'<div class="opp-card {rec}" data-ticker="{esc(opp.ticker)}">'
        f'<div class="card-head"><div>'
        f'<span class="ticker">{esc(opp.ticker)}</span>'
        f'<span class="profile-badge {esc(badge_cls)}">{esc(profile_label)}</span>'
        f'{tier}{trend_icon(trend_direction(opp.score_trend))}</div>'
        f'<div class="score-badge {rec}">{score}</div></div>'
        f'<div class="card-meta">{"".join(meta)}</div>'
        f'{catalyst}'
        f'{confidence_bar(opp.confidence, cfg.thresholds.confidence)}'
        f'<div class="chips">{format_breakdown(opp.breakdown)}</div>'
        f'{badges}{aggregate_html(opp)}{events}{note}'
        f'<div class="card-foot"><span class="scans">{scans}{since}</span>'
        f'<div class="sparkline-container" style="width:{d.sparkline_width}px;height:{d.sparkline_height}px;">'
        f'<canvas id="{esc(aid)}" width="{d.sparkline_width}" height="{d.sparkline_height}"></canvas>'
        f'</div></div></div>'
    )
    anchor = SparklineAnchor(aid, tuple(opp.score_trend),
                             CATEGORY_COLORS[opp.recommendation])
    return markup, anchor


def render_cards(records: Iterable[Opportunity], section: str,
                 cfg: Optional[ViewerConfig] = None) -> RenderBatch:
    """Phase one: structural markup for a card section."""
    parts, anchors = [], []
    for opp in records:
        markup, anchor = render_card(opp, section, cfg)
        parts.append(markup)
        anchors.append(anchor)
    return RenderBatch(section=section, html="".join(parts), anchors=anchors,
                       count=len(parts))


def attach_sparklines(batch: RenderBatch, surface: ChartSurface) -> list:
    """Phase two: bind a sparkline to every anchor with >= 2 points."""
    drawn = []
    for a in batch.anchors:
        if len(a.series) >= 2:
            drawn.append(sparkline(surface, a.anchor_id, list(a.series), a.color))
    return drawn


def render_momentum_row(opp: Opportunity, cfg: Optional[ViewerConfig] = None) -> str:
    cfg = cfg or ViewerConfig()
    trend = opp.score_trend
    shown = " &rarr; ".join(num(s) for s in trend[-cfg.display.trend_points:])
    profile_label = PROFILE_LABELS.get(opp.profile, opp.profile or "")
    catalyst_label = CATALYST_LABELS.get(opp.catalyst_type, opp.catalyst_type or "-")
    return (f'<tr class="momentum-row"><td class="ticker">{esc(opp.ticker)}</td>'
            f'<td>{num(opp.score)}</td><td>${money(opp.price)}</td>'
            f'<td><span class="profile-badge {esc(opp.profile or "")}">{esc(profile_label)}</span></td>'
            f'<td class="muted">{esc(catalyst_label)}</td>'
            f'<td class="muted">{shown} {trend_arrow(trend)}</td></tr>')


def render_momentum_rows(records: Iterable[Opportunity],
                         cfg: Optional[ViewerConfig] = None) -> str:
    return "".join(render_momentum_row(o, cfg) for o in records)


# =========================================================================
# D. Views
# =========================================================================
STAT_FIELDS = [
    ("stat-total", "Tickers", "total_tickers"),
    ("stat-buy", "BUY", "buy_signals"),
    ("stat-watch", "Watchlist", "watchlist_signals"),
    ("stat-momentum", "Momentum", "momentum_signals"),
    ("stat-t1", "Tier 1", "tier1_qualified"),
    ("stat-t2", "Tier 2", "tier2_qualified"),
    ("stat-growth", "Growth", "growth_qualified"),
    ("stat-accel", "Accel", "accel_qualified"),
]


def render_stats(stats: SnapshotStats) -> str:
    cells = []
    for el_id, label, attr in STAT_FIELDS:
        v = getattr(stats, attr)
        cells.append(f'<div class="stat"><div class="stat-value" id="{el_id}">'
                     f'{"-" if v is None else v}</div>'
                     f'<div class="stat-label">{label}</div></div>')
    return f'<div class="stats">{"".join(cells)}</div>'


def scan_label(snap: Snapshot) -> str:
    time = f" {snap.scan_time}" if snap.scan_time else ""
    version = f' <span class="version-badge">v{esc(snap.version)}</span>' if snap.version else ""
    return f'<span id="scan-date">{esc(snap.scan_date or "")}{esc(time)}</span>{version}'


def section_block(section_id: str, title: str, body: str, visible: bool,
                   controls: str = "") -> str:
    hidden = "" if visible else " hidden"
    return (f'<section id="section-{section_id}" class="section{hidden}">'
            f'<h2>{esc(title)}</h2>{controls}{body}</section>')


def render_empty_state(message: str, el_id: str = "empty-state") -> str:
    return f'<div id="{el_id}" class="empty-state"><p>{esc(message)}</p></div>'


def render_error_state(message: str, el_id: str = "error-state") -> str:
    return (f'<div id="{el_id}" class="error-state"><p>Failed to load data</p>'
            f'<p id="error-msg">{esc(message)}</p></div>')


def render_portfolio(portfolio: Optional[PortfolioState],
                     cfg: Optional[ViewerConfig] = None) -> str:
    cfg = cfg or ViewerConfig()
    if portfolio is None or not portfolio.positions:
        return render_empty_state("No portfolio positions in this scan", "portfolio-empty")
    rows = []
    for p in portfolio.positions:
        ret_cls = "" if p.return_pct is None else ("positive" if p.return_pct >= 0 else "negative")
        entry_cls = "" if p.entry_score is None else bucket(p.entry_score, cfg.thresholds.entry_timing).value
        rows.append(
            f'<tr class="position {p.status.value}"><td class="ticker">{esc(p.ticker)}</td>'
            f'<td>{p.status.value}</td><td>${money(p.entry_price)}</td>'
            f'<td>${money(p.current_price)}</td>'
            f'<td class="{ret_cls}">{num(p.return_pct)}%</td>'
            f'<td class="{ret_cls}">{money(p.pnl)}</td>'
            f'<td class="entry {entry_cls}">{num(p.entry_score)}</td>'
            f'<td>{"-" if p.days_held is None else p.days_held}d</td>'
            f'<td class="positive">{num(p.peak_return_pct)}%</td>'
            f'<td class="negative">{num(p.trough_return_pct)}%</td></tr>')
    summary = ""
    s = portfolio.summary
    if s is not None:
        summary = (f'<div class="portfolio-summary">P&amp;L: <b>{money(s.total_pnl)}</b>'
                   f' &middot; Win rate: <b>{num(s.win_rate)}%</b>'
                   f' &middot; Open: <b>{"-" if s.open_positions is None else s.open_positions}</b></div>')
    return (f'{summary}<table class="portfolio-table"><thead><tr>'
            f'<th>Ticker</th><th>Status</th><th>Entry</th><th>Current</th><th>Return</th>'
            f'<th>P&amp;L</th><th>Entry Score</th><th>Held</th><th>Peak</th><th>Trough</th>'
            f'</tr></thead><tbody id="tbody-portfolio">{"".join(rows)}</tbody></table>')


def render_past_scan(snap: Snapshot, cfg: Optional[ViewerConfig] = None,
                     date: Optional[str] = None) -> RenderBatch:
    """Cards for a past date; the momentum tier is left out."""
    section = f"past-{date or snap.scan_date or 'scan'}"
    opps = [o for o in snap.opportunities if o.recommendation is not Recommendation.MOMENTUM]
    if not opps:
        return RenderBatch(section=section, html='<p class="muted">No signals this day</p>')
    return render_cards(opps, section, cfg)


def render_date_picker(dates: list, active: Optional[str] = None) -> str:
    pills = []
    for d in dates:
        cls = "date-pill active" if d == active else "date-pill"
        pills.append(f'<button class="{cls}" data-date="{esc(d)}">{esc(d)}</button>')
    return f'<div id="date-picker">{"".join(pills)}</div>'


def render_ticker_history(ticker: str, sightings: list[TickerSighting]) -> str:
    if not sightings:
        return f'<p class="muted">{esc(ticker)} not found in recent scans</p>'
    cls = {Recommendation.BUY: "buy", Recommendation.WATCHLIST: "watchlist",
           Recommendation.MOMENTUM: "momentum"}
    rows = "".join(
        f'<tr><td>{esc(s.date)}</td><td>{num(s.score)}</td><td>${money(s.price)}</td>'
        f'<td><span class="{cls[s.recommendation]}">{s.recommendation.value}</span></td></tr>'
        for s in sightings)
    return (f'<table class="ticker-history"><thead><tr><th>Date</th><th>Score</th>'
            f'<th>Price</th><th>Signal</th></tr></thead><tbody>{rows}</tbody></table>')


def canvas(target: str, height: int = 260) -> str:
    return f'<div class="chart-box" style="height:{height}px"><canvas id="{esc(target)}"></canvas></div>'


# =========================================================================
# E. Deep dive
# =========================================================================
def verdict_icon(v: Verdict) -> str:
    if v is Verdict.PASS:
        return '<span class="verdict pass">&#x2705;</span>'
    if v is Verdict.FAIL:
        return '<span class="verdict fail">&#x274C;</span>'
    if v is Verdict.INSUFFICIENT_DATA:
        return '<span class="verdict na">&#x2014;</span>'
    return '<span class="verdict partial">&#x26A0;&#xFE0F;</span>'


def render_framework(fw: Framework) -> str:
    rows = "".join(
        f'<tr><td class="dd-fw-icon">{verdict_icon(c.verdict)}</td>'
        f'<td class="dd-fw-label">{esc(c.label)}</td>'
        f'<td class="dd-fw-detail">{esc(c.detail)}</td></tr>'
        for c in fw.criteria)
    return (f'<div class="dd-fw"><div class="dd-fw-title">{esc(fw.title)}</div>'
            f'<table class="dd-fw-table"><tbody>{rows}</tbody></table></div>')


def _dd_section(title: str, body: str, extra_cls: str = "") -> str:
    cls = f"dd-section {extra_cls}".strip()
    return f'<div class="{cls}"><div class="dd-section-title">{title}</div>{body}</div>'


def render_deep_dive_card(a: DeepDiveAnalysis, cfg: Optional[ViewerConfig] = None) -> str:
    cfg = cfg or ViewerConfig()
    rec = (a.recommendation or "").upper()
    card_cls = "dd-card " + rec.lower() if rec in ("BUY", "WATCHLIST") else "dd-card"

    fw = a.primary_framework
    score_badge = ""
    if fw is not None and fw.score is not None:
        level = {Bucket.FAVORABLE: "high", Bucket.CAUTION: "mid", Bucket.CONCERN: "low"}[
            bucket(fw.score, cfg.thresholds.framework_score)]
        score_badge = f'<span class="dd-score-badge {level}">{num(fw.score)}/{fw.max_score}</span>'
    rec_badge = f'<span class="dd-rec-badge {rec.lower()}">{esc(rec)}</span>' if rec else ""

    parts = [
        f'<div class="dd-card-header"><div class="dd-ticker">'
        f'<a href="https://finance.yahoo.com/quote/{esc(a.ticker)}" target="_blank" rel="noopener">{esc(a.ticker)}</a>'
        f'<span class="dd-name">{esc(a.name)}</span></div>'
        f'<div class="dd-badges">{score_badge}<span class="price">${money(a.price)}</span>{rec_badge}</div></div>'
    ]

    row_cls = "dd-fw-row single" if a.path in ("value", "growth") else "dd-fw-row"
    parts.append(f'<div class="{row_cls}">{"".join(render_framework(f) for f in a.frameworks)}</div>')

    if a.ai_exposure is not None:
        ai = a.ai_exposure
        verdict = (ai.verdict or "neutral").lower()
        parts.append(_dd_section("AI Exposure",
                                 f'<p><span class="ai-verdict {esc(verdict)}">{esc(verdict.upper())}</span>'
                                 f'<span class="muted">{esc(ai.detail)}</span></p>'))

    if a.deal_radar is not None and a.deal_radar.has_signal:
        dr = a.deal_radar
        body = ""
        if dr.capex_exposure:
            body += f'<p><span class="radar capex">CAPEX</span><span class="muted">{esc(dr.capex_exposure)}</span></p>'
        if dr.options_signal:
            body += f'<p><span class="radar options">OPTIONS</span><span class="muted">{esc(dr.options_signal)}</span></p>'
        if dr.assessment:
            body += f'<p>{esc(dr.assessment)}</p>'
        parts.append(_dd_section("Deal Radar", body))

    if a.financials is not None:
        fin = a.financials
        items = [(label, value) for label, value in [
            ("52w Range", fin.range_52w),
            ("Fwd PE", f"{num(fin.forward_pe)}x" if fin.forward_pe else None),
            ("Mkt Cap", fin.market_cap),
            ("Rev Growth", fin.revenue_growth),
            ("Gross Margin", fin.gross_margins),
            ("FCF", fin.free_cashflow),
        ] if value]
        if items:
            grid = "".join(f'<div class="dd-fin-item"><span class="muted">{label}</span>'
                           f'<span class="mono">{esc(value)}</span></div>' for label, value in items)
            parts.append(_dd_section("Key Metrics", f'<div class="dd-fin-grid">{grid}</div>'))

    if a.catalysts_verified or a.catalysts_general:
        items = "".join(f'<li><span class="verified">&#x2705;</span>{esc(c)}</li>'
                        for c in a.catalysts_verified)
        items += "".join(f"<li>{esc(c)}</li>" for c in a.catalysts_general)
        parts.append(_dd_section("Catalysts", f'<ul class="dd-list">{items}</ul>'))

    if a.downside_scenarios:
        rows = "".join(
            f'<tr><td class="negative">${money(s.price)}</td>'
            f'<td class="muted">{num(s.pe_at_level)}x</td><td class="muted">{esc(s.scenario)}</td></tr>'
            for s in a.downside_scenarios)
        parts.append(_dd_section("Downside Scenarios",
                                 f'<table class="dd-ds-table"><thead><tr><th>Price</th><th>PE</th>'
                                 f'<th>Scenario</th></tr></thead><tbody>{rows}</tbody></table>'))

    if a.ideal_entry is not None:
        parts.append(_dd_section(f"Ideal Entry: ${money(a.ideal_entry.price)}",
                                 f'<p class="muted">{esc(a.ideal_entry.reasoning)}</p>'))

    if a.comparables:
        rows = "".join(
            f'<tr><td class="ticker">{esc(c.ticker)}</td><td>{num(c.forward_pe)}x</td>'
            f'<td>{esc(c.growth or "-")}</td><td class="muted">{esc(c.note)}</td></tr>'
            for c in a.comparables)
        parts.append(_dd_section("Comparables",
                                 f'<table class="dd-comp-table"><thead><tr><th>Ticker</th>'
                                 f'<th>Fwd PE</th><th>Growth</th><th>Note</th></tr></thead>'
                                 f'<tbody>{rows}</tbody></table>'))

    if a.analyst_take:
        parts.append(_dd_section("Analyst Take", f'<p class="take">"{esc(a.analyst_take)}"</p>',
                                 "dd-take"))

    return f'<div class="{card_cls}" data-ticker="{esc(a.ticker)}">{"".join(parts)}</div>'


def render_deep_dive_page(collection: DeepDiveCollection,
                          cfg: Optional[ViewerConfig] = None) -> str:
    header = (f'<div class="dd-header"><span id="dd-date">{esc(collection.scan_date or "-")}</span>'
              f' &middot; <span id="dd-count">{len(collection.all_picks())}</span> analyses</div>')
    if collection.schema_generation == "legacy":
        cards = "".join(render_deep_dive_card(a, cfg) for a in collection.analyses)
        return header + f'<div id="dd-cards">{cards}</div>'

    body = ""
    if collection.value_picks:
        cards = "".join(render_deep_dive_card(a, cfg) for a in collection.value_picks)
        body += (f'<section id="dd-value-section"><h2>Value Picks <span class="sub">'
                 f'{len(collection.value_picks)} stocks &middot; FCF + Balance Sheet + Drawdown</span></h2>'
                 f'<div id="dd-value-cards">{cards}</div></section>')
    if collection.growth_picks:
        cards = "".join(render_deep_dive_card(a, cfg) for a in collection.growth_picks)
        body += (f'<section id="dd-growth-section"><h2>Growth Picks <span class="sub">'
                 f'{len(collection.growth_picks)} stocks &middot; Revenue + Margins + Rule of 40</span></h2>'
                 f'<div id="dd-growth-cards">{cards}</div></section>')
    return header + body


def deep_dive_summary_text(collection: DeepDiveCollection) -> str:
    """Plain-text digest of BUY + WATCHLIST picks for pasting elsewhere."""
    picks = collection.all_picks()
    buys = [a for a in picks if (a.recommendation or "") == "BUY"]
    watches = [a for a in picks if (a.recommendation or "") == "WATCHLIST"]
    if not buys and not watches:
        return ""
    lines = []
    for a in buys + watches:
        parts = [f"{a.ticker} ({a.recommendation})"]
        if a.price:
            parts.append(f"${a.price:.2f}")
        fw = a.primary_framework
        if fw is not None:
            parts.append(f"Score: {num(fw.score) if fw.score else '?'}/{fw.max_score}")
        if a.ai_exposure is not None:
            parts.append(f"AI: {(a.ai_exposure.verdict or 'neutral').upper()}")
        if a.deal_radar is not None and a.deal_radar.assessment:
            parts.append(f"DealRadar: {a.deal_radar.assessment}")
        if a.financials is not None:
            if a.financials.forward_pe:
                parts.append(f"FwdPE: {num(a.financials.forward_pe)}x")
            if a.financials.range_52w:
                parts.append(f"52w: {a.financials.range_52w}")
        if a.ideal_entry is not None and a.ideal_entry.price is not None:
            parts.append(f"Entry: ${a.ideal_entry.price:.2f}")
        cats = a.catalysts_verified + a.catalysts_general
        if cats:
            parts.append(f"Catalysts: {'; '.join(cats)}")
        if a.analyst_take:
            parts.append(f"\n  Take: {a.analyst_take}")
        lines.append(" | ".join(parts))
    header = (f"Deep Dive - {collection.scan_date or 'today'}\n"
              f"{len(buys)} BUY + {len(watches)} WATCHLIST\n\n")
    return header + "\n".join(lines)
