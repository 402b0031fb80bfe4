#!/usr/bin/env python3
"""
Static Dashboard Builder for the Bull Scouter viewer.
=====================================================
Drives the PageController through every tab and writes self-contained
HTML pages with embedded Chart.js configurations:

    index.html       today / history / portfolio tabs
    deep-dive.html   value + growth deep-dive cards
    deep-dive.txt    plain-text BUY + WATCHLIST digest
    viewer.log       structured JSON session log
    trace.csv/.md    event trace (with --trace)

Usage:
    python generate_dashboard.py                          # config.yaml defaults
    python generate_dashboard.py --data-dir ./data        # serve JSON from disk
    python generate_dashboard.py --base-url https://host/data --search NVDA
"""

import argparse
import asyncio
import sys
from pathlib import Path

import yaml
from pydantic import ValidationError

from charts import ChartSurface
from controller import PageController, Tab
from instrumentation import EventLog
from renderer import deep_dive_summary_text
from run_context import SessionContext
from schemas import ViewerConfig
from snapshot_loader import SnapshotLoader

ROOT = Path(__file__).resolve().parent

CHART_JS = "https://cdn.jsdelivr.net/npm/chart.js@4.5.1"


# ---------------------------------------------------------------------------
# Config loader with error handling
# ---------------------------------------------------------------------------
def load_config(path: Path) -> ViewerConfig:
    """Load and validate config.yaml; a missing file means all defaults."""
    if not path.exists():
        return ViewerConfig()
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name} is malformed (expected a mapping)")
    return ViewerConfig.model_validate(raw)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Build the Bull Scouter static dashboard")
    p.add_argument("--config", type=str, default=str(ROOT / "config.yaml"),
                   help="Path to config.yaml")
    p.add_argument("--base-url", type=str, default=None,
                   help="Data host serving latest.json, index.json, {date}.json")
    p.add_argument("--data-dir", type=str, default=None,
                   help="Read the JSON feed from a local directory instead of HTTP")
    p.add_argument("--output", type=str, default=None,
                   help="Output directory (default: output.directory in config)")
    p.add_argument("--search", type=str, default=None,
                   help="Ticker to trace across every indexed date")
    p.add_argument("--trace", action="store_true",
                   help="Write trace.csv / trace.md event reports")
    return p.parse_args(argv)


def apply_overrides(cfg: ViewerConfig, args) -> ViewerConfig:
    data = cfg.data
    if args.base_url:
        data = data.model_copy(update={"base_url": args.base_url, "data_dir": None})
    if args.data_dir:
        data = data.model_copy(update={"data_dir": args.data_dir})
    output = cfg.output
    if args.output:
        output = output.model_copy(update={"directory": args.output})
    return cfg.model_copy(update={"data": data, "output": output})


# ---------------------------------------------------------------------------
# Page assembly
# ---------------------------------------------------------------------------
def generate_html(title: str, body: str, charts_json: str, nav: str = "") -> str:
    """Build a complete page; charts_json is the surface's serialized configs."""
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <script src="{CHART_JS}"></script>
    <style>
{_css()}
    </style>
</head>
<body>
    <div class="dashboard-container">
        <header class="dashboard-header">
            <h1>{title}</h1>
            {nav}
        </header>
{body}
    </div>
    <script id="chart-data" type="application/json">{_script_safe(charts_json)}</script>
    <script>
{_js()}
    </script>
</body>
</html>
"""


def _script_safe(s: str) -> str:
    return s.replace("</", "<\\/")


def dashboard_body(today: str, history: str, portfolio: str) -> str:
    tabs = "".join(
        f'<button class="tab-btn{" active" if t is Tab.TODAY else ""}" data-tab="{t.value}">'
        f'{t.value.title()}</button>' for t in Tab)
    return f"""        <nav class="tabs">{tabs}<a class="tab-link" href="deep-dive.html">Deep Dive</a></nav>
        <main>
            <div class="tab-panel" id="tab-today">{today}</div>
            <div class="tab-panel hidden" id="tab-history">{history}</div>
            <div class="tab-panel hidden" id="tab-portfolio">{portfolio}</div>
        </main>"""


def _css() -> str:
    return """
        :root {
            --bg-deep: #0a0e17;
            --bg-card: #161b22;
            --bg-elevated: #21262d;
            --border: rgba(255,255,255,.06);
            --text-primary: #e6edf3;
            --text-secondary: #7d8590;
            --green: #22c55e;
            --amber: #f59e0b;
            --red: #ef4444;
            --gray: #6b7280;
            --gap: 16px;
            --radius: 10px;
            --font-mono: 'JetBrains Mono', monospace;
        }
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body { font-family: system-ui, sans-serif; background: var(--bg-deep);
               color: var(--text-primary); line-height: 1.55; }
        .dashboard-container { max-width: 1440px; margin: 0 auto; padding: 24px var(--gap); }
        .dashboard-header { display: flex; justify-content: space-between; align-items: center;
                            margin-bottom: var(--gap); }
        .hidden { display: none !important; }
        .muted { color: var(--text-secondary); }
        .mono, .price, .score-badge, .stat-value { font-family: var(--font-mono); }
        .positive { color: var(--green); }
        .negative { color: var(--red); }

        /* ---- TABS ---- */
        .tabs { display: flex; gap: 8px; margin-bottom: var(--gap); }
        .tab-btn, .tab-link, .date-pill { background: var(--bg-card); color: var(--text-secondary);
            border: 1px solid var(--border); border-radius: 6px; padding: 6px 14px;
            cursor: pointer; text-decoration: none; font-size: 13px; }
        .tab-btn.active, .date-pill.active { color: var(--text-primary); border-color: var(--green); }

        /* ---- STATS ---- */
        .stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(110px, 1fr));
                 gap: var(--gap); margin: var(--gap) 0; }
        .stat { background: var(--bg-card); border-radius: var(--radius); padding: 12px; text-align: center; }
        .stat-value { font-size: 22px; font-weight: 700; }
        .stat-label { font-size: 11px; color: var(--text-secondary); text-transform: uppercase; }

        /* ---- CARDS ---- */
        .section { margin: 24px 0; }
        .section h2 { font-size: 16px; margin-bottom: 8px; display: inline-block; margin-right: 12px; }
        .sort-select { background: var(--bg-elevated); color: var(--text-primary);
                       border: 1px solid var(--border); border-radius: 6px; padding: 2px 6px; }
        .new-toggle { font-size: 12px; color: var(--text-secondary); margin-left: 10px; }
        .cards { display: grid; grid-template-columns: repeat(auto-fill, minmax(320px, 1fr));
                 gap: var(--gap); margin-top: 8px; }
        .opp-card { background: var(--bg-card); border: 1px solid var(--border);
                    border-left: 3px solid var(--gray); border-radius: var(--radius); padding: 14px; }
        .opp-card.buy { border-left-color: var(--green); }
        .opp-card.watchlist { border-left-color: var(--amber); }
        .card-head, .card-foot { display: flex; justify-content: space-between; align-items: center; }
        .ticker { font-weight: 700; font-size: 17px; margin-right: 8px; }
        .score-badge { font-weight: 700; font-size: 18px; padding: 2px 10px; border-radius: 6px;
                       background: var(--bg-elevated); }
        .score-badge.buy { color: var(--green); }
        .score-badge.watchlist { color: var(--amber); }
        .profile-badge, .tier, .badge, .chip, .event-pill, .countdown, .version-badge {
            display: inline-block; font-size: 11px; padding: 1px 7px; border-radius: 10px;
            background: var(--bg-elevated); color: var(--text-secondary); margin: 2px 2px 0 0; }
        .badge.favorable, .chip.positive, .event-pill.bull { color: var(--green); }
        .badge.caution { color: var(--amber); }
        .badge.concern, .chip.negative, .event-pill.bear { color: var(--red); }
        .badge.squeeze { color: #a855f7; }
        .card-meta { display: flex; gap: 10px; font-size: 12px; color: var(--text-secondary); margin: 6px 0; }
        .catalyst { font-size: 12px; margin: 4px 0; display: flex; gap: 8px; }
        .countdown.imminent { color: var(--red); }
        .countdown.week { color: var(--amber); }
        .conf-bar { height: 5px; background: var(--bg-elevated); border-radius: 3px; margin-top: 8px; }
        .conf-bar-fill { height: 100%; border-radius: 3px; }
        .conf-label, .aggregate, .hysteresis, .scans { font-size: 11px; color: var(--text-secondary); }
        .trend { font-size: 11px; margin-left: 6px; }
        .trend.improving { color: var(--green); }
        .trend.declining { color: var(--red); }
        .trend.stable { color: var(--text-secondary); }
        .trend.new { color: var(--amber); }

        /* ---- TABLES ---- */
        table { width: 100%; border-collapse: collapse; font-size: 13px; }
        th { text-align: left; color: var(--text-secondary); font-weight: 500; padding: 6px 8px;
             border-bottom: 1px solid var(--border); }
        td { padding: 6px 8px; border-bottom: 1px solid var(--border); }
        .buy { color: var(--green); }
        .watchlist { color: var(--amber); }
        .momentum { color: var(--gray); }

        /* ---- CHARTS ---- */
        .chart-row { display: grid; grid-template-columns: 1fr 1fr; gap: var(--gap); margin: var(--gap) 0; }
        .chart-container { background: var(--bg-card); border-radius: var(--radius); padding: 14px; }
        .chart-container h3 { font-size: 13px; color: var(--text-secondary); margin-bottom: 8px; }
        .chart-box { position: relative; }
        #date-picker { display: flex; flex-wrap: wrap; gap: 6px; margin: var(--gap) 0; }

        /* ---- STATES ---- */
        .empty-state, .error-state { text-align: center; padding: 48px; color: var(--text-secondary); }
        .error-state p:first-child { color: var(--red); font-weight: 600; }

        /* ---- DEEP DIVE ---- */
        .dd-card { background: var(--bg-card); border: 1px solid var(--border);
                   border-radius: var(--radius); padding: 16px; margin-bottom: var(--gap); }
        .dd-card.buy { border-left: 3px solid var(--green); }
        .dd-card.watchlist { border-left: 3px solid var(--amber); }
        .dd-card-header { display: flex; justify-content: space-between; margin-bottom: 10px; }
        .dd-ticker a { color: var(--text-primary); font-weight: 700; font-size: 18px; text-decoration: none; }
        .dd-name { color: var(--text-secondary); margin-left: 8px; font-size: 13px; }
        .dd-badges { display: flex; gap: 8px; align-items: center; }
        .dd-score-badge, .dd-rec-badge, .ai-verdict, .radar { font-size: 11px; padding: 2px 8px;
            border-radius: 10px; background: var(--bg-elevated); margin-right: 6px; }
        .dd-score-badge.high, .dd-rec-badge.buy, .ai-verdict.tailwind { color: var(--green); }
        .dd-score-badge.mid, .dd-rec-badge.watchlist, .ai-verdict.neutral { color: var(--amber); }
        .dd-score-badge.low, .ai-verdict.threat { color: var(--red); }
        .dd-fw-row { display: grid; grid-template-columns: 1fr 1fr; gap: var(--gap); }
        .dd-fw-row.single { grid-template-columns: 1fr; }
        .dd-fw-title, .dd-section-title { font-size: 12px; text-transform: uppercase;
            color: var(--text-secondary); margin: 10px 0 4px; }
        .dd-fin-grid { display: grid; grid-template-columns: repeat(3, 1fr); gap: 6px; font-size: 12px; }
        .dd-fin-item { display: flex; justify-content: space-between; }
        .dd-list { padding-left: 18px; font-size: 13px; }
        .take { font-style: italic; }
"""


def _js() -> str:
    return """
        const charts = {};
        function drawCharts(root) {
            const specs = JSON.parse(document.getElementById('chart-data').textContent);
            for (const spec of specs) {
                const el = document.getElementById(spec.target);
                if (!el || !root.contains(el) || el.offsetParent === null) continue;
                if (charts[spec.target]) charts[spec.target].destroy();
                charts[spec.target] = new Chart(el, spec.config);
            }
        }
        document.querySelectorAll('.tab-btn').forEach(btn => btn.addEventListener('click', () => {
            document.querySelectorAll('.tab-btn').forEach(b => b.classList.toggle('active', b === btn));
            document.querySelectorAll('.tab-panel').forEach(p =>
                p.classList.toggle('hidden', p.id !== 'tab-' + btn.dataset.tab));
            drawCharts(document.getElementById('tab-' + btn.dataset.tab));
        }));
        function showVariant(name) {
            const section = document.getElementById('section-' + name);
            const sort = section.querySelector('.sort-select').value;
            const fresh = section.querySelector('.new-only').checked ? '1' : '0';
            section.querySelectorAll('.cards').forEach(c =>
                c.classList.toggle('hidden', c.dataset.sort !== sort || c.dataset.new !== fresh));
            drawCharts(section);
        }
        document.querySelectorAll('.sort-select, .new-only').forEach(el =>
            el.addEventListener('change', () => showVariant(el.dataset.section)));
        document.querySelectorAll('.date-pill').forEach(pill => pill.addEventListener('click', () => {
            document.querySelectorAll('.date-pill').forEach(p => p.classList.toggle('active', p === pill));
            document.querySelectorAll('.past-scan').forEach(b =>
                b.classList.toggle('hidden', b.dataset.date !== pill.dataset.date));
            drawCharts(document.getElementById('past-scan'));
        }));
        drawCharts(document.body);
"""


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------
async def build_site(cfg: ViewerConfig, search: str | None = None,
                     event_log: EventLog | None = None) -> dict:
    """Run every tab through the controller and write the output pages."""
    out = Path(cfg.output.directory)
    out.mkdir(parents=True, exist_ok=True)
    surface = ChartSurface()
    stats = {}

    async with SnapshotLoader.from_config(cfg, event_log) as loader:
        ctl = PageController(loader, cfg, surface, event_log)

        print("Loading latest scan...")
        await ctl.start()
        today = ctl.render_today(sort_variants=True)
        stats["status"] = ctl.state.status
        stats["opportunities"] = len(ctl.state.snapshot.opportunities) if ctl.state.snapshot else 0
        stats["scan_date"] = ctl.state.snapshot.scan_date if ctl.state.snapshot else None

        print("Loading history...")
        await ctl.activate(Tab.HISTORY)
        if search:
            print(f"Searching {search.upper()} across indexed dates...")
            await ctl.search_ticker(search)
            stats["search_hits"] = len(ctl.state.search_results)
        history = ctl.render_history(all_past_scans=True)
        stats["history_days"] = len(ctl.state.history_days)

        await ctl.activate(Tab.PORTFOLIO)
        portfolio = ctl.render_portfolio()

        print("Loading deep dive...")
        await ctl.load_deep_dive()
        deep_dive = ctl.render_deep_dive()
        stats["deep_dive_picks"] = (len(ctl.state.deep_dive.all_picks())
                                    if ctl.state.deep_dive else 0)

        await ctl.activate(Tab.TODAY)

    dashboard_path = out / cfg.output.dashboard_file
    dashboard_path.write_text(
        generate_html("Bull Scouter", dashboard_body(today, history, portfolio),
                      surface.to_json()),
        encoding="utf-8")

    dd_path = out / cfg.output.deep_dive_file
    nav = f'<nav class="tabs"><a class="tab-link" href="{cfg.output.dashboard_file}">Dashboard</a></nav>'
    dd_path.write_text(
        generate_html("Bull Scouter Deep Dive", f"        <main>{deep_dive}</main>", "[]", nav),
        encoding="utf-8")

    written = [dashboard_path, dd_path]
    if ctl.state.deep_dive is not None:
        text = deep_dive_summary_text(ctl.state.deep_dive)
        if text:
            txt_path = out / cfg.output.deep_dive_text_file
            txt_path.write_text(text + "\n", encoding="utf-8")
            written.append(txt_path)

    stats["charts"] = len(surface.instances)
    stats["files"] = [str(p) for p in written]
    return stats


def main(argv=None):
    args = parse_args(argv)
    config_path = Path(args.config)
    try:
        cfg = apply_overrides(load_config(config_path), args)
    except (ValidationError, ValueError, yaml.YAMLError) as e:
        print(f"\n  ERROR: Failed to load {config_path.name}: {e}")
        sys.exit(1)

    ctx = SessionContext(cfg.output.directory, cfg)
    ctx.save_config(cfg)
    event_log = EventLog() if args.trace else None

    print()
    print("============================================")
    print("  BULL SCOUTER - STATIC DASHBOARD BUILD")
    print("============================================")
    print(f"Config loaded:            {config_path.name}")
    print(f"Data source:              {cfg.data.data_dir or cfg.data.base_url}")
    print(f"History window:           {cfg.data.history_days} days")
    print(f"Session:                  {ctx.session_id}")
    print("--------------------------------------------")

    stats = asyncio.run(build_site(cfg, args.search, event_log))

    print("--------------------------------------------")
    print(f"Latest scan:              {stats['status']} ({stats['opportunities']} opportunities)")
    print(f"History days loaded:      {stats['history_days']}")
    if "search_hits" in stats:
        print(f"Search hits:              {stats['search_hits']}")
    print(f"Deep-dive picks:          {stats['deep_dive_picks']}")
    print(f"Charts bound:             {stats['charts']}")
    for f in stats["files"]:
        print(f"  wrote {f}")

    if event_log is not None:
        event_log.flush_all(cfg.output.directory)
        print(f"  trace: {len(event_log.events)} events, {len(event_log.failures())} failures")

    ctx.save_metadata(stats)
    ctx.close()
    print("============================================")
    return stats


if __name__ == "__main__":
    main()
