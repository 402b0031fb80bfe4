"""Tests for the View Renderer: buckets, trends, cards, and deep-dive output."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from charts import ChartSurface
from normalizer import normalize_deep_dive, normalize_snapshot
from renderer import (Bucket, attach_sparklines, bucket, catalyst_countdown,
                      confidence_bar, deep_dive_summary_text, format_breakdown,
                      format_events, render_card, render_cards,
                      render_deep_dive_card, render_deep_dive_page,
                      render_momentum_row, render_past_scan, render_portfolio,
                      render_ticker_history, sub_record_badges,
                      trend_direction)
from schemas import Bands, Recommendation, TickerSighting, ViewerConfig


# =====================================================================
# PRIMITIVES
# =====================================================================

class TestBuckets:
    @pytest.mark.parametrize("value,expected", [
        (70, Bucket.FAVORABLE), (69.9, Bucket.CAUTION),
        (50, Bucket.CAUTION), (49, Bucket.CONCERN),
    ])
    def test_confidence_bands(self, value, expected):
        assert bucket(value, Bands(favorable=70, caution=50)) is expected

    @pytest.mark.parametrize("value,expected", [
        (15, Bucket.FAVORABLE), (20, Bucket.FAVORABLE),
        (35, Bucket.CAUTION), (36, Bucket.CONCERN),
    ])
    def test_pe_lower_is_better(self, value, expected):
        bands = Bands(favorable=20, caution=35, higher_is_better=False)
        assert bucket(value, bands) is expected

    def test_confidence_bar_color(self):
        bands = Bands(favorable=70, caution=50)
        assert "#22c55e" in confidence_bar(80, bands)
        assert "#f59e0b" in confidence_bar(55, bands)
        assert "#ef4444" in confidence_bar(20, bands)


class TestTrend:
    @pytest.mark.parametrize("series,expected", [
        ([60, 65], "improving"),
        ([65, 60], "declining"),
        ([60, 60], "stable"),
        ([60], None),
        ([], None),
        ([90, 40, 41], "improving"),
    ])
    def test_direction_uses_last_two_points(self, series, expected):
        assert trend_direction(series) == expected

    def test_card_shows_new_for_single_point(self, make_opp):
        html, _ = render_card(make_opp(score_trend=[60]), "buy")
        assert "trend new" in html


class TestCardPieces:
    def test_breakdown_skips_zero_and_signs(self):
        html = format_breakdown({"catalyst": 12, "social": 0, "fundamental_risk": -3})
        assert "Catalyst +12" in html
        assert "Risk -3" in html
        assert "Social" not in html

    def test_events_capped(self, make_opp):
        opp = make_opp(events=[{"type": "fda", "date": f"2026-0{i}-01"} for i in range(1, 6)])
        assert format_events(opp.events, 3).count("event-pill") == 3

    @pytest.mark.parametrize("days,cls", [(0, "imminent"), (-1, "imminent"), (5, "week"),
                                          (30, "month"), (31, "later")])
    def test_countdown(self, days, cls):
        assert f"countdown {cls}" in catalyst_countdown(days)

    def test_badges_only_for_present_sub_records(self, make_opp):
        cfg = ViewerConfig()
        bare = make_opp()
        assert sub_record_badges(bare, cfg) == ""
        rich = make_opp(insider={"buys": 2, "sells": 0}, entry_timing={"score": 75},
                        fundamentals={"pe_ratio": 40}, squeeze_potential=True)
        html = sub_record_badges(rich, cfg)
        assert "Insider 2B/0S" in html
        assert "entry favorable" in html
        assert "fundamentals concern" in html
        assert "Squeeze" in html
        assert "congress" not in html

    def test_score_capped_display(self, make_opp):
        html, _ = render_card(make_opp(score=112), "buy")
        assert ">100+<" in html

    def test_text_is_escaped(self, make_opp):
        opp = make_opp(ticker="<X>", hysteresis_note='<script>alert("x")</script>')
        html, _ = render_card(opp, "buy")
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_momentum_row_last_five_points(self, make_opp):
        opp = make_opp(recommendation="MOMENTUM", score_trend=[10, 20, 30, 40, 50, 60])
        row = render_momentum_row(opp)
        assert "10" not in row.split("muted")[-1]
        assert "20 &rarr; 30 &rarr; 40 &rarr; 50 &rarr; 60" in row


# =====================================================================
# TWO-PHASE RENDER
# =====================================================================

class TestTwoPhaseRender:
    def test_sparklines_only_for_two_or_more_points(self, make_opp):
        recs = [make_opp("A", score_trend=[60, 70]), make_opp("B", score_trend=[60]),
                make_opp("C")]
        batch = render_cards(recs, "buy")
        surface = ChartSurface()
        drawn = attach_sparklines(batch, surface)
        assert len(drawn) == 1
        assert set(surface.instances) == {"spark-buy-A"}

    def test_reattach_replaces_not_stacks(self, make_opp):
        batch = render_cards([make_opp("A", score_trend=[1, 2])], "buy")
        surface = ChartSurface()
        attach_sparklines(batch, surface)
        attach_sparklines(batch, surface)
        assert len(surface.instances) == 1
        assert surface.destroyed == 1

    def test_past_scan_excludes_momentum(self, latest_raw):
        snap = normalize_snapshot(latest_raw)
        batch = render_past_scan(snap, date="2026-02-03")
        assert batch.count == 3
        assert "SOFI" not in batch.html
        assert batch.section == "past-2026-02-03"


# =====================================================================
# TABLES
# =====================================================================

class TestTables:
    def test_portfolio_empty_state(self):
        assert 'id="portfolio-empty"' in render_portfolio(None)

    def test_portfolio_rows(self, latest_raw):
        html = render_portfolio(normalize_snapshot(latest_raw).portfolio)
        assert html.count('class="position ') == 2
        assert "Win rate" in html

    def test_ticker_history_not_found(self):
        assert "not found" in render_ticker_history("ZZZ", [])

    def test_ticker_history_rows(self):
        rows = [TickerSighting(date="2026-02-01", score=70, recommendation=Recommendation.BUY),
                TickerSighting(date="2026-02-02", score=65,
                               recommendation=Recommendation.WATCHLIST, price=9.5)]
        html = render_ticker_history("ABC", rows)
        assert html.index("2026-02-01") < html.index("2026-02-02")
        assert "$9.50" in html


# =====================================================================
# DEEP DIVE
# =====================================================================

class TestDeepDive:
    def test_card_sections(self, deep_dive_raw):
        intc = normalize_deep_dive(deep_dive_raw).value_picks[0]
        html = render_deep_dive_card(intc)
        assert 'class="dd-card buy"' in html
        assert "dd-score-badge high" in html
        assert "Deal Radar" not in html
        assert "Downside Scenarios" in html
        assert "Comparables" in html
        assert "Cheap &lt;b&gt;but&lt;/b&gt; slow" in html

    def test_deal_radar_shown_with_signal(self, deep_dive_raw):
        crwd = normalize_deep_dive(deep_dive_raw).growth_picks[0]
        html = render_deep_dive_card(crwd)
        assert "Deal Radar" in html
        assert "dd-score-badge mid" in html

    def test_page_sections(self, deep_dive_raw):
        html = render_deep_dive_page(normalize_deep_dive(deep_dive_raw))
        assert 'id="dd-value-section"' in html
        assert 'id="dd-growth-section"' in html
        assert '<span id="dd-count">2</span>' in html

    def test_summary_text(self, deep_dive_raw):
        text = deep_dive_summary_text(normalize_deep_dive(deep_dive_raw))
        assert text.splitlines()[1] == "1 BUY + 1 WATCHLIST"
        assert "INTC (BUY) | $20.50 | Score: 5/6 | AI: TAILWIND" in text
        assert "Entry: $19.00" in text
        assert "Catalysts: Earnings 2026-03-04; AI security adoption" in text
