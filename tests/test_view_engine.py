"""Tests for the Filter/Sort Engine."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from view_engine import (SortKey, ViewFilter, apply_filter, apply_view,
                         insider_net, is_new, sort_records)


def tickers(records):
    return [o.ticker for o in records]


# =====================================================================
# FILTERS
# =====================================================================

class TestFilters:
    def test_category(self, make_opp):
        recs = [make_opp("A", recommendation="BUY"), make_opp("B", recommendation="WATCHLIST")]
        assert tickers(apply_filter(recs, ViewFilter(category="watchlist"))) == ["B"]

    def test_all_keeps_everything(self, make_opp):
        recs = [make_opp("A"), make_opp("B", recommendation="MOMENTUM")]
        assert tickers(apply_filter(recs, ViewFilter())) == ["A", "B"]

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError):
            ViewFilter(category="hold")

    def test_new_only(self, make_opp):
        recs = [make_opp("A", scans_tracked=1), make_opp("B", scans_tracked=4),
                make_opp("C")]
        assert tickers(apply_filter(recs, ViewFilter(new_only=True))) == ["A", "C"]

    def test_filters_combine_with_and(self, make_opp):
        recs = [make_opp("A", scans_tracked=1, recommendation="WATCHLIST"),
                make_opp("B", scans_tracked=1),
                make_opp("C", scans_tracked=3)]
        f = ViewFilter(category="BUY", new_only=True)
        assert tickers(apply_filter(recs, f)) == ["B"]

    def test_is_new_treats_missing_count_as_new(self, make_opp):
        assert is_new(make_opp())
        assert not is_new(make_opp(scans_tracked=2))


# =====================================================================
# SORTS
# =====================================================================

class TestSorts:
    def test_score_descending_and_stable(self, make_opp):
        recs = [make_opp("A", score=70), make_opp("B", score=90), make_opp("C", score=70)]
        assert tickers(sort_records(recs)) == ["B", "A", "C"]

    def test_confidence(self, make_opp):
        recs = [make_opp("A", confidence=40), make_opp("B", confidence=80)]
        assert tickers(sort_records(recs, SortKey.CONFIDENCE)) == ["B", "A"]

    def test_satellite_narrows_to_threshold(self, make_opp):
        recs = [make_opp("A", satellite_score=60), make_opp("B", satellite_score=49.9),
                make_opp("C"), make_opp("D", satellite_score=90)]
        assert tickers(sort_records(recs, "satellite")) == ["D", "A"]

    def test_satellite_custom_threshold(self, make_opp):
        recs = [make_opp("A", satellite_score=60), make_opp("B", satellite_score=40)]
        assert tickers(sort_records(recs, SortKey.SATELLITE, satellite_min=30)) == ["A", "B"]

    def test_insider_ties_broken_by_score(self, make_opp):
        recs = [make_opp("A", score=60, breakdown={"insider_buying": 3}),
                make_opp("B", score=80, breakdown={"insider_buying": 3}),
                make_opp("C", score=99, breakdown={"insider_selling": -2})]
        assert tickers(sort_records(recs, SortKey.INSIDER)) == ["B", "A", "C"]

    def test_insider_net_sums_buys_and_sells(self, make_opp):
        opp = make_opp(breakdown={"insider_buying": 4, "insider_selling": -1.5, "catalyst": 9})
        assert insider_net(opp) == 2.5

    def test_entry_missing_counts_as_zero(self, make_opp):
        recs = [make_opp("A"), make_opp("B", entry_timing={"score": 55}),
                make_opp("C", entry_timing={"score": -5})]
        assert tickers(sort_records(recs, SortKey.ENTRY)) == ["B", "A", "C"]

    def test_catalyst_soonest_first_undated_last_by_score(self, make_opp):
        recs = [make_opp("U1", score=60), make_opp("D30", days_to_catalyst=30),
                make_opp("U2", score=85), make_opp("D2", days_to_catalyst=2),
                make_opp("D0", days_to_catalyst=0)]
        assert tickers(sort_records(recs, SortKey.CATALYST)) == ["D0", "D2", "D30", "U2", "U1"]

    def test_input_not_mutated(self, make_opp):
        recs = [make_opp("A", score=1), make_opp("B", score=2)]
        sort_records(recs)
        assert tickers(recs) == ["A", "B"]


class TestApplyView:
    def test_filter_then_sort(self, make_opp):
        recs = [make_opp("A", score=50, scans_tracked=1),
                make_opp("B", score=90, scans_tracked=5),
                make_opp("C", score=70, scans_tracked=1)]
        view = apply_view(recs, ViewFilter(new_only=True), SortKey.SCORE)
        assert tickers(view) == ["C", "A"]

    def test_empty_input(self):
        assert apply_view([]) == []
