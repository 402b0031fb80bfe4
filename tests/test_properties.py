"""Property-based and invariant tests for the Bull Scouter viewer.

These tests verify structural invariants that must hold regardless of
input data, including:
  - Filter/sort output is a duplicate-free subset of the input
  - Only the satellite sort changes cardinality
  - Catalyst order is non-decreasing with undated records last
  - Rendering is deterministic
"""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
from renderer import render_card, render_cards
from schemas import Opportunity
from view_engine import SortKey, ViewFilter, apply_view

CATEGORIES = ["BUY", "WATCHLIST", "MOMENTUM"]


def _random_records(seed: int, n: int = 40) -> list:
    rng = np.random.default_rng(seed)
    out = []
    for i in range(n):
        rec = {
            "ticker": f"T{i:03d}",
            "score": float(rng.integers(20, 110)),
            "confidence": float(rng.integers(0, 100)),
            "recommendation": CATEGORIES[int(rng.integers(0, 3))],
            "scans_tracked": int(rng.integers(1, 6)),
            "breakdown": {"insider_buying": float(rng.integers(-3, 6))},
        }
        if rng.random() < 0.6:
            rec["days_to_catalyst"] = int(rng.integers(-2, 60))
        if rng.random() < 0.5:
            rec["satellite_score"] = float(rng.integers(0, 100))
        if rng.random() < 0.5:
            rec["entry_timing"] = {"score": float(rng.integers(0, 100))}
        if rng.random() < 0.7:
            rec["score_trend"] = [float(x) for x in rng.integers(30, 100, size=int(rng.integers(1, 6)))]
        out.append(Opportunity.model_validate(rec))
    return out


SEEDS = [0, 1, 7, 42]
FILTERS = [ViewFilter(), ViewFilter(category="BUY"), ViewFilter(new_only=True),
           ViewFilter(category="watchlist", new_only=True)]


# =====================================================================
# FILTER / SORT INVARIANTS
# =====================================================================

class TestViewInvariants:
    @pytest.mark.parametrize("seed", SEEDS)
    @pytest.mark.parametrize("key", list(SortKey))
    def test_output_is_duplicate_free_subset(self, seed, key):
        recs = _random_records(seed)
        for f in FILTERS:
            view = apply_view(recs, f, key)
            ids = [o.ticker for o in view]
            assert len(ids) == len(set(ids))
            assert set(ids) <= {o.ticker for o in recs}

    @pytest.mark.parametrize("seed", SEEDS)
    def test_only_satellite_narrows(self, seed):
        recs = _random_records(seed)
        for f in FILTERS:
            base = len(apply_view(recs, f, SortKey.SCORE))
            for key in SortKey:
                n = len(apply_view(recs, f, key))
                if key is SortKey.SATELLITE:
                    assert n <= base
                else:
                    assert n == base

    @pytest.mark.parametrize("seed", SEEDS)
    def test_catalyst_order(self, seed):
        view = apply_view(_random_records(seed), key=SortKey.CATALYST)
        days = [o.days_to_catalyst for o in view]
        dated = [d for d in days if d is not None]
        assert dated == sorted(dated)
        first_undated = next((i for i, d in enumerate(days) if d is None), len(days))
        assert all(d is None for d in days[first_undated:])
        undated_scores = [o.score for o in view[first_undated:]]
        assert undated_scores == sorted(undated_scores, reverse=True)

    @pytest.mark.parametrize("seed", SEEDS)
    def test_score_sort_monotone(self, seed):
        scores = [o.score for o in apply_view(_random_records(seed))]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.parametrize("seed", SEEDS)
    def test_satellite_respects_threshold(self, seed):
        view = apply_view(_random_records(seed), key=SortKey.SATELLITE, satellite_min=50)
        assert all(o.satellite_score >= 50 for o in view)


# =====================================================================
# RENDER DETERMINISM
# =====================================================================

class TestRenderDeterminism:
    @pytest.mark.parametrize("seed", SEEDS)
    def test_render_is_idempotent(self, seed):
        recs = _random_records(seed, n=10)
        a = render_cards(recs, "buy")
        b = render_cards(recs, "buy")
        assert a.html == b.html
        assert a.anchors == b.anchors

    @pytest.mark.parametrize("seed", SEEDS)
    def test_one_anchor_per_card(self, seed):
        recs = _random_records(seed, n=10)
        batch = render_cards(recs, "watchlist")
        assert len(batch.anchors) == batch.count == len(recs)
        for opp in recs:
            html, anchor = render_card(opp, "watchlist")
            assert f'id="{anchor.anchor_id}"' in html
