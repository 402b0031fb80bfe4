#!/usr/bin/env python3
"""
Schema Normalizer for the Bull Scouter viewer.
===============================================
Detects which generation a payload belongs to and maps it into the
canonical records defined in schemas.py.  Detection happens exactly once,
here, and produces a tagged payload variant; nothing downstream looks at
schema markers again.

Main feed generations
---------------------
* current - {scan_date, scan_time, version, stats, opportunities, portfolio}
* legacy  - {date, time, version, summary, results}

Deep-dive generations
---------------------
* two_path - {value_picks: [...], growth_picks: [...]}, one framework per pick
* legacy   - {analyses: [...]}, value_framework + growth_framework per entry

Malformed entries (no ticker, score or confidence) are dropped and
logged; the rest of the batch still normalizes.
"""

import logging
from enum import Enum
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

from errors import SchemaEmpty
from schemas import (AIExposure, Comparable, Criterion, DealRadar,
                     DeepDiveAnalysis, DeepDiveCollection, DeepDivePayload,
                     DownsideScenario, Framework, IdealEntry, KeyFinancials,
                     LegacyDeepDivePayload, LegacyOpportunityRecord,
                     LegacySnapshotPayload, Opportunity, PortfolioPosition,
                     PortfolioState, PortfolioSummary, Snapshot,
                     SnapshotIndex, SnapshotPayload, SnapshotStats,
                     TwoPathDeepDivePayload, CurrentSnapshotPayload, Verdict)

log = logging.getLogger("viewer.normalizer")

_SNAPSHOT_ADAPTER = TypeAdapter(SnapshotPayload)
_DEEP_DIVE_ADAPTER = TypeAdapter(DeepDivePayload)


# =========================================================================
# A. Framework criteria (key, display label) per path
# =========================================================================
VALUE_CRITERIA = [
    ("fcf_yield", "FCF Yield"),
    ("pe_discount", "PE Discount"),
    ("drawdown", "Drawdown"),
    ("balance_sheet", "Balance Sheet"),
    ("dividend", "Dividend"),
    ("institutional", "Institutional"),
]

GROWTH_CRITERIA = [
    ("revenue_growth", "Revenue Growth"),
    ("gross_margins", "Gross Margins"),
    ("rule_of_40", "Rule of 40"),
    ("earnings_accel", "Earnings Accel"),
    ("capital_efficiency", "Capital Efficiency"),
    ("short_dynamics", "SI Dynamics"),
]

LEGACY_VALUE_CRITERIA = [
    ("profitable", "Profitable"),
    ("strong_fcf", "Strong FCF"),
    ("near_52w_lows", "Near 52w Lows"),
    ("sector_panic", "Sector Panic"),
    ("low_pe_vs_history", "Low PE vs History"),
    ("no_dilution", "No Dilution"),
]

LEGACY_GROWTH_CRITERIA = [
    ("revenue_growth_30", "30%+ Rev Growth"),
    ("gross_margins_60", "60%+ Margins"),
    ("nrr_120", "120%+ NRR"),
    ("tam_under_10", "<10% TAM"),
    ("rule_of_40", "Rule of 40"),
    ("low_sbc", "Low SBC"),
]


# =========================================================================
# B. Detection
# =========================================================================
class SnapshotSchema(str, Enum):
    CURRENT = "current"
    LEGACY = "legacy"
    EMPTY = "empty"


class DeepDiveSchema(str, Enum):
    TWO_PATH = "two_path"
    LEGACY = "legacy"
    EMPTY = "empty"


def _non_empty_list(v: Any) -> bool:
    return isinstance(v, list) and len(v) > 0


def detect_snapshot_schema(raw: Any) -> SnapshotSchema:
    """Ordered, first match wins.

    An `opportunities` list (even an empty one) marks the current feed;
    an empty list is a real scan with no signals.
    """
    if not isinstance(raw, dict):
        return SnapshotSchema.EMPTY
    if isinstance(raw.get("opportunities"), list):
        return SnapshotSchema.CURRENT
    if _non_empty_list(raw.get("results")):
        return SnapshotSchema.LEGACY
    return SnapshotSchema.EMPTY


def detect_deep_dive_schema(raw: Any) -> DeepDiveSchema:
    if not isinstance(raw, dict):
        return DeepDiveSchema.EMPTY
    if _non_empty_list(raw.get("value_picks")) or _non_empty_list(raw.get("growth_picks")):
        return DeepDiveSchema.TWO_PATH
    if _non_empty_list(raw.get("analyses")):
        return DeepDiveSchema.LEGACY
    return DeepDiveSchema.EMPTY


def resolve_snapshot_payload(raw: Any, source: str = ""):
    """Return the tagged payload variant for a main-feed document."""
    kind = detect_snapshot_schema(raw)
    if kind is SnapshotSchema.EMPTY:
        raise SchemaEmpty("snapshot", source)
    return _SNAPSHOT_ADAPTER.validate_python({**raw, "schema_kind": kind.value})


def resolve_deep_dive_payload(raw: Any, source: str = ""):
    kind = detect_deep_dive_schema(raw)
    if kind is DeepDiveSchema.EMPTY:
        raise SchemaEmpty("deep-dive", source)
    return _DEEP_DIVE_ADAPTER.validate_python({**raw, "schema_kind": kind.value})


# =========================================================================
# C. Main feed
# =========================================================================
def _normalize_current_entry(entry: Any) -> Opportunity:
    if not isinstance(entry, dict):
        raise TypeError(f"expected object, got {type(entry).__name__}")
    return Opportunity.model_validate(entry)


def _normalize_legacy_entry(entry: Any) -> Opportunity:
    if not isinstance(entry, dict):
        raise TypeError(f"expected object, got {type(entry).__name__}")
    rec = LegacyOpportunityRecord.model_validate(entry)
    return Opportunity.model_validate(rec.to_canonical_dict())


def _normalize_entries(entries: list, convert, source: str) -> tuple[list, int]:
    records = []
    dropped = 0
    for i, entry in enumerate(entries):
        try:
            records.append(convert(entry))
        except (ValidationError, TypeError) as exc:
            dropped += 1
            ticker = entry.get("ticker") or entry.get("symbol") if isinstance(entry, dict) else None
            log.warning(f"Dropped malformed entry #{i} from {source or 'payload'}",
                        extra={"ticker": ticker, "count": i,
                               "status": type(exc).__name__})
    return records, dropped


def _normalize_portfolio(raw: Any) -> Optional[PortfolioState]:
    if not isinstance(raw, dict):
        return None
    positions = []
    for p in raw.get("positions") or []:
        try:
            positions.append(PortfolioPosition.model_validate(p))
        except ValidationError:
            log.warning("Dropped malformed portfolio position",
                        extra={"ticker": p.get("ticker") if isinstance(p, dict) else None})
    summary = raw.get("summary")
    return PortfolioState(
        positions=positions,
        summary=PortfolioSummary.model_validate(summary) if isinstance(summary, dict) else None,
    )


def _current_to_snapshot(p: CurrentSnapshotPayload, source: str) -> Snapshot:
    opps, dropped = _normalize_entries(p.opportunities, _normalize_current_entry, source)
    return Snapshot(
        scan_date=p.scan_date,
        scan_time=p.scan_time,
        version=p.version,
        schema_generation="current",
        stats=SnapshotStats.model_validate(p.stats),
        opportunities=opps,
        portfolio=_normalize_portfolio(p.portfolio),
        dropped=dropped,
    )


def _legacy_to_snapshot(p: LegacySnapshotPayload, source: str) -> Snapshot:
    opps, dropped = _normalize_entries(p.results, _normalize_legacy_entry, source)
    s = p.summary
    stats = SnapshotStats.model_validate({
        "total_tickers": s.get("total"),
        "buy_signals": s.get("buy"),
        "watchlist_signals": s.get("watchlist"),
        "momentum_signals": s.get("momentum"),
    })
    return Snapshot(
        scan_date=p.date,
        scan_time=p.time,
        version=p.version,
        schema_generation="legacy",
        stats=stats,
        opportunities=opps,
        portfolio=None,
        dropped=dropped,
    )


def normalize_snapshot(raw: Any, source: str = "") -> Snapshot:
    """Map a raw main-feed document (either generation) to a Snapshot.

    Raises SchemaEmpty when no known schema matches.
    """
    payload = resolve_snapshot_payload(raw, source)
    if isinstance(payload, CurrentSnapshotPayload):
        snap = _current_to_snapshot(payload, source)
    else:
        snap = _legacy_to_snapshot(payload, source)
    log.debug(f"Normalized {source or 'snapshot'}: {len(snap.opportunities)} records",
              extra={"date": snap.scan_date, "count": len(snap.opportunities)})
    return snap


def normalize_index(raw: Any) -> SnapshotIndex:
    if not isinstance(raw, dict):
        return SnapshotIndex()
    return SnapshotIndex.model_validate({"dates": raw.get("dates")})


# =========================================================================
# D. Deep dive
# =========================================================================
def _verdict(v: Any) -> Verdict:
    v = str(v or "").strip().lower()
    if v == "pass":
        return Verdict.PASS
    if v == "fail":
        return Verdict.FAIL
    if v == "insufficient_data":
        return Verdict.INSUFFICIENT_DATA
    return Verdict.PARTIAL


def _framework(title: str, raw: Any, criteria: list) -> Optional[Framework]:
    if not isinstance(raw, dict):
        return None
    rows = []
    for key, label in criteria:
        item = raw.get(key)
        if not isinstance(item, dict):
            continue
        rows.append(Criterion(key=key, label=label,
                              verdict=_verdict(item.get("verdict")),
                              detail=item.get("detail")))
    return Framework.model_validate({"title": title, "score": raw.get("score"),
                                     "criteria": rows})


def _sub(model, raw: Any):
    if not isinstance(raw, dict):
        return None
    try:
        return model.model_validate(raw)
    except ValidationError:
        return None


def _rows(model, raw: Any) -> list:
    out = []
    for item in raw if isinstance(raw, list) else []:
        row = _sub(model, item)
        if row is not None:
            out.append(row)
    return out


def _analysis(a: Any, path: str) -> DeepDiveAnalysis:
    if not isinstance(a, dict):
        raise TypeError(f"expected object, got {type(a).__name__}")
    if path == "value":
        frameworks = [_framework("Value Framework", a.get("framework"), VALUE_CRITERIA)]
    elif path == "growth":
        frameworks = [_framework("Growth Framework", a.get("framework"), GROWTH_CRITERIA)]
    else:
        frameworks = [
            _framework("Value Framework", a.get("value_framework"), LEGACY_VALUE_CRITERIA),
            _framework("Growth Framework", a.get("growth_framework"), LEGACY_GROWTH_CRITERIA),
        ]

    verified = a.get("catalysts_verified") or []
    general = a.get("catalysts_general") or []
    if not verified and not general:
        general = a.get("catalysts") or []

    return DeepDiveAnalysis.model_validate({
        "ticker": a.get("ticker"),
        "name": a.get("name"),
        "price": a.get("price"),
        "recommendation": (a.get("opus_recommendation") or a.get("recommendation") or "").upper() or None,
        "path": path,
        "frameworks": [f for f in frameworks if f is not None],
        "ai_exposure": _sub(AIExposure, a.get("ai_exposure")),
        "deal_radar": _sub(DealRadar, a.get("deal_radar")),
        "financials": _sub(KeyFinancials, a.get("financials")),
        "catalysts_verified": verified,
        "catalysts_general": general,
        "downside_scenarios": _rows(DownsideScenario, a.get("downside_scenarios")),
        "ideal_entry": _sub(IdealEntry, a.get("ideal_entry")),
        "comparables": _rows(Comparable, a.get("comparables")),
        "analyst_take": a.get("analyst_take"),
    })


def normalize_deep_dive(raw: Any, source: str = "deep-dive.json") -> DeepDiveCollection:
    """Map either deep-dive generation to a DeepDiveCollection.

    Raises SchemaEmpty for the empty-data state.
    """
    payload = resolve_deep_dive_payload(raw, source)
    dropped = 0

    def _convert(entries: list, path: str) -> list:
        nonlocal dropped
        out = []
        for entry in entries:
            try:
                out.append(_analysis(entry, path))
            except (ValidationError, TypeError):
                dropped += 1
                log.warning(f"Dropped malformed deep-dive entry ({path})",
                            extra={"ticker": entry.get("ticker") if isinstance(entry, dict) else None})
        return out

    if isinstance(payload, TwoPathDeepDivePayload):
        return DeepDiveCollection(
            scan_date=payload.scan_date,
            schema_generation="two_path",
            value_picks=_convert(payload.value_picks, "value"),
            growth_picks=_convert(payload.growth_picks, "growth"),
            dropped=dropped,
        )
    assert isinstance(payload, LegacyDeepDivePayload)
    analyses = _convert(payload.analyses, "legacy")
    return DeepDiveCollection(
        scan_date=payload.scan_date,
        schema_generation="legacy",
        analyses=analyses,
        dropped=dropped,
    )
