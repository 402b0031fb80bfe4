#!/usr/bin/env python3
"""
Typed schemas for the Bull Scouter viewer.

Provides Pydantic models for every payload the viewer reads and for the
canonical in-memory records the rest of the pipeline works on.  These
schemas are documentation-as-code: they define which fields are required
(ticker, score, confidence), which are optional, and what "absent" looks
like (always None, never a fabricated zero).

Three groups live here:
  - Canonical records (frozen): Opportunity, Snapshot, PortfolioState,
    DeepDiveAnalysis ...
  - Raw payload variants, one per schema generation, resolved once at
    ingestion by normalizer.py.
  - ViewerConfig, the validated contents of config.yaml.
"""

import math
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (BaseModel, BeforeValidator, ConfigDict, Field,
                      ValidationError, WrapValidator, field_validator,
                      model_validator)


# =========================================================================
# Lenient field helpers
# =========================================================================

def _float_or_none(v: Any) -> Optional[float]:
    """Coerce numeric-looking values; anything else becomes None."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return None if math.isnan(v) else float(v)
    if isinstance(v, str):
        try:
            f = float(v.strip().rstrip("%"))
        except ValueError:
            return None
        return None if math.isnan(f) else f
    return None


def _int_or_none(v: Any) -> Optional[int]:
    f = _float_or_none(v)
    return None if f is None else int(f)


def _str_or_none(v: Any) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, (str, int, float)) and not isinstance(v, bool):
        s = str(v).strip()
        return s or None
    return None


def _absent_if_invalid(value: Any, handler):
    """Nested sub-records are optional: a malformed one is treated as absent."""
    if value is None:
        return None
    try:
        return handler(value)
    except ValidationError:
        return None


def _list_or_empty(v: Any) -> list:
    return v if isinstance(v, list) else []


def _str_list(v: Any) -> list:
    if not isinstance(v, list):
        return []
    return [s for s in (_str_or_none(x) for x in v) if s is not None]


OptFloat = Annotated[Optional[float], BeforeValidator(_float_or_none)]
OptInt = Annotated[Optional[int], BeforeValidator(_int_or_none)]
OptStr = Annotated[Optional[str], BeforeValidator(_str_or_none)]
StrList = Annotated[list[str], BeforeValidator(_str_list)]


def _required_ticker(v: Any) -> str:
    s = _str_or_none(v)
    if s is None:
        raise ValueError("ticker is required")
    return s.upper()


def _required_number(v: Any) -> float:
    f = _float_or_none(v)
    if f is None:
        raise ValueError("numeric value is required")
    return f


Ticker = Annotated[str, BeforeValidator(_required_ticker)]
Number = Annotated[float, BeforeValidator(_required_number)]


class _Record(BaseModel):
    """Base for canonical records: read-only once built."""
    model_config = ConfigDict(frozen=True, extra="ignore")


def _lenient(model):
    """Annotated type for an optional sub-record that may be malformed."""
    return Annotated[Optional[model], WrapValidator(_absent_if_invalid)]


# =========================================================================
# Opportunity (canonical)
# =========================================================================

class Recommendation(str, Enum):
    BUY = "BUY"
    WATCHLIST = "WATCHLIST"
    MOMENTUM = "MOMENTUM"


def _recommendation(v: Any) -> Any:
    if isinstance(v, str):
        return v.strip().upper()
    return v


class CatalystEvent(_Record):
    type: OptStr = None
    date: OptStr = None
    direction: OptStr = None   # bull / bear / None
    summary: OptStr = None


def _events(v: Any) -> list:
    out = []
    for item in _list_or_empty(v):
        if isinstance(item, dict):
            try:
                out.append(CatalystEvent.model_validate(item))
            except ValidationError:
                continue
    return out


class Aggregate(_Record):
    avg_score: OptFloat = None
    peak_score: OptFloat = None
    buy_pct: OptFloat = None
    price_change_pct: OptFloat = None


class Fundamentals(_Record):
    pe_ratio: OptFloat = None
    forward_pe: OptFloat = None
    revenue_growth: OptFloat = None
    gross_margin: OptFloat = None
    profit_margin: OptFloat = None
    debt_to_equity: OptFloat = None


class InsiderActivity(_Record):
    buys: OptInt = None
    sells: OptInt = None
    net_value: OptFloat = None
    summary: OptStr = None


class CongressActivity(_Record):
    buys: OptInt = None
    sells: OptInt = None
    last_trade_date: OptStr = None
    summary: OptStr = None


class AnalystDistribution(_Record):
    strong_buy: OptInt = None
    buy: OptInt = None
    hold: OptInt = None
    sell: OptInt = None
    strong_sell: OptInt = None
    target_price: OptFloat = None


class TrajectoryMatch(_Record):
    pattern: OptStr = None
    similarity: OptFloat = None
    outcome: OptStr = None


class EntryTiming(_Record):
    score: OptFloat = None
    label: OptStr = None
    detail: OptStr = None


class ChecklistItem(_Record):
    label: str
    passed: bool = False


def _checklist_items(v: Any) -> list:
    out = []
    for item in _list_or_empty(v):
        if isinstance(item, dict):
            try:
                out.append(ChecklistItem.model_validate(item))
            except ValidationError:
                continue
    return out


class Checklist(_Record):
    passed: OptInt = None
    total: OptInt = None
    items: Annotated[list[ChecklistItem], BeforeValidator(_checklist_items)] = []


def _breakdown(v: Any) -> dict:
    if not isinstance(v, dict):
        return {}
    out = {}
    for k, val in v.items():
        f = _float_or_none(val)
        if f is not None:
            out[str(k)] = f
    return out


def _score_series(v: Any) -> list:
    return [f for f in (_float_or_none(x) for x in _list_or_empty(v)) if f is not None]


class Opportunity(_Record):
    """One ticker in one scan, in the schema-independent canonical shape."""
    ticker: Ticker
    score: Number
    confidence: Number
    recommendation: Annotated[Recommendation, BeforeValidator(_recommendation)]
    profile: OptStr = None
    tier: OptInt = None
    price: OptFloat = None
    market_cap_fmt: OptStr = None
    down_from_high_pct: OptFloat = None
    short_interest_pct: OptFloat = None
    squeeze_potential: bool = False
    catalyst_type: OptStr = None
    catalyst_date: OptStr = None
    days_to_catalyst: OptInt = None
    breakdown: Annotated[dict[str, float], BeforeValidator(_breakdown)] = {}
    score_trend: Annotated[list[float], BeforeValidator(_score_series)] = []
    scans_tracked: OptInt = None
    first_detected: OptStr = None
    aggregate: _lenient(Aggregate) = None
    events: Annotated[list[CatalystEvent], BeforeValidator(_events)] = []
    hysteresis_note: OptStr = None

    # Optional sub-records; each is independently present or absent
    fundamentals: _lenient(Fundamentals) = None
    insider: _lenient(InsiderActivity) = None
    congress: _lenient(CongressActivity) = None
    analyst_distribution: _lenient(AnalystDistribution) = None
    trajectory_match: _lenient(TrajectoryMatch) = None
    entry_timing: _lenient(EntryTiming) = None
    checklist: _lenient(Checklist) = None
    ai_thesis: OptStr = None
    satellite_score: OptFloat = None

    @field_validator("squeeze_potential", mode="before")
    @classmethod
    def _truthy(cls, v: Any) -> bool:
        return bool(v) if isinstance(v, (bool, int)) else False


# =========================================================================
# Snapshot / Index / Portfolio (canonical)
# =========================================================================

class SnapshotStats(_Record):
    total_tickers: OptInt = None
    buy_signals: OptInt = None
    watchlist_signals: OptInt = None
    momentum_signals: OptInt = None
    tier1_qualified: OptInt = None
    tier2_qualified: OptInt = None
    growth_qualified: OptInt = None
    accel_qualified: OptInt = None


class PositionStatus(str, Enum):
    OPEN = "open"
    PENDING = "pending"
    CLOSED = "closed"


class PortfolioPosition(_Record):
    ticker: Ticker
    status: Annotated[PositionStatus, BeforeValidator(
        lambda v: v.strip().lower() if isinstance(v, str) else v)]
    entry_price: OptFloat = None
    current_price: OptFloat = None
    return_pct: OptFloat = None
    pnl: OptFloat = None
    entry_score: OptFloat = None
    days_held: OptInt = None
    peak_return_pct: OptFloat = None
    trough_return_pct: OptFloat = None


class PortfolioSummary(_Record):
    total_pnl: OptFloat = None
    win_rate: OptFloat = None
    open_positions: OptInt = None


class PortfolioState(_Record):
    positions: list[PortfolioPosition] = []
    summary: _lenient(PortfolioSummary) = None


class Snapshot(_Record):
    scan_date: OptStr = None
    scan_time: OptStr = None
    version: OptStr = None
    schema_generation: str = "current"
    stats: SnapshotStats = SnapshotStats()
    opportunities: list[Opportunity] = []
    portfolio: Optional[PortfolioState] = None
    dropped: int = 0

    def by_category(self, category: Recommendation) -> list[Opportunity]:
        return [o for o in self.opportunities if o.recommendation == category]

    def find(self, ticker: str) -> Optional[Opportunity]:
        ticker = ticker.upper()
        for o in self.opportunities:
            if o.ticker == ticker:
                return o
        return None


class SnapshotIndex(_Record):
    dates: StrList = []


class TickerSighting(_Record):
    """One date on which a ticker appeared in a scan (ticker search row)."""
    date: str
    score: float
    recommendation: Recommendation
    price: OptFloat = None


# =========================================================================
# Deep dive (canonical)
# =========================================================================

class Verdict(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    PARTIAL = "partial"
    INSUFFICIENT_DATA = "insufficient_data"


class Criterion(_Record):
    key: str
    label: str
    verdict: Verdict = Verdict.PARTIAL
    detail: OptStr = None


class Framework(_Record):
    title: str
    score: OptFloat = None
    max_score: int = 6
    criteria: list[Criterion] = []


class AIExposure(_Record):
    verdict: OptStr = None     # tailwind / neutral / threat
    detail: OptStr = None


class DealRadar(_Record):
    capex_exposure: OptStr = None
    options_signal: OptStr = None
    assessment: OptStr = None

    @property
    def has_signal(self) -> bool:
        return bool(self.capex_exposure or self.options_signal)


class KeyFinancials(_Record):
    range_52w: OptStr = None
    forward_pe: OptFloat = None
    market_cap: OptStr = None
    revenue_growth: OptStr = None
    gross_margins: OptStr = None
    free_cashflow: OptStr = None


class DownsideScenario(_Record):
    price: OptFloat = None
    pe_at_level: OptFloat = None
    scenario: OptStr = None


class IdealEntry(_Record):
    price: OptFloat = None
    reasoning: OptStr = None


class Comparable(_Record):
    ticker: OptStr = None
    forward_pe: OptFloat = None
    growth: OptStr = None
    note: OptStr = None


class DeepDiveAnalysis(_Record):
    ticker: Ticker
    name: OptStr = None
    price: OptFloat = None
    recommendation: OptStr = None
    path: Literal["value", "growth", "legacy"] = "legacy"
    frameworks: list[Framework] = []
    ai_exposure: Optional[AIExposure] = None
    deal_radar: Optional[DealRadar] = None
    financials: Optional[KeyFinancials] = None
    catalysts_verified: StrList = []
    catalysts_general: StrList = []
    downside_scenarios: list[DownsideScenario] = []
    ideal_entry: Optional[IdealEntry] = None
    comparables: list[Comparable] = []
    analyst_take: OptStr = None

    @property
    def primary_framework(self) -> Optional[Framework]:
        return self.frameworks[0] if self.frameworks else None


class DeepDiveCollection(_Record):
    scan_date: OptStr = None
    schema_generation: Literal["two_path", "legacy"] = "two_path"
    value_picks: list[DeepDiveAnalysis] = []
    growth_picks: list[DeepDiveAnalysis] = []
    analyses: list[DeepDiveAnalysis] = []
    dropped: int = 0

    def all_picks(self) -> list[DeepDiveAnalysis]:
        if self.schema_generation == "two_path":
            return list(self.value_picks) + list(self.growth_picks)
        return list(self.analyses)


# =========================================================================
# Raw payload variants (one per schema generation)
# =========================================================================

class _RawPayload(BaseModel):
    model_config = ConfigDict(extra="allow")


class CurrentSnapshotPayload(_RawPayload):
    """Current feed: {scan_date, scan_time, version, stats, opportunities, portfolio}."""
    schema_kind: Literal["current"] = "current"
    scan_date: OptStr = None
    scan_time: OptStr = None
    version: OptStr = None
    stats: Annotated[dict, BeforeValidator(lambda v: v if isinstance(v, dict) else {})] = {}
    opportunities: list[Any] = []
    portfolio: Optional[Any] = None


class LegacySnapshotPayload(_RawPayload):
    """Legacy feed: {date, time, version, summary, results}."""
    schema_kind: Literal["legacy"] = "legacy"
    date: OptStr = None
    time: OptStr = None
    version: OptStr = None
    summary: Annotated[dict, BeforeValidator(lambda v: v if isinstance(v, dict) else {})] = {}
    results: list[Any] = []


class LegacyOpportunityRecord(_RawPayload):
    """One entry of a legacy `results` list."""
    symbol: Ticker
    score: Number
    confidence: Number
    signal: str
    profile: OptStr = None
    tier: OptInt = None
    price: OptFloat = None
    market_cap: OptStr = None
    short_interest: OptFloat = None
    catalyst: OptStr = None
    catalyst_date: OptStr = None
    days_until_catalyst: OptInt = None
    breakdown: Any = None
    score_history: Any = None
    scan_count: OptInt = None
    first_seen: OptStr = None
    events: Any = None

    def to_canonical_dict(self) -> dict:
        return {
            "ticker": self.symbol,
            "score": self.score,
            "confidence": self.confidence,
            "recommendation": self.signal,
            "profile": self.profile,
            "tier": self.tier,
            "price": self.price,
            "market_cap_fmt": self.market_cap,
            "short_interest_pct": self.short_interest,
            "catalyst_type": self.catalyst,
            "catalyst_date": self.catalyst_date,
            "days_to_catalyst": self.days_until_catalyst,
            "breakdown": self.breakdown,
            "score_trend": self.score_history,
            "scans_tracked": self.scan_count,
            "first_detected": self.first_seen,
            "events": self.events,
        }


class TwoPathDeepDivePayload(_RawPayload):
    schema_kind: Literal["two_path"] = "two_path"
    scan_date: OptStr = None
    value_picks: Annotated[list, BeforeValidator(_list_or_empty)] = []
    growth_picks: Annotated[list, BeforeValidator(_list_or_empty)] = []


class LegacyDeepDivePayload(_RawPayload):
    schema_kind: Literal["legacy"] = "legacy"
    scan_date: OptStr = None
    analyses: Annotated[list, BeforeValidator(_list_or_empty)] = []


SnapshotPayload = Annotated[
    Union[CurrentSnapshotPayload, LegacySnapshotPayload],
    Field(discriminator="schema_kind"),
]
DeepDivePayload = Annotated[
    Union[TwoPathDeepDivePayload, LegacyDeepDivePayload],
    Field(discriminator="schema_kind"),
]


# =========================================================================
# ViewerConfig - top-level config schema
# =========================================================================

class Bands(BaseModel):
    """Three-bucket thresholds: favorable / caution / concern."""
    favorable: float
    caution: float
    higher_is_better: bool = True

    @model_validator(mode="after")
    def ordered(self) -> "Bands":
        if self.higher_is_better and self.favorable < self.caution:
            raise ValueError(
                f"favorable ({self.favorable}) must be >= caution ({self.caution})")
        if not self.higher_is_better and self.favorable > self.caution:
            raise ValueError(
                f"favorable ({self.favorable}) must be <= caution ({self.caution})")
        return self


class ViewerConfig(BaseModel):
    """Schema for validated config.yaml contents."""

    class DataConfig(BaseModel):
        base_url: str = "http://localhost:8000/data"
        data_dir: Optional[str] = None
        history_days: int = Field(14, ge=1, le=365)

    class ThresholdConfig(BaseModel):
        confidence: Bands = Bands(favorable=70, caution=50)
        pe_ratio: Bands = Bands(favorable=20, caution=35, higher_is_better=False)
        entry_timing: Bands = Bands(favorable=70, caution=50)
        framework_score: Bands = Bands(favorable=5, caution=3)
        satellite_min: float = Field(50, ge=0, le=100)

    class DisplayConfig(BaseModel):
        max_events: int = Field(3, ge=0)
        trend_points: int = Field(5, ge=2)
        sparkline_width: int = 80
        sparkline_height: int = 30

    class OutputConfig(BaseModel):
        directory: str = "site"
        dashboard_file: str = "index.html"
        deep_dive_file: str = "deep-dive.html"
        deep_dive_text_file: str = "deep-dive.txt"

    class LoggingConfig(BaseModel):
        level: str = "INFO"
        json_log: Optional[str] = "viewer.log"

        @field_validator("level")
        @classmethod
        def known_level(cls, v: str) -> str:
            v = v.upper()
            if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
                raise ValueError(f"Unknown log level: {v}")
            return v

    data: DataConfig = DataConfig()
    thresholds: ThresholdConfig = ThresholdConfig()
    display: DisplayConfig = DisplayConfig()
    output: OutputConfig = OutputConfig()
    logging: LoggingConfig = LoggingConfig()
