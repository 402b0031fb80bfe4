#!/usr/bin/env python3
"""
Filter/Sort Engine for the Bull Scouter viewer.
================================================
Pure functions over an already-normalized list of Opportunity records.
Nothing here mutates its input; every call returns a fresh list.

Filters (AND-combined)
    category   - "all" or one Recommendation
    new_only   - records seen in at most one scan

Sort keys
    score       descending, stable on input order (default)
    confidence  descending
    satellite   keeps satellite_score >= threshold, then descending
    insider     net insider contribution descending, ties by score
    entry       entry-timing score descending, missing = 0
    catalyst    days-to-catalyst ascending; undated last, by score

Only `satellite` narrows the list; the other keys preserve cardinality.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from schemas import Opportunity, Recommendation

DEFAULT_SATELLITE_MIN = 50.0
ALL = "all"


class SortKey(str, Enum):
    SCORE = "score"
    CONFIDENCE = "confidence"
    SATELLITE = "satellite"
    INSIDER = "insider"
    ENTRY = "entry"
    CATALYST = "catalyst"


@dataclass(frozen=True)
class ViewFilter:
    category: str = ALL
    new_only: bool = False

    def __post_init__(self):
        if self.category != ALL:
            Recommendation(self.category.upper())

    def matches(self, opp: Opportunity) -> bool:
        if self.category != ALL and opp.recommendation != Recommendation(self.category.upper()):
            return False
        if self.new_only and not is_new(opp):
            return False
        return True


def is_new(opp: Opportunity) -> bool:
    """Seen in at most one scan.  No tracking count means no prior sightings."""
    return opp.scans_tracked is None or opp.scans_tracked <= 1


def insider_net(opp: Opportunity) -> float:
    """Net of every insider-related breakdown contribution (buys minus sells)."""
    return sum(v for k, v in opp.breakdown.items() if "insider" in k.lower())


def entry_score(opp: Opportunity) -> float:
    if opp.entry_timing is None or opp.entry_timing.score is None:
        return 0.0
    return opp.entry_timing.score


def apply_filter(records: Iterable[Opportunity], view_filter: ViewFilter) -> list[Opportunity]:
    return [o for o in records if view_filter.matches(o)]


def sort_records(records: Iterable[Opportunity], key: SortKey = SortKey.SCORE,
                 satellite_min: float = DEFAULT_SATELLITE_MIN) -> list[Opportunity]:
    records = list(records)
    key = SortKey(key)

    if key is SortKey.SCORE:
        return sorted(records, key=lambda o: -o.score)
    if key is SortKey.CONFIDENCE:
        return sorted(records, key=lambda o: -o.confidence)
    if key is SortKey.SATELLITE:
        eligible = [o for o in records
                    if o.satellite_score is not None and o.satellite_score >= satellite_min]
        return sorted(eligible, key=lambda o: -o.satellite_score)
    if key is SortKey.INSIDER:
        return sorted(records, key=lambda o: (-insider_net(o), -o.score))
    if key is SortKey.ENTRY:
        return sorted(records, key=lambda o: -entry_score(o))
    # CATALYST: dated records first (soonest first), then undated by score
    dated = [o for o in records if o.days_to_catalyst is not None]
    undated = [o for o in records if o.days_to_catalyst is None]
    return (sorted(dated, key=lambda o: o.days_to_catalyst)
            + sorted(undated, key=lambda o: -o.score))


def apply_view(records: Iterable[Opportunity], view_filter: Optional[ViewFilter] = None,
               key: SortKey = SortKey.SCORE,
               satellite_min: float = DEFAULT_SATELLITE_MIN) -> list[Opportunity]:
    """Filter then sort; the derived view handed to the renderer."""
    filtered = apply_filter(records, view_filter or ViewFilter())
    return sort_records(filtered, key, satellite_min)
