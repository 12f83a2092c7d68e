"""Per-location inventory aggregation.

Records are grouped by their canonical store location, counted per
source catalog and given a coarse inventory tier.  Aggregates are rebuilt
from scratch on every call.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from equipment_inventory_scraper.items import Source
from equipment_inventory_scraper.locations import LocationEntry
from equipment_inventory_scraper.matching import MatchResult

logger = logging.getLogger(__name__)


class Tier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class TierThresholds:
    """Count boundaries for :class:`Tier` classification.

    A count strictly above ``high`` is HIGH, strictly above ``medium`` is
    MEDIUM, anything else is LOW.
    """

    high: int
    medium: int

    def __post_init__(self):
        if self.medium > self.high:
            raise ValueError(
                f"medium threshold ({self.medium}) must not exceed high threshold ({self.high})"
            )

    def classify(self, count: int) -> Tier:
        if count > self.high:
            return Tier.HIGH
        if count > self.medium:
            return Tier.MEDIUM
        return Tier.LOW


# Store heat map: all harvested records.
HEATMAP_THRESHOLDS = TierThresholds(high=50, medium=20)
# Reconciled, de-duplicated inventory view.
RECONCILIATION_THRESHOLDS = TierThresholds(high=150, medium=100)


@dataclass
class LocationStat:
    name: str
    entry: LocationEntry
    total: int = 0
    counts: dict[str, int] = field(
        default_factory=lambda: {source.value: 0 for source in Source}
    )
    tier: Tier = Tier.LOW

    def count_for(self, source: Source | str) -> int:
        return self.counts.get(Source(source).value, 0)


def aggregate_by_location(
    records: Iterable[Mapping[str, Any]],
    location_table: Mapping[str, LocationEntry],
    *,
    thresholds: TierThresholds,
) -> dict[str, LocationStat]:
    """Group *records* by location.

    Only records whose ``location`` is a key of *location_table* are
    counted; the rest are skipped.  The returned mapping is ordered by
    descending total, then by name.
    """
    stats: dict[str, LocationStat] = {}
    skipped = 0

    for record in records:
        location = (record.get("location") or "").strip().upper()
        entry = location_table.get(location) if location else None
        if entry is None:
            skipped += 1
            continue

        stat = stats.get(location)
        if stat is None:
            stat = stats[location] = LocationStat(name=location, entry=entry)
        source = Source(record.get("source")).value
        stat.total += 1
        stat.counts[source] = stat.counts.get(source, 0) + 1

    for stat in stats.values():
        stat.tier = thresholds.classify(stat.total)

    if skipped:
        logger.debug("%d records had no known location and were not aggregated", skipped)

    return dict(sorted(stats.items(), key=lambda kv: (-kv[1].total, kv[0])))


@dataclass
class InventorySummary:
    """Headline numbers for the report."""

    total: int = 0
    source_counts: dict[str, int] = field(default_factory=dict)
    located: int = 0
    location_count: int = 0
    duplicate_count: int = 0
    overlap_pct: float = 0

    @property
    def unlocated(self) -> int:
        return self.total - self.located


def summarize(
    records_by_source: Mapping[str, list[Mapping[str, Any]]],
    stats: Mapping[str, LocationStat],
    match: MatchResult | None = None,
) -> InventorySummary:
    """Build an :class:`InventorySummary` from grouped records and their aggregates."""
    source_counts = {
        Source(source).value: len(records)
        for source, records in records_by_source.items()
    }
    summary = InventorySummary(
        total=sum(source_counts.values()),
        source_counts=source_counts,
        located=sum(stat.total for stat in stats.values()),
        location_count=len(stats),
    )
    if match is not None:
        summary.duplicate_count = match.duplicate_count
        summary.overlap_pct = match.overlap_pct
    return summary
