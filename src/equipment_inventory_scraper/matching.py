"""Cross-source duplicate detection.

Two records from different catalogs are treated as the same physical
machine when their match keys collide.  A match key is::

    year|MAKE|MODEL|LOCATION

after normalisation.  A record missing any of the four parts has no key
and can never match, which keeps records with sparse data from piling up
on the same empty key.

The check is one-sided: the first set is indexed by key and each record
of the second set is looked up once.  Several first-set records sharing a
key still count as a single hit per second-set record.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from equipment_inventory_scraper.parsing_helpers import canonical_location, clean_text

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]

_MAKE_ALIASES = {
    "DEERE": "JOHN DEERE",
    "JD": "JOHN DEERE",
    "CASEIH": "CASE IH",
    "CASE-IH": "CASE IH",
}


def normalize_make(make: str | None) -> str:
    upper = clean_text(make).upper()
    return _MAKE_ALIASES.get(upper, upper)


def normalize_model(model: str | None) -> str:
    return clean_text(model).upper()


def match_key(record: Record) -> str | None:
    """Return the composite match key for *record*, or ``None``.

    ``None`` is returned as soon as any component is empty.
    """
    parts = (
        clean_text(str(record.get("year") or "")),
        normalize_make(record.get("make")),
        normalize_model(record.get("model")),
        canonical_location(record.get("location")),
    )
    if not all(parts):
        return None
    return "|".join(parts)


@dataclass
class MatchResult:
    """Outcome of matching set B against set A."""

    size_a: int = 0
    size_b: int = 0
    duplicate_count: int = 0
    unique_a: int = 0
    unique_b: int = 0
    duplicates: list[tuple[Record, Record]] = field(default_factory=list)

    @property
    def overlap_pct(self) -> float:
        """Share of set B also present in set A, as a percentage."""
        if not self.size_b:
            return 0
        return self.duplicate_count / self.size_b * 100


def build_key_index(records: Iterable[Record]) -> dict[str, Record]:
    """Map match key → record, skipping records without a key.

    When several records share a key, the last one is kept.
    """
    index: dict[str, Record] = {}
    for record in records:
        key = match_key(record)
        if key is not None:
            index[key] = record
    return index


def match_sources(set_a: Sequence[Record], set_b: Sequence[Record]) -> MatchResult:
    """Count records of *set_b* that also appear in *set_a*.

    Neither input is modified.  ``unique_a`` counts set-A records whose key
    no set-B record hit; ``unique_b`` counts set-B records with no hit.
    """
    index = build_key_index(set_a)
    result = MatchResult(size_a=len(set_a), size_b=len(set_b))
    hit_keys: set[str] = set()

    for record in set_b:
        key = match_key(record)
        if key is None:
            continue
        counterpart = index.get(key)
        if counterpart is None:
            continue
        hit_keys.add(key)
        result.duplicates.append((counterpart, record))

    result.duplicate_count = len(result.duplicates)
    result.unique_b = result.size_b - result.duplicate_count
    result.unique_a = sum(1 for r in set_a if match_key(r) not in hit_keys)

    logger.info(
        "Matched %d of %d records against %d (%.1f%% overlap)",
        result.duplicate_count, result.size_b, result.size_a, result.overlap_pct,
    )
    return result
