"""Shared parsing and normalisation utilities for equipment-inventory spiders.

This module turns the raw strings a spider pulls out of a listing tile or a
detail page into the typed fields of an :class:`EquipmentItem`.  None of the
helpers here ever raise on unexpected input: a value that cannot be parsed
simply comes back empty so that the rest of the record survives.
"""

from __future__ import annotations

import re
from urllib.parse import urljoin

from equipment_inventory_scraper.items import (
    DetailFields,
    EquipmentItem,
    RawTile,
    Source,
)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(s: str | None) -> str:
    """Collapse runs of whitespace and strip the ends; ``None`` becomes ``""``."""
    if not s:
        return ""
    return _WHITESPACE_RE.sub(" ", s).strip()


def node_text(selector, css: str) -> str:
    """Return the whitespace-normalised text of the first *css* match under *selector*."""
    node = selector.css(css)
    if not node:
        return ""
    return clean_text(" ".join(node[0].css("*::text").getall()))


def absolute_url(base_url: str, href: str | None) -> str:
    """Resolve *href* against *base_url*.

    Handles site-relative (``/en-us/…``), page-relative and
    protocol-relative (``//cdn.example.com/…``) links.  Empty input gives
    an empty string rather than the base URL itself.
    """
    href = (href or "").strip()
    if not href:
        return ""
    return urljoin(base_url, href)


# ---------------------------------------------------------------------------
# Name / title parsing
# ---------------------------------------------------------------------------

# Catalog tiles are named "<year> <model> - <numeric id>", e.g.
# "2024 5095M - 431539".
_PRODUCT_NAME_RE = re.compile(r"^(\d{4})\s+(.+?)\s+-\s+(\d+)$")


def parse_product_name(name: str | None) -> tuple[str, str, str]:
    """Split a catalog product name into ``(year, model, product_id)``.

    When the name does not follow the usual pattern the whole name is
    returned as the model with an empty year and id.
    """
    name = clean_text(name)
    if not name:
        return "", "", ""
    match = _PRODUCT_NAME_RE.match(name)
    if match:
        return match.group(1), match.group(2), match.group(3)
    return "", name, ""


_YEAR_RE = re.compile(r"^\d{4}$")


def split_title(title: str | None) -> tuple[str, str, str]:
    """Split a marketplace title into ``(year, make, model)``.

    Titles look like ``"2025 JOHN DEERE 9RX 640"``.  Makes are assumed to
    be two words when the title has at least four words (``JOHN DEERE``,
    ``CASE IH``) and one word otherwise.
    """
    parts = clean_text(title).split(" ")
    if len(parts) < 3 or not _YEAR_RE.match(parts[0]):
        return "", "", ""
    if len(parts) >= 4:
        return parts[0], f"{parts[1]} {parts[2]}", " ".join(parts[3:])
    return parts[0], parts[1], " ".join(parts[2:])


# ---------------------------------------------------------------------------
# Pricing helpers
# ---------------------------------------------------------------------------

_PRICE_PREFIX_RE = re.compile(r"starting at|list price:", re.IGNORECASE)
_DOLLAR_AMOUNT_RE = re.compile(r"\$[\d,]+")


def clean_price(raw: str | None) -> str:
    """Strip promotional prefixes from a catalog price.

    ``"Starting at $96,977.25"`` becomes ``"$96,977.25"``.  The result is
    display text; it is not checked for being a well-formed number.
    """
    if not raw:
        return ""
    return clean_text(_PRICE_PREFIX_RE.sub("", raw))


def extract_price(raw: str | None) -> str:
    """Return the first ``$1,234`` amount in *raw*, or the cleaned text."""
    if not raw:
        return ""
    match = _DOLLAR_AMOUNT_RE.search(raw)
    return match.group(0) if match else clean_text(raw)


# ---------------------------------------------------------------------------
# Category / location helpers
# ---------------------------------------------------------------------------

_CATEGORY_RE = re.compile(r"/en-us/([^/]+)/")


def category_from_url(url: str | None) -> str:
    """Derive a category from a catalog URL path segment.

    ``/en-us/compact-utility-tractors/5095m/431539.html`` gives
    ``"compact utility tractors"``.
    """
    if not url:
        return ""
    match = _CATEGORY_RE.search(url)
    return match.group(1).replace("-", " ") if match else ""


_LOCATION_PREFIX_RE = re.compile(r"^\s*machine location:\s*", re.IGNORECASE)


def canonical_location(raw: str | None) -> str:
    """Reduce a free-text location to an uppercase store name.

    ``"Machine Location: Mccook, Nebraska 69001"`` gives ``"MCCOOK"``.
    Only the part before the first comma is kept.
    """
    text = clean_text(raw)
    if not text:
        return ""
    text = _LOCATION_PREFIX_RE.sub("", text)
    return text.split(",", 1)[0].strip().upper()


def _unique(values: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        value = clean_text(value)
        if value and value not in seen:
            seen.add(value)
            out.append(value)
    return out


# ---------------------------------------------------------------------------
# Detail pages
# ---------------------------------------------------------------------------

def parse_detail_fields(labels: dict[str, str]) -> DetailFields:
    """Pick location and hours out of a detail page's label → value map.

    Labels are matched loosely (``"Location"``, ``"Store Location:"``,
    ``"Hours"``, ``"Engine Hrs"``); when several labels match, the last one
    wins.
    """
    location = ""
    hours = ""
    for label, value in labels.items():
        label = label.strip().lower()
        if "location" in label:
            location = clean_text(value)
        elif "hour" in label or "hrs" in label:
            hours = clean_text(value)
    return DetailFields(location=location, hours=hours or None)


# ---------------------------------------------------------------------------
# Tile → record
# ---------------------------------------------------------------------------

def normalize_tile(tile: RawTile, source: Source, base_url: str = "") -> EquipmentItem:
    """Build an :class:`EquipmentItem` from a listing tile.

    Location and hours carry whatever the listing page showed (often
    nothing); :func:`apply_detail` fills them from the detail page later.
    """
    source = Source(source)
    item = EquipmentItem()
    item["source"] = source.value
    item["product_name"] = clean_text(tile.name)
    item["detail_url"] = absolute_url(base_url, tile.detail_url)
    item["image_url"] = absolute_url(base_url, tile.image_url)
    item["status_badges"] = _unique(tile.badges)
    item["location"] = canonical_location(tile.location)
    item["hours"] = clean_text(tile.hours) or None
    item["serial_number"] = clean_text(tile.serial_number) or None
    item["stock_number"] = clean_text(tile.stock_number) or None
    item["listing_id"] = clean_text(tile.listing_id) or None

    if source is Source.MARKETPLACE:
        year, make, model = split_title(tile.name)
        item["product_id"] = ""
        item["price"] = extract_price(tile.price)
        item["category"] = clean_text(tile.category)
    else:
        year, model, product_id = parse_product_name(tile.name)
        make = clean_text(tile.brand)
        item["product_id"] = product_id
        item["price"] = clean_price(tile.price)
        item["category"] = category_from_url(tile.detail_url)

    item["year"] = year
    item["make"] = make
    item["model"] = model
    return item


def apply_detail(item: EquipmentItem, detail: DetailFields) -> EquipmentItem:
    """Merge detail-page values into *item*.

    A non-empty detail value replaces the listing-page guess; an empty one
    leaves the existing value alone.
    """
    if detail.location:
        item["location"] = canonical_location(detail.location)
    if detail.hours:
        item["hours"] = clean_text(detail.hours)
    return item
