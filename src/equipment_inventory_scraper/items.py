"""Scrapy items and record types for equipment inventory data."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

import scrapy


class Source(str, Enum):
    """Catalog a record was harvested from.

    Set once by the spider that produced the record; downstream code
    never guesses it from file, sheet or URL names.
    """

    NEW = "new"
    USED = "used"
    MARKETPLACE = "marketplace"

    @property
    def label(self) -> str:
        return _SOURCE_LABELS[self]


_SOURCE_LABELS = {
    Source.NEW: "New Equipment",
    Source.USED: "Used Equipment",
    Source.MARKETPLACE: "Marketplace",
}


@dataclass
class RawTile:
    """One listing entry as it appears on a catalog page, before cleaning."""

    name: str = ""
    brand: str = ""
    price: str = ""
    badges: list[str] = field(default_factory=list)
    detail_url: str = ""
    image_url: str = ""
    category: str = ""
    location: str = ""
    hours: str = ""
    serial_number: str = ""
    stock_number: str = ""
    listing_id: str = ""


class DetailFields(NamedTuple):
    """Enrichment values read from an item's detail page.

    The default instance doubles as the "unknown" result returned when
    the detail page could not be fetched or parsed.
    """

    location: str = ""
    hours: str | None = None


class EquipmentItem(scrapy.Item):
    """A single equipment listing from one catalog."""

    # Provenance
    source = scrapy.Field()         # Source value
    detail_url = scrapy.Field()
    image_url = scrapy.Field()

    # Identifiers
    product_id = scrapy.Field()     # numeric id from "<year> <model> - <id>"
    listing_id = scrapy.Field()     # marketplace listing id
    serial_number = scrapy.Field()
    stock_number = scrapy.Field()

    # Equipment info
    product_name = scrapy.Field()   # name as displayed on the tile
    year = scrapy.Field()
    make = scrapy.Field()
    model = scrapy.Field()
    category = scrapy.Field()
    hours = scrapy.Field()

    # Pricing & status
    price = scrapy.Field()          # display text, e.g. "$96,977.25"
    status_badges = scrapy.Field()  # ordered, de-duplicated list

    # Location (canonical uppercase store name)
    location = scrapy.Field()

    # Metadata
    scraped_at = scrapy.Field()
