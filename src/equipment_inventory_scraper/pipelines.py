"""Item pipelines for the equipment inventory scraper."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from equipment_inventory_scraper.items import Source

logger = logging.getLogger(__name__)


class CleanTextPipeline:
    """Strip whitespace and normalise text fields."""

    TEXT_FIELDS = {
        "product_name",
        "product_id",
        "listing_id",
        "serial_number",
        "stock_number",
        "year",
        "make",
        "model",
        "category",
        "price",
        "hours",
        "location",
    }

    def process_item(self, item):
        for field in self.TEXT_FIELDS:
            value = item.get(field)
            if isinstance(value, str):
                # collapse whitespace and strip
                item[field] = re.sub(r"\s+", " ", value).strip()

        location = item.get("location")
        if isinstance(location, str):
            item["location"] = location.upper()

        badges = item.get("status_badges") or []
        item["status_badges"] = list(dict.fromkeys(b for b in badges if b))

        item["source"] = Source(item.get("source")).value
        return item


class TimestampPipeline:
    """Stamp each item with the UTC time it was scraped."""

    def process_item(self, item):
        item.setdefault("scraped_at", datetime.now(timezone.utc).isoformat(timespec="seconds"))
        return item


class JsonReportPipeline:
    """Collect items and write them to a JSON file once every spider has closed.

    The file holds one list per source catalog::

        {"new": [...], "used": [...], "marketplace": [...]}

    If a spider never gets to close (it failed to start), the file is not
    written automatically; call :meth:`flush_pending` after the crawler
    process stops to write what the other spiders collected.
    """

    # Class-level shared state so items from multiple spiders (multi-source
    # mode) are accumulated into a single file rather than overwriting
    # each other.
    _records: list[dict] = []
    _spiders_expected: int = 1
    _spiders_done: int = 0
    _output_path: str = "inventory.json"

    # Item count of the last written run; ``0`` means nothing was scraped.
    last_run_count: int | None = None

    def __init__(self, output_path: str = "inventory.json"):
        JsonReportPipeline._output_path = output_path

    @classmethod
    def from_crawler(cls, crawler):
        output = crawler.settings.get("JSON_REPORT_PATH", "inventory.json")
        cls._spiders_expected = crawler.settings.getint("TOTAL_SPIDER_COUNT", 1)
        return cls(output_path=output)

    def process_item(self, item):
        JsonReportPipeline._records.append(dict(item))
        return item

    def close_spider(self, spider):
        JsonReportPipeline._spiders_done += 1
        if JsonReportPipeline._spiders_done < JsonReportPipeline._spiders_expected:
            logger.info(
                "Spider '%s' finished (%d items so far, %d/%d spiders done).",
                spider.name,
                len(JsonReportPipeline._records),
                JsonReportPipeline._spiders_done,
                JsonReportPipeline._spiders_expected,
            )
            return
        JsonReportPipeline.flush()

    @classmethod
    def flush_pending(cls) -> None:
        """Write items held back for spiders that never closed."""
        if cls._spiders_done:
            logger.warning(
                "%d of %d spiders finished; writing their items anyway.",
                cls._spiders_done, cls._spiders_expected,
            )
            cls.flush()

    @classmethod
    def flush(cls) -> None:
        items = cls._records
        # Reset class-level state for a clean slate if the process is reused.
        cls._records = []
        cls._spiders_done = 0
        cls.last_run_count = len(items)

        if not items:
            logger.error(
                "No items scraped — skipping JSON output. "
                "The site structure may have changed."
            )
            return

        grouped = group_by_source(items)
        Path(cls._output_path).write_text(
            json.dumps(grouped, indent=2, sort_keys=True, default=str),
            encoding="utf-8",
        )
        logger.info(
            "JSON report written to %s (%s)",
            cls._output_path,
            ", ".join(f"{source}: {len(records)}" for source, records in grouped.items()),
        )


def group_by_source(items: list[dict]) -> dict[str, list[dict]]:
    """Group items by source tag, each group in a stable order.

    Every known source gets a key, even when it has no items.
    """
    grouped: dict[str, list[dict]] = {source.value: [] for source in Source}
    for item in items:
        grouped[Source(item["source"]).value].append(item)
    for records in grouped.values():
        # Sort for consistent ordering across runs
        records.sort(key=lambda r: (
            r.get("product_id") or r.get("listing_id") or "",
            r.get("detail_url") or "",
        ))
    return grouped
