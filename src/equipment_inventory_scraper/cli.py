"""CLI entry-point for equipment-inventory-scraper.

Designed for use with ``uvx``::

    uvx equipment-inventory-scraper crawl akrs --source new \
        --url "https://www.akrs.com/en-us/new-equipment-in-stock"

Or scrape every source listed in a config file::

    uvx equipment-inventory-scraper crawl --config sources.toml

Then build the per-location report::

    uvx equipment-inventory-scraper report inventory.json -o inventory.html
"""

from __future__ import annotations

import os
import sys
import tomllib
from pathlib import Path

import click

from equipment_inventory_scraper.items import Source

# Exit status when a crawl finishes without a single record.
EXIT_NO_RECORDS = 2


@click.group()
def main():
    """Scrape equipment dealer catalogs and report inventory by store location."""


def _project_settings():
    from scrapy.utils.project import get_project_settings

    os.environ.setdefault("SCRAPY_SETTINGS_MODULE", "equipment_inventory_scraper.settings")
    return get_project_settings()


def _load_config(config_path: str) -> dict:
    """Load and validate a sources TOML config file."""
    path = Path(config_path)
    if not path.exists():
        click.echo(f"Error: config file not found: {path}", err=True)
        sys.exit(1)

    with open(path, "rb") as f:
        config = tomllib.load(f)

    sources = config.get("sources")
    if not sources:
        click.echo("Error: config file must contain at least one [[sources]] entry.", err=True)
        sys.exit(1)

    valid = {s.value for s in Source}
    for i, entry in enumerate(sources):
        label = entry.get("name", f"sources[{i}]")
        missing = [k for k in ("spider", "url") if k not in entry]
        if missing:
            click.echo(
                f"Error: source '{label}' is missing required keys: {', '.join(missing)}",
                err=True,
            )
            sys.exit(1)
        if "source" in entry and entry["source"] not in valid:
            click.echo(
                f"Error: source '{label}' has unknown source tag '{entry['source']}' "
                f"(expected one of: {', '.join(sorted(valid))})",
                err=True,
            )
            sys.exit(1)

    return config


def _check_spiders(entries: list[dict], settings) -> None:
    """Exit with an error unless every entry names a known spider and a source it harvests."""
    from scrapy.spiderloader import SpiderLoader

    loader = SpiderLoader.from_settings(settings)
    known = set(loader.list())
    for entry in entries:
        label = entry.get("name") or entry["url"]
        name = entry["spider"]
        if name not in known:
            click.echo(
                f"Error: source '{label}' names unknown spider '{name}' "
                f"(available: {', '.join(sorted(known))})",
                err=True,
            )
            sys.exit(1)

        allowed = [s.value for s in loader.load(name).sources]
        if len(allowed) > 1 and "source" not in entry:
            click.echo(
                f"Error: source '{label}' ({name}) needs a 'source' key: {' or '.join(allowed)}",
                err=True,
            )
            sys.exit(1)
        if "source" in entry and entry["source"] not in allowed:
            click.echo(
                f"Error: source '{label}': spider '{name}' cannot harvest "
                f"'{entry['source']}' (supported: {', '.join(allowed)})",
                err=True,
            )
            sys.exit(1)


def _spider_kwargs(entry: dict) -> dict:
    """Translate a ``[[sources]]`` entry into spider arguments."""
    kwargs = {"url": entry["url"], "label": entry.get("name")}
    for key in ("source", "max_pages", "page_size"):
        if key in entry:
            kwargs[key] = entry[key]
    return kwargs


def _report_kwargs(report_cfg: dict, locations: str | None = None) -> dict:
    """Build ``build_report`` keyword arguments from a ``[report]`` table."""
    from equipment_inventory_scraper.aggregation import (
        HEATMAP_THRESHOLDS,
        RECONCILIATION_THRESHOLDS,
        TierThresholds,
    )
    from equipment_inventory_scraper.locations import load_location_table

    kwargs: dict = {}
    locations = locations or report_cfg.get("locations")
    if locations:
        try:
            kwargs["location_table"] = load_location_table(locations)
        except (OSError, ValueError, tomllib.TOMLDecodeError) as exc:
            raise click.BadParameter(str(exc), param_hint="locations") from exc

    for key, default in (
        ("heatmap", HEATMAP_THRESHOLDS),
        ("reconciliation", RECONCILIATION_THRESHOLDS),
    ):
        table = report_cfg.get(key)
        if table:
            try:
                kwargs[f"{key}_thresholds"] = TierThresholds(
                    high=int(table.get("high", default.high)),
                    medium=int(table.get("medium", default.medium)),
                )
            except ValueError as exc:
                raise click.BadParameter(str(exc), param_hint=f"[report.{key}]") from exc
    return kwargs


@main.command()
@click.argument("spider_name", required=False, default=None)
@click.option(
    "--url", "-u",
    default=None,
    help="Starting URL of the catalog listing to scrape (single-source mode).",
)
@click.option(
    "--source", "-s",
    type=click.Choice([s.value for s in Source]),
    default=None,
    help="Which catalog the URL lists (required for the akrs spider).",
)
@click.option(
    "--max-pages",
    type=click.IntRange(min=1),
    default=None,
    help="Safety ceiling on listing pages (default: per spider).",
)
@click.option(
    "--config", "-c",
    "config_path",
    default=None,
    type=click.Path(exists=True),
    help="Path to a TOML config file listing sources to scrape.",
)
@click.option(
    "--output", "-o",
    default=None,
    help="Output JSON file path (default: inventory.json).",
)
@click.option(
    "--report", "-r",
    "report_path",
    default=None,
    help="Also write the HTML location report to this path.",
)
@click.option(
    "--debug-html",
    default=None,
    type=click.Path(file_okay=False),
    help="Save each crawl's first listing page into this directory.",
)
@click.option(
    "--headless/--no-headless",
    default=True,
    help="Run the marketplace browser in headless mode (default: headless).",
)
def crawl(
    spider_name: str | None,
    url: str | None,
    source: str | None,
    max_pages: int | None,
    config_path: str | None,
    output: str | None,
    report_path: str | None,
    debug_html: str | None,
    headless: bool,
):
    """Run spiders to scrape equipment inventory.

    Single-source mode (provide SPIDER_NAME and --url)::

        equipment-inventory-scraper crawl akrs --source used --url https://…

    Multi-source mode (provide --config)::

        equipment-inventory-scraper crawl --config sources.toml
    """
    if config_path and (spider_name or url):
        raise click.UsageError(
            "Use either --config or SPIDER_NAME + --url, not both."
        )

    if not config_path and not (spider_name and url):
        raise click.UsageError(
            "Provide either --config <file> or both SPIDER_NAME and --url."
        )

    from scrapy.crawler import CrawlerProcess

    from equipment_inventory_scraper.pipelines import JsonReportPipeline

    settings = _project_settings()
    report_cfg: dict = {}

    if config_path:
        # ---------- multi-source mode ----------
        config = _load_config(config_path)
        cfg_settings = config.get("settings", {})
        report_cfg = config.get("report", {})

        json_path = output or cfg_settings.get("output")
        report_path = report_path or cfg_settings.get("report")
        debug_html = debug_html or cfg_settings.get("debug_html")
        is_headless = cfg_settings.get("headless", headless)
        for key, setting in (
            ("page_delay", "LISTING_PAGE_DELAY"),
            ("marketplace_page_delay", "MARKETPLACE_PAGE_DELAY"),
        ):
            if key in cfg_settings:
                settings.set(setting, float(cfg_settings[key]))

        entries = config["sources"]
    else:
        # ---------- single-source mode ----------
        json_path = output
        is_headless = headless
        entry = {"spider": spider_name, "url": url}
        if source:
            entry["source"] = source
        if max_pages:
            entry["max_pages"] = max_pages
        entries = [entry]

    if json_path:
        settings.set("JSON_REPORT_PATH", json_path)
    if debug_html:
        settings.set("DEBUG_HTML_DIR", debug_html)
    launch_options = dict(settings.getdict("PLAYWRIGHT_LAUNCH_OPTIONS"))
    launch_options["headless"] = is_headless
    settings.set("PLAYWRIGHT_LAUNCH_OPTIONS", launch_options)
    _check_spiders(entries, settings)
    settings.set("TOTAL_SPIDER_COUNT", len(entries))
    if config_path:
        click.echo(f"Loaded {len(entries)} source(s) from {config_path}")

    # Run one spider at a time: when each spider closes, start the next.
    # A source that fails is reported and skipped; the others still run.
    process = CrawlerProcess(settings)
    entry_iter = iter(enumerate(entries, 1))
    failed: list[str] = []

    def _source_failed(label, exc):
        failed.append(label)
        click.echo(f"Error: source '{label}' failed: {exc}", err=True)

    def _start_next_spider():
        item = next(entry_iter, None)
        if item is None:
            return
        i, entry = item
        label = entry.get("name", entry["url"])
        click.echo(f"  ▸ [{i}/{len(entries)}] {label} (spider={entry['spider']})")
        try:
            d = process.crawl(entry["spider"], **_spider_kwargs(entry))
        except Exception as exc:
            _source_failed(label, exc)
            _start_next_spider()
            return
        d.addErrback(lambda failure: _source_failed(label, failure.value))
        d.addBoth(lambda _: _start_next_spider())

    _start_next_spider()
    process.start()
    # Write whatever the surviving sources harvested.
    JsonReportPipeline.flush_pending()
    if failed:
        click.echo(f"{len(failed)} of {len(entries)} source(s) failed: {', '.join(failed)}", err=True)

    if not JsonReportPipeline.last_run_count:
        click.echo(
            "Error: no records were scraped. The site structure may have changed.",
            err=True,
        )
        sys.exit(EXIT_NO_RECORDS)

    if report_path:
        from equipment_inventory_scraper.tools.build_report import build_report

        build_report(
            settings.get("JSON_REPORT_PATH"),
            report_path,
            **_report_kwargs(report_cfg),
        )


@main.command("list")
def list_spiders():
    """List available spiders."""
    from scrapy.spiderloader import SpiderLoader

    loader = SpiderLoader.from_settings(_project_settings())

    click.echo("Available spiders:")
    for name in sorted(loader.list()):
        spider_cls = loader.load(name)
        click.echo(f"  {name:20s} {spider_cls.__doc__ or ''}")


@main.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output", "-o",
    default="inventory.html",
    show_default=True,
    help="Output HTML file path.",
)
@click.option(
    "--locations", "-l",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="TOML file with a [locations] table (default: built-in store table).",
)
@click.option(
    "--config", "-c",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Read [report] options (locations, tier thresholds) from this TOML file.",
)
def report(input_path: str, output: str, locations: str | None, config_path: str | None):
    """Build the per-location HTML report from a scraped JSON inventory."""
    from equipment_inventory_scraper.tools.build_report import build_report

    report_cfg: dict = {}
    if config_path:
        with open(config_path, "rb") as f:
            report_cfg = tomllib.load(f).get("report", {})

    try:
        summary = build_report(input_path, output, **_report_kwargs(report_cfg, locations))
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    if summary is None:
        sys.exit(EXIT_NO_RECORDS)


if __name__ == "__main__":
    main()
