"""Convert a scraped-inventory JSON file into a per-location HTML report.

The report reconciles the used-equipment catalog against the marketplace
(listings present in both are flagged as duplicates), aggregates records
by store location and classifies each store into an inventory tier.

Usage as a CLI (via the main entry-point)::

    equipment-inventory-scraper report inventory.json -o inventory.html

Usage from Python::

    from equipment_inventory_scraper.tools.build_report import build_report
    build_report("inventory.json", "inventory.html")

Or run directly::

    uv run python -m equipment_inventory_scraper.tools.build_report inventory.json
"""

from __future__ import annotations

import argparse
import html
import json
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path

from equipment_inventory_scraper.aggregation import (
    HEATMAP_THRESHOLDS,
    RECONCILIATION_THRESHOLDS,
    InventorySummary,
    LocationStat,
    TierThresholds,
    aggregate_by_location,
    summarize,
)
from equipment_inventory_scraper.items import Source
from equipment_inventory_scraper.locations import (
    STORE_LOCATIONS,
    LocationEntry,
    load_location_table,
)
from equipment_inventory_scraper.matching import MatchResult, match_sources


def load_inventory(input_path: str | Path) -> dict[str, list[dict]]:
    """Read a JSON inventory written by ``JsonReportPipeline``.

    Returns one list per :class:`Source` value (missing sources are empty).
    Raises :class:`ValueError` for an unknown source key or a file that is
    not a JSON object.
    """
    data = json.loads(Path(input_path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{input_path}: expected a JSON object keyed by source")

    grouped: dict[str, list[dict]] = {source.value: [] for source in Source}
    for key, records in data.items():
        source = Source(key)
        for record in records:
            record.setdefault("source", source.value)
        grouped[source.value].extend(records)
    return grouped


def reconcile(grouped: Mapping[str, list[dict]]) -> MatchResult:
    """Match marketplace listings against the used-equipment catalog."""
    return match_sources(grouped[Source.USED.value], grouped[Source.MARKETPLACE.value])


def reconciled_records(grouped: Mapping[str, list[dict]], match: MatchResult) -> list[dict]:
    """All records except marketplace listings already in the used catalog."""
    duplicate_ids = {id(b) for _, b in match.duplicates}
    return [
        record
        for records in grouped.values()
        for record in records
        if id(record) not in duplicate_ids
    ]


def build_report(
    input_path: str,
    output_path: str = "inventory.html",
    *,
    location_table: Mapping[str, LocationEntry] = STORE_LOCATIONS,
    heatmap_thresholds: TierThresholds = HEATMAP_THRESHOLDS,
    reconciliation_thresholds: TierThresholds = RECONCILIATION_THRESHOLDS,
) -> InventorySummary | None:
    """Read *input_path* (JSON) and write a styled HTML report to *output_path*.

    Returns the :class:`InventorySummary`, or ``None`` when the inventory
    is empty (no report is written in that case).
    """
    grouped = load_inventory(input_path)
    all_records = [record for records in grouped.values() for record in records]
    if not all_records:
        print("No items in JSON file — skipping HTML report.")
        return None

    match = reconcile(grouped)
    stats = aggregate_by_location(all_records, location_table, thresholds=heatmap_thresholds)
    reconciled_stats = aggregate_by_location(
        reconciled_records(grouped, match),
        location_table,
        thresholds=reconciliation_thresholds,
    )
    summary = summarize(grouped, stats, match)

    ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    page = _HTML_TEMPLATE.format(
        timestamp=ts,
        source_file=html.escape(Path(input_path).name),
        summary=_build_summary(summary, match),
        location_table=_build_location_table(stats, "loc-table", heatmap_thresholds),
        reconciled_table=_build_location_table(
            reconciled_stats, "reconciled-table", reconciliation_thresholds,
        ),
        duplicates_table=_build_duplicates_table(match),
    )

    Path(output_path).write_text(page, encoding="utf-8")
    print(
        f"HTML report written to {output_path} "
        f"({summary.total} records, {summary.location_count} locations, "
        f"{summary.duplicate_count} duplicates)"
    )
    return summary


def _build_summary(summary: InventorySummary, match: MatchResult) -> str:
    rows = [(source.label, summary.source_counts.get(source.value, 0)) for source in Source]
    rows += [
        ("Total records", summary.total),
        ("Records at a known store", summary.located),
        ("Records without a known store", summary.unlocated),
        ("Store locations", summary.location_count),
        ("Used / marketplace duplicates", summary.duplicate_count),
        ("Marketplace overlap", f"{summary.overlap_pct:.1f}%"),
        ("Unique used listings", match.unique_a),
        ("Unique marketplace listings", match.unique_b),
    ]
    cells = "\n".join(
        f'    <div class="stat"><span>{html.escape(label)}</span>'
        f"<strong>{html.escape(str(value))}</strong></div>"
        for label, value in rows
    )
    return f'<div class="summary">\n{cells}\n  </div>'


def _build_location_table(
    stats: Mapping[str, LocationStat],
    table_id: str,
    thresholds: TierThresholds,
) -> str:
    """Return an HTML table with one row per store location."""
    if not stats:
        return '<p class="meta">No records matched a known store location.</p>'

    headers = ["Location", "City", "Lat", "Lng"] + [s.label for s in Source] + ["Total", "Tier"]
    hdr = "".join(f"<th>{html.escape(h)}</th>" for h in headers)

    body_rows: list[str] = []
    for name, stat in stats.items():
        cells = [
            f"      <td>{html.escape(name)}</td>",
            f"      <td>{html.escape(stat.entry.label)}</td>",
            f'      <td data-sort-value="{stat.entry.lat}">{stat.entry.lat:.4f}</td>',
            f'      <td data-sort-value="{stat.entry.lng}">{stat.entry.lng:.4f}</td>',
        ]
        for source in Source:
            n = stat.count_for(source)
            cells.append(f'      <td data-sort-value="{n}">{n if n else ""}</td>')
        cells.append(f'      <td class="total" data-sort-value="{stat.total}">{stat.total}</td>')
        cells.append(f'      <td class="tier-{stat.tier.value}">{stat.tier.value.upper()}</td>')
        body_rows.append("    <tr>\n" + "\n".join(cells) + "\n    </tr>")

    legend = (
        f'<p class="meta">Tiers: HIGH &gt; {thresholds.high}, '
        f"MEDIUM &gt; {thresholds.medium}, LOW otherwise.</p>"
    )
    return (
        f"{legend}\n"
        f'<table id="{table_id}" class="sortable">\n'
        f"    <thead><tr>{hdr}</tr></thead>\n"
        "    <tbody>\n"
        + "\n".join(body_rows) + "\n"
        "    </tbody>\n"
        "</table>"
    )


def _build_duplicates_table(match: MatchResult) -> str:
    """Return an HTML table listing each used / marketplace duplicate pair."""
    if not match.duplicates:
        return '<p class="meta">No listings appear in both sources.</p>'

    hdr = "".join(
        f"<th>{h}</th>"
        for h in ("Year", "Make", "Model", "Location", "Used Price", "Marketplace Price", "Links")
    )
    body_rows: list[str] = []
    for used, listing in match.duplicates:
        links = " ".join(
            f'<a href="{html.escape(url)}" target="_blank" rel="noopener">{label}</a>'
            for label, url in (("used", used.get("detail_url")), ("marketplace", listing.get("detail_url")))
            if url
        )
        cells = [
            used.get("year"),
            listing.get("make") or used.get("make"),
            used.get("model"),
            used.get("location"),
            used.get("price"),
            listing.get("price"),
        ]
        row = "".join(f"      <td>{html.escape(str(c or ''))}</td>\n" for c in cells)
        body_rows.append(f"    <tr>\n{row}      <td>{links}</td>\n    </tr>")

    return (
        '<table id="dup-table" class="sortable">\n'
        f"    <thead><tr>{hdr}</tr></thead>\n"
        "    <tbody>\n"
        + "\n".join(body_rows) + "\n"
        "    </tbody>\n"
        "</table>"
    )


# ---------------------------------------------------------------------------
# HTML template
# ---------------------------------------------------------------------------

_HTML_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Equipment Inventory by Location</title>
  <style>
    body {{
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
      margin: 2rem;
      color: #1a1a1a;
      background: #f8f9fa;
    }}
    h1 {{ margin-bottom: 0.25rem; }}
    .meta {{ color: #666; font-size: 0.9rem; margin-bottom: 1rem; }}
    .summary {{ display: flex; flex-wrap: wrap; gap: 0.75rem; margin-bottom: 2rem; }}
    .stat {{
      background: #fff;
      border-left: 4px solid #367c2b;
      box-shadow: 0 1px 3px rgba(0,0,0,0.1);
      padding: 0.6rem 0.9rem;
      display: flex;
      flex-direction: column;
      min-width: 10rem;
    }}
    .stat span {{ color: #666; font-size: 0.8rem; }}
    .stat strong {{ font-size: 1.2rem; }}
    table {{
      border-collapse: collapse;
      width: 100%;
      background: #fff;
      box-shadow: 0 1px 3px rgba(0,0,0,0.1);
      font-size: 0.85rem;
    }}
    th, td {{
      padding: 0.6rem 0.75rem;
      text-align: left;
      border-bottom: 1px solid #e9ecef;
      white-space: nowrap;
    }}
    th {{
      background: #367c2b;
      color: #fff;
      font-weight: 600;
      position: sticky;
      top: 0;
      cursor: pointer;
      user-select: none;
    }}
    th:hover {{ background: #4a9d38; }}
    th .sort-arrow {{ font-size: 0.65em; margin-left: 0.3em; opacity: 0.4; }}
    th.sort-asc .sort-arrow,
    th.sort-desc .sort-arrow {{ opacity: 1; }}
    tr:hover {{ background: #f1f3f5; }}
    .total {{ font-weight: 600; }}
    .tier-high {{ color: #d32f2f; font-weight: 600; }}
    .tier-medium {{ color: #ff9800; font-weight: 600; }}
    .tier-low {{ color: #4caf50; font-weight: 600; }}
    a {{ color: #0d6efd; text-decoration: none; }}
    a:hover {{ text-decoration: underline; }}
  </style>
</head>
<body>
  <h1>Equipment Inventory by Location</h1>
  <p class="meta">Data source: {source_file} &middot; generated {timestamp}</p>

  {summary}

  <h2>Inventory by Location</h2>
  <div style="overflow-x: auto;">
  {location_table}
  </div>

  <h2 style="margin-top:2.5rem;">Reconciled Inventory by Location</h2>
  <p class="meta">Marketplace listings already in the used catalog are counted once.</p>
  <div style="overflow-x: auto;">
  {reconciled_table}
  </div>

  <h2 style="margin-top:2.5rem;">Duplicate Listings</h2>
  <div style="overflow-x: auto;">
  {duplicates_table}
  </div>

  <script>
  document.querySelectorAll('table.sortable').forEach(function (table) {{
    var thead = table.querySelector('thead');
    var tbody = table.querySelector('tbody');
    var ths = thead.querySelectorAll('th');
    ths.forEach(function (th) {{
      var arrow = document.createElement('span');
      arrow.className = 'sort-arrow';
      arrow.textContent = '\\u25B2';
      th.appendChild(arrow);
    }});
    var curCol = -1, asc = true;
    ths.forEach(function (th, idx) {{
      th.addEventListener('click', function () {{
        if (curCol === idx) {{ asc = !asc; }}
        else {{
          ths.forEach(function (h) {{ h.classList.remove('sort-asc', 'sort-desc'); }});
          curCol = idx; asc = true;
        }}
        th.classList.toggle('sort-asc', asc);
        th.classList.toggle('sort-desc', !asc);
        th.querySelector('.sort-arrow').textContent = asc ? '\\u25B2' : '\\u25BC';
        var rows = Array.from(tbody.querySelectorAll('tr'));
        rows.sort(function (a, b) {{
          var cA = a.children[idx], cB = b.children[idx];
          var sA = cA.getAttribute('data-sort-value');
          var sB = cB.getAttribute('data-sort-value');
          if (sA !== null && sB !== null) {{
            var nA = parseFloat(sA) || 0, nB = parseFloat(sB) || 0;
            return asc ? nA - nB : nB - nA;
          }}
          var tA = (cA.textContent || '').trim().toLowerCase();
          var tB = (cB.textContent || '').trim().toLowerCase();
          if (tA < tB) return asc ? -1 : 1;
          if (tA > tB) return asc ? 1 : -1;
          return 0;
        }});
        rows.forEach(function (r) {{ tbody.appendChild(r); }});
      }});
    }});
  }});
  </script>
</body>
</html>
"""


# ---------------------------------------------------------------------------
# Allow running as ``python -m equipment_inventory_scraper.tools.build_report``
# ---------------------------------------------------------------------------

def _cli() -> None:
    parser = argparse.ArgumentParser(
        description="Convert a scraped-inventory JSON file to a per-location HTML report.",
    )
    parser.add_argument("input", help="Path to the JSON inventory file.")
    parser.add_argument(
        "-o", "--output",
        default="inventory.html",
        help="Output HTML file path (default: inventory.html).",
    )
    parser.add_argument(
        "--locations",
        default=None,
        help="TOML file with a [locations] table (default: built-in store table).",
    )
    args = parser.parse_args()
    table = load_location_table(args.locations) if args.locations else STORE_LOCATIONS
    build_report(args.input, args.output, location_table=table)


if __name__ == "__main__":
    _cli()
