"""Store location reference table.

Records are attributed to a store only when their canonical location
(uppercase city name, see :func:`~equipment_inventory_scraper.parsing_helpers.canonical_location`)
is a key of the table.  The built-in table covers the Nebraska and Kansas
stores; a different table can be loaded from TOML::

    [locations.GRETNA]
    lat = 41.14
    lng = -96.2397
    label = "Gretna, NE"
"""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import NamedTuple


class LocationEntry(NamedTuple):
    lat: float
    lng: float
    label: str


STORE_LOCATIONS: Mapping[str, LocationEntry] = MappingProxyType({
    "AINSWORTH": LocationEntry(42.5506, -99.8626, "Ainsworth, NE"),
    "ALBION": LocationEntry(41.6906, -98.0053, "Albion, NE"),
    "AUBURN": LocationEntry(40.3925, -95.8392, "Auburn, NE"),
    "AURORA": LocationEntry(40.8672, -98.0042, "Aurora, NE"),
    "BROKEN BOW": LocationEntry(41.4017, -99.6398, "Broken Bow, NE"),
    "CENTRAL CITY": LocationEntry(41.1161, -98.0020, "Central City, NE"),
    "CRETE": LocationEntry(40.6278, -96.9614, "Crete, NE"),
    "DAVID CITY": LocationEntry(41.2517, -97.1300, "David City, NE"),
    "ELKHORN": LocationEntry(41.2858, -96.2364, "Elkhorn, NE"),
    "GENEVA": LocationEntry(40.5267, -97.5961, "Geneva, NE"),
    "GRAND ISLAND": LocationEntry(40.9250, -98.3420, "Grand Island, NE"),
    "GRETNA": LocationEntry(41.1400, -96.2397, "Gretna, NE"),
    "MCCOOK": LocationEntry(40.2017, -100.6251, "McCook, NE"),
    "NELIGH": LocationEntry(42.1281, -98.0298, "Neligh, NE"),
    "NORFOLK": LocationEntry(42.0281, -97.4170, "Norfolk, NE"),
    "NORTH PLATTE": LocationEntry(41.1239, -100.7654, "North Platte, NE"),
    "O'NEILL": LocationEntry(42.4578, -98.6473, "O'Neill, NE"),
    "OBERLIN": LocationEntry(39.8197, -100.5282, "Oberlin, KS"),
    "ORD": LocationEntry(41.6031, -98.9273, "Ord, NE"),
    "OSCEOLA": LocationEntry(41.1783, -97.5450, "Osceola, NE"),
    "PLAINVIEW": LocationEntry(42.3472, -97.7917, "Plainview, NE"),
    "RAVENNA": LocationEntry(41.0261, -98.9123, "Ravenna, NE"),
    "SEWARD": LocationEntry(40.9069, -97.0989, "Seward, NE"),
    "SPALDING": LocationEntry(41.6872, -98.3742, "Spalding, NE"),
    "ST. PAUL": LocationEntry(41.2147, -98.4584, "St. Paul, NE"),
    "SYRACUSE": LocationEntry(40.6564, -96.1881, "Syracuse, NE"),
    "YORK": LocationEntry(40.8678, -97.5920, "York, NE"),
})


def load_location_table(path: str | Path) -> Mapping[str, LocationEntry]:
    """Load a location table from a TOML file.

    Keys are upper-cased so they line up with canonical record locations.
    Raises :class:`ValueError` when the file has no ``[locations]`` table
    or an entry is missing ``lat``, ``lng`` or ``label``.
    """
    with open(path, "rb") as f:
        data = tomllib.load(f)

    raw = data.get("locations")
    if not raw:
        raise ValueError(f"{path}: expected a [locations] table")

    table: dict[str, LocationEntry] = {}
    for name, entry in raw.items():
        missing = [k for k in ("lat", "lng", "label") if k not in entry]
        if missing:
            raise ValueError(
                f"{path}: location '{name}' is missing required keys: {', '.join(missing)}"
            )
        table[name.strip().upper()] = LocationEntry(
            float(entry["lat"]), float(entry["lng"]), str(entry["label"]),
        )
    return MappingProxyType(table)
