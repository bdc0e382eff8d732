"""Curated place-name table used as a fallback and as the base for address jitter."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import yaml

from georank.errors import ConfigError, InvalidCoordinateError
from georank.geo.coordinates import Coordinate, CoordinateSource, parse_coordinate

NAMED_LOCATION_ACCURACY_M = 5_000.0

# Declaration order matters: substring matches return the first hit.
DEFAULT_LOCATIONS: Tuple[Tuple[str, float, float], ...] = (
    # Cairo and surroundings
    ("cairo", 30.0444, 31.2357),
    ("new cairo", 30.0131, 31.4914),
    ("nasr city", 30.0637, 31.3416),
    ("heliopolis", 30.0808, 31.3181),
    ("maadi", 29.9602, 31.2569),
    ("zamalek", 30.0618, 31.2194),
    ("downtown", 30.0626, 31.2497),
    ("garden city", 30.0331, 31.2357),
    ("helwan", 29.8500, 31.3333),
    ("shubra", 30.1167, 31.2444),
    # 6th of October and Sheikh Zayed
    ("6th of october", 29.9668, 30.9876),
    ("sheikh zayed", 30.0077, 30.9671),
    ("october", 29.9668, 30.9876),
    ("zayed", 30.0077, 30.9671),
    # Giza
    ("giza", 30.0131, 31.2089),
    ("dokki", 30.0385, 31.2007),
    ("mohandessin", 30.0444, 31.2001),
    ("agouza", 30.0522, 31.2069),
    ("haram", 30.0131, 31.1656),
    # Alexandria
    ("alexandria", 31.2001, 29.9187),
    ("alex", 31.2001, 29.9187),
    ("alexandria downtown", 31.1975, 29.9097),
    ("montaza", 31.2833, 30.0167),
    ("stanley", 31.2167, 29.9667),
    # New Administrative Capital
    ("new capital", 30.0000, 31.7333),
    ("administrative capital", 30.0000, 31.7333),
    ("capital", 30.0000, 31.7333),
    # Red Sea
    ("hurghada", 27.2579, 33.8116),
    ("sharm el sheikh", 27.9158, 34.3300),
    ("sharm", 27.9158, 34.3300),
    ("el gouna", 27.3959, 33.6801),
    ("gouna", 27.3959, 33.6801),
    ("dahab", 28.5048, 34.5136),
    ("safaga", 26.7333, 33.9333),
    # North Coast
    ("north coast", 31.0424, 28.4293),
    ("marina", 31.0424, 28.4293),
    ("new alamein", 30.8481, 28.9544),
    ("alamein", 30.8481, 28.9544),
    ("ras el hekma", 31.0000, 28.2000),
    ("sidi abdel rahman", 30.9000, 28.7000),
    # Upper Egypt
    ("luxor", 25.6872, 32.6396),
    ("aswan", 24.0889, 32.8998),
    ("sohag", 26.5569, 31.6956),
    ("qena", 26.1551, 32.7160),
    ("minya", 28.0871, 30.7618),
    # Delta and canal cities
    ("mansoura", 31.0409, 31.3785),
    ("tanta", 30.7865, 31.0004),
    ("zagazig", 30.5877, 31.5022),
    ("ismailia", 30.5965, 32.2715),
    ("port said", 31.2653, 32.3019),
    ("suez", 29.9668, 32.5498),
    # Sinai
    ("arish", 31.1313, 33.7991),
    ("st catherine", 28.5569, 33.9503),
    ("nuweiba", 29.0333, 34.6667),
    ("taba", 29.4897, 34.8869),
    # Arabic names of the seeded CRM regions and areas
    ("القاهرة", 30.0444, 31.2357),
    ("القاهرة الجديدة", 30.0131, 31.4914),
    ("المعادي", 29.9602, 31.2569),
    ("الزمالك", 30.0618, 31.2194),
    ("الجيزة", 30.0131, 31.2089),
    ("السادس من أكتوبر", 29.9668, 30.9876),
    ("الشيخ زايد", 30.0077, 30.9671),
    ("الإسكندرية", 31.2001, 29.9187),
)


def normalize_key(text: Optional[str]) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    if not text:
        return ""
    return " ".join(str(text).lower().split())


@dataclass(frozen=True, slots=True)
class NamedLocationEntry:
    key: str
    coordinate: Coordinate


@dataclass(frozen=True, slots=True)
class LocationMatch:
    """Outcome of a table lookup, kept for diagnostics."""

    query: str
    key: str
    kind: str
    coordinate: Coordinate


class NamedLocationTable:
    """Read-only name → coordinate table with exact-then-substring lookup."""

    def __init__(self, entries: Iterable[NamedLocationEntry]) -> None:
        self._entries: Tuple[NamedLocationEntry, ...] = tuple(entries)
        self._index: Dict[str, NamedLocationEntry] = {}
        for entry in self._entries:
            self._index.setdefault(entry.key, entry)

    @classmethod
    def from_records(cls, records: Iterable[Tuple[str, float, float]]) -> "NamedLocationTable":
        entries: List[NamedLocationEntry] = []
        for name, latitude, longitude in records:
            key = normalize_key(name)
            if not key:
                raise ConfigError("named location entries need a non-empty name")
            try:
                coordinate = parse_coordinate(
                    latitude,
                    longitude,
                    source=CoordinateSource.CITY_DEFAULT,
                    accuracy=NAMED_LOCATION_ACCURACY_M,
                )
            except InvalidCoordinateError as exc:
                raise ConfigError(f"invalid coordinates for named location {name!r}: {exc}") from exc
            entries.append(NamedLocationEntry(key=key, coordinate=coordinate))
        return cls(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[NamedLocationEntry]:
        return iter(self._entries)

    def explain(self, name: Optional[str]) -> Optional[LocationMatch]:
        """Return which entry a name matches and how, or None."""
        query = normalize_key(name)
        if not query:
            return None
        exact = self._index.get(query)
        if exact is not None:
            return LocationMatch(query=query, key=exact.key, kind="exact", coordinate=exact.coordinate)
        for entry in self._entries:
            if query in entry.key or entry.key in query:
                return LocationMatch(query=query, key=entry.key, kind="substring", coordinate=entry.coordinate)
        return None

    def lookup(self, name: Optional[str]) -> Optional[Coordinate]:
        match = self.explain(name)
        return match.coordinate if match else None


def load_table(path: Path) -> NamedLocationTable:
    """Load a replacement table from YAML (`locations: [{name, latitude, longitude}]`)."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read named locations from {path}: {exc}") from exc
    rows = data.get("locations", []) if isinstance(data, dict) else []
    records = []
    for row in rows:
        if not isinstance(row, dict):
            raise ConfigError(f"malformed named location row in {path}: {row!r}")
        records.append((str(row.get("name") or ""), row.get("latitude"), row.get("longitude")))
    return NamedLocationTable.from_records(records)


@lru_cache(maxsize=1)
def default_table() -> NamedLocationTable:
    """Build the bundled table once per process."""
    return NamedLocationTable.from_records(DEFAULT_LOCATIONS)
