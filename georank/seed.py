"""Demo property rows covering every location signal the resolver understands."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import orjson

DEMO_PROPERTIES: List[Dict[str, object]] = [
    {
        "id": "demo-zamalek-gps",
        "title": "Nile view apartment",
        "latitude": "30.0618",
        "longitude": "31.2194",
        "address": "12 Abu El Feda St",
        "areas": {"area_name": "Zamalek"},
        "price": 9500000,
    },
    {
        "id": "demo-new-cairo-area",
        "title": "Compound villa",
        "areas": {"area_name": "New Cairo", "latitude": 30.0131, "longitude": 31.4914},
        "price": 21000000,
    },
    {
        "id": "demo-maadi-address",
        "title": "Garden duplex",
        "address": "Road 9, Sarayat",
        "areas": {"area_name": "Maadi"},
        "price": 12500000,
    },
    {
        "id": "demo-zayed-name",
        "title": "Townhouse",
        "areas": {"area_name": "الشيخ زايد"},
        "price": 14000000,
    },
    {
        "id": "demo-october-name",
        "title": "Studio",
        "area_name": "6th of October",
        "price": 1800000,
    },
    {
        "id": "demo-unknown",
        "title": "Unlisted location",
        "price": 3000000,
    },
]


def seed_entities(path: Path) -> Path:
    """Write the demo rows as a JSON array, replacing any existing file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(DEMO_PROPERTIES, option=orjson.OPT_INDENT_2))
    return path
