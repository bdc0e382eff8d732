"""Administrative status helpers."""
from __future__ import annotations

from pathlib import Path
from typing import Dict

import orjson


def summarise_exports(metrics_dir: Path) -> Dict[str, Dict[str, object]]:
    """Summarise metrics files written by `georank rank --metrics-out`."""
    results: Dict[str, Dict[str, object]] = {}
    if not metrics_dir.exists():
        return results
    for path in sorted(metrics_dir.glob("*.json")):
        try:
            payload = orjson.loads(path.read_bytes())
        except orjson.JSONDecodeError:
            continue
        counters = payload.get("counters", {}) if isinstance(payload, dict) else {}
        results[path.stem] = {
            "path": str(path),
            "generated_at": payload.get("generated_at") if isinstance(payload, dict) else None,
            "entities_ranked": counters.get("entities_ranked", 0),
            "unresolved": counters.get("unresolved", 0),
            "geocode_failures": counters.get("geocode_failures", 0),
        }
    return results
