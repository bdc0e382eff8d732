#!/usr/bin/env python
"""Write demo properties for local ranking runs."""
from __future__ import annotations

import argparse
from pathlib import Path

from dotenv import load_dotenv

from georank.seed import seed_entities


def main() -> None:
    """CLI entrypoint mirroring `georank seed-entities`."""
    load_dotenv()
    parser = argparse.ArgumentParser(description="Write demo properties for local ranking runs")
    parser.add_argument(
        "--path",
        type=Path,
        default=Path("data/properties.json"),
        help="Where to write the demo JSON file",
    )
    args = parser.parse_args()
    print(seed_entities(args.path))


if __name__ == "__main__":
    main()
