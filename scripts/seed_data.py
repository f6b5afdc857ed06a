"""Load children, crossings, duties and schedule JSON files into the configured store."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config  # noqa: E402
from data_service import (  # noqa: E402
    DataService,
    build_data_service,
    normalize_children,
    normalize_crossings,
    normalize_duties,
    normalize_schedule,
)

SEED_FILES = {
    "children.json": (normalize_children, "store_children"),
    "crossings.json": (normalize_crossings, "store_crossings"),
    "duties.json": (normalize_duties, "store_duties"),
    "schedule.json": (normalize_schedule, "store_schedule"),
}

logger = logging.getLogger("seed_data")


def seed_from_directory(data_service: DataService, directory: str, overwrite: bool = False) -> int:
    loaded = 0
    existing = {
        "children.json": bool(data_service.get_children()["children"]),
        "crossings.json": bool(data_service.get_crossings()["crossings"]),
        "duties.json": bool(data_service.get_duties()["duties"]),
        "schedule.json": False,
    }
    for filename, (normalize, store_method) in SEED_FILES.items():
        path = os.path.join(directory, filename)
        if not os.path.exists(path):
            logger.info("Skipping %s: not found", path)
            continue
        if existing[filename] and not overwrite:
            logger.info("Skipping %s: store already has data (use --overwrite)", filename)
            continue
        with open(path, encoding="utf-8") as handle:
            payload = normalize(json.load(handle))
        getattr(data_service, store_method)(payload)
        logger.info("Loaded %s", filename)
        loaded += 1
    return loaded


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("directory", help="Directory holding the seed JSON files")
    parser.add_argument("--backend", choices=("azure", "sql", "file"), help="Override STORAGE_BACKEND")
    parser.add_argument("--overwrite", action="store_true", help="Replace data already in the store")
    args = parser.parse_args(argv)

    logging.basicConfig(level=Config.LOG_LEVEL, format="%(levelname)s %(message)s")
    config = {key: getattr(Config, key) for key in dir(Config) if key.isupper()}
    if args.backend:
        config["STORAGE_BACKEND"] = args.backend
    data_service = build_data_service(config)
    count = seed_from_directory(data_service, args.directory, overwrite=args.overwrite)
    logger.info("Seeded %d entities into %s storage", count, data_service.primary.name)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
