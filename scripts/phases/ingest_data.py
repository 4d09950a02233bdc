"""Ingest all raw inputs (actual data + registries) in one run.

Run:
  python scripts/phases/ingest_data.py --date 2024-03-13
"""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from pathlib import Path

# Ensure repo root and scripts/ are on sys.path so `import swissrail...` and
# `import data_ingestion...` work when executing this file directly.
REPO_ROOT = Path(__file__).resolve().parents[2]
for p in (REPO_ROOT, REPO_ROOT / "scripts"):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))

from swissrail.core.cli_utils import BuildStats, add_skip_flags, create_base_parser
from swissrail.core.config import configure_logging

LOGGER = logging.getLogger("ingest_all")


def _parse_args() -> argparse.Namespace:
    """Parse command line arguments for the main ingestion script."""
    parser = create_base_parser("Ingest all raw inputs for the Swiss railway network build.")
    add_skip_flags(parser)
    return parser.parse_args()


def _run_ingestion_step(
    module_name: str, step_name: str, stats: BuildStats, kwargs: dict[str, object]
) -> None:
    try:
        LOGGER.info("Running %s ingest...", step_name)
        mod = importlib.import_module(module_name)
        step_stats = mod.run(**kwargs)
        stats.update(step_stats)
        stats.add_step(step_name)
        LOGGER.info("Completed %s ingest", step_name)
    except Exception as e:
        LOGGER.error("Failed to run %s ingest: %s", step_name, e)
        raise


def main() -> None:
    configure_logging()
    args = _parse_args()
    stats = BuildStats()

    common = {"config_path": args.config, "force": args.force, "checkpoint": args.checkpoint}
    ingestion_steps = [
        (
            "data_ingestion.01_ingest_ist_daten",
            "ist_daten",
            not args.skip_ist_daten,
            {**common, "day": args.date},
        ),
        ("data_ingestion.02_ingest_registries", "registries", not args.skip_registries, common),
    ]

    for module_name, step_name, should_run, kwargs in ingestion_steps:
        if should_run:
            _run_ingestion_step(module_name, step_name, stats, kwargs)
        else:
            LOGGER.info("Skipping %s ingest", step_name)

    summary = stats.get_summary()
    LOGGER.info("Ingestion complete. Steps: %d, summary: %s", summary["step_count"], summary)


if __name__ == "__main__":
    main()
