"""Step 1: Ingest one operating day of the actual-data feed (Ist-Daten).

The feed is published per day and archived per month. This script downloads
the monthly archive (cached by file) and extracts the requested day's CSV to:
  `data/raw/<YYYY-MM-DD>_istdaten.csv`

Run:
  python scripts/data_ingestion/01_ingest_ist_daten.py --date 2024-03-13
"""

from __future__ import annotations

import argparse
import datetime as dt
import logging
import sys
from pathlib import Path

# Ensure repo root is on sys.path so `import swissrail...` works when executing this file directly.
SCRIPTS_DIR = Path(__file__).resolve().parents[1]
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))
from bootstrap import ensure_repo_root_on_path

ensure_repo_root_on_path(__file__)

import pandas as pd
from swissrail.core.cli_utils import create_base_parser
from swissrail.core.config import CSV_SEP, configure_logging, get_paths
from swissrail.core.settings import load_network_config
from swissrail.io import (
    IngestRecord,
    download_file,
    extract_member,
    sha256_file,
    upsert_ingest_summary,
)

LOGGER = logging.getLogger("ingest_ist_daten")


def fetch_ist_daten(
    day: dt.date, *, config_path: Path | None = None, force: bool = False
) -> tuple[Path, bool]:
    """Make sure the day's CSV exists under data/raw. Returns (csv_path, used_cache)."""
    paths = get_paths()
    cfg = load_network_config(config_path)
    src = cfg.sources.ist_daten

    out_path = paths.data_raw / src.filename_for(day)
    if not force and out_path.exists() and out_path.stat().st_size > 0:
        LOGGER.info("Using cached %s", out_path)
        return out_path, True

    archive = src.archive_for(day)
    if archive is None:
        # Plain daily file.
        download_file(src.url_for(day), out_path)
        return out_path, False

    archive_path = paths.data_raw / archive
    if force or not archive_path.exists() or archive_path.stat().st_size == 0:
        download_file(src.url_for(day), archive_path)
    else:
        LOGGER.info("Using cached archive %s", archive_path)
    extract_member(archive_path, out_path.name, out_path)
    return out_path, False


def _parse_args() -> argparse.Namespace:
    """Parse command line arguments for the actual-data ingestion script."""
    return create_base_parser("Ingest one operating day of the actual-data feed.").parse_args()


def run(
    *,
    day: dt.date | None = None,
    config_path: Path | None = None,
    force: bool = False,
    checkpoint: bool = False,
) -> dict[str, int | str]:
    """Run the actual-data ingest. Returns a small dict of key counts."""
    paths = get_paths()
    cfg = load_network_config(config_path)
    day = cfg.resolve_date(day)

    LOGGER.info("Ingesting actual data for %s", day.isoformat())
    csv_path, used_cache = fetch_ist_daten(day, config_path=config_path, force=force)

    header = pd.read_csv(csv_path, sep=CSV_SEP, nrows=0)
    with csv_path.open("rb") as f:
        n_rows = max(sum(1 for _ in f) - 1, 0)
    LOGGER.info("Actual data rows: %d (%d columns)", n_rows, len(header.columns))

    digest = sha256_file(csv_path) if checkpoint else ""
    upsert_ingest_summary(
        [
            IngestRecord(
                dataset=f"ist_daten_{day.isoformat()}",
                stage="raw",
                path=str(csv_path.relative_to(paths.root)),
                rows=n_rows,
                cols=len(header.columns),
                bytes=csv_path.stat().st_size,
                source=cfg.sources.ist_daten.url_for(day),
                sha256=digest,
                notes="One operating day; semicolon-separated.",
            )
        ],
        paths.processed_meta / "ingest_summary.csv",
    )
    if checkpoint:
        LOGGER.info("Checkpoint: %s sha256=%s", csv_path.name, digest)

    return {
        "ist_daten_rows": n_rows,
        "ist_daten_cached": int(used_cache),
        "ist_daten_day": day.isoformat(),
    }


def main() -> None:
    configure_logging()
    args = _parse_args()
    run(day=args.date, config_path=args.config, force=args.force, checkpoint=args.checkpoint)


if __name__ == "__main__":
    main()
