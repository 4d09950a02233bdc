"""Step 2: Ingest the reference registries.

- service points (station names, WGS84 coordinates, canton)
- passenger frequency statistics (average daily traffic per station and year)
- line kilometrage (km position of operating points per line; optional)

Run:
  python scripts/data_ingestion/02_ingest_registries.py
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure repo root is on sys.path so `import swissrail...` works when executing this file directly.
SCRIPTS_DIR = Path(__file__).resolve().parents[1]
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))
from bootstrap import ensure_repo_root_on_path

ensure_repo_root_on_path(__file__)

from swissrail.core.cli_utils import create_base_parser
from swissrail.core.config import configure_logging, get_paths
from swissrail.core.settings import SourceSpec, load_network_config
from swissrail.io import (
    IngestRecord,
    cached,
    download_file,
    sha256_file,
    upsert_ingest_summary,
)

LOGGER = logging.getLogger("ingest_registries")


def fetch_registry(name: str, src: SourceSpec, *, force: bool = False) -> tuple[Path, bool]:
    """Download one registry CSV unless a non-empty copy is already cached."""
    paths = get_paths()
    out_path = paths.data_raw / src.filename_for()

    path, used_cache = cached(
        out_path,
        force=force,
        read=lambda p: p,
        build=lambda: download_file(src.url_for(), out_path),
    )
    LOGGER.info("%s: %s (%s)", name, path, "cached" if used_cache else "downloaded")
    return path, used_cache


def _parse_args() -> argparse.Namespace:
    """Parse command line arguments for the registry ingestion script."""
    return create_base_parser(
        "Ingest service points, passenger frequency and line kilometrage."
    ).parse_args()


def run(
    *,
    config_path: Path | None = None,
    force: bool = False,
    checkpoint: bool = False,
) -> dict[str, int | str]:
    """Run the registry ingest. Returns a small dict of key counts."""
    paths = get_paths()
    cfg = load_network_config(config_path)

    sources: dict[str, SourceSpec] = {
        "service_points": cfg.sources.service_points,
        "passenger_frequency": cfg.sources.passenger_frequency,
    }
    if cfg.sources.line_kilometrage is not None:
        sources["line_kilometrage"] = cfg.sources.line_kilometrage

    records: list[IngestRecord] = []
    out: dict[str, int | str] = {}
    for name, src in sources.items():
        path, used_cache = fetch_registry(name, src, force=force)
        digest = sha256_file(path) if checkpoint else ""
        if checkpoint:
            LOGGER.info("Checkpoint: %s sha256=%s", path.name, digest)
        records.append(
            IngestRecord(
                dataset=name,
                stage="raw",
                path=str(path.relative_to(paths.root)),
                rows=None,
                cols=None,
                bytes=path.stat().st_size,
                source=src.url_for(),
                sha256=digest,
            )
        )
        out[f"{name}_cached"] = int(used_cache)

    upsert_ingest_summary(records, paths.processed_meta / "ingest_summary.csv")
    LOGGER.info("Wrote/updated %s", paths.processed_meta / "ingest_summary.csv")
    return out


def main() -> None:
    configure_logging()
    args = _parse_args()
    run(config_path=args.config, force=args.force, checkpoint=args.checkpoint)


if __name__ == "__main__":
    main()
