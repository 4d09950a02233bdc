"""Project configuration (paths, constants, CSV conventions)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

# CRS defaults
CRS_WGS84: str = "EPSG:4326"
CRS_LV95: str = "EPSG:2056"  # Swiss projected grid (CH1903+ / LV95)

# All published and consumed tables are semicolon-separated UTF-8.
CSV_SEP: str = ";"
CSV_ENCODING: str = "utf-8"


def project_root() -> Path:
    """Return repository root assuming this file lives in `<root>/swissrail/core/config.py`."""
    return Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class Paths:
    root: Path
    config: Path
    data_raw: Path
    data_processed: Path

    # Processed data is data produced by a script that gets used downstream
    processed_network: Path
    processed_meta: Path

    artifacts: Path
    figures: Path
    scripts: Path
    tests: Path


def get_paths(root: Path | None = None) -> Paths:
    r = project_root() if root is None else Path(root).resolve()
    data_processed = r / "data" / "processed"
    return Paths(
        root=r,
        config=r / "config",
        data_raw=r / "data" / "raw",
        data_processed=data_processed,
        processed_network=data_processed / "network",
        processed_meta=data_processed / "_meta",
        artifacts=r / "artifacts",
        figures=r / "figures",
        scripts=r / "scripts",
        tests=r / "tests",
    )


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
