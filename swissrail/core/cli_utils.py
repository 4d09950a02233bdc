"""Common CLI utilities for ingestion and build scripts."""

from __future__ import annotations

import argparse
import datetime as dt
from pathlib import Path
from typing import Any


def _parse_date(value: str) -> dt.date:
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def create_base_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-download/rebuild outputs even if cached files exist.",
    )
    parser.add_argument(
        "--date",
        type=_parse_date,
        default=None,
        help="Operating day of the actual-data feed (YYYY-MM-DD). Defaults to the configured day.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the network YAML config (default: config/network_config.yaml).",
    )
    parser.add_argument(
        "--checkpoint",
        action="store_true",
        help="Print checkpoint summary including output hashes.",
    )
    return parser


def add_skip_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--skip-ist-daten", action="store_true", help="Skip the actual-data (Ist-Daten) download."
    )
    parser.add_argument(
        "--skip-registries",
        action="store_true",
        help="Skip service-point, passenger-frequency and line-kilometrage downloads.",
    )


class BuildStats:
    """Simple container for collecting statistics across ingestion/build steps."""

    def __init__(self) -> None:
        self.stats: dict[str, Any] = {}
        self.completed_steps: list[str] = []

    def update(self, step_stats: dict[str, Any]) -> None:
        self.stats.update(step_stats)

    def add_step(self, step_name: str) -> None:
        self.completed_steps.append(step_name)

    def get_summary(self) -> dict[str, Any]:
        return {
            "completed_steps": self.completed_steps,
            "step_count": len(self.completed_steps),
            **self.stats,
        }
