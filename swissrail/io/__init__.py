"""Lightweight I/O helpers.

This module centralises:
- validated CSV reads (`read_csv_validated`) and semicolon CSV writes at pipeline boundaries
- JSON/YAML helpers used by scripts
- download + ingestion metadata helpers used in `scripts/data_ingestion/*`
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
import yaml

from swissrail.core.config import CSV_ENCODING, CSV_SEP
from swissrail.io.compressed import ensure_unzipped, extract_member
from swissrail.models.validate import validate_df

LOGGER = logging.getLogger(__name__)

USER_AGENT = "swissrail-network/0.1 (ingestion)"

__all__ = [
    "IngestRecord",
    "cached",
    "download_file",
    "ensure_parent_dir",
    "ensure_unzipped",
    "extract_member",
    "load_yaml",
    "read_csv_validated",
    "sha256_file",
    "upsert_ingest_summary",
    "write_csv",
    "write_json",
]


def ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_json(obj: Any, path: Path) -> None:
    ensure_parent_dir(path)
    path.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")


def load_yaml(path: Path) -> Any:
    """Load a YAML file (empty file -> empty dict)."""
    return yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}


def cached(
    path: Path,
    *,
    force: bool,
    read,
    build,
    write=None,
    validate=None,
) -> tuple[Any, bool]:
    """Cache-to-disk helper used by ingestion scripts.

    Returns (obj, used_cache).
    """
    if not force and path.exists() and path.stat().st_size > 0:
        obj = read(path)
        if validate is None or validate(obj):
            return obj, True
    obj = build()
    if write is not None:
        write(obj, path)
    return obj, False


def _session():
    import requests

    global _SESSION  # noqa: PLW0603
    try:
        session = _SESSION
    except NameError:
        session = None

    if session is None:
        session = requests.Session()
        session.headers.update({"User-Agent": USER_AGENT})
        _SESSION = session
    return session


def download_file(url: str, out_path: Path, *, timeout_s: float = 120.0) -> Path:
    """Stream a URL to disk, retrying transient HTTP failures.

    Writes to a `.part` file first so an interrupted download never looks cached.
    """
    import requests
    from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

    session = _session()

    def _retryable(exc: BaseException) -> bool:
        if isinstance(exc, requests.exceptions.HTTPError):
            resp = getattr(exc, "response", None)
            code = getattr(resp, "status_code", None)
            return code in {429, 500, 502, 503, 504}
        return isinstance(exc, requests.exceptions.RequestException)

    @retry(
        retry=retry_if_exception(_retryable),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=10.0),
        stop=stop_after_attempt(6),
        reraise=True,
    )
    def _do_get() -> None:
        tmp = out_path.with_suffix(out_path.suffix + ".part")
        with session.get(url, timeout=timeout_s, stream=True) as r:
            r.raise_for_status()
            with tmp.open("wb") as f:
                for chunk in r.iter_content(chunk_size=1024 * 1024):
                    f.write(chunk)
        tmp.replace(out_path)

    ensure_parent_dir(out_path)
    LOGGER.info("Downloading %s -> %s", url, out_path)
    _do_get()
    return out_path


def read_csv_validated(
    path: Path,
    *,
    dtype: dict[str, str] | type | None,
    schema: Any,
    sep: str = CSV_SEP,
    usecols: list[str] | None = None,
) -> pd.DataFrame:
    """Read a semicolon CSV and validate it against a schema-like object.

    We validate by *shape* (required attributes) rather than strict class identity,
    so notebook kernels don't break across refactors.
    """
    required_attrs = ("name", "required_columns", "optional_columns", "dtypes", "non_null")
    missing = [a for a in required_attrs if not hasattr(schema, a)]
    if missing:
        raise TypeError(f"schema missing required attributes {missing}; got {type(schema)}")

    df = pd.read_csv(path, sep=sep, dtype=dtype, encoding=CSV_ENCODING, usecols=usecols)
    return validate_df(df, schema)


def write_csv(df: pd.DataFrame, path: Path) -> Path:
    """Write a table in the published format (semicolon, UTF-8, no index)."""
    ensure_parent_dir(path)
    df.to_csv(path, sep=CSV_SEP, encoding=CSV_ENCODING, index=False)
    return path


def sha256_file(path: Path) -> str:
    """Return SHA256 hex digest for a file."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


@dataclass(frozen=True)
class IngestRecord:
    """Row-level ingest metadata for the ingest inventory CSV (default: `data/processed/_meta/ingest_summary.csv`)."""

    dataset: str
    stage: str  # e.g. "raw" / "processed"
    path: str
    rows: int | None
    cols: int | None
    bytes: int | None
    source: str
    sha256: str = ""
    notes: str = ""


def upsert_ingest_summary(records: list[IngestRecord], summary_csv: Path) -> None:
    """Upsert ingest records into a summary CSV keyed by `dataset`."""
    ensure_parent_dir(summary_csv)
    rows = [
        {
            "dataset": r.dataset,
            "stage": r.stage,
            "path": r.path,
            "rows": r.rows,
            "cols": r.cols,
            "bytes": r.bytes,
            "source": r.source,
            "sha256": r.sha256,
            "notes": r.notes,
        }
        for r in records
    ]

    new_df = pd.DataFrame(rows)
    new_df["dataset"] = new_df["dataset"].astype(str)

    if summary_csv.exists():
        old = pd.read_csv(summary_csv, sep=CSV_SEP, dtype={"dataset": "string"})
        old["dataset"] = old["dataset"].astype(str)
        old = old[~old["dataset"].isin(set(new_df["dataset"].tolist()))]
        df = pd.concat([old, new_df], ignore_index=True)
    else:
        df = new_df

    df = df.sort_values(["dataset"], kind="mergesort").reset_index(drop=True)
    write_csv(df, summary_csv)
