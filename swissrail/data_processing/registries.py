"""Readers for the reference registries (service points, passenger frequency, line kilometrage).

Each registry has an externally-defined column layout; the YAML config maps the
columns we need onto internal names before validation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

import pandas as pd

from swissrail.core.config import CSV_ENCODING, CSV_SEP
from swissrail.io import ensure_unzipped
from swissrail.models.schemas import (
    LINE_KILOMETRAGE,
    PASSENGER_FREQUENCY,
    SERVICE_POINTS,
    TableSchema,
)
from swissrail.models.validate import validate_df

LOGGER = logging.getLogger(__name__)

TRAFFIC_COLUMNS: tuple[str, ...] = (
    "AVG_DAILY_TRAFFIC",
    "AVG_DAILY_TRAFFIC_WEEKDAYS",
    "AVG_DAILY_TRAFFIC_WEEKENDS",
)


def _read_mapped(path: Path, columns: Mapping[str, str], schema: TableSchema) -> pd.DataFrame:
    path = ensure_unzipped(Path(path))
    raw = pd.read_csv(path, sep=CSV_SEP, dtype=str, encoding=CSV_ENCODING)
    return map_columns(raw, columns, schema)


def map_columns(raw: pd.DataFrame, columns: Mapping[str, str], schema: TableSchema) -> pd.DataFrame:
    """Rename external columns to internal names, keep only mapped columns, validate.

    Columns mapped onto optional schema columns may be absent from the source.
    """
    absent = [c for c in columns if c not in raw.columns]
    missing = [c for c in absent if columns[c] in schema.required_columns]
    if missing:
        raise KeyError(
            f"{schema.name}: source is missing mapped columns {missing} "
            f"(available: {list(raw.columns)[:20]})"
        )
    if absent:
        LOGGER.info("%s: optional columns not in source: %s", schema.name, absent)
    present = {k: v for k, v in columns.items() if k in raw.columns}
    df = raw[list(present)].rename(columns=present)
    return validate_df(df, schema)


def _strip_thousands(series: pd.Series) -> pd.Series:
    # The statistics are published with Swiss thousand separators ("12'300").
    return series.astype("string").str.replace("'", "", regex=False).str.replace("’", "", regex=False)


def clean_service_points(df: pd.DataFrame) -> pd.DataFrame:
    """One row per BPUIC; the first row with coordinates wins."""
    has_xy = df["LATITUDE"].notna() & df["LONGITUDE"].notna()
    out = (
        df.assign(_NO_XY=~has_xy)
        .sort_values(["BPUIC", "_NO_XY"], kind="mergesort")
        .drop_duplicates(subset=["BPUIC"], keep="first")
        .drop(columns=["_NO_XY"])
        .reset_index(drop=True)
    )
    n_dup = len(df) - len(out)
    if n_dup:
        LOGGER.info("Service points: dropped %d duplicate BPUIC rows", n_dup)
    return out


def load_service_points(path: Path, columns: Mapping[str, str]) -> pd.DataFrame:
    df = _read_mapped(path, columns, SERVICE_POINTS)
    LOGGER.info("Service points loaded: %d rows", len(df))
    return clean_service_points(df)


def latest_frequency(df: pd.DataFrame) -> pd.DataFrame:
    """Keep the most recent year per station (all rows if no YEAR column)."""
    if "YEAR" in df.columns:
        df = df.sort_values(["BPUIC", "YEAR"], kind="mergesort", na_position="first")
        df = df.drop_duplicates(subset=["BPUIC"], keep="last")
    else:
        traffic = [c for c in TRAFFIC_COLUMNS if c in df.columns]
        df = df.groupby("BPUIC", as_index=False)[traffic].mean()
    return df.sort_values(["BPUIC"], kind="mergesort").reset_index(drop=True)


def load_passenger_frequency(path: Path, columns: Mapping[str, str]) -> pd.DataFrame:
    path = ensure_unzipped(Path(path))
    raw = pd.read_csv(path, sep=CSV_SEP, dtype=str, encoding=CSV_ENCODING)
    for src, dst in columns.items():
        if dst in TRAFFIC_COLUMNS and src in raw.columns:
            raw[src] = _strip_thousands(raw[src])
    df = map_columns(raw, columns, PASSENGER_FREQUENCY)
    out = latest_frequency(df)
    LOGGER.info("Passenger frequency: %d stations", len(out))
    return out


def load_line_kilometrage(path: Path, columns: Mapping[str, str]) -> pd.DataFrame:
    df = _read_mapped(path, columns, LINE_KILOMETRAGE)
    df = df.drop_duplicates(subset=["LINE_ID", "BPUIC"], keep="first").reset_index(drop=True)
    LOGGER.info(
        "Line kilometrage: %d positions on %d lines", len(df), df["LINE_ID"].nunique()
    )
    return df
