"""Prepare the actual-data feed (Ist-Daten) for graph building.

One feed row is one stop event of a Fahrt (trip). Preparation turns the raw
rows into an ordered stop sequence per trip with numeric arrival/departure
times, which is all `network_build` needs.

Design goals:
- Deterministic ordering (stable sorts; feed order breaks ties).
- Every filtering rule logs how many rows it dropped.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

from swissrail.core.settings import FilterConfig
from swissrail.io import ensure_unzipped, read_csv_validated
from swissrail.models.schemas import IST_DATEN

LOGGER = logging.getLogger(__name__)

SCHEDULED_FORMAT = "%d.%m.%Y %H:%M"
FORECAST_FORMAT = "%d.%m.%Y %H:%M:%S"

TRIP_COLUMNS = ("TRIP_ID", "SEQ", "BPUIC", "NAME", "ARR", "DEP")

_EPOCH = pd.Timestamp("1970-01-01")


@dataclass(frozen=True)
class TripStops:
    """Ordered stops of one trip; times are float minutes since epoch (NaN when unknown)."""

    trip_id: str
    stations: np.ndarray
    arrivals: np.ndarray
    departures: np.ndarray

    def __len__(self) -> int:
        return len(self.stations)


def load_ist_daten(path: Path) -> pd.DataFrame:
    """Read one day of the actual-data feed (plain or `.zip`) as validated strings."""
    path = ensure_unzipped(Path(path))
    allowed = IST_DATEN.allowed_columns()
    LOGGER.info("Reading actual data: %s", path)
    df = read_csv_validated(path, dtype=str, schema=IST_DATEN, usecols=lambda c: c in allowed)
    LOGGER.info("Actual data rows: %d", len(df))
    return df


def _to_datetime(series: pd.Series, formats: tuple[str, ...]) -> pd.Series:
    """Parse with the first matching format per value; anything else becomes NaT."""
    out = pd.Series(pd.NaT, index=series.index, dtype="datetime64[ns]")
    text = series.astype("string").str.strip()
    for fmt in formats:
        todo = out.isna() & text.notna()
        if not todo.any():
            break
        out.loc[todo] = pd.to_datetime(text[todo], format=fmt, errors="coerce")
    return out


def parse_timestamps(df: pd.DataFrame) -> pd.DataFrame:
    """Add ARR_SCHED/DEP_SCHED/ARR_FORECAST/DEP_FORECAST datetime columns."""
    out = df.copy()
    both = (SCHEDULED_FORMAT, FORECAST_FORMAT)
    out["ARR_SCHED"] = _to_datetime(out["ANKUNFTSZEIT"], both)
    out["DEP_SCHED"] = _to_datetime(out["ABFAHRTSZEIT"], both)
    for src, dst in (("AN_PROGNOSE", "ARR_FORECAST"), ("AB_PROGNOSE", "DEP_FORECAST")):
        if src in out.columns:
            out[dst] = _to_datetime(out[src], (FORECAST_FORMAT, SCHEDULED_FORMAT))
        else:
            out[dst] = pd.Series(pd.NaT, index=out.index, dtype="datetime64[ns]")
    return out


def _flag(df: pd.DataFrame, col: str) -> pd.Series:
    if col not in df.columns:
        return pd.Series(False, index=df.index)
    return df[col].astype("string").str.strip().str.lower().eq("true").fillna(False).astype(bool)


def filter_events(df: pd.DataFrame, filters: FilterConfig) -> pd.DataFrame:
    """Apply the configured row filters (product, line, cancelled, additional, pass-through)."""
    keep = pd.Series(True, index=df.index)

    if filters.product_ids:
        wanted = {p.lower() for p in filters.product_ids}
        product = df["PRODUKT_ID"].astype("string").str.strip().replace("", pd.NA)
        if filters.missing_product_id is not None:
            n_missing = int(product.isna().sum())
            if n_missing:
                LOGGER.info(
                    "Rows without product id treated as %r: %d", filters.missing_product_id, n_missing
                )
            product = product.fillna(filters.missing_product_id)
        is_product = product.str.lower().isin(wanted).fillna(False).astype(bool)
        LOGGER.info(
            "Rows outside products %s: %d", list(filters.product_ids), int((~is_product).sum())
        )
        keep &= is_product

    if filters.exclude_line_texts and "LINIEN_TEXT" in df.columns:
        excluded = {t.strip().upper() for t in filters.exclude_line_texts}
        line = df["LINIEN_TEXT"].astype("string").str.strip().str.upper()
        hit = line.isin(excluded).fillna(False).astype(bool) & keep
        LOGGER.info(
            "Rows dropped as excluded lines %s: %d", sorted(excluded), int(hit.sum())
        )
        keep &= ~hit

    rules = (
        ("FAELLT_AUS_TF", filters.drop_cancelled, "cancelled"),
        ("ZUSATZFAHRT_TF", filters.drop_additional, "additional trip"),
        ("DURCHFAHRT_TF", filters.drop_pass_through, "pass-through"),
    )
    for col, enabled, label in rules:
        if not enabled:
            continue
        hit = _flag(df, col) & keep
        LOGGER.info("Rows dropped as %s: %d", label, int(hit.sum()))
        keep &= ~hit

    out = df.loc[keep].copy()
    LOGGER.info("Rows kept after filtering: %d of %d", len(out), len(df))
    return out


def apply_station_merges(
    df: pd.DataFrame, merges: Mapping[int, int], *, column: str = "BPUIC"
) -> pd.DataFrame:
    """Replace duplicate station codes by their canonical code."""
    if not merges:
        return df
    out = df.copy()
    codes = out[column].astype("Int64")
    hit = codes.isin(list(merges))
    if hit.any():
        LOGGER.info("Merging duplicate station codes in %s: %d rows", column, int(hit.sum()))
        out[column] = codes.replace({int(k): int(v) for k, v in merges.items()}).astype("Int64")
    return out


def _minutes(ts: pd.Series) -> pd.Series:
    return (ts - _EPOCH) / pd.Timedelta(minutes=1)


def day_start_minutes(day: dt.date) -> float:
    """Midnight of `day` on the same minute scale as the trip ARR/DEP columns."""
    return (pd.Timestamp(day) - _EPOCH) / pd.Timedelta(minutes=1)


def prepare_trips(
    df: pd.DataFrame,
    filters: FilterConfig,
    merges: Mapping[int, int] | None = None,
) -> pd.DataFrame:
    """Build the ordered stop table used by the graph encodings.

    Output columns: TRIP_ID, SEQ, BPUIC, NAME, ARR, DEP (ARR/DEP in float minutes).
    """
    events = filter_events(df, filters)
    if events.empty:
        raise ValueError(
            "prepare_trips: produced 0 usable trips. Check the product filter or the feed schema."
        )
    events = apply_station_merges(events, merges or {})
    events = parse_timestamps(events)

    arr, dep = events["ARR_SCHED"], events["DEP_SCHED"]
    if filters.use_forecast:
        # Forecasts are missing for some events; fall back to the timetable there.
        arr = events["ARR_FORECAST"].fillna(arr)
        dep = events["DEP_FORECAST"].fillna(dep)

    t = pd.DataFrame(
        {
            "TRIP_ID": events["BETRIEBSTAG"].astype("string").fillna("")
            + "|"
            + events["FAHRT_BEZEICHNER"].astype("string"),
            "BPUIC": events["BPUIC"].astype("Int64"),
            "NAME": events["HALTESTELLEN_NAME"].astype("string"),
            "ARR": _minutes(arr),
            "DEP": _minutes(dep),
            "_ROW": np.arange(len(events)),
        }
    )

    # Order stops by time; stops without any time inherit the previous stop's time so
    # that feed order decides.
    t["_T"] = t["ARR"].fillna(t["DEP"])
    t["_T"] = t.groupby("TRIP_ID", sort=False)["_T"].ffill()
    t = t.sort_values(["TRIP_ID", "_T", "_ROW"], kind="mergesort", na_position="first")

    # Collapse consecutive events at the same station (after merges): first arrival, last departure.
    same = (t["TRIP_ID"].eq(t["TRIP_ID"].shift()) & t["BPUIC"].eq(t["BPUIC"].shift()))
    same = same.fillna(False).astype(bool)
    n_collapsed = int(same.sum())
    if n_collapsed:
        LOGGER.warning("Collapsed %d consecutive repeated stop events", n_collapsed)
    t["_G"] = (~same).cumsum()
    t = t.groupby("_G", sort=False).agg(
        TRIP_ID=("TRIP_ID", "first"),
        BPUIC=("BPUIC", "first"),
        NAME=("NAME", "first"),
        ARR=("ARR", "first"),
        DEP=("DEP", "last"),
    )

    sizes = t.groupby("TRIP_ID", sort=False)["BPUIC"].transform("size")
    n_short = int(t.loc[sizes < 2, "TRIP_ID"].nunique())
    if n_short:
        LOGGER.info("Trips with fewer than 2 stops dropped: %d", n_short)
    t = t.loc[sizes >= 2].copy()
    if t.empty:
        raise ValueError(
            "prepare_trips: produced 0 usable trips. Check the product filter or the feed schema."
        )

    t["SEQ"] = t.groupby("TRIP_ID", sort=False).cumcount()
    t = t.reset_index(drop=True)
    LOGGER.info("Prepared %d stops across %d trips", len(t), t["TRIP_ID"].nunique())
    return t[list(TRIP_COLUMNS)]


def iter_trips(trips: pd.DataFrame) -> Iterator[TripStops]:
    """Yield each trip's ordered stops (expects the output of `prepare_trips`)."""
    ordered = trips.sort_values(["TRIP_ID", "SEQ"], kind="mergesort")
    for trip_id, g in ordered.groupby("TRIP_ID", sort=True):
        yield TripStops(
            trip_id=str(trip_id),
            stations=g["BPUIC"].to_numpy(dtype="int64"),
            arrivals=g["ARR"].to_numpy(dtype="float64", na_value=np.nan),
            departures=g["DEP"].to_numpy(dtype="float64", na_value=np.nan),
        )
