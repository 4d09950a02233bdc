"""Data-quality spot checks on the built network.

Nothing here raises on bad data: findings are returned (and logged) so the
build script can record them in `data/processed/_meta/quality.csv`.
"""

from __future__ import annotations

import logging

import pandas as pd

LOGGER = logging.getLogger(__name__)


def find_self_loops(edges: pd.DataFrame) -> pd.DataFrame:
    return edges.loc[edges["BPUIC1"] == edges["BPUIC2"]].reset_index(drop=True)


def find_missing_coordinates(stations: pd.DataFrame) -> pd.DataFrame:
    missing = stations["LATITUDE"].isna() | stations["LONGITUDE"].isna()
    return stations.loc[missing, ["BPUIC", "NAME"]].reset_index(drop=True)


def find_duplicate_station_names(stations: pd.DataFrame) -> pd.DataFrame:
    """Stations sharing a name under different codes (candidates for `station_merges`)."""
    names = stations["NAME"].astype("string").str.strip().str.casefold()
    dup = names.notna() & names.duplicated(keep=False)
    out = stations.loc[dup, ["BPUIC", "NAME"]].copy()
    return out.sort_values(["NAME", "BPUIC"], kind="mergesort").reset_index(drop=True)


def compare_station_names(trips: pd.DataFrame, stations: pd.DataFrame) -> pd.DataFrame:
    """Stations whose feed stop name differs from the registry name."""
    feed = (
        trips[["BPUIC", "NAME"]]
        .dropna()
        .astype({"BPUIC": "int64"})
        .drop_duplicates(subset=["BPUIC"], keep="first")
        .rename(columns={"NAME": "FEED_NAME"})
    )
    reg = stations[["BPUIC", "NAME"]].dropna().astype({"BPUIC": "int64"})
    m = feed.merge(reg.rename(columns={"NAME": "REGISTRY_NAME"}), on="BPUIC", how="inner")
    differs = m["FEED_NAME"].astype(str).str.strip() != m["REGISTRY_NAME"].astype(str).str.strip()
    return m.loc[differs].sort_values(["BPUIC"], kind="mergesort").reset_index(drop=True)


def edge_between(
    edges: pd.DataFrame,
    stations: pd.DataFrame,
    name1: str,
    name2: str,
    *,
    directed: bool = True,
) -> pd.DataFrame:
    """Look up the edge row(s) between two stations given by name (spot checks)."""
    lookup = stations.set_index(stations["NAME"].astype(str))["BPUIC"]
    missing = [n for n in (name1, name2) if n not in lookup.index]
    if missing:
        raise KeyError(f"unknown station name(s): {missing}")
    a = set(lookup.loc[[name1]].astype("int64"))
    b = set(lookup.loc[[name2]].astype("int64"))

    u = edges["BPUIC1"].astype("int64")
    v = edges["BPUIC2"].astype("int64")
    hit = u.isin(a) & v.isin(b)
    if not directed:
        hit |= u.isin(b) & v.isin(a)
    return edges.loc[hit].reset_index(drop=True)


def quality_report(
    *,
    trips: pd.DataFrame,
    stations: pd.DataFrame,
    edge_tables: dict[str, pd.DataFrame],
) -> pd.DataFrame:
    """Collect spot-check counts into a `check, value` table."""
    rows: list[dict[str, object]] = []
    for name, edges in edge_tables.items():
        rows.append({"check": f"{name}_edges", "value": len(edges)})
        rows.append({"check": f"{name}_self_loops", "value": len(find_self_loops(edges))})
        if "AVG_DURATION" in edges.columns:
            rows.append(
                {"check": f"{name}_untimed_edges", "value": int(edges["AVG_DURATION"].isna().sum())}
            )

    missing_xy = find_missing_coordinates(stations)
    dup_names = find_duplicate_station_names(stations)
    mismatched = compare_station_names(trips, stations)
    rows += [
        {"check": "stations", "value": len(stations)},
        {"check": "stations_missing_coordinates", "value": len(missing_xy)},
        {"check": "stations_duplicate_names", "value": len(dup_names)},
        {"check": "stations_feed_name_mismatch", "value": len(mismatched)},
    ]

    if len(missing_xy):
        LOGGER.warning("Stations missing coordinates: %s", missing_xy["BPUIC"].tolist()[:20])
    if len(dup_names):
        LOGGER.warning("Duplicate station names: %s", dup_names["NAME"].unique().tolist()[:20])
    if len(mismatched):
        LOGGER.info("Feed/registry name mismatches: %d", len(mismatched))
    return pd.DataFrame(rows, columns=["check", "value"])
