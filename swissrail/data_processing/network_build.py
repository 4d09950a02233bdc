"""Build station/edge representations of the Swiss railway network.

Encodings derived from the prepared stop sequences (see `ist_daten`):

- space-of-stops: `u -> v` when a trip runs from `u` to `v` without stopping in between
- space-of-changes: `u -> v` when `v` is a later stop of the same trip (no change of train)
- space-of-stations: undirected `u - v` when no station lies between them on the track
- temporal: every space-of-changes connection of every trip, with departure time and duration

Design goals:
- Deterministic outputs (stable sorting, no timestamps).
- Keep logic in `swissrail/` and I/O orchestration in `scripts/`.
- Aggregate duplicates by summation, then divide to obtain averages.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Iterable, Mapping, Sized
from dataclasses import dataclass

import networkx as nx
import numpy as np
import pandas as pd

from swissrail.data_processing.ist_daten import TripStops, day_start_minutes, iter_trips
from swissrail.data_processing.registries import TRAFFIC_COLUMNS
from swissrail.geo.distances import edge_geodesic_distances
from swissrail.graph.graph_utils import canon_edge

LOGGER = logging.getLogger(__name__)

EDGE_COLUMNS: tuple[str, ...] = ("BPUIC1", "BPUIC2", "NUM_CONNECTIONS", "AVG_DURATION")
TEMPORAL_COLUMNS: tuple[str, ...] = ("BPUIC1", "BPUIC2", "START", "DURATION")
STATION_COLUMNS: tuple[str, ...] = (
    "BPUIC",
    "NAME",
    "LATITUDE",
    "LONGITUDE",
    "CANTON",
    "MUNICIPALITY",
    "COMPANY",
    "ELEVATION",
    *TRAFFIC_COLUMNS,
)
_STATION_DTYPES: dict[str, str] = {
    "BPUIC": "Int64",
    "NAME": "string",
    "LATITUDE": "Float64",
    "LONGITUDE": "Float64",
    "CANTON": "string",
    "MUNICIPALITY": "string",
    "COMPANY": "string",
    "ELEVATION": "Float64",
    **{c: "Float64" for c in TRAFFIC_COLUMNS},
}

# Published precision: minutes to 2 decimals, kilometres to 4.
EXPORT_DECIMALS: dict[str, int] = {
    "AVG_DURATION": 2,
    "DISTANCE_GEODESIC": 4,
    "DISTANCE_EXACT": 4,
}


@dataclass
class EdgeAgg:
    connections: int = 0
    total_duration: float = 0.0
    timed: int = 0

    def add(self, duration: float) -> None:
        self.connections += 1
        # Missing or negative durations (broken timestamps) count as a connection only.
        if np.isfinite(duration) and duration >= 0:
            self.total_duration += float(duration)
            self.timed += 1

    @property
    def avg_duration(self) -> float:
        return self.total_duration / self.timed if self.timed else np.nan


def _require_any(rows: Sized, *, name: str) -> None:
    """Fail-fast guard: if an expected block yields no usable rows, inputs are likely wrong."""
    if not rows:
        raise ValueError(f"{name}: produced 0 edges. Check the trip table or the filters.")


def _edges_frame(agg: Mapping[tuple[int, int], EdgeAgg], *, name: str) -> pd.DataFrame:
    rows = [
        {
            "BPUIC1": u,
            "BPUIC2": v,
            "NUM_CONNECTIONS": a.connections,
            "AVG_DURATION": a.avg_duration,
        }
        for (u, v), a in agg.items()
    ]
    _require_any(rows, name=name)
    df = pd.DataFrame(rows, columns=list(EDGE_COLUMNS))
    df = df.astype(
        {"BPUIC1": "Int64", "BPUIC2": "Int64", "NUM_CONNECTIONS": "Int64", "AVG_DURATION": "Float64"}
    )
    return df.sort_values(["BPUIC1", "BPUIC2"], kind="mergesort").reset_index(drop=True)


def _aggregate(trips: Iterable[TripStops], pairs, *, name: str) -> pd.DataFrame:
    agg: dict[tuple[int, int], EdgeAgg] = {}
    n_trips = 0
    for trip in trips:
        n_trips += 1
        for i, j in pairs(len(trip)):
            k = (int(trip.stations[i]), int(trip.stations[j]))
            if k not in agg:
                agg[k] = EdgeAgg()
            agg[k].add(trip.arrivals[j] - trip.departures[i])
    LOGGER.info("%s: %d trips -> %d directed station pairs", name, n_trips, len(agg))
    return _edges_frame(agg, name=name)


def _consecutive_pairs(n: int) -> Iterable[tuple[int, int]]:
    return ((i, i + 1) for i in range(n - 1))


def _all_forward_pairs(n: int) -> Iterable[tuple[int, int]]:
    return ((i, j) for i in range(n - 1) for j in range(i + 1, n))


def space_of_stops_edges(trips: pd.DataFrame) -> pd.DataFrame:
    """Directed edges between consecutive stops, with trip counts and mean duration (minutes)."""
    return _aggregate(iter_trips(trips), _consecutive_pairs, name="space_of_stops")


def space_of_changes_edges(trips: pd.DataFrame) -> pd.DataFrame:
    """Directed edges between every stop and every later stop of the same trip."""
    return _aggregate(iter_trips(trips), _all_forward_pairs, name="space_of_changes")


def temporal_edges(trips: pd.DataFrame, day: dt.date) -> pd.DataFrame:
    """One row per trip and forward pair of stops `i < j`.

    START is the departure from `BPUIC1` in whole minutes after midnight of `day`
    (trips running past midnight exceed 1440). DURATION is the whole minutes until
    the arrival at `BPUIC2`. Pairs missing either time, or with a negative duration,
    are skipped.
    """
    origin = day_start_minutes(day)
    rows: list[tuple[int, int, float, float]] = []
    skipped = 0
    n_trips = 0
    for trip in iter_trips(trips):
        n_trips += 1
        for i, j in _all_forward_pairs(len(trip)):
            dep = trip.departures[i]
            duration = trip.arrivals[j] - dep
            if not np.isfinite(duration) or duration < 0:
                skipped += 1
                continue
            rows.append((int(trip.stations[i]), int(trip.stations[j]), dep - origin, duration))
    if skipped:
        LOGGER.warning("temporal: skipped %d connections without usable times", skipped)
    _require_any(rows, name="temporal")

    df = pd.DataFrame(rows, columns=list(TEMPORAL_COLUMNS))
    # Minute values carry float noise from the epoch conversion; nudge before truncating.
    for col in ("START", "DURATION"):
        df[col] = np.floor(df[col] + 1e-6)
    df = df.astype({c: "Int64" for c in TEMPORAL_COLUMNS})
    LOGGER.info("temporal: %d trips -> %d timed connections", n_trips, len(df))
    return df.sort_values(list(TEMPORAL_COLUMNS), kind="mergesort").reset_index(drop=True)


def round_for_export(df: pd.DataFrame) -> pd.DataFrame:
    """Round published duration/distance columns (see EXPORT_DECIMALS)."""
    decimals = {c: d for c, d in EXPORT_DECIMALS.items() if c in df.columns}
    return df.round(decimals)


def drop_self_loops(edges: pd.DataFrame) -> pd.DataFrame:
    """Remove edges whose endpoints coincide (trips looping back through a station)."""
    loops = edges["BPUIC1"] == edges["BPUIC2"]
    if loops.any():
        LOGGER.warning(
            "Dropping %d self-loop edge(s): %s",
            int(loops.sum()),
            sorted(int(x) for x in edges.loc[loops, "BPUIC1"]),
        )
    return edges.loc[~loops].reset_index(drop=True)


def to_undirected_edges(edges: pd.DataFrame) -> pd.DataFrame:
    """Merge `u->v` with `v->u`: summed connections, connection-weighted mean duration."""
    e = edges.copy()
    u = e["BPUIC1"].astype("int64")
    v = e["BPUIC2"].astype("int64")
    e["BPUIC1"] = np.minimum(u, v)
    e["BPUIC2"] = np.maximum(u, v)

    dur = e["AVG_DURATION"].astype(float)
    n = e["NUM_CONNECTIONS"].astype(float)
    timed = dur.notna()
    e["_W"] = np.where(timed, n, 0.0)
    e["_WD"] = np.where(timed, n * dur.fillna(0.0), 0.0)

    g = e.groupby(["BPUIC1", "BPUIC2"], as_index=False, sort=True).agg(
        NUM_CONNECTIONS=("NUM_CONNECTIONS", "sum"),
        _W=("_W", "sum"),
        _WD=("_WD", "sum"),
    )
    g["AVG_DURATION"] = np.where(g["_W"] > 0, g["_WD"] / g["_W"].where(g["_W"] > 0, 1.0), np.nan)
    g = g[list(EDGE_COLUMNS)].astype(
        {"BPUIC1": "Int64", "BPUIC2": "Int64", "NUM_CONNECTIONS": "Int64", "AVG_DURATION": "Float64"}
    )
    return g.sort_values(["BPUIC1", "BPUIC2"], kind="mergesort").reset_index(drop=True)


def find_shortcut_edges(
    trips: pd.DataFrame, candidates: Iterable[tuple[int, int]]
) -> set[tuple[int, int]]:
    """Candidate edges `u - w` that some trip serves with other stops in between.

    A trip calling at both `u` and `w` without running directly from one to the
    other passes through its intermediate stops, so `u - w` is no track link.
    Trips sharing a stop sequence are checked once.
    """
    nbrs: dict[int, set[int]] = {}
    for u, w in candidates:
        a, b = canon_edge(int(u), int(w))
        nbrs.setdefault(a, set()).add(b)

    out: set[tuple[int, int]] = set()
    seen: set[tuple[int, ...]] = set()
    for trip in iter_trips(trips):
        seq = tuple(int(s) for s in trip.stations)
        if seq in seen:
            continue
        seen.add(seq)
        stops = set(seq)
        adjacent = {canon_edge(a, b) for a, b in zip(seq, seq[1:])}
        for u in stops:
            for w in nbrs.get(u, set()) & stops:
                if (u, w) not in adjacent:
                    out.add((u, w))
    return out


def _bypassed_edges(G: nx.Graph, tolerance: float) -> set[tuple[int, int]]:
    """Remove edges whose ends stay connected within (1 + tol) * length; returns them.

    Longest edges are tested first and a removed edge is gone for every later test,
    so each removal leaves a path between its endpoints.
    """
    order = sorted(
        (d, canon_edge(u, w)) for u, w, d in G.edges(data="weight") if np.isfinite(d)
    )
    order.sort(key=lambda x: -x[0])

    out: set[tuple[int, int]] = set()
    for d, (u, w) in order:
        G.remove_edge(u, w)
        dist = nx.single_source_dijkstra_path_length(
            G, u, cutoff=(1.0 + tolerance) * d, weight="weight"
        )
        if w in dist:
            out.add((u, w))
        else:
            G.add_edge(u, w, weight=d)
    return out


def space_of_stations_edges(
    stop_edges: pd.DataFrame,
    stations: pd.DataFrame,
    *,
    trips: pd.DataFrame | None = None,
    detour_tolerance: float | None = 0.15,
) -> pd.DataFrame:
    """Derive physical track adjacency from the space-of-stops edges.

    1. With `trips`, a stop edge `u - w` is dropped when some trip stops at both `u`
       and `w` with stations in between (see `find_shortcut_edges`).
    2. With `detour_tolerance`, the remaining edges are checked geodesically: `u - w`
       is dropped when the other remaining edges connect `u` and `w` within
       `(1 + detour_tolerance)` of the direct distance. This catches nonstop runs no
       trip of the day breaks up. Edges with unknown length are never dropped here.

    Returns undirected edges (BPUIC1 < BPUIC2) with NUM_CONNECTIONS/AVG_DURATION
    carried over from the undirected stop edges.
    """
    if detour_tolerance is not None and detour_tolerance < 0:
        raise ValueError("detour_tolerance must be >= 0")

    und = drop_self_loops(to_undirected_edges(stop_edges))
    keys = [
        (int(u), int(w))
        for u, w in zip(und["BPUIC1"].astype("int64"), und["BPUIC2"].astype("int64"))
    ]

    removed: set[tuple[int, int]] = set()
    if trips is not None:
        shortcuts = find_shortcut_edges(trips, keys)
        LOGGER.info("space_of_stations: %d edges skip stops of a trip", len(shortcuts))
        removed |= shortcuts

    if detour_tolerance is not None:
        dist = edge_geodesic_distances(und, stations).astype(float)
        G = nx.Graph()
        for k, d in zip(keys, dist):
            if k not in removed:
                # Unknown lengths take part with weight inf: kept, but never part of a bypass.
                G.add_edge(k[0], k[1], weight=float(d) if pd.notna(d) else np.inf)
        unknown = int(dist.isna().sum())
        if unknown:
            LOGGER.warning(
                "space_of_stations: %d edges without geodesic length are kept as-is", unknown
            )
        bypassed = _bypassed_edges(G, detour_tolerance)
        LOGGER.info("space_of_stations: %d edges bypassed geodesically", len(bypassed))
        removed |= bypassed

    keep = np.array([k not in removed for k in keys], dtype=bool)
    LOGGER.info(
        "space_of_stations: %d undirected stop edges, %d removed, %d kept",
        len(und),
        len(removed),
        int(keep.sum()),
    )
    return und.loc[keep, list(EDGE_COLUMNS)].reset_index(drop=True)


def apply_edge_fixes(
    edges: pd.DataFrame,
    *,
    remove: Iterable[tuple[int, int]] = (),
    add: Iterable[tuple[int, int]] = (),
    directed: bool = False,
) -> pd.DataFrame:
    """Manual removal/addition of edges.

    For undirected tables pairs are matched in either orientation. Added edges get
    NUM_CONNECTIONS=0 (no observed trip) and NA duration.
    """
    key = (lambda u, v: (u, v)) if directed else canon_edge
    remove_keys = {key(int(u), int(v)) for u, v in remove}
    add_keys = [key(int(u), int(v)) for u, v in add]

    current = [
        key(int(u), int(v))
        for u, v in edges[["BPUIC1", "BPUIC2"]].itertuples(index=False, name=None)
    ]
    unknown = sorted(remove_keys - set(current))
    if unknown:
        LOGGER.warning("remove_edges: %d pair(s) not present: %s", len(unknown), unknown)
    drop = np.array([k in remove_keys for k in current], dtype=bool)
    out = edges.loc[~drop].copy()

    existing = set(current) - remove_keys
    new_rows = [
        {"BPUIC1": u, "BPUIC2": v, "NUM_CONNECTIONS": 0, "AVG_DURATION": np.nan}
        for u, v in dict.fromkeys(add_keys)
        if (u, v) not in existing
    ]
    LOGGER.info("Manual edge fixes: removed %d, added %d", int(drop.sum()), len(new_rows))
    if new_rows:
        out = pd.concat([out, pd.DataFrame(new_rows)], ignore_index=True)
    out = out.astype(
        {"BPUIC1": "Int64", "BPUIC2": "Int64", "NUM_CONNECTIONS": "Int64", "AVG_DURATION": "Float64"}
    )
    return out.sort_values(["BPUIC1", "BPUIC2"], kind="mergesort").reset_index(drop=True)


def stations_for_edges(
    service_points: pd.DataFrame,
    edges: Iterable[pd.DataFrame],
    *,
    frequency: pd.DataFrame | None = None,
    coordinates: Mapping[int, tuple[float, float]] | None = None,
    fallback_names: Mapping[int, str] | None = None,
) -> pd.DataFrame:
    """Node table restricted to the stations that appear in any of the edge tables.

    - `coordinates` overrides/imputes (lat, lon) per BPUIC
    - `frequency` adds the AVG_DAILY_TRAFFIC columns (latest year per station)
    - `fallback_names` names stations absent from the registry (e.g. feed stop names)
    """
    ids: set[int] = set()
    for e in edges:
        ids |= set(e["BPUIC1"].astype("int64").tolist())
        ids |= set(e["BPUIC2"].astype("int64").tolist())
    if not ids:
        raise ValueError("stations_for_edges: edge tables contain no stations")

    sp = service_points.copy()
    sp["BPUIC"] = sp["BPUIC"].astype("int64")
    st = pd.DataFrame({"BPUIC": sorted(ids)}).merge(sp, on="BPUIC", how="left")

    absent = st["NAME"].isna() & st["LATITUDE"].isna() & st["LONGITUDE"].isna()
    if absent.any():
        LOGGER.warning(
            "%d edge stations not found in the service-point registry: %s",
            int(absent.sum()),
            st.loc[absent, "BPUIC"].head(10).tolist(),
        )
    if fallback_names:
        names = st["BPUIC"].map(lambda b: fallback_names.get(int(b)))
        st["NAME"] = st["NAME"].astype("string").fillna(names.astype("string"))

    for bpuic, (lat, lon) in (coordinates or {}).items():
        hit = st["BPUIC"] == int(bpuic)
        if hit.any():
            st.loc[hit, "LATITUDE"] = float(lat)
            st.loc[hit, "LONGITUDE"] = float(lon)

    if frequency is not None:
        fq = frequency[["BPUIC", *(c for c in TRAFFIC_COLUMNS if c in frequency.columns)]].copy()
        fq["BPUIC"] = fq["BPUIC"].astype("int64")
        st = st.merge(fq, on="BPUIC", how="left")

    for col in STATION_COLUMNS:
        if col not in st.columns:
            st[col] = pd.NA

    missing_xy = st["LATITUDE"].isna() | st["LONGITUDE"].isna()
    if missing_xy.any():
        LOGGER.warning(
            "%d stations still lack coordinates: %s",
            int(missing_xy.sum()),
            st.loc[missing_xy, "BPUIC"].tolist()[:20],
        )

    st = st[list(STATION_COLUMNS)].astype(_STATION_DTYPES)
    return st.sort_values(["BPUIC"], kind="mergesort").reset_index(drop=True)
