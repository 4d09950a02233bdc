from __future__ import annotations

import logging
from dataclasses import dataclass

import networkx as nx
import pandas as pd

from swissrail.core.config import get_paths
from swissrail.graph.metrics import build_graph_from_edges
from swissrail.io import read_csv_validated
from swissrail.models.schemas import EDGES_DISTANCES, EDGES_STOPS, EDGES_TEMPORAL, STATIONS

LOGGER = logging.getLogger(__name__)

STATIONS_FILE = "stations.csv"
EDGES_STOPS_FILE = "edges_stops.csv"
EDGES_CHANGES_FILE = "edges_changes.csv"
EDGES_STATIONS_FILE = "edges_stations.csv"
EDGES_DISTANCES_FILE = "edges_distances.csv"
EDGES_TEMPORAL_FILE = "edges_temporal.csv"


@dataclass(frozen=True)
class NetworkDataset:
    """Processed network tables plus the graphs built from them."""

    stations: pd.DataFrame
    edges_stops: pd.DataFrame
    edges_changes: pd.DataFrame | None
    edges_stations: pd.DataFrame
    edges_distances: pd.DataFrame
    edges_temporal: pd.DataFrame | None

    # Computed graphs
    stops_graph: nx.DiGraph
    stations_graph: nx.Graph

    summary: dict[str, object]


def load_network_dataset(
    paths=None,
    *,
    load_changes: bool = False,
    load_temporal: bool = False,
    weight_col: str | None = None,
) -> NetworkDataset:
    """Load the processed tables written by `scripts/phases/build_network.py`.

    The space-of-changes and temporal tables are large (every ordered pair of stops
    on a trip) and are only read when `load_changes` / `load_temporal` is set.
    """
    if paths is None:
        paths = get_paths()
    base = paths.processed_network
    ids = {"BPUIC1": "Int64", "BPUIC2": "Int64"}

    LOGGER.info("Loading processed network tables from %s", base)
    stations = read_csv_validated(base / STATIONS_FILE, dtype={"BPUIC": "Int64"}, schema=STATIONS)
    edges_stops = read_csv_validated(base / EDGES_STOPS_FILE, dtype=ids, schema=EDGES_STOPS)
    edges_stations = read_csv_validated(base / EDGES_STATIONS_FILE, dtype=ids, schema=EDGES_STOPS)
    edges_distances = read_csv_validated(
        base / EDGES_DISTANCES_FILE, dtype=ids, schema=EDGES_DISTANCES
    )
    edges_changes = None
    if load_changes:
        edges_changes = read_csv_validated(base / EDGES_CHANGES_FILE, dtype=ids, schema=EDGES_STOPS)
    edges_temporal = None
    if load_temporal:
        edges_temporal = read_csv_validated(
            base / EDGES_TEMPORAL_FILE, dtype=ids, schema=EDGES_TEMPORAL
        )
    LOGGER.info("Network tables validation passed")

    stops = build_graph_from_edges(
        stations=stations, edges=edges_stops, directed=True, weight_col=weight_col
    )
    phys = build_graph_from_edges(stations=stations, edges=edges_stations, directed=False)

    summary: dict[str, object] = {
        "n_stations": int(len(stations)),
        "n_edges_stops": int(len(edges_stops)),
        "n_edges_stations": int(len(edges_stations)),
        "n_edges_changes": None if edges_changes is None else int(len(edges_changes)),
        "n_edges_temporal": None if edges_temporal is None else int(len(edges_temporal)),
        "stations_gcc_share": float(len(phys.gcc_nodes) / len(stations)) if len(stations) else 0.0,
        "weight_col": weight_col,
    }
    LOGGER.info(
        "Network loaded: %d stations, %d stop edges, %d station edges",
        summary["n_stations"],
        summary["n_edges_stops"],
        summary["n_edges_stations"],
    )
    return NetworkDataset(
        stations=stations,
        edges_stops=edges_stops,
        edges_changes=edges_changes,
        edges_stations=edges_stations,
        edges_distances=edges_distances,
        edges_temporal=edges_temporal,
        stops_graph=stops.G,
        stations_graph=phys.G,
        summary=summary,
    )
