"""Network Builder: build station and edge tables from one day of actual data.

Run from repo root:
  python scripts/phases/build_network.py --date 2024-03-13

Outputs:
- data/processed/network/stations.csv
- data/processed/network/edges_stops.csv       (space-of-stops, directed)
- data/processed/network/edges_changes.csv     (space-of-changes, directed)
- data/processed/network/edges_temporal.csv    (temporal, one row per trip connection)
- data/processed/network/edges_stations.csv    (space-of-stations, undirected)
- data/processed/network/edges_distances.csv   (space-of-stations edge lengths)
- data/processed/_meta/network_sanity.csv
- data/processed/_meta/quality.csv
- data/processed/_meta/build_summary.json
- figures/network_stations.png
- artifacts/graph.pkl
"""

from __future__ import annotations

import argparse
import logging
import pickle
import sys
from pathlib import Path

import pandas as pd

# Ensure repo root is on sys.path so `import swissrail...` works when executing this file directly.
REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from swissrail.core.cli_utils import BuildStats, create_base_parser
from swissrail.core.config import configure_logging, get_paths
from swissrail.core.data_loaders import (
    EDGES_CHANGES_FILE,
    EDGES_DISTANCES_FILE,
    EDGES_STATIONS_FILE,
    EDGES_STOPS_FILE,
    EDGES_TEMPORAL_FILE,
    STATIONS_FILE,
)
from swissrail.core.settings import load_network_config
from swissrail.data_processing.ist_daten import load_ist_daten, prepare_trips
from swissrail.data_processing.network_build import (
    apply_edge_fixes,
    drop_self_loops,
    round_for_export,
    space_of_changes_edges,
    space_of_stations_edges,
    space_of_stops_edges,
    stations_for_edges,
    temporal_edges,
)
from swissrail.data_processing.quality import quality_report
from swissrail.data_processing.registries import (
    load_line_kilometrage,
    load_passenger_frequency,
    load_service_points,
)
from swissrail.geo.distances import edge_exact_distances, edge_geodesic_distances
from swissrail.graph.metrics import build_graph_from_edges, compute_network_metrics
from swissrail.io import sha256_file, write_csv, write_json
from swissrail.models.schemas import EDGES_DISTANCES, EDGES_STOPS, EDGES_TEMPORAL, STATIONS
from swissrail.models.validate import validate_df
from swissrail.vis.vis_utils import plot_network

NETWORK_SANITY_FILE = "network_sanity.csv"
QUALITY_FILE = "quality.csv"
BUILD_SUMMARY_FILE = "build_summary.json"
NETWORK_FIG = "network_stations.png"
GRAPH_PICKLE_FILE = "graph.pkl"

LOGGER = logging.getLogger("network_builder")

MIN_STATIONS_GCC_SHARE = 0.9


def _parse_args() -> argparse.Namespace:
    return create_base_parser(
        "Build station/edge tables (stops, changes, stations) from the actual-data feed."
    ).parse_args()


def _distances(
    edges: pd.DataFrame, stations: pd.DataFrame, kilometrage: pd.DataFrame | None
) -> pd.DataFrame:
    out = edges[["BPUIC1", "BPUIC2"]].copy()
    out["DISTANCE_GEODESIC"] = edge_geodesic_distances(out, stations)
    if kilometrage is not None:
        out["DISTANCE_EXACT"] = edge_exact_distances(out, kilometrage)
    else:
        out["DISTANCE_EXACT"] = pd.Series(pd.NA, index=out.index, dtype="Float64")
    return out


def main(args: argparse.Namespace) -> None:
    configure_logging()
    paths = get_paths()
    cfg = load_network_config(args.config)
    day = cfg.resolve_date(args.date)
    fixes = cfg.manual_fixes
    stats = BuildStats()

    LOGGER.info("Operating day: %s", day.isoformat())
    LOGGER.info("Filters: %s", cfg.filters.model_dump())

    # Trips
    events = load_ist_daten(paths.data_raw / cfg.sources.ist_daten.filename_for(day))
    trips = prepare_trips(events, cfg.filters, fixes.station_merges)
    stats.update({"events": len(events), "trips": int(trips["TRIP_ID"].nunique())})
    stats.add_step("trips")

    # Encodings built directly from trips
    edges_stops = drop_self_loops(space_of_stops_edges(trips))
    edges_changes = drop_self_loops(space_of_changes_edges(trips))
    edges_temporal = drop_self_loops(temporal_edges(trips, day))
    stats.update(
        {
            "edges_stops": len(edges_stops),
            "edges_changes": len(edges_changes),
            "edges_temporal": len(edges_temporal),
        }
    )
    stats.add_step("stops_changes")

    # Registries
    service_points = load_service_points(
        paths.data_raw / cfg.sources.service_points.filename_for(), cfg.columns.service_points
    )
    frequency = load_passenger_frequency(
        paths.data_raw / cfg.sources.passenger_frequency.filename_for(),
        cfg.columns.passenger_frequency,
    )
    kilometrage = None
    if cfg.sources.line_kilometrage is not None:
        km_path = paths.data_raw / cfg.sources.line_kilometrage.filename_for()
        if km_path.exists():
            kilometrage = load_line_kilometrage(km_path, cfg.columns.line_kilometrage)
        else:
            LOGGER.warning("Line kilometrage not found at %s; DISTANCE_EXACT will be empty", km_path)

    added = pd.DataFrame(fixes.add_edges, columns=["BPUIC1", "BPUIC2"], dtype="int64")
    feed_names = (
        trips.dropna(subset=["NAME"]).drop_duplicates(subset=["BPUIC"]).set_index("BPUIC")["NAME"]
    )
    stations = stations_for_edges(
        service_points,
        [edges_stops, edges_changes, added],
        frequency=frequency,
        coordinates=fixes.coordinates,
        fallback_names={int(k): str(v) for k, v in feed_names.items()},
    )
    stats.update({"stations": len(stations)})
    stats.add_step("stations")

    # Physical adjacency + manual fixes + lengths
    edges_stations = space_of_stations_edges(
        edges_stops,
        stations,
        trips=trips,
        detour_tolerance=cfg.space_of_stations.detour_tolerance,
    )
    edges_stations = apply_edge_fixes(
        edges_stations, remove=fixes.remove_edges, add=fixes.add_edges, directed=False
    )
    edges_distances = _distances(edges_stations, stations, kilometrage)
    stats.update({"edges_stations": len(edges_stations)})
    stats.add_step("stations_edges")

    # Validate contracts before writing
    stations = validate_df(stations, STATIONS, allow_extra_columns=False)
    edges_stops = validate_df(edges_stops, EDGES_STOPS, allow_extra_columns=False)
    edges_changes = validate_df(edges_changes, EDGES_STOPS, allow_extra_columns=False)
    edges_temporal = validate_df(edges_temporal, EDGES_TEMPORAL, allow_extra_columns=False)
    edges_stations = validate_df(edges_stations, EDGES_STOPS, allow_extra_columns=False)
    edges_distances = validate_df(edges_distances, EDGES_DISTANCES, allow_extra_columns=False)

    # Sanity on the physical network
    phys = build_graph_from_edges(stations=stations, edges=edges_stations, directed=False)
    sanity = compute_network_metrics(phys.G)
    gcc_share = float(sanity.loc[sanity.metric == "gcc_share", "value"].iloc[0])
    LOGGER.info(
        "space-of-stations connectivity QA: nodes=%s edges=%s components=%s gcc_share=%.3f",
        phys.G.number_of_nodes(),
        phys.G.number_of_edges(),
        int(sanity.loc[sanity.metric == "n_components", "value"].iloc[0]),
        gcc_share,
    )
    if gcc_share < MIN_STATIONS_GCC_SHARE:
        LOGGER.warning(
            "space-of-stations GCC share low: %.3f < %.2f (check remove_edges / detour_tolerance)",
            gcc_share,
            MIN_STATIONS_GCC_SHARE,
        )

    quality = quality_report(
        trips=trips,
        stations=stations,
        edge_tables={
            "stops": edges_stops,
            "changes": edges_changes,
            "stations": edges_stations,
        },
    )

    # Write outputs
    net = paths.processed_network
    outputs = [
        write_csv(stations, net / STATIONS_FILE),
        write_csv(round_for_export(edges_stops), net / EDGES_STOPS_FILE),
        write_csv(round_for_export(edges_changes), net / EDGES_CHANGES_FILE),
        write_csv(edges_temporal, net / EDGES_TEMPORAL_FILE),
        write_csv(round_for_export(edges_stations), net / EDGES_STATIONS_FILE),
        write_csv(round_for_export(edges_distances), net / EDGES_DISTANCES_FILE),
        write_csv(sanity, paths.processed_meta / NETWORK_SANITY_FILE),
        write_csv(quality, paths.processed_meta / QUALITY_FILE),
        plot_network(
            stations,
            edges_stations,
            paths.figures / NETWORK_FIG,
            title=f"Swiss railway network, space-of-stations ({day.isoformat()})",
        ),
    ]

    graph_out = paths.artifacts / GRAPH_PICKLE_FILE
    paths.artifacts.mkdir(parents=True, exist_ok=True)
    with open(graph_out, "wb") as f:
        pickle.dump(phys.G, f)
    outputs.append(graph_out)

    for p in outputs:
        if args.checkpoint:
            LOGGER.info("Wrote %s sha256=%s", p, sha256_file(p))
        else:
            LOGGER.info("Wrote %s", p)

    summary = stats.get_summary()
    write_json({"date": day.isoformat(), **summary}, paths.processed_meta / BUILD_SUMMARY_FILE)
    LOGGER.info("Build complete. Steps: %d, summary: %s", summary["step_count"], summary)


if __name__ == "__main__":
    main(_parse_args())
