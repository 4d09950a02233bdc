from __future__ import annotations

import logging
from dataclasses import dataclass

import networkx as nx
import numpy as np
import pandas as pd

from swissrail.graph.graph_utils import connected_components

LOGGER = logging.getLogger(__name__)

NODE_ATTRS: tuple[str, ...] = (
    "NAME",
    "LATITUDE",
    "LONGITUDE",
    "CANTON",
    "MUNICIPALITY",
    "COMPANY",
    "ELEVATION",
    "AVG_DAILY_TRAFFIC",
    "AVG_DAILY_TRAFFIC_WEEKDAYS",
    "AVG_DAILY_TRAFFIC_WEEKENDS",
)


@dataclass(frozen=True)
class GraphBuildResult:
    G: nx.Graph
    gcc_nodes: set[int]
    excluded_nodes: set[int]


def _node_attrs(stations: pd.DataFrame) -> dict[int, dict[str, object]]:
    cols = [c for c in NODE_ATTRS if c in stations.columns]
    out: dict[int, dict[str, object]] = {}
    for rec in stations[["BPUIC", *cols]].to_dict(orient="records"):
        sid = int(rec.pop("BPUIC"))
        out[sid] = {k: (None if pd.isna(v) else v) for k, v in rec.items()}
    return out


def build_graph_from_edges(
    *,
    stations: pd.DataFrame,
    edges: pd.DataFrame,
    directed: bool = False,
    use_gcc: bool = False,
    weight_col: str | None = None,
) -> GraphBuildResult:
    """Build a NetworkX graph from station/edge tables (BPUIC ids).

    If `use_gcc` is True, the returned `G` is the giant (weakly) connected component.
    Node attributes are copied from the stations table.
    """
    if "BPUIC" not in stations.columns:
        raise ValueError("stations must have 'BPUIC' column")
    if not {"BPUIC1", "BPUIC2"}.issubset(edges.columns):
        raise ValueError("edges must have 'BPUIC1' and 'BPUIC2' columns")

    st_ids = set(stations["BPUIC"].astype("int64"))
    if not st_ids:
        raise ValueError("stations has 0 BPUIC values")

    e = edges.copy()
    e["BPUIC1"] = e["BPUIC1"].astype("int64")
    e["BPUIC2"] = e["BPUIC2"].astype("int64")

    bad = sorted(
        set(e.loc[~e["BPUIC1"].isin(st_ids), "BPUIC1"]) | set(e.loc[~e["BPUIC2"].isin(st_ids), "BPUIC2"])
    )
    if bad:
        raise ValueError(f"edges reference unknown BPUIC(s): {len(bad)} (e.g. {bad[:10]})")

    create_using = nx.DiGraph() if directed else nx.Graph()
    if weight_col is not None:
        if weight_col not in e.columns:
            raise ValueError(f"weight_col={weight_col!r} not found in edges")
        w = e[weight_col].astype(float)
        invalid = w.isna() | (~np.isfinite(w.to_numpy()))
        if invalid.any():
            sample = e.loc[invalid, ["BPUIC1", "BPUIC2", weight_col]].head(5)
            raise ValueError(
                f"edges has invalid weights in {weight_col!r} (e.g. {sample.to_dict(orient='records')})"
            )
        e2 = e[["BPUIC1", "BPUIC2"]].copy()
        e2["weight"] = w
        G = nx.from_pandas_edgelist(
            e2, source="BPUIC1", target="BPUIC2", edge_attr="weight", create_using=create_using
        )
    else:
        G = nx.from_pandas_edgelist(
            e[["BPUIC1", "BPUIC2"]], source="BPUIC1", target="BPUIC2", create_using=create_using
        )

    # Ensure all stations exist as nodes (including isolates not present in any edge)
    G.add_nodes_from(sorted(st_ids))
    nx.set_node_attributes(G, _node_attrs(stations))

    comps = connected_components(G)
    gcc = max(comps, key=len) if comps else set()
    excluded_nodes = set(G.nodes) - set(gcc)
    if excluded_nodes:
        LOGGER.info("Nodes outside the giant component: %d", len(excluded_nodes))

    if use_gcc:
        G = G.subgraph(gcc).copy()
    return GraphBuildResult(G=G, gcc_nodes=set(gcc), excluded_nodes=excluded_nodes)


def compute_network_metrics(G: nx.Graph) -> pd.DataFrame:
    """Compute basic network connectivity metrics."""
    n = G.number_of_nodes()
    m = G.number_of_edges()
    comps = connected_components(G)
    gcc_n = len(max(comps, key=len)) if comps else 0
    degs = [d for _, d in G.degree()]
    return pd.DataFrame(
        [
            {"metric": "N_nodes", "value": n},
            {"metric": "E_edges", "value": m},
            {"metric": "n_components", "value": len(comps)},
            {"metric": "gcc_nodes", "value": gcc_n},
            {"metric": "gcc_share", "value": (gcc_n / n) if n else 0.0},
            {"metric": "mean_degree", "value": float(sum(degs) / len(degs)) if degs else 0.0},
            {"metric": "median_degree", "value": float(pd.Series(degs).median()) if degs else 0.0},
            {"metric": "max_degree", "value": int(max(degs)) if degs else 0},
            {"metric": "n_self_loops", "value": nx.number_of_selfloops(G)},
        ]
    )
