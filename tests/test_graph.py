from __future__ import annotations

import networkx as nx
import pandas as pd
import pytest

from conftest import S1, S2, S3, S4
from swissrail.graph.graph_utils import canon_edge, gcc_subgraph
from swissrail.graph.metrics import build_graph_from_edges, compute_network_metrics


def _edges(pairs, durations=None) -> pd.DataFrame:
    df = pd.DataFrame(pairs, columns=["BPUIC1", "BPUIC2"]).astype("Int64")
    if durations is not None:
        df["AVG_DURATION"] = pd.array(durations, dtype="Float64")
    return df


def test_canon_edge():
    assert canon_edge(S2, S1) == (S1, S2)
    assert canon_edge(S1, S2) == (S1, S2)


def test_build_graph_undirected_with_attributes_and_isolates(stations):
    res = build_graph_from_edges(stations=stations, edges=_edges([(S1, S2), (S2, S3)]))
    G = res.G
    assert not G.is_directed()
    assert set(G.nodes) == {S1, S2, S3, S4}
    assert G.nodes[S1]["NAME"] == "Alpha"
    assert G.nodes[S4]["AVG_DAILY_TRAFFIC"] is None
    assert res.gcc_nodes == {S1, S2, S3}
    assert res.excluded_nodes == {S4}


def test_build_graph_directed_use_gcc(stations):
    res = build_graph_from_edges(
        stations=stations, edges=_edges([(S1, S2), (S3, S2)]), directed=True, use_gcc=True
    )
    assert res.G.is_directed()
    assert res.G.has_edge(S1, S2)
    assert not res.G.has_edge(S2, S1)
    assert set(res.G.nodes) == {S1, S2, S3}


def test_build_graph_weights(stations):
    res = build_graph_from_edges(
        stations=stations,
        edges=_edges([(S1, S2), (S2, S3)], durations=[5.0, 7.5]),
        weight_col="AVG_DURATION",
    )
    assert res.G[S2][S3]["weight"] == pytest.approx(7.5)


def test_build_graph_rejects_invalid_weights(stations):
    with pytest.raises(ValueError, match="invalid weights"):
        build_graph_from_edges(
            stations=stations,
            edges=_edges([(S1, S2)], durations=[None]),
            weight_col="AVG_DURATION",
        )


def test_build_graph_rejects_unknown_station(stations):
    with pytest.raises(ValueError, match="unknown BPUIC"):
        build_graph_from_edges(stations=stations, edges=_edges([(S1, 8599999)]))


def test_gcc_subgraph_directed_uses_weak_components():
    G = nx.DiGraph([(1, 2), (3, 2), (4, 5)])
    assert set(gcc_subgraph(G).nodes) == {1, 2, 3}


def test_compute_network_metrics():
    G = nx.Graph([(1, 2), (2, 3)])
    G.add_node(4)
    m = compute_network_metrics(G).set_index("metric")["value"]
    assert m["N_nodes"] == 4
    assert m["E_edges"] == 2
    assert m["n_components"] == 2
    assert m["gcc_share"] == pytest.approx(0.75)
    assert m["max_degree"] == 2
    assert m["n_self_loops"] == 0
