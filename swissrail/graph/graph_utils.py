"""Small, shared graph utilities (pure functions only)."""

from __future__ import annotations

import networkx as nx


def canon_edge(u: int, v: int) -> tuple[int, int]:
    """Canonical undirected edge key."""
    return (u, v) if u < v else (v, u)


def connected_components(G: nx.Graph) -> list[set]:
    """Connected components; weakly connected ones for directed graphs."""
    if G.is_directed():
        return list(nx.weakly_connected_components(G))
    return list(nx.connected_components(G))


def gcc_subgraph(G: nx.Graph) -> nx.Graph:
    """Return the largest (weakly) connected component subgraph (copy)."""
    if G.number_of_nodes() == 0:
        return G.copy()
    comps = connected_components(G)
    if not comps:
        return G.copy()
    gcc = max(comps, key=len)
    return G.subgraph(gcc).copy()
