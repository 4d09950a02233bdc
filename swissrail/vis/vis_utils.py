"""Network map plotting (stations + edges in the Swiss LV95 grid)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.collections import LineCollection

from swissrail.core.config import CRS_LV95
from swissrail.geo.distances import stations_to_gdf

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class MapStyle:
    """Consistent styling configuration for network maps"""

    figsize: tuple[float, float] = (12.0, 8.0)
    facecolor: str = "white"
    dpi: int = 300

    node_color: str = "#dc2626"  # red-600
    node_size: float = 6.0
    node_alpha: float = 0.85
    # Scale node size by traffic when AVG_DAILY_TRAFFIC is present.
    traffic_scale: float | None = 2e-4

    edge_color: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.25)
    edge_linewidth: float = 0.7

    extent_padding: float = 0.04


def prepare_station_geometries(stations: pd.DataFrame) -> pd.DataFrame:
    """Project stations to LV95 and return BPUIC-indexed x/y (m) plus traffic."""
    gdf = stations_to_gdf(stations).to_crs(CRS_LV95)
    out = pd.DataFrame(
        {"x": gdf.geometry.x.to_numpy(), "y": gdf.geometry.y.to_numpy()},
        index=gdf["BPUIC"].astype("int64").to_numpy(),
    )
    if "AVG_DAILY_TRAFFIC" in gdf.columns:
        out["traffic"] = gdf["AVG_DAILY_TRAFFIC"].astype(float).to_numpy()
    return out


def create_edge_segments(
    xy: pd.DataFrame, edges: pd.DataFrame
) -> list[tuple[tuple[float, float], tuple[float, float]]]:
    """Create LineCollection segments; edges with an unplaced endpoint are skipped."""
    u = edges["BPUIC1"].astype("int64")
    v = edges["BPUIC2"].astype("int64")
    ok = u.isin(xy.index) & v.isin(xy.index)
    skipped = int((~ok).sum())
    if skipped:
        LOGGER.warning("Skipping %d edges: station not found in geometries", skipped)

    a = xy.loc[u[ok].to_numpy(), ["x", "y"]].to_numpy(dtype=float)
    b = xy.loc[v[ok].to_numpy(), ["x", "y"]].to_numpy(dtype=float)
    return [((x0, y0), (x1, y1)) for (x0, y0), (x1, y1) in zip(a, b, strict=True)]


def plot_network(
    stations: pd.DataFrame,
    edges: pd.DataFrame,
    out_path: Path,
    *,
    title: str = "",
    style: MapStyle | None = None,
) -> Path:
    """Draw stations and edges to `out_path` (PNG)."""
    style = style or MapStyle()
    xy = prepare_station_geometries(stations)
    segs = create_edge_segments(xy, edges)

    fig, ax = plt.subplots(figsize=style.figsize)
    ax.set_facecolor(style.facecolor)

    lc = LineCollection(segs, colors=[style.edge_color], linewidths=style.edge_linewidth, zorder=1)
    ax.add_collection(lc)

    sizes = style.node_size
    if style.traffic_scale is not None and "traffic" in xy.columns:
        sizes = (style.node_size + xy["traffic"].fillna(0.0) * style.traffic_scale).to_numpy()
    ax.scatter(
        xy["x"],
        xy["y"],
        s=sizes,
        color=style.node_color,
        alpha=style.node_alpha,
        linewidths=0,
        zorder=2,
    )

    if not xy.empty:
        minx, maxx = xy["x"].min(), xy["x"].max()
        miny, maxy = xy["y"].min(), xy["y"].max()
        pad_x = (maxx - minx) * style.extent_padding
        pad_y = (maxy - miny) * style.extent_padding
        ax.set_xlim(minx - pad_x, maxx + pad_x)
        ax.set_ylim(miny - pad_y, maxy + pad_y)

    ax.set_title(title)
    ax.set_aspect("equal", adjustable="box")
    ax.set_xticks([])
    ax.set_yticks([])
    for spine in ax.spines.values():
        spine.set_visible(False)

    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=style.dpi)
    plt.close(fig)
    return out_path
