"""Edge distances: geodesic (WGS84 ellipsoid) and exact (along line kilometrage)."""

from __future__ import annotations

import logging

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import Geod

from swissrail.core.config import CRS_WGS84

LOGGER = logging.getLogger(__name__)

_GEOD = Geod(ellps="WGS84")


def geodesic_distance_km(lat1, lon1, lat2, lon2) -> np.ndarray:
    """Vectorised geodesic distance in km; NaN where any coordinate is missing."""
    lat1 = np.asarray(lat1, dtype=float)
    lon1 = np.asarray(lon1, dtype=float)
    lat2 = np.asarray(lat2, dtype=float)
    lon2 = np.asarray(lon2, dtype=float)
    lat1, lon1, lat2, lon2 = np.broadcast_arrays(lat1, lon1, lat2, lon2)

    out = np.full(lat1.shape, np.nan, dtype=float)
    ok = np.isfinite(lat1) & np.isfinite(lon1) & np.isfinite(lat2) & np.isfinite(lon2)
    if ok.any():
        _, _, dist_m = _GEOD.inv(lon1[ok], lat1[ok], lon2[ok], lat2[ok])
        out[ok] = np.asarray(dist_m, dtype=float) / 1000.0
    return out


def _coords_lookup(stations: pd.DataFrame) -> pd.DataFrame:
    required = {"BPUIC", "LATITUDE", "LONGITUDE"}
    missing = required - set(stations.columns)
    if missing:
        raise ValueError(f"stations missing required columns: {sorted(missing)}")
    # IMPORTANT: avoid pandas index alignment; use raw arrays when setting a new index.
    return pd.DataFrame(
        {
            "lat": stations["LATITUDE"].astype("Float64").to_numpy(dtype=float, na_value=np.nan),
            "lon": stations["LONGITUDE"].astype("Float64").to_numpy(dtype=float, na_value=np.nan),
        },
        index=stations["BPUIC"].astype("int64").to_numpy(),
    )


def edge_geodesic_distances(
    edges: pd.DataFrame,
    stations: pd.DataFrame,
    *,
    u_col: str = "BPUIC1",
    v_col: str = "BPUIC2",
) -> pd.Series:
    """Geodesic length (km) of each edge; NA where an endpoint has no coordinates."""
    xy = _coords_lookup(stations)
    u = edges[u_col].astype("int64")
    v = edges[v_col].astype("int64")
    ok = (u.isin(xy.index) & v.isin(xy.index)).to_numpy()

    dist = pd.Series(pd.NA, index=edges.index, dtype="Float64")
    if ok.any():
        a = xy.loc[u[ok].to_numpy()]
        b = xy.loc[v[ok].to_numpy()]
        d = geodesic_distance_km(a["lat"], a["lon"], b["lat"], b["lon"])
        dist.loc[ok] = d
    n_missing = int(dist.isna().sum())
    if n_missing:
        LOGGER.warning("Geodesic distance unavailable for %d edges (missing coordinates)", n_missing)
    return dist


def edge_exact_distances(
    edges: pd.DataFrame,
    kilometrage: pd.DataFrame,
    *,
    u_col: str = "BPUIC1",
    v_col: str = "BPUIC2",
) -> pd.Series:
    """Distance along the line kilometrage (km).

    For each edge, take the smallest |km(u) - km(v)| over lines that list both
    endpoints. NA when the endpoints never share a line.
    """
    if not {"LINE_ID", "BPUIC", "KM"}.issubset(kilometrage.columns):
        raise ValueError("kilometrage must have 'LINE_ID', 'BPUIC' and 'KM' columns")

    k = kilometrage[["LINE_ID", "BPUIC", "KM"]].copy()
    k["BPUIC"] = k["BPUIC"].astype("int64")
    k["KM"] = k["KM"].astype(float)

    e = pd.DataFrame(
        {
            "_EID": np.arange(len(edges)),
            "U": edges[u_col].astype("int64").to_numpy(),
            "V": edges[v_col].astype("int64").to_numpy(),
        }
    )
    pos_u = e.merge(k.rename(columns={"BPUIC": "U", "KM": "KM_U"}), on="U", how="inner")
    both = pos_u.merge(
        k.rename(columns={"BPUIC": "V", "KM": "KM_V"}), on=["V", "LINE_ID"], how="inner"
    )
    both["D"] = (both["KM_U"] - both["KM_V"]).abs()
    best = both.groupby("_EID")["D"].min()

    out = pd.Series(pd.NA, index=edges.index, dtype="Float64")
    if not best.empty:
        out.iloc[best.index.to_numpy()] = best.to_numpy()
    LOGGER.info("Exact (line) distance available for %d of %d edges", int(out.notna().sum()), len(out))
    return out


def stations_to_gdf(stations: pd.DataFrame) -> gpd.GeoDataFrame:
    """Convert a stations table to a GeoDataFrame in WGS84 (stations without coordinates dropped)."""
    required = {"BPUIC", "LATITUDE", "LONGITUDE"}
    missing = required - set(stations.columns)
    if missing:
        raise ValueError(f"stations missing required columns: {sorted(missing)}")

    df = stations.dropna(subset=["LATITUDE", "LONGITUDE"]).copy()
    dropped = len(stations) - len(df)
    if dropped:
        LOGGER.warning("stations_to_gdf: %d stations without coordinates dropped", dropped)
    geom = gpd.points_from_xy(df["LONGITUDE"].astype(float), df["LATITUDE"].astype(float))
    return gpd.GeoDataFrame(df, geometry=geom, crs=CRS_WGS84)
