from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from conftest import S1, S2, S3, S4
from swissrail.core.config import CRS_WGS84
from swissrail.geo.distances import (
    edge_exact_distances,
    edge_geodesic_distances,
    geodesic_distance_km,
    stations_to_gdf,
)


def _pairs_frame(pairs):
    return pd.DataFrame(pairs, columns=["BPUIC1", "BPUIC2"]).astype("Int64")


def test_geodesic_distance_km_known_values():
    # 0.1 degree of longitude at 47N is ~7.59 km; one degree of latitude ~111 km.
    d = geodesic_distance_km([47.0, 47.0], [7.0, 7.0], [47.0, 48.0], [7.1, 7.0])
    assert d[0] == pytest.approx(7.59, abs=0.05)
    assert d[1] == pytest.approx(111.2, abs=0.3)


def test_geodesic_distance_km_nan_inputs():
    d = geodesic_distance_km([47.0, np.nan], [7.0, 7.0], [47.0, 47.0], [7.1, 7.1])
    assert np.isfinite(d[0])
    assert np.isnan(d[1])


def test_edge_geodesic_distances_missing_station(stations):
    edges = _pairs_frame([(S1, S2), (S2, 8599999)])
    d = edge_geodesic_distances(edges, stations)
    assert str(d.dtype) == "Float64"
    assert d.iloc[0] == pytest.approx(7.59, abs=0.05)
    assert pd.isna(d.iloc[1])


def test_edge_geodesic_distances_requires_coordinates_columns(stations):
    with pytest.raises(ValueError, match="missing required columns"):
        edge_geodesic_distances(_pairs_frame([(S1, S2)]), stations.drop(columns=["LATITUDE"]))


def test_edge_exact_distances_uses_shared_line():
    km = pd.DataFrame(
        {
            "LINE_ID": ["100", "100", "100", "200", "200", "300", "300"],
            "BPUIC": [S1, S2, S3, S3, S4, S1, S2],
            "KM": [0.0, 8.0, 15.5, 100.0, 107.0, 50.0, 59.5],
        }
    )
    edges = _pairs_frame([(S1, S2), (S4, S3), (S2, S4)])
    d = edge_exact_distances(edges, km)
    # Line 100 gives 8.0, line 300 gives 9.5: the shorter wins.
    assert d.iloc[0] == pytest.approx(8.0)
    assert d.iloc[1] == pytest.approx(7.0)
    assert pd.isna(d.iloc[2])


def test_edge_exact_distances_requires_columns():
    with pytest.raises(ValueError, match="LINE_ID"):
        edge_exact_distances(_pairs_frame([(S1, S2)]), pd.DataFrame({"BPUIC": [S1]}))


def test_stations_to_gdf_drops_missing(stations):
    st = stations.copy()
    st.loc[st["BPUIC"] == S4, ["LATITUDE", "LONGITUDE"]] = pd.NA
    gdf = stations_to_gdf(st)
    assert len(gdf) == 3
    assert gdf.crs.to_string() == CRS_WGS84
    assert gdf.geometry.iloc[0].x == pytest.approx(7.0)
