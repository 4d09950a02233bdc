from __future__ import annotations

import datetime as dt

import pandas as pd
import pytest

from conftest import EXPRESS, LOCAL, S1, S2, S3, S4, events_frame, trip_rows
from swissrail.core.settings import FilterConfig
from swissrail.data_processing.ist_daten import prepare_trips
from swissrail.data_processing.network_build import (
    EDGE_COLUMNS,
    STATION_COLUMNS,
    TEMPORAL_COLUMNS,
    apply_edge_fixes,
    drop_self_loops,
    find_shortcut_edges,
    round_for_export,
    space_of_changes_edges,
    space_of_stations_edges,
    space_of_stops_edges,
    stations_for_edges,
    temporal_edges,
    to_undirected_edges,
)


@pytest.fixture
def trips(events) -> pd.DataFrame:
    return prepare_trips(events, FilterConfig())


def _edge(edges: pd.DataFrame, u: int, v: int) -> pd.Series:
    hit = edges[(edges["BPUIC1"] == u) & (edges["BPUIC2"] == v)]
    assert len(hit) == 1, f"expected one edge {u}->{v}, got {len(hit)}"
    return hit.iloc[0]


def _pairs(edges: pd.DataFrame) -> set[tuple[int, int]]:
    return {(int(u), int(v)) for u, v in edges[["BPUIC1", "BPUIC2"]].itertuples(index=False)}


def _edges(rows: list[tuple[int, int, int, float | None]]) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=list(EDGE_COLUMNS)).astype(
        {"BPUIC1": "Int64", "BPUIC2": "Int64", "NUM_CONNECTIONS": "Int64", "AVG_DURATION": "Float64"}
    )


def test_space_of_stops_counts_and_durations(trips):
    edges = space_of_stops_edges(trips)
    assert list(edges.columns) == list(EDGE_COLUMNS)
    assert _pairs(edges) == {
        (S1, S2), (S2, S3), (S3, S4), (S1, S3),
        (S4, S3), (S3, S2), (S2, S1),
    }
    s3s4 = _edge(edges, S3, S4)
    assert s3s4["NUM_CONNECTIONS"] == 2
    assert s3s4["AVG_DURATION"] == pytest.approx(5.0)
    assert _edge(edges, S1, S3)["AVG_DURATION"] == pytest.approx(8.0)
    # Sorted output
    assert edges[["BPUIC1", "BPUIC2"]].equals(
        edges[["BPUIC1", "BPUIC2"]].sort_values(["BPUIC1", "BPUIC2"]).reset_index(drop=True)
    )


def test_space_of_changes_all_forward_pairs(trips):
    edges = space_of_changes_edges(trips)
    assert len(edges) == 12
    s1s4 = _edge(edges, S1, S4)
    assert s1s4["NUM_CONNECTIONS"] == 2
    assert s1s4["AVG_DURATION"] == pytest.approx((17 + 14) / 2)
    assert _edge(edges, S1, S3)["AVG_DURATION"] == pytest.approx((11 + 8) / 2)
    assert (S4, S1) in _pairs(edges)
    assert (S2, S1) in _pairs(edges)


def test_untimed_connections_count_but_do_not_average():
    stops = [(S1, None, "08:00"), (S2, None, None), (S3, "08:12", None)]
    rows = trip_rows("A", stops) + trip_rows("B", [(S1, None, "09:00"), (S2, "09:06", None)])
    edges = space_of_stops_edges(prepare_trips(events_frame(rows), FilterConfig()))
    s1s2 = _edge(edges, S1, S2)
    assert s1s2["NUM_CONNECTIONS"] == 2
    assert s1s2["AVG_DURATION"] == pytest.approx(6.0)
    assert pd.isna(_edge(edges, S2, S3)["AVG_DURATION"])


def test_loop_trip_self_loop_is_dropped():
    loop = [(S1, None, "08:00"), (S2, "08:05", "08:06"), (S1, "08:12", None)]
    trips = prepare_trips(events_frame(trip_rows("L", loop)), FilterConfig())
    changes = space_of_changes_edges(trips)
    assert (S1, S1) in _pairs(changes)
    cleaned = drop_self_loops(changes)
    assert (S1, S1) not in _pairs(cleaned)
    assert len(cleaned) == len(changes) - 1


def test_to_undirected_merges_directions(trips):
    und = to_undirected_edges(space_of_stops_edges(trips))
    assert _pairs(und) == {(S1, S2), (S2, S3), (S3, S4), (S1, S3)}
    s3s4 = _edge(und, S3, S4)
    assert s3s4["NUM_CONNECTIONS"] == 3
    assert s3s4["AVG_DURATION"] == pytest.approx(5.0)


def test_to_undirected_weights_mean_by_connections():
    edges = _edges([(S2, S1, 3, 10.0), (S1, S2, 1, 2.0), (S3, S1, 2, None)])
    und = to_undirected_edges(edges)
    assert _edge(und, S1, S2)["AVG_DURATION"] == pytest.approx((3 * 10.0 + 2.0) / 4)
    assert _edge(und, S1, S2)["NUM_CONNECTIONS"] == 4
    assert pd.isna(_edge(und, S1, S3)["AVG_DURATION"])


def test_space_of_stations_drops_express_shortcut(trips, stations):
    phys = space_of_stations_edges(space_of_stops_edges(trips), stations)
    assert _pairs(phys) == {(S1, S2), (S2, S3), (S3, S4)}


def test_space_of_stations_from_trip_sequences_only(trips, stations):
    phys = space_of_stations_edges(
        space_of_stops_edges(trips), stations, trips=trips, detour_tolerance=None
    )
    assert _pairs(phys) == {(S1, S2), (S2, S3), (S3, S4)}
    # Edge lengths play no part: the rule also works without coordinates.
    no_xy = stations.assign(LATITUDE=pd.NA, LONGITUDE=pd.NA)
    phys = space_of_stations_edges(
        space_of_stops_edges(trips), no_xy, trips=trips, detour_tolerance=None
    )
    assert (S1, S3) not in _pairs(phys)


def test_find_shortcut_edges_needs_a_trip_serving_both_ends():
    rows = trip_rows("X", EXPRESS)
    trips = prepare_trips(events_frame(rows), FilterConfig())
    # Only the express runs: S1 - S3 is adjacent in every trip serving both.
    assert find_shortcut_edges(trips, [(S1, S3), (S3, S4)]) == set()

    rows += trip_rows("L", LOCAL)
    trips = prepare_trips(events_frame(rows), FilterConfig())
    assert find_shortcut_edges(trips, [(S3, S1), (S3, S4), (S1, S4)]) == {(S1, S3), (S1, S4)}


def test_space_of_stations_never_isolates_a_station(stations):
    # S2 and S3 lie close together, both served nonstop from S1: the two long edges
    # must not remove each other.
    st = stations.copy()
    st.loc[st["BPUIC"] == S2, "LONGITUDE"] = 7.13
    st.loc[st["BPUIC"] == S3, "LONGITUDE"] = 7.135
    edges = _edges([(S1, S2, 1, 8.0), (S1, S3, 1, 9.0), (S2, S3, 1, 1.0)])
    phys = space_of_stations_edges(edges, st)
    assert _pairs(phys) == {(S1, S2), (S2, S3)}


def test_space_of_stations_keeps_detours_beyond_tolerance(stations):
    # S1 - S4 direct, and a path S1 - S3 - S4 that overshoots: no bypass.
    st = stations.copy()
    st.loc[st["BPUIC"] == S3, "LATITUDE"] = 47.2  # ~22 km off the line
    edges = _edges([(S1, S4, 1, 20.0), (S1, S3, 1, 15.0), (S3, S4, 1, 15.0)])
    phys = space_of_stations_edges(edges, st, detour_tolerance=0.1)
    assert (S1, S4) in _pairs(phys)


def test_space_of_stations_keeps_edges_without_coordinates(trips, stations):
    st = stations.copy()
    st.loc[st["BPUIC"] == S2, ["LATITUDE", "LONGITUDE"]] = pd.NA
    phys = space_of_stations_edges(space_of_stops_edges(trips), st)
    # Without S2's position the S1 - S3 shortcut cannot be recognised.
    assert (S1, S3) in _pairs(phys)
    assert (S1, S2) in _pairs(phys)


def test_space_of_stations_rejects_negative_tolerance(trips, stations):
    with pytest.raises(ValueError, match="detour_tolerance"):
        space_of_stations_edges(space_of_stops_edges(trips), stations, detour_tolerance=-0.1)


def test_apply_edge_fixes_undirected():
    edges = _edges([(S1, S2, 2, 5.0), (S2, S3, 2, 5.0)])
    out = apply_edge_fixes(edges, remove=[(S2, S1)], add=[(S4, S3), (S3, S2)])
    assert _pairs(out) == {(S2, S3), (S3, S4)}
    added = _edge(out, S3, S4)
    assert added["NUM_CONNECTIONS"] == 0
    assert pd.isna(added["AVG_DURATION"])
    assert _edge(out, S2, S3)["NUM_CONNECTIONS"] == 2


def test_apply_edge_fixes_directed_respects_orientation():
    edges = _edges([(S1, S2, 1, 5.0), (S2, S1, 1, 5.0)])
    out = apply_edge_fixes(edges, remove=[(S2, S1)], directed=True)
    assert _pairs(out) == {(S1, S2)}


def test_stations_for_edges_restricts_imputes_and_joins(stations):
    sp = stations.drop(columns=["AVG_DAILY_TRAFFIC"])
    sp.loc[sp["BPUIC"] == S3, ["LATITUDE", "LONGITUDE"]] = pd.NA
    freq = pd.DataFrame({"BPUIC": [S1, S3], "AVG_DAILY_TRAFFIC": [1234.0, 56.0]})
    edges = _edges([(S1, S3, 1, 5.0), (S3, 8599999, 1, 4.0)])

    st = stations_for_edges(
        sp,
        [edges],
        frequency=freq,
        coordinates={S3: (47.05, 7.2)},
        fallback_names={8599999: "Feed Only"},
    )
    assert list(st.columns) == list(STATION_COLUMNS)
    assert list(st["BPUIC"].astype(int)) == [S1, S3, 8599999]
    s3 = st[st["BPUIC"] == S3].iloc[0]
    assert s3["LATITUDE"] == pytest.approx(47.05)
    assert s3["AVG_DAILY_TRAFFIC"] == pytest.approx(56.0)
    unknown = st[st["BPUIC"] == 8599999].iloc[0]
    assert unknown["NAME"] == "Feed Only"
    assert pd.isna(unknown["LATITUDE"])
    assert S2 not in set(st["BPUIC"].astype(int))


def test_stations_for_edges_requires_edges(stations):
    with pytest.raises(ValueError, match="no stations"):
        stations_for_edges(stations, [_edges([])])


def test_end_to_end_express_only_day():
    rows = trip_rows("X", EXPRESS) + trip_rows("L", LOCAL)
    trips = prepare_trips(events_frame(rows), FilterConfig())
    stops = space_of_stops_edges(trips)
    changes = space_of_changes_edges(trips)
    assert set(_pairs(stops)) <= set(_pairs(changes))


def test_temporal_edges_one_row_per_trip_connection(trips):
    edges = temporal_edges(trips, dt.date(2024, 3, 13))
    assert list(edges.columns) == list(TEMPORAL_COLUMNS)
    # LOCAL and LOCAL_BACK have 4 stops (6 pairs each), EXPRESS 3 stops (3 pairs).
    assert len(edges) == 15
    rows = set(edges.itertuples(index=False, name=None))
    assert (S1, S4, 480, 17) in rows
    assert (S1, S3, 540, 8) in rows
    assert (S4, S1, 600, 17) in rows
    assert edges["START"].is_monotonic_increasing


def test_temporal_edges_skip_untimed_and_truncate_seconds():
    stops = [(S1, None, "08:00"), (S2, None, None), (S3, "08:12", None)]
    trips = prepare_trips(events_frame(trip_rows("A", stops)), FilterConfig())
    edges = temporal_edges(trips, dt.date(2024, 3, 13))
    assert list(edges.itertuples(index=False, name=None)) == [(S1, S3, 480, 12)]

    # Forecast times carry seconds (08:00:30 -> 08:05:30); minutes are truncated.
    trips = prepare_trips(events_frame(trip_rows("L", LOCAL)), FilterConfig(use_forecast=True))
    edges = temporal_edges(trips, dt.date(2024, 3, 13))
    first = edges.iloc[0]
    assert (first["BPUIC1"], first["BPUIC2"], first["START"], first["DURATION"]) == (S1, S2, 480, 5)


def test_temporal_edges_after_midnight_exceed_one_day():
    late = [(S1, None, "23:58"), (S2, "00:04", None)]
    rows = trip_rows("N", late)
    rows[1]["ANKUNFTSZEIT"] = "14.03.2024 00:04"
    trips = prepare_trips(events_frame(rows), FilterConfig())
    edges = temporal_edges(trips, dt.date(2024, 3, 13))
    assert list(edges.itertuples(index=False, name=None)) == [(S1, S2, 1438, 6)]


def test_round_for_export():
    df = pd.DataFrame(
        {
            "BPUIC1": [S1],
            "AVG_DURATION": pd.array([5.123456], dtype="Float64"),
            "DISTANCE_GEODESIC": [7.6123456],
        }
    )
    out = round_for_export(df)
    assert out["AVG_DURATION"].iloc[0] == pytest.approx(5.12)
    assert out["DISTANCE_GEODESIC"].iloc[0] == pytest.approx(7.6123)
    assert out["BPUIC1"].iloc[0] == S1


def test_stations_for_edges_carries_registry_attributes(stations):
    sp = stations.drop(columns=["AVG_DAILY_TRAFFIC"]).assign(
        MUNICIPALITY=["Bern", "Bern", "Olten", "Olten"],
        COMPANY="Swiss Federal Railways SBB",
        ELEVATION=[540.0, 552.0, 396.0, None],
    )
    freq = pd.DataFrame(
        {
            "BPUIC": [S1],
            "AVG_DAILY_TRAFFIC": [1234.0],
            "AVG_DAILY_TRAFFIC_WEEKDAYS": [1400.0],
            "AVG_DAILY_TRAFFIC_WEEKENDS": [800.0],
        }
    )
    st = stations_for_edges(sp, [_edges([(S1, S2, 1, 5.0)])], frequency=freq)
    s1 = st[st["BPUIC"] == S1].iloc[0]
    assert s1["MUNICIPALITY"] == "Bern"
    assert s1["ELEVATION"] == pytest.approx(540.0)
    assert s1["AVG_DAILY_TRAFFIC_WEEKENDS"] == pytest.approx(800.0)
    assert pd.isna(st[st["BPUIC"] == S2].iloc[0]["AVG_DAILY_TRAFFIC_WEEKDAYS"])
