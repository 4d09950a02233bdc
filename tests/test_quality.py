from __future__ import annotations

import pandas as pd
import pytest

from conftest import S1, S2, S3, S4
from swissrail.core.settings import FilterConfig
from swissrail.data_processing.ist_daten import prepare_trips
from swissrail.data_processing.network_build import space_of_stops_edges
from swissrail.data_processing.quality import (
    compare_station_names,
    edge_between,
    find_duplicate_station_names,
    find_missing_coordinates,
    find_self_loops,
    quality_report,
)


def test_edge_between_named_pair(events, stations):
    edges = space_of_stops_edges(prepare_trips(events, FilterConfig()))
    hit = edge_between(edges, stations, "Alpha", "Charlie")
    assert len(hit) == 1
    assert hit.iloc[0]["AVG_DURATION"] == pytest.approx(8.0)

    assert edge_between(edges, stations, "Charlie", "Alpha").empty
    assert len(edge_between(edges, stations, "Charlie", "Bravo", directed=False)) == 2


def test_edge_between_unknown_name(stations):
    edges = pd.DataFrame({"BPUIC1": [S1], "BPUIC2": [S2]})
    with pytest.raises(KeyError, match="Nowhere"):
        edge_between(edges, stations, "Alpha", "Nowhere")


def test_find_self_loops_and_missing_coordinates(stations):
    edges = pd.DataFrame({"BPUIC1": [S1, S2], "BPUIC2": [S1, S3]})
    assert list(find_self_loops(edges)["BPUIC1"]) == [S1]

    st = stations.copy()
    st.loc[st["BPUIC"] == S4, "LONGITUDE"] = pd.NA
    assert list(find_missing_coordinates(st)["BPUIC"]) == [S4]


def test_find_duplicate_station_names(stations):
    st = stations.copy()
    st.loc[st["BPUIC"] == S4, "NAME"] = "alpha "
    dup = find_duplicate_station_names(st)
    assert sorted(dup["BPUIC"].astype(int)) == [S1, S4]


def test_compare_station_names(events, stations):
    trips = prepare_trips(events, FilterConfig())
    st = stations.copy()
    st.loc[st["BPUIC"] == S2, "NAME"] = "Bravo Nord"
    mism = compare_station_names(trips, st)
    assert list(mism["BPUIC"]) == [S2]
    assert mism.iloc[0]["FEED_NAME"] == "Bravo"
    assert mism.iloc[0]["REGISTRY_NAME"] == "Bravo Nord"


def test_quality_report_counts(events, stations):
    trips = prepare_trips(events, FilterConfig())
    edges = space_of_stops_edges(trips)
    report = quality_report(trips=trips, stations=stations, edge_tables={"stops": edges})
    values = report.set_index("check")["value"]
    assert values["stops_edges"] == len(edges)
    assert values["stops_self_loops"] == 0
    assert values["stops_untimed_edges"] == 0
    assert values["stations"] == 4
    assert values["stations_missing_coordinates"] == 0
    assert values["stations_feed_name_mismatch"] == 0
