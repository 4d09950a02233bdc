"""Schema definitions for pipeline dataframe contracts.

This module contains only:
- `TableSchema` (schema metadata container)
- input table schemas (`IST_DATEN`, `SERVICE_POINTS`, ...) after column mapping
- output table schemas (`STATIONS`, `EDGES_STOPS`, `EDGES_TEMPORAL`, `EDGES_DISTANCES`)
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, Field


class TableSchema(BaseModel):
    """A simple schema for a pandas DataFrame (column-level contract)."""

    name: str
    required_columns: tuple[str, ...] = Field(default_factory=tuple)
    optional_columns: tuple[str, ...] = Field(default_factory=tuple)
    # pandas dtype strings, e.g. "string", "Float64", "boolean", "Int64"
    dtypes: Mapping[str, str] = Field(default_factory=dict)
    non_null: tuple[str, ...] = Field(default_factory=tuple)

    def allowed_columns(self) -> set[str]:
        return set(self.required_columns) | set(self.optional_columns)


# Actual-data feed (one row per stop event of a Fahrt). Read as strings; the
# timestamp columns are parsed in `data_processing.ist_daten`.
IST_DATEN = TableSchema(
    name="ist_daten",
    required_columns=(
        "BETRIEBSTAG",
        "FAHRT_BEZEICHNER",
        "PRODUKT_ID",
        "BPUIC",
        "HALTESTELLEN_NAME",
        "ANKUNFTSZEIT",
        "ABFAHRTSZEIT",
    ),
    optional_columns=(
        "BETREIBER_ID",
        "BETREIBER_ABK",
        "BETREIBER_NAME",
        "LINIEN_ID",
        "LINIEN_TEXT",
        "UMLAUF_ID",
        "VERKEHRSMITTEL_TEXT",
        "ZUSATZFAHRT_TF",
        "FAELLT_AUS_TF",
        "AN_PROGNOSE",
        "AN_PROGNOSE_STATUS",
        "AB_PROGNOSE",
        "AB_PROGNOSE_STATUS",
        "DURCHFAHRT_TF",
    ),
    dtypes={
        "BETRIEBSTAG": "string",
        "FAHRT_BEZEICHNER": "string",
        "PRODUKT_ID": "string",
        "LINIEN_TEXT": "string",
        "BPUIC": "Int64",
        "HALTESTELLEN_NAME": "string",
        "ANKUNFTSZEIT": "string",
        "ABFAHRTSZEIT": "string",
        "AN_PROGNOSE": "string",
        "AB_PROGNOSE": "string",
        "ZUSATZFAHRT_TF": "string",
        "FAELLT_AUS_TF": "string",
        "DURCHFAHRT_TF": "string",
    },
    non_null=("FAHRT_BEZEICHNER", "BPUIC"),
)

SERVICE_POINTS = TableSchema(
    name="service_points",
    required_columns=("BPUIC", "NAME", "LATITUDE", "LONGITUDE"),
    optional_columns=("CANTON", "MUNICIPALITY", "COMPANY", "ELEVATION"),
    dtypes={
        "BPUIC": "Int64",
        "NAME": "string",
        "LATITUDE": "Float64",
        "LONGITUDE": "Float64",
        "CANTON": "string",
        "MUNICIPALITY": "string",
        "COMPANY": "string",
        "ELEVATION": "Float64",
    },
    non_null=("BPUIC",),
)

PASSENGER_FREQUENCY = TableSchema(
    name="passenger_frequency",
    required_columns=("BPUIC", "AVG_DAILY_TRAFFIC"),
    optional_columns=("YEAR", "AVG_DAILY_TRAFFIC_WEEKDAYS", "AVG_DAILY_TRAFFIC_WEEKENDS"),
    dtypes={
        "BPUIC": "Int64",
        "YEAR": "Int64",
        "AVG_DAILY_TRAFFIC": "Float64",
        "AVG_DAILY_TRAFFIC_WEEKDAYS": "Float64",
        "AVG_DAILY_TRAFFIC_WEEKENDS": "Float64",
    },
    non_null=("BPUIC",),
)

LINE_KILOMETRAGE = TableSchema(
    name="line_kilometrage",
    required_columns=("LINE_ID", "BPUIC", "KM"),
    dtypes={
        "LINE_ID": "string",
        "BPUIC": "Int64",
        "KM": "Float64",
    },
    non_null=("LINE_ID", "BPUIC", "KM"),
)

STATIONS = TableSchema(
    name="stations",
    required_columns=("BPUIC", "NAME", "LATITUDE", "LONGITUDE"),
    optional_columns=(
        "CANTON",
        "MUNICIPALITY",
        "COMPANY",
        "ELEVATION",
        "AVG_DAILY_TRAFFIC",
        "AVG_DAILY_TRAFFIC_WEEKDAYS",
        "AVG_DAILY_TRAFFIC_WEEKENDS",
    ),
    dtypes={
        "BPUIC": "Int64",
        "NAME": "string",
        "LATITUDE": "Float64",
        "LONGITUDE": "Float64",
        "CANTON": "string",
        "MUNICIPALITY": "string",
        "COMPANY": "string",
        "ELEVATION": "Float64",
        "AVG_DAILY_TRAFFIC": "Float64",
        "AVG_DAILY_TRAFFIC_WEEKDAYS": "Float64",
        "AVG_DAILY_TRAFFIC_WEEKENDS": "Float64",
    },
    non_null=("BPUIC",),
)

# Used for both space-of-stops and space-of-changes edge tables.
EDGES_STOPS = TableSchema(
    name="edges_stops",
    required_columns=("BPUIC1", "BPUIC2", "NUM_CONNECTIONS", "AVG_DURATION"),
    dtypes={
        "BPUIC1": "Int64",
        "BPUIC2": "Int64",
        "NUM_CONNECTIONS": "Int64",
        "AVG_DURATION": "Float64",
    },
    non_null=("BPUIC1", "BPUIC2", "NUM_CONNECTIONS"),
)

EDGES_DISTANCES = TableSchema(
    name="edges_distances",
    required_columns=("BPUIC1", "BPUIC2", "DISTANCE_GEODESIC", "DISTANCE_EXACT"),
    dtypes={
        "BPUIC1": "Int64",
        "BPUIC2": "Int64",
        "DISTANCE_GEODESIC": "Float64",
        "DISTANCE_EXACT": "Float64",
    },
    non_null=("BPUIC1", "BPUIC2"),
)

# Temporal representation: one row per (trip, origin stop, later stop).
# START is the departure in minutes after midnight of the operating day.
EDGES_TEMPORAL = TableSchema(
    name="edges_temporal",
    required_columns=("BPUIC1", "BPUIC2", "START", "DURATION"),
    dtypes={
        "BPUIC1": "Int64",
        "BPUIC2": "Int64",
        "START": "Int64",
        "DURATION": "Int64",
    },
    non_null=("BPUIC1", "BPUIC2", "START", "DURATION"),
)
