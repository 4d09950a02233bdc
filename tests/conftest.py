from __future__ import annotations

import pandas as pd
import pytest

from swissrail.models.schemas import IST_DATEN
from swissrail.models.validate import validate_df

DAY = "13.03.2024"

# Four stations on one parallel, 0.1 degree of longitude apart (~7.6 km).
S1, S2, S3, S4 = 8500001, 8500002, 8500003, 8500004
COORDS: dict[int, tuple[float, float]] = {
    S1: (47.0, 7.0),
    S2: (47.0, 7.1),
    S3: (47.0, 7.2),
    S4: (47.0, 7.3),
}
NAMES: dict[int, str] = {S1: "Alpha", S2: "Bravo", S3: "Charlie", S4: "Delta"}

# (bpuic, arrival "HH:MM" or None, departure "HH:MM" or None)
Stop = tuple[int, str | None, str | None]


def _ts(hhmm: str | None) -> str | None:
    return None if hhmm is None else f"{DAY} {hhmm}"


def trip_rows(
    trip_id: str,
    stops: list[Stop],
    *,
    product: str | None = "Zug",
    line_text: str = "IR15",
    cancelled: bool = False,
    additional: bool = False,
    pass_through: set[int] | None = None,
) -> list[dict]:
    rows = []
    for bpuic, arr, dep in stops:
        rows.append(
            {
                "BETRIEBSTAG": DAY,
                "FAHRT_BEZEICHNER": trip_id,
                "PRODUKT_ID": product,
                "LINIEN_TEXT": line_text,
                "BPUIC": str(bpuic),
                "HALTESTELLEN_NAME": NAMES.get(bpuic, f"Stop {bpuic}"),
                "ANKUNFTSZEIT": _ts(arr),
                "AN_PROGNOSE": None if arr is None else f"{DAY} {arr}:30",
                "ABFAHRTSZEIT": _ts(dep),
                "AB_PROGNOSE": None if dep is None else f"{DAY} {dep}:30",
                "FAELLT_AUS_TF": "true" if cancelled else "false",
                "ZUSATZFAHRT_TF": "true" if additional else "false",
                "DURCHFAHRT_TF": "true" if pass_through and bpuic in pass_through else "false",
            }
        )
    return rows


def events_frame(rows: list[dict]) -> pd.DataFrame:
    return validate_df(pd.DataFrame(rows), IST_DATEN)


LOCAL = [(S1, None, "08:00"), (S2, "08:05", "08:06"), (S3, "08:11", "08:12"), (S4, "08:17", None)]
EXPRESS = [(S1, None, "09:00"), (S3, "09:08", "09:09"), (S4, "09:14", None)]
LOCAL_BACK = [(S4, None, "10:00"), (S3, "10:05", "10:06"), (S2, "10:11", "10:12"), (S1, "10:17", None)]


@pytest.fixture
def events() -> pd.DataFrame:
    rows = (
        trip_rows("85:11:1001:001", LOCAL)
        + trip_rows("85:11:2001:001", EXPRESS)
        + trip_rows("85:11:1002:001", LOCAL_BACK)
        + trip_rows("85:801:9:001", [(S1, None, "11:00"), (S4, "11:30", None)], product="Bus")
        + trip_rows("85:11:1003:001", LOCAL, cancelled=True)
    )
    return events_frame(rows)


@pytest.fixture
def stations() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "BPUIC": pd.array(list(COORDS), dtype="Int64"),
            "NAME": pd.array([NAMES[b] for b in COORDS], dtype="string"),
            "LATITUDE": pd.array([COORDS[b][0] for b in COORDS], dtype="Float64"),
            "LONGITUDE": pd.array([COORDS[b][1] for b in COORDS], dtype="Float64"),
            "CANTON": pd.array(["BE", "BE", "SO", "SO"], dtype="string"),
            "AVG_DAILY_TRAFFIC": pd.array([1000.0, 200.0, 500.0, None], dtype="Float64"),
        }
    )
