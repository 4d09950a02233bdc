"""Pydantic models and dataframe schema validators.

These are contracts to keep the pipeline deterministic:
- Each script validates its inputs/outputs at boundaries.
- Transformation logic remains in `swissrail/` pure functions; scripts orchestrate I/O.
"""

from __future__ import annotations

from swissrail.models.schemas import (
    EDGES_DISTANCES,
    EDGES_STOPS,
    EDGES_TEMPORAL,
    IST_DATEN,
    LINE_KILOMETRAGE,
    PASSENGER_FREQUENCY,
    SERVICE_POINTS,
    STATIONS,
    TableSchema,
)
from swissrail.models.validate import validate_df

__all__ = [
    "TableSchema",
    "validate_df",
    "IST_DATEN",
    "SERVICE_POINTS",
    "PASSENGER_FREQUENCY",
    "LINE_KILOMETRAGE",
    "STATIONS",
    "EDGES_STOPS",
    "EDGES_TEMPORAL",
    "EDGES_DISTANCES",
]
