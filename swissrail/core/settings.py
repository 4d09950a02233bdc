"""Network build configuration (YAML file validated by pydantic models).

The YAML lives at `config/network_config.yaml`. Everything a notebook used to
hard-code (which trains to keep, which station codes to merge, which edges to
fix by hand) is declared there so that builds stay reproducible.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from swissrail.core.config import get_paths
from swissrail.io import load_yaml

DEFAULT_CONFIG_FILE = "network_config.yaml"


class SourceSpec(BaseModel):
    """A downloadable dataset: URL (may contain `{date}`/`{year}`/`{month}`) and raw file name."""

    filename: str
    url: str | None = None
    archive_filename: str | None = None

    def render(self, template: str, day: dt.date | None) -> str:
        if day is None:
            return template
        return template.format(date=day.isoformat(), year=day.year, month=f"{day.month:02d}")

    def filename_for(self, day: dt.date | None = None) -> str:
        return self.render(self.filename, day)

    def url_for(self, day: dt.date | None = None) -> str:
        if not self.url:
            raise ValueError(f"No download URL configured for {self.filename!r}")
        return self.render(self.url, day)

    def archive_for(self, day: dt.date | None = None) -> str | None:
        return None if self.archive_filename is None else self.render(self.archive_filename, day)


class SourcesConfig(BaseModel):
    ist_daten: SourceSpec
    service_points: SourceSpec
    passenger_frequency: SourceSpec
    line_kilometrage: SourceSpec | None = None


class ColumnMaps(BaseModel):
    """External column name -> internal column name, per registry."""

    service_points: dict[str, str] = Field(
        default_factory=lambda: {
            "number": "BPUIC",
            "designationOfficial": "NAME",
            "wgs84North": "LATITUDE",
            "wgs84East": "LONGITUDE",
            "cantonAbbreviation": "CANTON",
            "municipalityName": "MUNICIPALITY",
            "businessOrganisationDescriptionEn": "COMPANY",
            "height": "ELEVATION",
        }
    )
    passenger_frequency: dict[str, str] = Field(
        default_factory=lambda: {
            "UIC": "BPUIC",
            "Jahr_Annee_Anno": "YEAR",
            "DTV_TJM_TGM": "AVG_DAILY_TRAFFIC",
            "DWV_TMJO_TFM": "AVG_DAILY_TRAFFIC_WEEKDAYS",
            "DNWV_TMJNO_TMGNL": "AVG_DAILY_TRAFFIC_WEEKENDS",
        }
    )
    line_kilometrage: dict[str, str] = Field(
        default_factory=lambda: {
            "Linie": "LINE_ID",
            "BPUIC": "BPUIC",
            "KM": "KM",
        }
    )


class FilterConfig(BaseModel):
    product_ids: tuple[str, ...] = ("Zug",)
    # Value assumed for events published without a product id (most of them are trains).
    missing_product_id: str | None = "Zug"
    # LINIEN_TEXT values to drop; "ATZ" marks car-carrying shuttle trains.
    exclude_line_texts: tuple[str, ...] = ("ATZ",)
    drop_cancelled: bool = True
    drop_additional: bool = False
    drop_pass_through: bool = True
    # Durations from forecast (actual) times instead of the timetable.
    use_forecast: bool = False


class SpaceOfStationsConfig(BaseModel):
    # None disables the geodesic check; shortcuts are then found from trip sequences only.
    detour_tolerance: float | None = Field(default=0.15, ge=0.0)


class ManualFixes(BaseModel):
    station_merges: dict[int, int] = Field(default_factory=dict)
    coordinates: dict[int, tuple[float, float]] = Field(default_factory=dict)  # BPUIC -> (lat, lon)
    remove_edges: list[tuple[int, int]] = Field(default_factory=list)
    add_edges: list[tuple[int, int]] = Field(default_factory=list)

    @field_validator("station_merges")
    @classmethod
    def _no_merge_chains(cls, v: dict[int, int]) -> dict[int, int]:
        chained = sorted(t for t in v.values() if t in v)
        if chained:
            raise ValueError(f"station_merges targets must not be merged themselves: {chained}")
        self_merge = sorted(k for k, t in v.items() if k == t)
        if self_merge:
            raise ValueError(f"station_merges maps codes onto themselves: {self_merge}")
        return v

    @field_validator("remove_edges", "add_edges")
    @classmethod
    def _no_loops(cls, v: list[tuple[int, int]]) -> list[tuple[int, int]]:
        loops = [e for e in v if e[0] == e[1]]
        if loops:
            raise ValueError(f"manual edge fixes contain self-loops: {loops}")
        return v


class NetworkConfig(BaseModel):
    default_date: dt.date | None = None
    sources: SourcesConfig
    columns: ColumnMaps = Field(default_factory=ColumnMaps)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    space_of_stations: SpaceOfStationsConfig = Field(default_factory=SpaceOfStationsConfig)
    manual_fixes: ManualFixes = Field(default_factory=ManualFixes)

    @model_validator(mode="after")
    def _fixes_use_merged_codes(self) -> NetworkConfig:
        merged = set(self.manual_fixes.station_merges)
        stale = sorted(
            {u for e in self.manual_fixes.add_edges for u in e if u in merged}
            | {c for c in self.manual_fixes.coordinates if c in merged}
        )
        if stale:
            raise ValueError(
                f"manual_fixes reference station codes that are merged away: {stale}"
            )
        return self

    def resolve_date(self, day: dt.date | None) -> dt.date:
        out = day or self.default_date
        if out is None:
            raise ValueError("No operating day given (pass --date or set default_date in config).")
        return out


def load_network_config(path: Path | None = None) -> NetworkConfig:
    """Load and validate the network YAML config."""
    if path is None:
        path = get_paths().config / DEFAULT_CONFIG_FILE
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Network config not found at {path}")
    raw = load_yaml(path)
    if not isinstance(raw, Mapping):
        raise TypeError(f"{path}: expected a mapping at top level, got {type(raw).__name__}")
    return NetworkConfig.model_validate(dict(raw))
