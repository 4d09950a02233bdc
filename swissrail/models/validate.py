"""Validation utilities for pipeline dataframe contracts."""

from __future__ import annotations

import numpy as np
import pandas as pd
from pandas.api.types import is_numeric_dtype

from swissrail.models.schemas import TableSchema

_NUMERIC_DTYPES = {"Int64", "Float64"}


def _coerce(series: pd.Series, dtype: str) -> pd.Series:
    # Text columns (CSV read with dtype=str) go through to_numeric first; nullable
    # numeric dtypes do not parse strings consistently across pandas versions.
    if dtype in _NUMERIC_DTYPES and not is_numeric_dtype(series.dtype):
        text = series.astype("string").str.strip()
        keep = (text.notna() & text.ne("")).fillna(False).astype(bool)
        text = text.astype(object).where(keep, np.nan)
        series = pd.to_numeric(text, errors="raise")
    return series.astype(dtype)


def validate_df(
    df: pd.DataFrame,
    schema: TableSchema,
    *,
    coerce_dtypes: bool = True,
    allow_extra_columns: bool = True,
) -> pd.DataFrame:
    """Validate a dataframe against a schema. Returns a (possibly coerced) copy."""
    missing = [c for c in schema.required_columns if c not in df.columns]
    if missing:
        raise ValueError(f"{schema.name}: missing required columns: {missing}")

    if not allow_extra_columns:
        extra = [c for c in df.columns if c not in schema.allowed_columns()]
        if extra:
            raise ValueError(f"{schema.name}: unexpected columns: {extra}")

    out = df.copy()

    if coerce_dtypes and schema.dtypes:
        for col, dtype in schema.dtypes.items():
            if col not in out.columns:
                continue
            try:
                out[col] = _coerce(out[col], dtype)
            except Exception as exc:  # noqa: BLE001 - surface as actionable schema error
                raise TypeError(
                    f"{schema.name}: failed to coerce column '{col}' to dtype '{dtype}': {exc}"
                ) from exc

    if schema.non_null:
        bad = [c for c in schema.non_null if c in out.columns and out[c].isna().any()]
        if bad:
            counts = {c: int(out[c].isna().sum()) for c in bad}
            raise ValueError(f"{schema.name}: non-null columns contain NA values: {counts}")

    return out
