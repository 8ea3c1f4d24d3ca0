"""
Pure numpy/pandas helpers for time-series tables.

Functions take numpy arrays (or a table) and return plain values or new
DataFrames. No dependency on the store or the renderer.
"""

import math

import numpy as np
import pandas as pd


def _finite(values) -> np.ndarray:
    """Coerce a vector to float64 and keep only finite entries."""
    arr = pd.to_numeric(pd.Series(list(values), dtype=object), errors="coerce").to_numpy(dtype=np.float64)
    return arr[np.isfinite(arr)]


def compute_time_coverage(times) -> tuple[float, float]:
    """Earliest and latest finite time in a vector.

    Args:
        times: Sequence of time values (numbers or numeric strings).

    Returns:
        Tuple (min, max); (nan, nan) when no finite value exists.
    """
    arr = _finite(times)
    if arr.size == 0:
        return math.nan, math.nan
    return float(arr.min()), float(arr.max())


def compute_resolution(times) -> dict[str, float]:
    """Spacing statistics between consecutive observations.

    Times are sorted first, so the spacing is always non-negative.

    Args:
        times: Sequence of time values.

    Returns:
        Dict with keys minimum, mean, median, maximum. All NaN when fewer
        than two finite values exist.
    """
    arr = np.sort(_finite(times))
    if arr.size < 2:
        return {"minimum": math.nan, "mean": math.nan, "median": math.nan, "maximum": math.nan}
    steps = np.diff(arr)
    return {
        "minimum": float(steps.min()),
        "mean": float(steps.mean()),
        "median": float(np.median(steps)),
        "maximum": float(steps.max()),
    }


def compute_availability(
    table: pd.DataFrame,
    time_var: str = "year",
    group_var: str | None = None,
    value_var: str = "paleoData_values",
    bin_width: float = 1,
) -> pd.DataFrame:
    """Count how many series have data in each time bin.

    A series counts towards a bin when at least one of its observations
    inside the bin has both a finite time and a finite value.

    Args:
        table: Time-series table (one row per series, vector columns).
        time_var: Column holding the time vectors.
        group_var: Optional column to split counts by (one output column per
            distinct value). When None, a single "count" column is returned.
        value_var: Column holding the value vectors.
        bin_width: Width of each time bin, in time units.

    Returns:
        DataFrame indexed by bin start (ascending), integer counts. Empty
        when the table has no usable observations.

    Raises:
        ValueError: If bin_width is not positive.
    """
    if bin_width <= 0:
        raise ValueError(f"bin_width must be > 0, got {bin_width}")

    records = []
    for _, row in table.iterrows():
        times = pd.to_numeric(pd.Series(as_vector(row[time_var]), dtype=object), errors="coerce")
        if value_var in table.columns:
            values = pd.to_numeric(pd.Series(as_vector(row[value_var]), dtype=object), errors="coerce")
            if len(values) == len(times):
                times = times[np.isfinite(values.to_numpy(dtype=np.float64))]
        times = times.to_numpy(dtype=np.float64)
        times = times[np.isfinite(times)]
        if times.size == 0:
            continue
        bins = np.unique(np.floor(times / bin_width) * bin_width)
        group = row[group_var] if group_var is not None else "count"
        if group_var is not None and pd.isna(group):
            group = "NA"
        records.extend((b, str(group)) for b in bins)

    if not records:
        return pd.DataFrame(dtype=np.int64)

    counts = (
        pd.DataFrame(records, columns=["bin", "group"])
        .groupby(["bin", "group"])
        .size()
        .unstack("group", fill_value=0)
        .sort_index()
    )
    counts.index.name = time_var
    counts.columns.name = None
    return counts.astype(np.int64)


def standardize(values: np.ndarray) -> np.ndarray:
    """Z-score a 1D array, ignoring NaN when computing mean and std.

    NaN entries stay NaN. A constant (or single-point) series maps to zeros.
    """
    arr = np.asarray(values, dtype=np.float64)
    finite = arr[np.isfinite(arr)]
    if finite.size == 0:
        return arr.copy()
    std = finite.std()
    if std == 0 or not np.isfinite(std):
        out = np.zeros_like(arr)
        out[~np.isfinite(arr)] = np.nan
        return out
    return (arr - finite.mean()) / std


def as_vector(value) -> list:
    """Return a vector cell as a list; scalars and missing cells become []."""
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    return []
