"""
Time-series tables built from a LiPD collection.

The time-series table has one row per (dataset, variable) with scalar
metadata columns (``geo_latitude``, ``paleoData_variableName``, ...) and two
vector columns: the time axis (``year`` by default) and ``paleoData_values``.

The long-form table explodes those vectors into one row per observation.
"""

import itertools
import logging

import numpy as np
import pandas as pd

from .operations import as_vector, compute_resolution, compute_time_coverage

logger = logging.getLogger("ch2k-explorer")

VALUES_COLUMN = "paleoData_values"
SERIES_ID_COLUMN = "paleoData_TSid"
DATASET_COLUMN = "dataSetName"
VARIABLE_COLUMN = "paleoData_variableName"

# Suggested fields for filtering (see Tables 1 and 3 in the CoralHydro2k
# database descriptor for the full metadata list).
SUGGESTED_FILTER_FIELDS = {
    "paleoData_coralHydro2kGroup": "CoralHydro2k group (1-3 are paired records)",
    "paleoData_variableName": "proxy type (SrCa, d18O, d18Osw)",
    "minYear": "record start year",
    "maxYear": "record end year",
    "hasResolution_nominal": "nominal resolution",
    "hasResolution_minimum": "minimum resolution (years CE)",
    "hasResolution_mean": "mean resolution",
    "hasResolution_median": "median resolution",
    "hasResolution_maximum": "maximum resolution",
    "geo_latitude": "record latitude (degrees N)",
    "geo_longitude": "record longitude (degrees E)",
    "geo_siteName": "name of the site/location",
    "geo_ocean": "ocean basin of the coral record",
    "paleoData_archiveSpecies": "coral species",
}

_RESOLUTION_STATS = ("minimum", "mean", "median", "maximum")


def extract_ts(collection, time_var: str = "year", mode: str = "paleo") -> pd.DataFrame:
    """Flatten every dataset of a LiPD collection into a time-series table.

    Args:
        collection: A ``pylipd.lipd.LiPD`` collection (see data_ops.fetch).
        time_var: Time axis to attach to each series ("year" or "age").
        mode: "paleo" or "chron" tables.

    Returns:
        Normalized time-series table (see normalize_ts_table).
    """
    names = list(collection.get_all_dataset_names())
    ts = collection.get_timeseries(names, to_dataframe=False, mode=mode, time=time_var)
    table = ts_to_table(ts)
    logger.info(f"[TS] Extracted {len(table)} series from {len(names)} datasets")
    return normalize_ts_table(table, time_var=time_var)


def ts_to_table(ts) -> pd.DataFrame:
    """Convert time-series objects into a table.

    Args:
        ts: Either a list of time-series dicts, or a dict mapping dataset
            name to such a list (the shape pylipd returns).

    Returns:
        DataFrame with one row per time-series dict.
    """
    if isinstance(ts, dict):
        ts = list(itertools.chain.from_iterable(ts.values()))
    return pd.DataFrame.from_records(list(ts))


def table_to_ts(table: pd.DataFrame) -> list[dict]:
    """Convert a (filtered) table back into a list of time-series dicts.

    Scalar fields that are missing (NaN/None) are left out of each dict;
    vector fields are kept as lists.
    """
    result = []
    for record in table.to_dict(orient="records"):
        tso = {}
        for key, value in record.items():
            if isinstance(value, np.ndarray):
                value = value.tolist()
            if not isinstance(value, (list, tuple)) and pd.isna(value):
                continue
            tso[key] = value
        result.append(tso)
    return result


def normalize_ts_table(table: pd.DataFrame, time_var: str = "year") -> pd.DataFrame:
    """Return a copy of *table* with the columns the pipeline relies on.

    - geo_latitude / geo_longitude, numeric, with missing cells filled from
      geo_meanLat / geo_meanLon
    - paleoData_TSid, unique per row
    - minYear / maxYear and hasResolution_* computed from the time vector
      wherever they are absent or missing
    """
    df = table.copy().reset_index(drop=True)

    for col, fallback in (("geo_latitude", "geo_meanLat"), ("geo_longitude", "geo_meanLon")):
        values = pd.to_numeric(df[col], errors="coerce") if col in df.columns else pd.Series(np.nan, index=df.index)
        if fallback in df.columns:
            values = values.fillna(pd.to_numeric(df[fallback], errors="coerce"))
        df[col] = values

    if SERIES_ID_COLUMN not in df.columns:
        df[SERIES_ID_COLUMN] = None
    missing_id = df[SERIES_ID_COLUMN].isna()
    if missing_id.any():
        datasets = df[DATASET_COLUMN] if DATASET_COLUMN in df.columns else pd.Series("series", index=df.index)
        variables = df[VARIABLE_COLUMN] if VARIABLE_COLUMN in df.columns else pd.Series("var", index=df.index)
        generated = [f"{d}.{v}.{i}" for i, (d, v) in enumerate(zip(datasets, variables))]
        df.loc[missing_id, SERIES_ID_COLUMN] = pd.Series(generated, index=df.index)[missing_id]

    if time_var in df.columns:
        _fill_time_stats(df, time_var)
    else:
        logger.warning(f"[TS] Time column '{time_var}' not found; time statistics not computed")

    return df


def _fill_time_stats(df: pd.DataFrame, time_var: str) -> None:
    """Fill coverage/resolution columns in place from the time vectors."""
    coverage = [compute_time_coverage(as_vector(t)) for t in df[time_var]]
    resolution = [compute_resolution(as_vector(t)) for t in df[time_var]]

    computed = {
        "minYear": [c[0] for c in coverage],
        "maxYear": [c[1] for c in coverage],
    }
    for stat in _RESOLUTION_STATS:
        computed[f"hasResolution_{stat}"] = [r[stat] for r in resolution]

    for col, values in computed.items():
        values = pd.Series(values, index=df.index, dtype=np.float64)
        if col in df.columns:
            existing = pd.to_numeric(df[col], errors="coerce")
            df[col] = existing.where(existing.notna(), values)
        else:
            df[col] = values


def _is_vector_column(series: pd.Series) -> bool:
    return any(isinstance(v, (list, tuple, np.ndarray)) for v in series)


def to_long(
    table: pd.DataFrame,
    time_var: str = "year",
    value_var: str = VALUES_COLUMN,
) -> pd.DataFrame:
    """Explode a time-series table into one row per observation.

    Scalar metadata columns are repeated for every observation; the time and
    value vectors become numeric scalar columns. Other vector columns are
    dropped. Rows whose vectors are missing contribute no rows.

    Raises:
        KeyError: If time_var or value_var is not a column of the table.
        ValueError: If a row's time and value vectors differ in length.
    """
    for col in (time_var, value_var):
        if col not in table.columns:
            raise KeyError(f"Column '{col}' not found. Available: {list(table.columns)}")

    times = [as_vector(t) for t in table[time_var]]
    values = [as_vector(v) for v in table[value_var]]
    for pos, (t, v) in enumerate(zip(times, values)):
        if len(t) != len(v):
            label = table[SERIES_ID_COLUMN].iloc[pos] if SERIES_ID_COLUMN in table.columns else pos
            raise ValueError(
                f"Series '{label}' has {len(t)} '{time_var}' values "
                f"but {len(v)} '{value_var}' values"
            )

    meta_cols = [
        c for c in table.columns
        if c not in (time_var, value_var) and not _is_vector_column(table[c])
    ]
    counts = [len(v) for v in values]
    positions = np.repeat(np.arange(len(table)), counts)
    long = table.iloc[positions][meta_cols].reset_index(drop=True)
    long[time_var] = _numeric(itertools.chain.from_iterable(times))
    long[value_var] = _numeric(itertools.chain.from_iterable(values))
    return long


def from_long(
    long: pd.DataFrame,
    time_var: str = "year",
    value_var: str = VALUES_COLUMN,
    key: str = SERIES_ID_COLUMN,
) -> pd.DataFrame:
    """Collapse a long-form table back into one row per series.

    Series keep their first-appearance order; scalar metadata is taken from
    the first observation of each series.

    Raises:
        KeyError: If key, time_var or value_var is missing.
    """
    for col in (key, time_var, value_var):
        if col not in long.columns:
            raise KeyError(f"Column '{col}' not found. Available: {list(long.columns)}")

    meta_cols = [c for c in long.columns if c not in (time_var, value_var)]
    rows = []
    for _, group in long.groupby(key, sort=False):
        row = group.iloc[0][meta_cols].to_dict()
        row[time_var] = group[time_var].tolist()
        row[value_var] = group[value_var].tolist()
        rows.append(row)
    return pd.DataFrame(rows, columns=meta_cols + [time_var, value_var])


def variable_names(table: pd.DataFrame) -> list[str]:
    """Sorted unique variable names in a table."""
    if VARIABLE_COLUMN not in table.columns:
        return []
    return sorted(str(v) for v in table[VARIABLE_COLUMN].dropna().unique())


def _numeric(values) -> np.ndarray:
    return pd.to_numeric(pd.Series(list(values), dtype=object), errors="coerce").to_numpy(dtype=np.float64)
