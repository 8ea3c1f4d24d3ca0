"""
Plotly figures for time-series tables.

Public builders (all return a fresh go.Figure, nothing is displayed):
- map_records(): site map, global or regional, coloured by a column
- plot_record_summary(): single-record dashboard (map, metadata, series)
- plot_summary_ts(): map plus record availability through time
- plot_timeseries_stack(): stacked, standardized line plot of a long table

An empty table never raises inside a builder: the figure comes back without
data traces and carries a "No records to display" annotation.

export_figure() writes a figure to HTML or JSON.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from data_ops.operations import as_vector, compute_availability, standardize
from data_ops.timeseries import (
    DATASET_COLUMN,
    SERIES_ID_COLUMN,
    VALUES_COLUMN,
    VARIABLE_COLUMN,
)

logger = logging.getLogger("ch2k-explorer")

# Default colour sequence (golden-ratio HSL spacing, pre-computed hex)
_DEFAULT_COLORS = [
    "#cc6633",  # hue=0.000
    "#55cc33",  # hue=0.618
    "#3384cc",  # hue=0.236
    "#a833cc",  # hue=0.854
    "#33cc98",  # hue=0.472
    "#cc3340",  # hue=0.090
    "#33cccc",  # hue=0.708
    "#ccbe33",  # hue=0.326
]

_DEFAULT_LAYOUT = dict(
    paper_bgcolor="white",
    plot_bgcolor="white",
    font_color="#2a3f5f",
)

_PANEL_HEIGHT = 350  # px per subplot row
_DEFAULT_WIDTH = 1100  # px figure width
_STACK_ROW_HEIGHT = 45  # px per series in a stack plot

# Label/line sizes are given in millimetres (ggplot convention)
_MM_TO_PT = 72 / 25.4

_NO_RECORDS = "No records to display"

_SUMMARY_FIELDS = [
    DATASET_COLUMN,
    "archiveType",
    "geo_siteName",
    "geo_ocean",
    "geo_latitude",
    "geo_longitude",
    "paleoData_archiveSpecies",
    "paleoData_coralHydro2kGroup",
    VARIABLE_COLUMN,
    "paleoData_units",
    "minYear",
    "maxYear",
    "hasResolution_median",
]


# ---------------------------------------------------------------------------
# ColorState: stable colour per category
# ---------------------------------------------------------------------------

class ColorState:
    """Tracks label-to-color assignments for stable coloring across traces."""

    def __init__(self):
        self.label_colors: dict[str, str] = {}
        self.color_index: int = 0

    def next_color(self, label: str) -> str:
        """Return a stable colour for *label*, assigning a new one if unseen."""
        if label in self.label_colors:
            return self.label_colors[label]
        color = _DEFAULT_COLORS[self.color_index % len(_DEFAULT_COLORS)]
        self.color_index += 1
        self.label_colors[label] = color
        return color


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _category(value) -> str:
    if value is None or (not isinstance(value, (list, tuple)) and pd.isna(value)):
        return "NA"
    return str(value)


def _empty_figure(title: str = "", geo: dict | None = None) -> go.Figure:
    """Figure without data traces, carrying a 'no records' annotation."""
    fig = go.Figure()
    fig.update_layout(
        title_text=title,
        width=_DEFAULT_WIDTH,
        height=_PANEL_HEIGHT,
        **_DEFAULT_LAYOUT,
    )
    if geo is not None:
        fig.update_geos(**geo)
    fig.add_annotation(
        text=_NO_RECORDS,
        x=0.5, y=0.5, xref="paper", yref="paper",
        showarrow=False, font=dict(size=16),
    )
    return fig


def _sites(table: pd.DataFrame, color_var: str | None) -> pd.DataFrame:
    """One row per (dataset, colour category) with finite coordinates."""
    cols = {
        "dataset": table[DATASET_COLUMN] if DATASET_COLUMN in table.columns else pd.Series(table.index.astype(str), index=table.index),
        "lat": pd.to_numeric(table["geo_latitude"], errors="coerce") if "geo_latitude" in table.columns else np.nan,
        "lon": pd.to_numeric(table["geo_longitude"], errors="coerce") if "geo_longitude" in table.columns else np.nan,
        "site": table["geo_siteName"] if "geo_siteName" in table.columns else "",
    }
    sites = pd.DataFrame(cols, index=table.index)
    if color_var is not None:
        if color_var not in table.columns:
            raise KeyError(f"Column '{color_var}' not found. Available: {list(table.columns)}")
        sites["category"] = table[color_var].map(_category)
    else:
        sites["category"] = "records"
    sites = sites.dropna(subset=["lat", "lon"])
    return sites.drop_duplicates(subset=["dataset", "category"]).reset_index(drop=True)


def _geo_layout(projection: str, global_extent: bool, lats=None, lons=None) -> dict:
    """Geo axis settings; regional extents are fitted to the given points."""
    geo = dict(
        projection_type=projection,
        showland=True,
        landcolor="#e5e5e5",
        showocean=True,
        oceancolor="#f4f8fb",
        showcoastlines=True,
        coastlinecolor="#888888",
        showframe=True,
    )
    if global_extent or lats is None or len(lats) == 0:
        geo["lataxis_range"] = [-90, 90]
        geo["lonaxis_range"] = [-180, 180]
    else:
        pad = 10
        geo["lataxis_range"] = [max(-90, float(np.min(lats)) - pad), min(90, float(np.max(lats)) + pad)]
        geo["lonaxis_range"] = [max(-180, float(np.min(lons)) - pad), min(180, float(np.max(lons)) + pad)]
    return geo


def _add_site_traces(
    fig: go.Figure,
    sites: pd.DataFrame,
    color_state: ColorState,
    row: int | None = None,
    col: int | None = None,
    marker_size: int = 8,
) -> None:
    for category, group in sites.groupby("category", sort=True):
        hover = [
            f"{d}<br>{s}" if isinstance(s, str) and s else str(d)
            for d, s in zip(group["dataset"], group["site"])
        ]
        trace = go.Scattergeo(
            lat=group["lat"].tolist(),
            lon=group["lon"].tolist(),
            mode="markers",
            name=category,
            legendgroup=category,
            text=hover,
            hoverinfo="text",
            marker=dict(
                size=marker_size,
                color=color_state.next_color(category),
                line=dict(width=0.5, color="#333333"),
            ),
        )
        if row is None:
            fig.add_trace(trace)
        else:
            fig.add_trace(trace, row=row, col=col)


# ---------------------------------------------------------------------------
# Maps
# ---------------------------------------------------------------------------

def map_records(
    table: pd.DataFrame,
    projection: str = "mollweide",
    global_extent: bool = True,
    color_var: str | None = "archiveType",
    title: str = "",
) -> go.Figure:
    """Map every dataset of a table as one marker.

    Args:
        table: Time-series table (several rows per dataset are fine).
        projection: Plotly geo projection type (e.g. "mollweide", "robinson").
        global_extent: Show the whole globe; otherwise fit the map to the
            records.
        color_var: Column to colour markers by (None for a single colour).
        title: Figure title.
    """
    if color_var is not None and color_var not in table.columns:
        logger.debug(f"[Render] Colour column '{color_var}' missing; using a single colour")
        color_var = None
    sites = _sites(table, color_var)
    if sites.empty:
        return _empty_figure(title, geo=_geo_layout(projection, True))

    fig = go.Figure()
    _add_site_traces(fig, sites, ColorState())
    fig.update_geos(**_geo_layout(projection, global_extent, sites["lat"], sites["lon"]))
    fig.update_layout(
        title_text=title or f"{sites['dataset'].nunique()} records",
        width=_DEFAULT_WIDTH,
        height=int(_PANEL_HEIGHT * 1.6),
        legend_title_text=color_var or "",
        **_DEFAULT_LAYOUT,
    )
    return fig


# ---------------------------------------------------------------------------
# Single-record dashboard
# ---------------------------------------------------------------------------

def _resolve_dataset(table: pd.DataFrame, dataset) -> str:
    names = list(pd.unique(table[DATASET_COLUMN])) if DATASET_COLUMN in table.columns else []
    if isinstance(dataset, (int, np.integer)) and not isinstance(dataset, bool):
        if not -len(names) <= dataset < len(names):
            raise ValueError(f"Record index {dataset} out of range (table holds {len(names)} records)")
        return names[dataset]
    if dataset not in names:
        raise ValueError(f"Dataset '{dataset}' not found. Available: {names[:20]}")
    return dataset


def plot_record_summary(
    table: pd.DataFrame,
    dataset,
    data_var: str | None = None,
    time_var: str = "year",
    projection: str = "mollweide",
) -> go.Figure:
    """Dashboard for one record: location map, metadata table, time series.

    Args:
        table: Time-series table.
        dataset: Dataset name, or positional index into the table's datasets
            (first-appearance order).
        data_var: Variable to plot. When omitted and the record holds several
            variables, the first one is used and the alternatives are logged.
        time_var: Column holding the time vector.
        projection: Map projection.

    Raises:
        ValueError: If the dataset or variable does not exist.
    """
    name = _resolve_dataset(table, dataset)
    rows = table[table[DATASET_COLUMN] == name]
    plottable = rows[
        rows[VALUES_COLUMN].map(lambda v: len(as_vector(v)) > 0)
        & (rows[VARIABLE_COLUMN] != time_var)
    ] if VALUES_COLUMN in rows.columns and VARIABLE_COLUMN in rows.columns else rows.iloc[0:0]
    options = [str(v) for v in plottable[VARIABLE_COLUMN]] if not plottable.empty else []

    if data_var is None:
        if not options:
            raise ValueError(f"Dataset '{name}' has no plottable variables")
        data_var = options[0]
        if len(options) > 1:
            logger.info(
                f"[Render] {name}: plotting '{data_var}' "
                f"(pass data_var to choose one of {options})"
            )
    elif data_var not in options:
        raise ValueError(f"Variable '{data_var}' not found in '{name}'. Available: {options}")

    series = plottable[plottable[VARIABLE_COLUMN] == data_var].iloc[0]

    fig = make_subplots(
        rows=2, cols=2,
        specs=[[{"type": "geo"}, {"type": "table"}], [{"type": "xy", "colspan": 2}, None]],
        row_heights=[0.55, 0.45],
        column_widths=[0.55, 0.45],
        subplot_titles=("Location", "Metadata", data_var),
        vertical_spacing=0.08,
    )

    color_state = ColorState()
    sites = _sites(rows.iloc[[0]], None)
    _add_site_traces(fig, sites, color_state, row=1, col=1, marker_size=12)
    fig.update_geos(**_geo_layout(projection, True))

    fields = [f for f in _SUMMARY_FIELDS if f in series.index]
    values = [_category(series[f]) if f != VARIABLE_COLUMN else data_var for f in fields]
    fig.add_trace(
        go.Table(
            header=dict(values=["Field", "Value"], align="left"),
            cells=dict(values=[fields, values], align="left"),
        ),
        row=1, col=2,
    )

    times = pd.to_numeric(pd.Series(as_vector(series[time_var]), dtype=object), errors="coerce")
    vals = pd.to_numeric(pd.Series(as_vector(series[VALUES_COLUMN]), dtype=object), errors="coerce")
    fig.add_trace(
        go.Scatter(
            x=times.tolist(),
            y=vals.tolist(),
            mode="lines",
            name=data_var,
            line=dict(width=1, color=color_state.next_color(data_var)),
            showlegend=False,
        ),
        row=2, col=1,
    )
    units = series.get("paleoData_units")
    y_title = f"{data_var} ({units})" if isinstance(units, str) and units else data_var
    fig.update_xaxes(title_text=time_var, row=2, col=1)
    fig.update_yaxes(title_text=y_title, row=2, col=1)
    fig.update_layout(
        title_text=name,
        width=_DEFAULT_WIDTH,
        height=_PANEL_HEIGHT * 2,
        showlegend=False,
        **_DEFAULT_LAYOUT,
    )
    return fig


# ---------------------------------------------------------------------------
# Spatiotemporal summary
# ---------------------------------------------------------------------------

def plot_summary_ts(
    table: pd.DataFrame,
    time_var: str = "year",
    sort_var: str | None = None,
    projection: str = "mollweide",
    global_extent: bool = True,
    bin_width: float = 1,
    title: str = "",
) -> go.Figure:
    """Map of the records plus the number of records available through time.

    Args:
        table: Time-series table.
        time_var: Column holding the time vectors.
        sort_var: Column used to colour the map and stack the availability
            bars (e.g. "paleoData_variableName"). None groups by archiveType
            when present.
        projection: Map projection.
        global_extent: Whole globe, or a map fitted to the records.
        bin_width: Availability bin width in time units.
        title: Figure title.
    """
    group_var = sort_var
    if group_var is None and "archiveType" in table.columns:
        group_var = "archiveType"

    if table.empty:
        logger.info("[Render] Summary requested for an empty table")
        return _empty_figure(title, geo=_geo_layout(projection, True))

    sites = _sites(table, group_var)
    availability = compute_availability(table, time_var=time_var, group_var=group_var, bin_width=bin_width)

    fig = make_subplots(
        rows=2, cols=1,
        specs=[[{"type": "geo"}], [{"type": "xy"}]],
        row_heights=[0.6, 0.4],
        vertical_spacing=0.06,
    )
    color_state = ColorState()
    _add_site_traces(fig, sites, color_state, row=1, col=1)
    fig.update_geos(**_geo_layout(projection, global_extent, sites["lat"], sites["lon"]))

    shown = set(sites["category"])
    for group in availability.columns:
        fig.add_trace(
            go.Bar(
                x=availability.index.tolist(),
                y=availability[group].tolist(),
                name=group,
                legendgroup=group,
                showlegend=group not in shown,
                marker_color=color_state.next_color(group),
                marker_line_width=0,
            ),
            row=2, col=1,
        )

    fig.update_xaxes(title_text=time_var, row=2, col=1)
    fig.update_yaxes(title_text="# records", row=2, col=1)
    fig.update_layout(
        title_text=title or f"{sites['dataset'].nunique()} records, {len(table)} series",
        barmode="stack",
        bargap=0,
        legend_title_text=group_var or "",
        width=_DEFAULT_WIDTH,
        height=_PANEL_HEIGHT * 2,
        **_DEFAULT_LAYOUT,
    )
    return fig


# ---------------------------------------------------------------------------
# Stack plot
# ---------------------------------------------------------------------------

def plot_timeseries_stack(
    long: pd.DataFrame,
    color_var: str | None = VARIABLE_COLUMN,
    label_var: str = DATASET_COLUMN,
    time_var: str = "year",
    value_var: str = VALUES_COLUMN,
    key: str = SERIES_ID_COLUMN,
    lab_size: float = 2.5,
    lab_space: float = 3,
    line_size: float = 0.4,
    scale_factor: float = 0.25,
    title: str = "",
) -> go.Figure:
    """Stacked line plot, one standardized series per row.

    Each series is z-scored, multiplied by *scale_factor* and drawn around
    its own integer offset, first series on top.

    Args:
        long: Long-form table (see data_ops.timeseries.to_long).
        color_var: Column that picks the line colour.
        label_var: Column written next to each series.
        time_var: Time column.
        value_var: Value column.
        key: Column identifying a series.
        lab_size: Label font size in mm.
        lab_space: Room left of the data for labels, in multiples of 5% of
            the time span.
        line_size: Line width in mm.
        scale_factor: Vertical scale of each standardized series relative
            to the spacing between series.
        title: Figure title.
    """
    if long.empty:
        logger.info("[Render] Stack plot requested for an empty table")
        return _empty_figure(title)
    for col in (key, time_var, value_var):
        if col not in long.columns:
            raise KeyError(f"Column '{col}' not found. Available: {list(long.columns)}")

    groups = list(long.groupby(key, sort=False))
    n = len(groups)
    t_all = pd.to_numeric(long[time_var], errors="coerce").dropna()
    t_min, t_max = (float(t_all.min()), float(t_all.max())) if len(t_all) else (0.0, 1.0)
    span = (t_max - t_min) or 1.0
    label_x = t_min - lab_space * 0.05 * span

    fig = go.Figure()
    color_state = ColorState()
    legend_seen: set[str] = set()
    for i, (series_id, group) in enumerate(groups):
        offset = n - 1 - i
        group = group.sort_values(time_var)
        category = _category(group[color_var].iloc[0]) if color_var in group.columns else "series"
        y = standardize(group[value_var].to_numpy(dtype=np.float64)) * scale_factor + offset
        fig.add_trace(
            go.Scatter(
                x=group[time_var].tolist(),
                y=y.tolist(),
                mode="lines",
                name=category,
                legendgroup=category,
                showlegend=category not in legend_seen,
                line=dict(width=max(line_size * _MM_TO_PT, 0.5), color=color_state.next_color(category)),
                hovertext=str(series_id),
            )
        )
        legend_seen.add(category)
        label = group[label_var].iloc[0] if label_var in group.columns else series_id
        fig.add_annotation(
            x=label_x, y=offset, text=_category(label),
            xanchor="left", showarrow=False,
            font=dict(size=lab_size * _MM_TO_PT),
        )

    fig.update_xaxes(title_text=time_var, range=[label_x, t_max + 0.01 * span])
    fig.update_yaxes(showticklabels=False, showgrid=False, zeroline=False, range=[-1, n])
    fig.update_layout(
        title_text=title,
        legend_title_text=color_var or "",
        width=_DEFAULT_WIDTH,
        height=max(_PANEL_HEIGHT, _STACK_ROW_HEIGHT * n + 150),
        **_DEFAULT_LAYOUT,
    )
    return fig


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def export_figure(fig: go.Figure, filepath) -> Path:
    """Write a figure to .html (standalone page) or .json.

    Returns:
        Absolute path of the written file.

    Raises:
        ValueError: If the suffix is neither .html nor .json.
    """
    path = Path(filepath).resolve()
    suffix = path.suffix.lower()
    if suffix not in (".html", ".json"):
        raise ValueError(f"Unsupported export format '{suffix}'. Use .html or .json.")
    path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".html":
        fig.write_html(str(path), include_plotlyjs="cdn")
    else:
        fig.write_json(str(path))
    logger.debug(f"[Render] Exported figure -> {path}")
    return path
