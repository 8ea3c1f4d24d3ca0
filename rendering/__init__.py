"""Plotly figures for time-series tables."""

from .plotly_renderer import (
    ColorState,
    export_figure,
    map_records,
    plot_record_summary,
    plot_summary_ts,
    plot_timeseries_stack,
)

__all__ = [
    "ColorState",
    "export_figure",
    "map_records",
    "plot_record_summary",
    "plot_summary_ts",
    "plot_timeseries_stack",
]
