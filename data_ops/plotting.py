"""
Matplotlib rendering of stack plots to PNG.

The interactive figures live in rendering.plotly_renderer; this module
produces the static image of the same stack plot without a browser.
"""

import os
from datetime import datetime

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .operations import standardize
from .timeseries import DATASET_COLUMN, SERIES_ID_COLUMN, VALUES_COLUMN, VARIABLE_COLUMN

# ggplot sizes are in mm; matplotlib wants points
_MM_TO_PT = 72 / 25.4


def save_timeseries_stack_png(
    long: pd.DataFrame,
    filename: str = "",
    color_var: str = VARIABLE_COLUMN,
    label_var: str = DATASET_COLUMN,
    time_var: str = "year",
    value_var: str = VALUES_COLUMN,
    key: str = SERIES_ID_COLUMN,
    lab_size: float = 2.5,
    lab_space: float = 3,
    line_size: float = 0.4,
    scale_factor: float = 0.25,
    title: str = "",
) -> str:
    """Render a long-form table as a stacked line plot PNG.

    Same layout as rendering.plotly_renderer.plot_timeseries_stack: each
    series is z-scored, scaled and drawn around its own offset, first series
    on top, with its label left of the data.

    Args:
        long: Long-form table (see data_ops.timeseries.to_long).
        filename: Output filename (auto-generated with timestamp if empty).
        color_var: Column that picks the line colour.
        label_var: Column written next to each series.
        lab_size: Label size in mm.
        lab_space: Room for labels, in multiples of 5% of the time span.
        line_size: Line width in mm.
        scale_factor: Vertical scale of each standardized series.

    Returns:
        Absolute path to the saved PNG file.

    Raises:
        ValueError: If the table holds no series.
    """
    if long.empty:
        raise ValueError("No series to plot")

    groups = list(long.groupby(key, sort=False))
    n = len(groups)
    times = pd.to_numeric(long[time_var], errors="coerce").dropna()
    t_min, t_max = (float(times.min()), float(times.max())) if len(times) else (0.0, 1.0)
    span = (t_max - t_min) or 1.0
    label_x = t_min - lab_space * 0.05 * span

    fig, ax = plt.subplots(figsize=(10, max(3, 0.45 * n + 1)))
    cmap = plt.get_cmap("tab10")
    colors: dict[str, tuple] = {}

    for i, (series_id, group) in enumerate(groups):
        offset = n - 1 - i
        group = group.sort_values(time_var)
        category = str(group[color_var].iloc[0]) if color_var in group.columns else "series"
        if category not in colors:
            colors[category] = cmap(len(colors) % 10)
        y = standardize(group[value_var].to_numpy(dtype=np.float64)) * scale_factor + offset
        ax.plot(
            group[time_var].to_numpy(dtype=np.float64),
            y,
            color=colors[category],
            linewidth=line_size * _MM_TO_PT,
            label=category if category not in ax.get_legend_handles_labels()[1] else None,
        )
        label = group[label_var].iloc[0] if label_var in group.columns else series_id
        ax.text(label_x, offset, str(label), fontsize=lab_size * _MM_TO_PT, va="center", ha="left")

    ax.set_xlim(label_x, t_max + 0.01 * span)
    ax.set_ylim(-1, n)
    ax.set_yticks([])
    ax.set_xlabel(time_var)
    for side in ("left", "right", "top"):
        ax.spines[side].set_visible(False)
    if title:
        ax.set_title(title)
    ax.legend(fontsize="small", loc="upper right", title=color_var)
    fig.tight_layout()

    if not filename:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"stack_{ts}.png"
    if not filename.endswith(".png"):
        filename += ".png"

    filepath = os.path.abspath(filename)
    os.makedirs(os.path.dirname(filepath), exist_ok=True)
    fig.savefig(filepath, dpi=150)
    plt.close(fig)

    return filepath
