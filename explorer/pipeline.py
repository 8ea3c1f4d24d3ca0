"""
The CoralHydro2k walkthrough: load, extract, filter, plot.

Each step runs once, top to bottom. Figures are built with
rendering.plotly_renderer, then shown and/or exported. Empty subsets are
logged and still rendered as empty figures.
"""

import json
import logging
from pathlib import Path

import pandas as pd

import config
from data_ops.fetch import is_url, load_archive, source_key
from data_ops.filters import (
    any_of,
    apply_filters,
    at_most,
    between,
    contains,
    equals,
    excludes,
    filter_ts,
    not_equals,
)
from data_ops.plotting import save_timeseries_stack_png
from data_ops.store import TableEntry, TableStore, get_store
from data_ops.timeseries import (
    SUGGESTED_FILTER_FIELDS,
    VARIABLE_COLUMN,
    extract_ts,
    table_to_ts,
    to_long,
)
from rendering.plotly_renderer import (
    export_figure,
    map_records,
    plot_record_summary,
    plot_summary_ts,
    plot_timeseries_stack,
)

logger = logging.getLogger("ch2k-explorer")

GROUP_COLUMN = "paleoData_coralHydro2kGroup"
SPECIES_COLUMN = "paleoData_archiveSpecies"


# ---- Filter chains ----------------------------------------------------------------

def primary_series(table: pd.DataFrame) -> pd.DataFrame:
    """Drop annual composites, uncertainty columns and the time axis itself."""
    return apply_filters(table, excludes(VARIABLE_COLUMN, config.EXCLUDE_VARIABLE_PATTERN))


def indian_ocean(table: pd.DataFrame) -> pd.DataFrame:
    return apply_filters(table, equals("geo_ocean", "Indian Ocean"))


def primary_proxies(table: pd.DataFrame) -> pd.DataFrame:
    """d18O and Sr/Ca series only."""
    return apply_filters(
        table,
        any_of(equals(VARIABLE_COLUMN, "d18O"), equals(VARIABLE_COLUMN, "SrCa")),
    )


def tropical_porites_lutea(table: pd.DataFrame) -> pd.DataFrame:
    """Paired (groups 1-3) Porites lutea records within 10 degrees of the equator."""
    return apply_filters(
        table,
        between("geo_latitude", -10, 10),
        between("geo_longitude", -180, 180),
        equals(SPECIES_COLUMN, "Porites lutea"),
        at_most(GROUP_COLUMN, 3),
    )


def porites_paired(table: pd.DataFrame) -> pd.DataFrame:
    """Paired records of any Porites species."""
    return apply_filters(
        table,
        contains(SPECIES_COLUMN, "Porites"),
        not_equals(SPECIES_COLUMN, "NA"),
        at_most(GROUP_COLUMN, 3),
        excludes(VARIABLE_COLUMN, config.EXCLUDE_VARIABLE_PATTERN),
    )


def stack_window(long: pd.DataFrame, start: float = 1950, end: float = 2000) -> pd.DataFrame:
    """Observations between *start* and *end* (inclusive)."""
    return apply_filters(long, between(config.TIME_VAR, start, end))


# ---- Loading ----------------------------------------------------------------------

def _archive_label(source) -> str:
    name = Path(str(source).rstrip("/")).name
    return Path(name).stem or "archive"


def _cache_dir(source, time_var: str) -> Path:
    """<data_dir>/tables/<archive>-<source key>-<time var>/"""
    label = _archive_label(source)
    return config.get_data_dir() / "tables" / f"{label}-{source_key(source)}-{time_var}"


def load_table(
    source=None,
    refresh: bool = False,
    store: TableStore | None = None,
    time_var: str | None = None,
) -> pd.DataFrame:
    """Load an archive and extract its time-series table.

    Extracted tables are cached per source and time variable under
    <data_dir>/tables/ so later runs skip parsing the LiPD files; ``refresh``
    forces a reload. Only the extracted table is written to the cache.
    """
    if source is None:
        source = config.ARCHIVE_URL
    if time_var is None:
        time_var = config.TIME_VAR
    store = store if store is not None else get_store()
    label = _archive_label(source)
    cache_dir = _cache_dir(source, time_var)
    cache = TableStore()

    if not refresh and config.CACHE_TABLES and cache.load_from_directory(cache_dir):
        entry = cache.get(label)
        if entry is not None and (entry.metadata or {}).get("time_var") == time_var:
            logger.info(f"[Pipeline] Using cached table for {label} ({len(entry.data)} series)")
            store.put(entry)
            return entry.data

    collection = load_archive(source, force=refresh)
    table = extract_ts(collection, time_var=time_var)
    entry = TableEntry(
        label=label,
        data=table,
        description=f"Time series extracted from {source}",
        source="archive",
        metadata={"source": str(source), "remote": is_url(source), "time_var": time_var},
    )
    store.put(entry)
    if config.CACHE_TABLES:
        cache.clear()
        cache.put(entry)
        cache.save_to_directory(cache_dir)
    return table


def _keep(store: TableStore, label: str, table: pd.DataFrame, description: str) -> pd.DataFrame:
    store.put(TableEntry(label=label, data=table, description=description, source="filtered"))
    if table.empty:
        logger.warning(f"[Pipeline] '{label}' matched no series ({description})")
    else:
        logger.info(f"[Pipeline] '{label}': {len(table)} series")
    return table


def _write_ts_json(table: pd.DataFrame, path: Path) -> Path:
    """Write a table as a JSON list of time-series objects (one per row)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(table_to_ts(table), f, indent=1, default=str)
    logger.debug(f"[Pipeline] Wrote {len(table)} time series -> {path}")
    return path


# ---- Walkthrough ------------------------------------------------------------------

def run_walkthrough(
    source=None,
    record: int | str = 122,
    show: bool = True,
    output_dir=None,
    refresh: bool = False,
    filters=None,
) -> dict:
    """Build every figure of the CoralHydro2k walkthrough.

    Args:
        source: Archive URL or local path (default ``config.ARCHIVE_URL``).
        record: Record shown in the single-record dashboard (index or name).
        show: Open each figure on the display surface (browser/notebook).
        output_dir: When given, export every figure there as HTML and the
            stack plot as PNG.
        refresh: Re-download and re-parse instead of using cached copies.
        filters: Extra filter expressions (see data_ops.filters.filter_ts),
            ANDed over the primary series. The subset gets its own "custom"
            summary figure and, with output_dir, is written as a list of
            time-series objects to custom_ts.json.

    Returns:
        Dict mapping figure name to go.Figure.
    """
    store = get_store()
    time_var = config.TIME_VAR
    projection = config.DEFAULT_PROJECTION

    table = load_table(source, refresh=refresh, store=store)
    logger.info(
        "[Pipeline] Suggested filter fields: "
        + ", ".join(f for f in SUGGESTED_FILTER_FIELDS if f in table.columns)
    )

    figures = {}
    figures["global_map"] = map_records(table, projection=projection, global_extent=True,
                                        title="CoralHydro2k records")
    figures["record_summary"] = plot_record_summary(table, record, time_var=time_var, projection=projection)
    figures["global_summary"] = plot_summary_ts(table, time_var=time_var, projection=projection)

    primary = _keep(store, "primary", primary_series(table), "primary d18O / SrCa / d18Osw series")

    ind = _keep(store, "indian_ocean", indian_ocean(primary), "geo_ocean == Indian Ocean")
    figures["indian_ocean"] = plot_summary_ts(ind, time_var=time_var, projection=projection,
                                              global_extent=False, title="Indian Ocean")

    proxies = _keep(store, "primary_proxies", primary_proxies(primary), "d18O or SrCa")
    figures["proxies"] = plot_summary_ts(proxies, time_var=time_var, sort_var=VARIABLE_COLUMN,
                                         projection=projection, title="d18O and Sr/Ca records")

    lutea = _keep(store, "tropical_porites_lutea", tropical_porites_lutea(primary),
                  "Porites lutea, |lat| <= 10, groups 1-3")
    figures["porites_lutea"] = plot_summary_ts(lutea, time_var=time_var, sort_var=VARIABLE_COLUMN,
                                               projection=projection, title="Tropical Porites lutea")

    porites = _keep(store, "porites_paired", porites_paired(primary), "Porites spp., groups 1-3")
    figures["porites"] = plot_summary_ts(porites, time_var=time_var, sort_var=VARIABLE_COLUMN,
                                         projection=projection, title="Paired Porites records")

    window = stack_window(to_long(lutea, time_var=time_var), 1950, 2000)
    stack_kwargs = dict(
        color_var=VARIABLE_COLUMN,
        time_var=time_var,
        lab_size=2.5,
        lab_space=3,
        line_size=0.4,
        scale_factor=1 / 4,
    )
    figures["stack"] = plot_timeseries_stack(window, title="Porites lutea, 1950-2000", **stack_kwargs)

    custom = None
    if filters:
        filters = [filters] if isinstance(filters, str) else list(filters)
        custom = _keep(store, "custom", filter_ts(primary, filters), " AND ".join(filters))
        figures["custom"] = plot_summary_ts(custom, time_var=time_var, sort_var=VARIABLE_COLUMN,
                                            projection=projection, title=" AND ".join(filters))

    if output_dir is not None:
        out = Path(output_dir)
        for name, fig in figures.items():
            export_figure(fig, out / f"{name}.html")
        if not window.empty:
            save_timeseries_stack_png(window, str(out / "stack.png"), **stack_kwargs)
        if custom is not None:
            _write_ts_json(custom, out / "custom_ts.json")
        logger.info(f"[Pipeline] Exported {len(figures)} figures to {out.resolve()}")

    for summary in store.list_entries():
        logger.debug(
            f"[Pipeline] {summary['label']}: {summary['num_rows']} series, "
            f"{summary['num_datasets']} datasets ({summary['description']})"
        )

    if show:
        for fig in figures.values():
            fig.show()

    return figures
