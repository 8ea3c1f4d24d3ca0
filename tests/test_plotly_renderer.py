"""
Unit tests for the Plotly renderer.

No display, no network, fast and self-contained.
"""

import json

import numpy as np
import pandas as pd
import pytest

from rendering.plotly_renderer import (
    ColorState,
    export_figure,
    map_records,
    plot_record_summary,
    plot_summary_ts,
    plot_timeseries_stack,
)


def _make_long(n_series=3, n=24):
    """Create a synthetic long-form table for testing."""
    rows = []
    for s in range(n_series):
        for i in range(n):
            rows.append({
                "paleoData_TSid": f"ts{s}",
                "dataSetName": f"Ocn-{s}",
                "paleoData_variableName": "d18O" if s < 2 else "SrCa",
                "year": 1950 + i,
                "paleoData_values": float(i % 5) + 10 * s,
            })
    return pd.DataFrame(rows)


def _annotation_texts(fig):
    return [a.text for a in fig.layout.annotations]


# ---------------------------------------------------------------------------
# ColorState
# ---------------------------------------------------------------------------

class TestColorState:
    def test_stable_per_label(self):
        state = ColorState()
        first = state.next_color("d18O")
        second = state.next_color("SrCa")
        assert first != second
        assert state.next_color("d18O") == first


# ---------------------------------------------------------------------------
# map_records
# ---------------------------------------------------------------------------

class TestMapRecords:
    def test_one_marker_per_dataset(self, ts_table):
        fig = map_records(ts_table)
        assert len(fig.data) == 1
        assert fig.data[0].type == "scattergeo"
        assert len(fig.data[0].lat) == 4
        assert fig.layout.geo.projection.type == "mollweide"
        assert fig.layout.title.text == "4 records"

    def test_colour_by_column(self, ts_table):
        fig = map_records(ts_table, color_var="geo_ocean")
        assert [t.name for t in fig.data] == ["Indian Ocean", "Pacific Ocean"]
        assert fig.data[0].marker.color != fig.data[1].marker.color

    def test_missing_colour_column(self, ts_table):
        fig = map_records(ts_table.drop(columns=["archiveType"]))
        assert len(fig.data) == 1
        assert fig.data[0].name == "records"

    def test_global_extent(self, ts_table):
        fig = map_records(ts_table, projection="robinson")
        assert fig.layout.geo.projection.type == "robinson"
        assert list(fig.layout.geo.lataxis.range) == [-90, 90]

    def test_regional_extent(self, ts_table):
        fig = map_records(ts_table, global_extent=False)
        assert list(fig.layout.geo.lataxis.range) == [-30.0, 22.0]
        assert list(fig.layout.geo.lonaxis.range) == [-170.0, 160.0]

    def test_empty_table(self, ts_table):
        fig = map_records(ts_table.iloc[0:0], title="Nothing")
        assert len(fig.data) == 0
        assert "No records to display" in _annotation_texts(fig)
        assert fig.layout.title.text == "Nothing"

    def test_records_without_coordinates(self, ts_table):
        fig = map_records(ts_table.assign(geo_latitude=np.nan))
        assert len(fig.data) == 0


# ---------------------------------------------------------------------------
# plot_record_summary
# ---------------------------------------------------------------------------

class TestRecordSummary:
    def test_by_index(self, ts_table):
        fig = plot_record_summary(ts_table, 0)
        assert fig.layout.title.text == "Ocn-A"
        assert [t.type for t in fig.data] == ["scattergeo", "table", "scatter"]
        assert fig.data[2].name == "d18O"
        assert len(fig.data[2].x) == len(ts_table["year"].iloc[0])

    def test_by_name(self, ts_table):
        fig = plot_record_summary(ts_table, "Ocn-B")
        assert fig.layout.title.text == "Ocn-B"

    def test_negative_index(self, ts_table):
        fig = plot_record_summary(ts_table, -1)
        assert fig.layout.title.text == "Ocn-D"

    def test_metadata_table(self, ts_table):
        fig = plot_record_summary(ts_table, "Ocn-A")
        fields, values = fig.data[1].cells.values
        assert "geo_siteName" in fields
        assert values[list(fields).index("geo_siteName")] == "Site A"

    def test_choose_variable(self, ts_table):
        fig = plot_record_summary(ts_table, "Ocn-A", data_var="SrCa")
        assert fig.data[2].name == "SrCa"

    def test_alternatives_logged(self, ts_table, caplog):
        with caplog.at_level("INFO", logger="ch2k-explorer"):
            plot_record_summary(ts_table, "Ocn-A")
        assert "d18O_annual" in caplog.text

    def test_time_axis_not_plottable(self, ts_table):
        with pytest.raises(ValueError, match="not found"):
            plot_record_summary(ts_table, "Ocn-A", data_var="year")

    def test_unknown_dataset(self, ts_table):
        with pytest.raises(ValueError, match="not found"):
            plot_record_summary(ts_table, "Ocn-Z")

    def test_index_out_of_range(self, ts_table):
        with pytest.raises(ValueError, match="out of range"):
            plot_record_summary(ts_table, 4)


# ---------------------------------------------------------------------------
# plot_summary_ts
# ---------------------------------------------------------------------------

class TestSummaryTs:
    def test_default_groups_by_archive_type(self, ts_table):
        fig = plot_summary_ts(ts_table)
        types = [t.type for t in fig.data]
        assert types == ["scattergeo", "bar"]
        assert fig.layout.barmode == "stack"
        assert fig.layout.title.text == "4 records, 9 series"

    def test_availability_counts(self, ts_table):
        fig = plot_summary_ts(ts_table)
        bar = fig.data[1]
        counts = dict(zip(bar.x, bar.y))
        assert counts[1950.0] == 9
        assert counts[1800.0] == 2
        assert 1849.0 not in counts

    def test_sort_var(self, ts_table):
        fig = plot_summary_ts(ts_table, sort_var="paleoData_variableName")
        bars = [t for t in fig.data if t.type == "bar"]
        geos = [t for t in fig.data if t.type == "scattergeo"]
        assert {b.name for b in bars} == set(ts_table["paleoData_variableName"])
        assert len(geos) == len(bars)
        # legend entries come from the map traces only
        assert not any(b.showlegend for b in bars)

    def test_bin_width(self, ts_table):
        fig = plot_summary_ts(ts_table, bin_width=100)
        assert list(fig.data[1].x) == [1800.0, 1900.0, 2000.0]

    def test_regional(self, ts_table):
        fig = plot_summary_ts(ts_table, global_extent=False)
        assert list(fig.layout.geo.lataxis.range) == [-30.0, 22.0]

    def test_empty_table(self, ts_table):
        fig = plot_summary_ts(ts_table.iloc[0:0], title="Indian Ocean")
        assert len(fig.data) == 0
        assert "No records to display" in _annotation_texts(fig)


# ---------------------------------------------------------------------------
# plot_timeseries_stack
# ---------------------------------------------------------------------------

class TestTimeseriesStack:
    def test_one_trace_per_series(self):
        fig = plot_timeseries_stack(_make_long())
        assert len(fig.data) == 3
        assert _annotation_texts(fig) == ["Ocn-0", "Ocn-1", "Ocn-2"]

    def test_first_series_on_top(self):
        fig = plot_timeseries_stack(_make_long())
        centres = [np.nanmean(np.asarray(t.y, dtype=float)) for t in fig.data]
        assert centres == pytest.approx([2.0, 1.0, 0.0])

    def test_scale_factor(self):
        fig = plot_timeseries_stack(_make_long(n_series=1), scale_factor=1.0)
        y = np.asarray(fig.data[0].y, dtype=float)
        assert np.std(y) == pytest.approx(1.0)

    def test_legend_once_per_colour(self):
        fig = plot_timeseries_stack(_make_long())
        assert [t.name for t in fig.data] == ["d18O", "d18O", "SrCa"]
        assert [t.showlegend for t in fig.data] == [True, False, True]
        assert fig.data[0].line.color == fig.data[1].line.color

    def test_label_space(self):
        fig = plot_timeseries_stack(_make_long(), lab_space=3)
        # span is 23 years; labels sit 15% of it left of the data
        assert fig.layout.xaxis.range[0] == pytest.approx(1950 - 0.15 * 23)
        assert fig.layout.annotations[0].x == pytest.approx(1950 - 0.15 * 23)

    def test_empty(self):
        fig = plot_timeseries_stack(_make_long().iloc[0:0], title="Porites lutea")
        assert len(fig.data) == 0
        assert "No records to display" in _annotation_texts(fig)

    def test_missing_key(self):
        with pytest.raises(KeyError):
            plot_timeseries_stack(_make_long().drop(columns=["paleoData_TSid"]))


# ---------------------------------------------------------------------------
# export_figure
# ---------------------------------------------------------------------------

class TestExport:
    def test_html(self, ts_table, tmp_path):
        path = export_figure(map_records(ts_table), tmp_path / "figs" / "map.html")
        assert path.exists()
        assert "cdn.plot.ly" in path.read_text(encoding="utf-8")

    def test_json(self, ts_table, tmp_path):
        path = export_figure(map_records(ts_table), tmp_path / "map.json")
        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload["data"][0]["type"] == "scattergeo"

    def test_unsupported_format(self, ts_table, tmp_path):
        with pytest.raises(ValueError, match="Unsupported export format"):
            export_figure(map_records(ts_table), tmp_path / "map.png")
