"""Shared fixtures: an isolated data directory and a small synthetic table."""

import numpy as np
import pandas as pd
import pytest

import config


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Point the data directory at a per-test temp dir."""
    data_dir = tmp_path / "ch2k-data"
    monkeypatch.setenv("CH2K_EXPLORER_DIR", str(data_dir))
    config._reset_data_dir()
    yield data_dir
    config._reset_data_dir()


def _series(dataset, variable, years, values=None, **meta):
    years = list(years)
    if values is None:
        values = list(np.sin(np.arange(len(years))) + len(variable))
    row = {
        "dataSetName": dataset,
        "archiveType": "Coral",
        "paleoData_variableName": variable,
        "paleoData_TSid": f"{dataset}-{variable}",
        "year": years,
        "paleoData_values": list(values),
    }
    row.update(meta)
    return row


def make_ts_table() -> pd.DataFrame:
    """Four datasets, nine series, covering the walkthrough filters."""
    a = dict(geo_ocean="Indian Ocean", geo_latitude=-5.0, geo_longitude=70.0,
             geo_siteName="Site A", paleoData_archiveSpecies="Porites lutea",
             paleoData_coralHydro2kGroup=1)
    b = dict(geo_ocean="Pacific Ocean", geo_latitude=12.0, geo_longitude=150.0,
             geo_siteName="Site B", paleoData_archiveSpecies="Porites lobata",
             paleoData_coralHydro2kGroup=2)
    c = dict(geo_ocean="Indian Ocean", geo_latitude=-20.0, geo_longitude=40.0,
             geo_siteName="Site C", paleoData_archiveSpecies=np.nan,
             paleoData_coralHydro2kGroup="4")
    d = dict(geo_ocean="Pacific Ocean", geo_latitude=0.5, geo_longitude=-160.0,
             geo_siteName="Site D", paleoData_archiveSpecies="Porites lutea",
             paleoData_coralHydro2kGroup=3)
    monthly = [1940 + i / 12 for i in range(12 * 70)]
    annual = list(range(1900, 2001))
    rows = [
        _series("Ocn-A", "d18O", monthly, **a),
        _series("Ocn-A", "SrCa", monthly, **a),
        _series("Ocn-A", "year", monthly, values=monthly, **a),
        _series("Ocn-A", "d18O_annual", annual, **a),
        _series("Ocn-B", "d18O", annual, **b),
        _series("Ocn-C", "SrCa", [1800, 1850, 1900, 1950], **c),
        _series("Ocn-C", "SrCaUncertainty", [1800, 1850, 1900, 1950], **c),
        _series("Ocn-D", "d18Osw", monthly[:240], **d),
        _series("Ocn-D", "d18O", monthly[:240], **d),
    ]
    return pd.DataFrame(rows)


@pytest.fixture
def ts_table() -> pd.DataFrame:
    return make_ts_table()
