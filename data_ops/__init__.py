"""
Data operations package for LiPD time-series tables.

Provides archive fetching, time-series / long-form tables, row filters,
an in-memory table store, numpy helpers, and matplotlib PNG rendering.
"""
