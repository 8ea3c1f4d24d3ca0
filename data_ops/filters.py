"""
Row predicates over time-series tables.

A Predicate is an immutable (column, op, value) triple that turns a table
into a boolean mask. Predicates are combined with logical AND by applying
them one after another (apply_filters), or with OR through any_of().

Missing-value semantics follow dplyr::filter: a comparison against a
missing cell is not a match (the row is dropped), while a pattern search on
a missing cell is simply "no match", so excludes() keeps the row.
"""

import re
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

_NUMERIC_OPS = {"<", "<=", ">", ">=", "between"}
_ALL_OPS = _NUMERIC_OPS | {"==", "!=", "contains", "in", "or"}

# Longest operators first so "<=" is not read as "<"
_EXPRESSION_RE = re.compile(r"^\s*(?P<column>[A-Za-z_][\w.]*)\s*(?P<op>==|!=|<=|>=|<|>)\s*(?P<value>.+?)\s*$")


@dataclass(frozen=True)
class Predicate:
    """A single row condition on one column.

    Attributes:
        column: Column name the condition reads (unused for "or").
        op: One of ==, !=, <, <=, >, >=, between, contains, in, or.
        value: Comparison operand: a scalar, a (low, high) pair for
            "between", a regex for "contains", a tuple of values for "in",
            or a tuple of predicates for "or".
        negate: Invert the final mask.
    """

    column: str
    op: str
    value: Any
    negate: bool = False

    def __post_init__(self):
        if self.op not in _ALL_OPS:
            raise ValueError(f"Unknown operator '{self.op}'. Use one of {sorted(_ALL_OPS)}.")

    def mask(self, table: pd.DataFrame) -> pd.Series:
        """Boolean Series aligned with *table*'s index.

        Raises:
            KeyError: If the column is not in the table.
        """
        if self.op == "or":
            result = pd.Series(False, index=table.index)
            for pred in self.value:
                result = result | pred.mask(table)
        else:
            if self.column not in table.columns:
                raise KeyError(
                    f"Column '{self.column}' not found. Available: {list(table.columns)}"
                )
            result = self._column_mask(table[self.column])
        return ~result if self.negate else result

    def _column_mask(self, col: pd.Series) -> pd.Series:
        if self.op in _NUMERIC_OPS:
            num = pd.to_numeric(col, errors="coerce")
            if self.op == "between":
                low, high = self.value
                result = (num >= low) & (num <= high)
            elif self.op == "<":
                result = num < self.value
            elif self.op == "<=":
                result = num <= self.value
            elif self.op == ">":
                result = num > self.value
            else:
                result = num >= self.value
            return result.astype(bool)

        present = col.notna()
        if self.op == "contains":
            pattern = re.compile(self.value)
            hits = col.map(lambda v: bool(pattern.search(str(v))) if not _is_missing(v) else False)
            return hits.astype(bool)
        if self.op == "in":
            return (col.isin(list(self.value)) & present).astype(bool)

        target = self.value
        if isinstance(target, (int, float)) and not isinstance(target, bool):
            compared = pd.to_numeric(col, errors="coerce")
            present = compared.notna()
        else:
            compared = col
        if self.op == "==":
            return ((compared == target) & present).astype(bool)
        return ((compared != target) & present).astype(bool)

    def describe(self) -> str:
        """Human-readable form, e.g. ``geo_ocean == 'Indian Ocean'``."""
        if self.op == "or":
            text = " | ".join(f"({p.describe()})" for p in self.value)
        elif self.op == "between":
            text = f"{self.column} between [{self.value[0]}, {self.value[1]}]"
        elif self.op == "contains":
            text = f"{self.column} ~ /{self.value}/"
        elif self.op == "in":
            text = f"{self.column} in {list(self.value)}"
        else:
            text = f"{self.column} {self.op} {self.value!r}"
        return f"not ({text})" if self.negate else text


def _is_missing(value) -> bool:
    if isinstance(value, (list, tuple, np.ndarray)):
        return False
    return bool(pd.isna(value))


# ---- Constructors -------------------------------------------------------------

def equals(column: str, value) -> Predicate:
    return Predicate(column, "==", value)


def not_equals(column: str, value) -> Predicate:
    return Predicate(column, "!=", value)


def less_than(column: str, value: float) -> Predicate:
    return Predicate(column, "<", value)


def at_most(column: str, value: float) -> Predicate:
    return Predicate(column, "<=", value)


def greater_than(column: str, value: float) -> Predicate:
    return Predicate(column, ">", value)


def at_least(column: str, value: float) -> Predicate:
    return Predicate(column, ">=", value)


def between(column: str, low: float, high: float) -> Predicate:
    """Closed interval membership: low <= column <= high."""
    if low > high:
        raise ValueError(f"between() needs low <= high, got {low} > {high}")
    return Predicate(column, "between", (low, high))


def contains(column: str, pattern: str) -> Predicate:
    """Regular-expression search, like R's grepl(pattern, column)."""
    re.compile(pattern)
    return Predicate(column, "contains", pattern)


def excludes(column: str, pattern: str) -> Predicate:
    """Rows whose column does not match *pattern* (missing cells are kept)."""
    re.compile(pattern)
    return Predicate(column, "contains", pattern, negate=True)


def one_of(column: str, values) -> Predicate:
    return Predicate(column, "in", tuple(values))


def any_of(*predicates: Predicate) -> Predicate:
    """Logical OR of several predicates."""
    if not predicates:
        raise ValueError("any_of() needs at least one predicate")
    return Predicate("", "or", tuple(predicates))


# ---- Application --------------------------------------------------------------

def apply_filters(table: pd.DataFrame, *predicates: Predicate) -> pd.DataFrame:
    """Keep the rows satisfying every predicate (sequential AND).

    Input row order and index labels are preserved.

    Raises:
        KeyError: If a predicate references a column the table lacks.
    """
    result = table
    for pred in predicates:
        result = result[pred.mask(result)]
    return result


def parse_expression(text: str) -> Predicate:
    """Parse ``"<column> <op> <value>"`` into a Predicate.

    Supported operators: ==, !=, <=, >=, <, >. Values that look numeric
    become numbers; surrounding quotes are stripped.

    Examples:
        ``"geo_ocean == Indian Ocean"``, ``"paleoData_coralHydro2kGroup <= 3"``

    Raises:
        ValueError: If the expression cannot be parsed.
    """
    match = _EXPRESSION_RE.match(text)
    if not match:
        raise ValueError(
            f"Cannot parse filter expression '{text}'. "
            "Expected '<column> <op> <value>' with op one of ==, !=, <=, >=, <, >."
        )
    column, op, raw = match.group("column"), match.group("op"), match.group("value")
    value = _coerce_literal(raw)
    if op in _NUMERIC_OPS and isinstance(value, str):
        raise ValueError(f"Operator '{op}' needs a numeric value, got '{raw}'")
    return Predicate(column, op, value)


def filter_ts(table: pd.DataFrame, expressions) -> pd.DataFrame:
    """Filter a table with one expression or a list of them (ANDed)."""
    if isinstance(expressions, str):
        expressions = [expressions]
    return apply_filters(table, *(parse_expression(e) for e in expressions))


def _coerce_literal(raw: str):
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    try:
        number = float(raw)
    except ValueError:
        return raw
    return int(number) if number.is_integer() and "." not in raw else number
