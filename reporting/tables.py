"""Parsing of printed tables and tolerance-aware cell comparison."""

from __future__ import annotations

import csv
import io
import math
import re

from models.schemas import ExpectedKind

MISSING_VALUES = {"na", "nan", "<na>"}
NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|[+-]?inf", re.IGNORECASE)


def parse_table(text: str, kind: ExpectedKind = "table") -> list[list[str]]:
    """Split printed output into rows of cells, skipping blank lines."""
    if kind == "csv":
        reader = csv.reader(io.StringIO(text.replace("\r\n", "\n")))
        return [[cell.strip() for cell in row] for row in reader if any(c.strip() for c in row)]
    return [line.split() for line in text.splitlines() if line.strip()]


def parse_number(cell: str) -> float | None:
    """Read a cell as a number; R's NA and NaN read as NaN."""
    value = cell.strip()
    if value.lower() in MISSING_VALUES:
        return math.nan
    if not NUMBER.fullmatch(value):
        return None
    return float(value)


def cells_equal(expected: str, actual: str, rel_tol: float, abs_tol: float) -> bool:
    """
    Compare two cells.

    Numeric cells match within tolerance, missing values match each other,
    and anything else needs exact equality.
    """
    if expected == actual:
        return True

    expected_num = parse_number(expected)
    actual_num = parse_number(actual)
    if expected_num is None or actual_num is None:
        return False

    if math.isnan(expected_num) or math.isnan(actual_num):
        return math.isnan(expected_num) and math.isnan(actual_num)
    return math.isclose(expected_num, actual_num, rel_tol=rel_tol, abs_tol=abs_tol)


def table_shape(rows: list[list[str]]) -> tuple[int, int]:
    return len(rows), max((len(r) for r in rows), default=0)
