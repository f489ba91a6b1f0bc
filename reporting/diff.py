"""Diff reporter comparing captured output with recorded expectations."""

from __future__ import annotations

import difflib

from config.settings import Settings, get_settings
from models.schemas import CellMismatch, ExpectedKind, Mismatch, Snippet
from reporting.tables import cells_equal, parse_table, table_shape


class MismatchError(AssertionError):
    """Captured output diverged from the recorded expectation."""

    def __init__(self, mismatch: Mismatch) -> None:
        super().__init__(
            f"{mismatch.snippet_id}: output differs from recorded expectation\n{mismatch.diff}"
        )
        self.mismatch = mismatch


def normalize_text(text: str) -> str:
    """Unify line endings and drop trailing newlines."""
    return text.replace("\r\n", "\n").rstrip("\n")


def unified_diff(expected: str, actual: str) -> str:
    lines = difflib.unified_diff(
        expected.splitlines(),
        actual.splitlines(),
        fromfile="expected",
        tofile="actual",
        lineterm="",
    )
    return "\n".join(lines)


class DiffReporter:
    """Compare captured output with a snippet's recorded output."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def compare(self, snippet: Snippet, actual: str) -> Mismatch | None:
        """
        Compare captured output with the snippet's expectation.

        Returns None when output matches or nothing was recorded.
        """
        if snippet.expected_output is None:
            return None

        if snippet.expected_kind == "text":
            return self.compare_text(snippet.id, snippet.expected_output, actual)

        rel_tol = (
            snippet.options.tolerance
            if snippet.options.tolerance is not None
            else self.settings.relative_tolerance
        )
        return self.compare_table(
            snippet.id,
            snippet.expected_output,
            actual,
            kind=snippet.expected_kind,
            rel_tol=rel_tol,
        )

    def compare_text(self, snippet_id: str, expected: str, actual: str) -> Mismatch | None:
        """Exact comparison after line-ending normalization."""
        expected_norm = normalize_text(expected)
        actual_norm = normalize_text(actual)
        if expected_norm == actual_norm:
            return None

        diff = unified_diff(expected_norm, actual_norm)
        if not diff:
            diff = f"expected {expected_norm!r}\nactual   {actual_norm!r}"
        return Mismatch(snippet_id=snippet_id, kind="text", diff=diff)

    def compare_table(
        self,
        snippet_id: str,
        expected: str,
        actual: str,
        kind: ExpectedKind = "table",
        rel_tol: float | None = None,
        abs_tol: float | None = None,
    ) -> Mismatch | None:
        """Cell-by-cell comparison with numeric tolerance."""
        rel_tol = self.settings.relative_tolerance if rel_tol is None else rel_tol
        abs_tol = self.settings.absolute_tolerance if abs_tol is None else abs_tol

        expected_rows = parse_table(expected, kind)
        actual_rows = parse_table(actual, kind)

        same_shape = len(expected_rows) == len(actual_rows) and all(
            len(e) == len(a) for e, a in zip(expected_rows, actual_rows)
        )
        if not same_shape:
            e_rows, e_cols = table_shape(expected_rows)
            a_rows, a_cols = table_shape(actual_rows)
            diff = (
                f"Table shape differs: expected {e_rows}x{e_cols}, actual {a_rows}x{a_cols}\n"
                + unified_diff(normalize_text(expected), normalize_text(actual))
            )
            return Mismatch(snippet_id=snippet_id, kind=kind, diff=diff.rstrip("\n"))

        cells: list[CellMismatch] = []
        for row, (expected_row, actual_row) in enumerate(zip(expected_rows, actual_rows)):
            for column, (e_cell, a_cell) in enumerate(zip(expected_row, actual_row)):
                if not cells_equal(e_cell, a_cell, rel_tol, abs_tol):
                    cells.append(
                        CellMismatch(row=row, column=column, expected=e_cell, actual=a_cell)
                    )

        if not cells:
            return None

        diff = "\n".join(
            f"row {c.row}, column {c.column}: {c.expected} != {c.actual}" for c in cells
        )
        return Mismatch(snippet_id=snippet_id, kind=kind, diff=diff, cells=cells)

    def assert_matches(self, snippet: Snippet, actual: str) -> None:
        """Raise MismatchError if captured output differs from the expectation."""
        mismatch = self.compare(snippet, actual)
        if mismatch is not None:
            raise MismatchError(mismatch)
