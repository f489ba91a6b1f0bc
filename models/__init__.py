"""Models module containing Pydantic schemas for all data structures."""

from models.schemas import (
    CapturedOutput,
    CellMismatch,
    Mismatch,
    RegressionReport,
    RunReport,
    RunSummary,
    Snippet,
    SnippetOptions,
    SnippetRun,
    summarize,
)

__all__ = [
    "CapturedOutput",
    "CellMismatch",
    "Mismatch",
    "RegressionReport",
    "RunReport",
    "RunSummary",
    "Snippet",
    "SnippetOptions",
    "SnippetRun",
    "summarize",
]
