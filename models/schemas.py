"""Pydantic schemas for snippets, captured output, and run reports."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


ExpectedKind = Literal["text", "table", "csv"]
RunStatus = Literal["passed", "mismatch", "error", "timeout", "skipped"]


# =============================================================================
# Registry Schemas
# =============================================================================


class SnippetOptions(BaseModel):
    """Chunk options recognised on a code fence."""

    eval: bool = Field(default=True, description="Whether the snippet is executed")
    timeout: float | None = Field(
        default=None, gt=0.0, description="Per-snippet timeout override in seconds"
    )
    tolerance: float | None = Field(
        default=None, ge=0.0, description="Relative tolerance override for tables"
    )
    seed: int | None = Field(default=None, description="Seed override for this snippet")

    model_config = ConfigDict(frozen=True)


class Snippet(BaseModel):
    """A fenced block of example code with its recorded output."""

    id: str = Field(description="Unique id, '<chapter>/<label or index>'")
    chapter: str = Field(description="Chapter stem the snippet belongs to")
    index: int = Field(ge=1, description="1-based position within the chapter")
    line: int = Field(ge=1, description="Line of the opening fence in the chapter file")
    language: str = Field(description="Normalized language tag")
    source: str = Field(description="Code inside the fence")
    expected_output: str | None = Field(
        default=None, description="Recorded output, None when nothing was recorded"
    )
    expected_kind: ExpectedKind = Field(default="text", description="How output is compared")
    options: SnippetOptions = Field(default_factory=SnippetOptions)

    model_config = ConfigDict(frozen=True)

    @property
    def executable(self) -> bool:
        return self.options.eval


# =============================================================================
# Execution Schemas
# =============================================================================


class CapturedOutput(BaseModel):
    """Output of one snippet, with replayed output already stripped."""

    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    returncode: int = Field(default=0, description="Interpreter exit code")
    duration_ms: float = Field(default=0.0, description="Wall time of the interpreter process")


class CellMismatch(BaseModel):
    """One table cell that differs beyond tolerance."""

    row: int = Field(description="0-based row, header is row 0")
    column: int = Field(description="0-based column")
    expected: str
    actual: str


class Mismatch(BaseModel):
    """Captured output diverged from the recorded expectation."""

    snippet_id: str
    kind: ExpectedKind
    diff: str = Field(description="Human-readable diff")
    cells: list[CellMismatch] = Field(default_factory=list)


class SnippetRun(BaseModel):
    """Result of running one snippet."""

    snippet_id: str
    chapter: str
    status: RunStatus
    actual_output: str | None = Field(default=None, description="Captured stdout")
    stderr: str | None = Field(default=None, description="Captured stderr")
    expected_output: str | None = Field(default=None)
    diff: str | None = Field(default=None, description="Diff when status is mismatch")
    error_message: str | None = Field(default=None)
    duration_ms: float | None = Field(default=None)
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def passed(self) -> bool:
        return self.status in ("passed", "skipped")


# =============================================================================
# Report Schemas
# =============================================================================


class RunSummary(BaseModel):
    """Aggregate counts for a run."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    errors: int = 0
    timeouts: int = 0
    skipped: int = 0
    pass_rate: float = 0.0


class RunReport(BaseModel):
    """Complete report of a book run."""

    book: str = Field(description="Book directory that was run")
    seed: int = Field(description="Seed used for the run")
    runs: list[SnippetRun] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)
    partial: bool = Field(default=False, description="Run was interrupted")

    @property
    def summary(self) -> RunSummary:
        return summarize(self.runs)

    def by_id(self) -> dict[str, SnippetRun]:
        return {r.snippet_id: r for r in self.runs}

    def to_json_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["summary"] = self.summary.model_dump()
        return data


def summarize(runs: list[SnippetRun]) -> RunSummary:
    """Generate summary statistics from snippet runs."""
    total = len(runs)
    passed = sum(1 for r in runs if r.status == "passed")
    skipped = sum(1 for r in runs if r.status == "skipped")
    executed = total - skipped

    return RunSummary(
        total=total,
        passed=passed,
        failed=sum(1 for r in runs if r.status == "mismatch"),
        errors=sum(1 for r in runs if r.status == "error"),
        timeouts=sum(1 for r in runs if r.status == "timeout"),
        skipped=skipped,
        pass_rate=passed / executed if executed > 0 else 0.0,
    )


class RegressionReport(BaseModel):
    """Comparison of a run against an earlier baseline run."""

    baseline: str | None = Field(default=None, description="Baseline report path")
    regressions: list[str] = Field(
        default_factory=list, description="Snippets that passed before and fail now"
    )
    fixed: list[str] = Field(
        default_factory=list, description="Snippets that failed before and pass now"
    )
    added: list[str] = Field(default_factory=list, description="Snippets new in this run")
    removed: list[str] = Field(default_factory=list, description="Snippets gone from this run")
    pass_rate_current: float = 0.0
    pass_rate_baseline: float = 0.0
    regression_detected: bool = False
    message: str = ""
