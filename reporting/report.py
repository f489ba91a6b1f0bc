"""Run reporter: console report, JSON persistence, and regression checks."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from config.settings import Settings, get_settings
from models.schemas import RegressionReport, RunReport, SnippetRun


logger = logging.getLogger(__name__)

REPORT_PREFIX = "bookcheck_"

STATUS_STYLES = {
    "passed": "[green]PASSED[/green]",
    "mismatch": "[red]MISMATCH[/red]",
    "error": "[red]ERROR[/red]",
    "timeout": "[yellow]TIMEOUT[/yellow]",
    "skipped": "[dim]SKIPPED[/dim]",
}


class RunReporter:
    """Present, persist, and compare book run reports."""

    def __init__(
        self,
        settings: Settings | None = None,
        console: Console | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.console = console or Console()

    @property
    def report_dir(self) -> Path:
        return Path(self.settings.report_dir)

    # ==========================================================================
    # Console output
    # ==========================================================================

    def print_run(self, run: SnippetRun) -> None:
        """One-line progress entry for a finished snippet."""
        timing = f" ({run.duration_ms:.0f}ms)" if run.duration_ms is not None else ""
        self.console.print(
            f"  {STATUS_STYLES[run.status]} {escape(run.snippet_id)}[dim]{timing}[/dim]"
        )

    def print_report(self, report: RunReport) -> None:
        """Print a per-chapter table, failure details, and a summary."""
        self.console.print("\n[bold blue]BOOKCHECK REPORT[/bold blue]\n")

        chapters: dict[str, list[SnippetRun]] = {}
        for run in report.runs:
            chapters.setdefault(run.chapter, []).append(run)

        for chapter, runs in chapters.items():
            table = Table(show_header=True, header_style="bold cyan", title=escape(chapter))
            table.add_column("Snippet", style="dim")
            table.add_column("Status", justify="center")
            table.add_column("Time", justify="right")

            for run in runs:
                timing = f"{run.duration_ms:.0f}ms" if run.duration_ms is not None else "-"
                table.add_row(escape(run.snippet_id), STATUS_STYLES[run.status], timing)

            self.console.print(table)

        failures = [r for r in report.runs if not r.passed]
        for run in failures:
            self._print_failure(run)

        self._print_summary(report)

    def _print_failure(self, run: SnippetRun) -> None:
        self.console.print("-" * 60)
        self.console.print(f"{STATUS_STYLES[run.status]} [bold]{escape(run.snippet_id)}[/bold]")

        if run.error_message:
            self.console.print(f"[yellow]{escape(run.error_message)}[/yellow]")
        if run.diff:
            self.console.print(Syntax(run.diff, "diff", theme="ansi_dark", word_wrap=True))
        if run.status == "error" and run.stderr:
            stderr = run.stderr.strip()
            stderr_short = stderr[-800:] if len(stderr) > 800 else stderr
            self.console.print(f"[dim]{escape(stderr_short)}[/dim]")

    def _print_summary(self, report: RunReport) -> None:
        summary = report.summary
        table = Table(show_header=True, header_style="bold")
        table.add_column("Metric", style="dim")
        table.add_column("Value", justify="right")

        table.add_row("Total Snippets", str(summary.total))
        table.add_row("Passed", f"[green]{summary.passed}[/green]")
        table.add_row("Mismatched", f"[red]{summary.failed}[/red]")
        table.add_row("Errors", f"[red]{summary.errors}[/red]")
        table.add_row("Timeouts", f"[yellow]{summary.timeouts}[/yellow]")
        table.add_row("Skipped", f"[dim]{summary.skipped}[/dim]")
        table.add_row("Pass Rate", f"{summary.pass_rate:.0%}")

        self.console.print()
        self.console.print(table)

    def print_regressions(self, regression: RegressionReport) -> None:
        """Print the outcome of a baseline comparison."""
        self.console.print("\n[bold]Regression Analysis:[/bold]")
        if regression.baseline:
            self.console.print(f"  Baseline: [dim]{escape(regression.baseline)}[/dim]")
        self.console.print(f"  Baseline pass rate: {regression.pass_rate_baseline:.0%}")
        self.console.print(f"  Current pass rate: {regression.pass_rate_current:.0%}")

        for label, ids, style in (
            ("Regressed", regression.regressions, "red"),
            ("Fixed", regression.fixed, "green"),
            ("Added", regression.added, "cyan"),
            ("Removed", regression.removed, "dim"),
        ):
            if ids:
                self.console.print(f"\n  [{style}]{label} ({len(ids)}):[/{style}]")
                for snippet_id in ids:
                    self.console.print(f"    [dim]•[/dim] {escape(snippet_id)}")

        if regression.regression_detected:
            self.console.print(f"\n[red]⚠ {escape(regression.message)}[/red]")
        else:
            self.console.print(f"\n[green]✓ {escape(regression.message)}[/green]")

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def save_report(self, report: RunReport, filename: str | None = None) -> Path:
        """Save a report as JSON in the report directory."""
        self.report_dir.mkdir(parents=True, exist_ok=True)

        if filename is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            suffix = "_partial" if report.partial else ""
            filename = f"{REPORT_PREFIX}{timestamp}{suffix}.json"

        filepath = self.report_dir / filename
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(report.to_json_dict(), f, indent=2)

        logger.info(f"Report saved to {filepath}")
        return filepath

    def load_report(self, filepath: str | Path) -> RunReport:
        """Load a report saved by ``save_report``."""
        with open(filepath, encoding="utf-8") as f:
            data = json.load(f)
        return RunReport.model_validate(data)

    def saved_reports(self) -> list[Path]:
        """Complete (non-partial) saved reports, oldest first."""
        if not self.report_dir.is_dir():
            return []
        return sorted(
            p
            for p in self.report_dir.glob(f"{REPORT_PREFIX}*.json")
            if not p.stem.endswith("_partial")
        )

    # ==========================================================================
    # Regression checks
    # ==========================================================================

    def find_regressions(
        self,
        current: RunReport,
        baseline_file: str | Path | None = None,
        current_file: str | Path | None = None,
        threshold: float = 0.0,
    ) -> RegressionReport:
        """
        Compare a run against a baseline run.

        Args:
            current: Report of the current run
            baseline_file: Baseline report; defaults to the newest saved report
                other than ``current_file``
            current_file: Path ``current`` was loaded from, excluded as baseline
            threshold: Allowed pass-rate drop before it counts as a regression

        Returns:
            RegressionReport listing regressed, fixed, added, and removed snippets
        """
        if baseline_file is None:
            excluded = Path(current_file).resolve() if current_file else None
            candidates = [p for p in self.saved_reports() if p.resolve() != excluded]
            if not candidates:
                return RegressionReport(
                    pass_rate_current=current.summary.pass_rate,
                    message="Insufficient historical data for regression check",
                )
            baseline_file = candidates[-1]

        baseline = self.load_report(baseline_file)
        current_runs = current.by_id()
        baseline_runs = baseline.by_id()

        regressions = [
            snippet_id
            for snippet_id, run in current_runs.items()
            if snippet_id in baseline_runs
            and baseline_runs[snippet_id].status == "passed"
            and run.status != "passed"
            and run.status != "skipped"
        ]
        fixed = [
            snippet_id
            for snippet_id, run in current_runs.items()
            if snippet_id in baseline_runs
            and baseline_runs[snippet_id].status not in ("passed", "skipped")
            and run.status == "passed"
        ]
        added = [s for s in current_runs if s not in baseline_runs]
        removed = [s for s in baseline_runs if s not in current_runs]

        pass_rate_current = current.summary.pass_rate
        pass_rate_baseline = baseline.summary.pass_rate
        rate_dropped = pass_rate_current < pass_rate_baseline - threshold
        detected = bool(regressions) or rate_dropped

        if regressions:
            message = f"REGRESSION DETECTED: {len(regressions)} snippet(s) no longer pass"
        elif rate_dropped:
            message = (
                f"REGRESSION DETECTED: pass rate dropped by "
                f"{pass_rate_baseline - pass_rate_current:.0%}"
            )
        else:
            message = "No regressions detected"

        return RegressionReport(
            baseline=str(baseline_file),
            regressions=regressions,
            fixed=fixed,
            added=added,
            removed=removed,
            pass_rate_current=pass_rate_current,
            pass_rate_baseline=pass_rate_baseline,
            regression_detected=detected,
            message=message,
        )
