"""CLI entry point for bookcheck."""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from config import configure_logging, get_settings
from config.settings import Settings
from executor.runner import SnippetExecutor
from models.schemas import RunReport, SnippetRun
from registry import ExampleRegistry, RegistryError
from reporting.report import RunReporter


console = Console()

# State for partial report saving on interrupt
_partial_runs: list[SnippetRun] = []
_partial_context: dict[str, Any] = {}


def _handle_sigint(signum, frame):
    """Handle Ctrl+C by saving the runs collected so far and exiting immediately."""
    console.print("\n\n[yellow]Interrupted by user.[/yellow]")

    executor: SnippetExecutor | None = _partial_context.get("executor")
    if executor is not None and executor.active_session is not None:
        executor.active_session.abort()

    reporter: RunReporter | None = _partial_context.get("reporter")
    if _partial_runs and reporter is not None:
        report = RunReport(
            book=_partial_context.get("book", ""),
            seed=_partial_context.get("seed", 0),
            runs=list(_partial_runs),
            partial=True,
        )
        try:
            filepath = reporter.save_report(report)
            console.print(f"[green]Saved {len(_partial_runs)} snippet results to: {filepath}[/green]")
        except OSError as e:
            console.print(f"[red]Failed to save partial report: {e}[/red]")
    else:
        console.print("[dim]No partial results to save.[/dim]")

    os._exit(130)


def _settings_with(report_dir: Path | None) -> Settings:
    settings = get_settings()
    if report_dir is not None:
        settings = settings.model_copy(update={"report_dir": str(report_dir)})
    return settings


def _load_registry(book_dir: Path) -> ExampleRegistry:
    """Load the book or exit with a readable error."""
    try:
        return ExampleRegistry.from_book(book_dir)
    except RegistryError as e:
        console.print(f"[red]Cannot load book: {escape(str(e))}[/red]")
        sys.exit(2)


@click.group()
@click.version_option(version="1.0.0")
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level: str | None) -> None:
    """bookcheck - run a tutorial book's snippets and check their recorded output."""
    configure_logging(log_level)


@cli.command("list")
@click.argument("book_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
def list_snippets(book_dir: Path) -> None:
    """List every snippet of the book in document order."""
    registry = _load_registry(book_dir)

    table = Table(show_header=True, header_style="bold cyan", title=f"{len(registry)} snippets")
    table.add_column("Snippet", style="dim")
    table.add_column("Language")
    table.add_column("Line", justify="right")
    table.add_column("Expected", justify="center")
    table.add_column("Eval", justify="center")

    for snippet in registry:
        expected = snippet.expected_kind if snippet.expected_output is not None else "-"
        evaluated = "[green]✓[/green]" if snippet.executable else "[dim]✗[/dim]"
        table.add_row(
            escape(snippet.id), snippet.language, str(snippet.line), expected, evaluated
        )

    console.print(table)


@cli.command()
@click.argument("book_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("snippet_id")
def show(book_dir: Path, snippet_id: str) -> None:
    """Show a snippet's source and recorded output."""
    registry = _load_registry(book_dir)
    try:
        snippet = registry.get(snippet_id)
    except KeyError:
        console.print(f"[red]Unknown snippet: {escape(snippet_id)}[/red]")
        sys.exit(2)

    console.print(
        Panel(
            Syntax(snippet.source, snippet.language, theme="ansi_dark"),
            title=escape(snippet.id),
            subtitle=f"{snippet.chapter}, line {snippet.line}",
        )
    )
    if snippet.expected_output is None:
        console.print("[dim]No recorded output.[/dim]")
    else:
        console.print(
            Panel(escape(snippet.expected_output), title=f"expected ({snippet.expected_kind})")
        )

    options = snippet.options.model_dump(exclude_defaults=True)
    if options:
        console.print(f"[dim]Options: {options}[/dim]")


@cli.command()
@click.argument("book_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--chapter", "chapters", multiple=True, help="Only run these chapters")
@click.option("--snippet", "snippet_ids", multiple=True, help="Only run these snippet ids")
@click.option("--timeout", type=float, default=None, help="Seconds per snippet")
@click.option("--seed", type=int, default=None, help="Random seed for every snippet")
@click.option("--report-dir", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.option("--save/--no-save", default=True, help="Save the JSON report")
def run(
    book_dir: Path,
    chapters: tuple[str, ...],
    snippet_ids: tuple[str, ...],
    timeout: float | None,
    seed: int | None,
    report_dir: Path | None,
    save: bool,
) -> None:
    """Run the book's snippets and compare them with their recorded output."""
    global _partial_runs

    settings = _settings_with(report_dir)
    registry = _load_registry(book_dir)
    try:
        registry = registry.filter(chapters=chapters, snippet_ids=snippet_ids)
    except KeyError as e:
        console.print(f"[red]{escape(str(e.args[0]))}[/red]")
        sys.exit(2)

    if len(registry) == 0:
        console.print("[yellow]No snippets selected.[/yellow]")
        return

    executor = SnippetExecutor(settings=settings, seed=seed, timeout=timeout)
    reporter = RunReporter(settings=settings, console=console)

    console.print(
        Panel(
            f"Running {len(registry)} snippets from {len(registry.chapters())} chapters "
            f"(seed {executor.seed}, timeout {executor.timeout:g}s)",
            title="bookcheck",
        )
    )

    _partial_runs = []
    _partial_context.update(
        reporter=reporter, executor=executor, book=str(book_dir), seed=executor.seed
    )

    def on_result(result: SnippetRun) -> None:
        _partial_runs.append(result)
        reporter.print_run(result)

    previous_handler = signal.signal(signal.SIGINT, _handle_sigint)
    try:
        runs = asyncio.run(executor.run_registry(registry, on_result=on_result))
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    report = RunReport(book=str(book_dir), seed=executor.seed, runs=runs)
    reporter.print_report(report)

    if save:
        filepath = reporter.save_report(report)
        console.print(f"\n[dim]Report saved to: {filepath}[/dim]")

    if not all(r.passed for r in runs):
        sys.exit(1)


@cli.command()
@click.argument(
    "report", required=False, type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option(
    "--baseline",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Baseline report (default: previous saved report)",
)
@click.option("--threshold", type=float, default=0.0, help="Allowed pass-rate drop")
@click.option("--report-dir", type=click.Path(file_okay=False, path_type=Path), default=None)
def regressions(
    report: Path | None,
    baseline: Path | None,
    threshold: float,
    report_dir: Path | None,
) -> None:
    """Compare a saved report against a baseline report."""
    console.print(Panel("Regression Check", title="bookcheck"))
    reporter = RunReporter(settings=_settings_with(report_dir), console=console)

    if report is None:
        saved = reporter.saved_reports()
        if not saved:
            console.print("[yellow]No saved reports found.[/yellow]")
            return
        report = saved[-1]

    current = reporter.load_report(report)
    result = reporter.find_regressions(
        current,
        baseline_file=baseline,
        current_file=report,
        threshold=threshold,
    )
    reporter.print_regressions(result)

    if result.regression_detected:
        sys.exit(1)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
