"""Sequential snippet executor producing one run record per snippet."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from config.settings import Settings, get_settings
from executor.errors import ExecutionError, SnippetTimeoutError
from executor.session import ChapterSession
from models.schemas import Snippet, SnippetRun
from registry.registry import ExampleRegistry
from reporting.diff import DiffReporter


logger = logging.getLogger(__name__)

RunCallback = Callable[[SnippetRun], None]


class SnippetExecutor:
    """Run snippets chapter by chapter and compare them with their recorded output."""

    def __init__(
        self,
        settings: Settings | None = None,
        seed: int | None = None,
        timeout: float | None = None,
        reporter: DiffReporter | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.seed = seed if seed is not None else self.settings.random_seed
        self.timeout = timeout if timeout is not None else self.settings.snippet_timeout
        self.reporter = reporter or DiffReporter(self.settings)
        self.active_session: ChapterSession | None = None

    def new_session(self, chapter: str) -> ChapterSession:
        return ChapterSession(
            chapter,
            settings=self.settings,
            seed=self.seed,
            timeout=self.timeout,
        )

    async def run_snippet(self, session: ChapterSession, snippet: Snippet) -> SnippetRun:
        """Execute one snippet in a session; errors are recorded, never raised."""
        if not snippet.executable:
            logger.info(f"{snippet.id}: skipped (eval=FALSE)")
            return SnippetRun(
                snippet_id=snippet.id,
                chapter=snippet.chapter,
                status="skipped",
                expected_output=snippet.expected_output,
            )

        try:
            captured = await session.run(snippet)
        except SnippetTimeoutError as e:
            logger.warning(f"{snippet.id}: {e}")
            return SnippetRun(
                snippet_id=snippet.id,
                chapter=snippet.chapter,
                status="timeout",
                expected_output=snippet.expected_output,
                error_message=str(e),
                duration_ms=e.timeout * 1000,
            )
        except ExecutionError as e:
            logger.warning(f"{snippet.id}: {e}")
            return SnippetRun(
                snippet_id=snippet.id,
                chapter=snippet.chapter,
                status="error",
                actual_output=e.stdout or None,
                stderr=e.stderr or None,
                expected_output=snippet.expected_output,
                error_message=str(e),
            )

        mismatch = self.reporter.compare(snippet, captured.stdout)
        status = "mismatch" if mismatch else "passed"
        if mismatch:
            logger.warning(f"{snippet.id}: output differs from recorded expectation")
        else:
            logger.info(f"{snippet.id}: passed ({captured.duration_ms:.0f}ms)")

        return SnippetRun(
            snippet_id=snippet.id,
            chapter=snippet.chapter,
            status=status,
            actual_output=captured.stdout,
            stderr=captured.stderr or None,
            expected_output=snippet.expected_output,
            diff=mismatch.diff if mismatch else None,
            duration_ms=captured.duration_ms,
            timestamp=datetime.now(),
        )

    async def run_chapter(
        self,
        snippets: Iterable[Snippet],
        on_result: RunCallback | None = None,
    ) -> list[SnippetRun]:
        """Run the snippets of one chapter in document order in a single session."""
        snippets = list(snippets)
        if not snippets:
            return []

        runs: list[SnippetRun] = []
        async with self.new_session(snippets[0].chapter) as session:
            self.active_session = session
            try:
                for snippet in snippets:
                    run = await self.run_snippet(session, snippet)
                    runs.append(run)
                    if on_result is not None:
                        on_result(run)
            finally:
                self.active_session = None
        return runs

    async def run_registry(
        self,
        registry: ExampleRegistry,
        on_result: RunCallback | None = None,
    ) -> list[SnippetRun]:
        """Run every chapter, resetting the session between chapters."""
        runs: list[SnippetRun] = []
        for chapter in registry.chapters():
            logger.info(f"Chapter {chapter}")
            runs.extend(await self.run_chapter(registry.by_chapter(chapter), on_result))
        return runs
