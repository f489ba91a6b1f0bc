"""Per-chapter interpreter session that executes snippets in isolation."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import tempfile
import time
import uuid
from pathlib import Path

from config.settings import Settings, get_settings
from executor.errors import ExecutionError, SnippetTimeoutError
from executor.languages import UnsupportedLanguageError, get_profile
from models.schemas import CapturedOutput, Snippet


logger = logging.getLogger(__name__)


def split_at_marker(text: str, marker: str) -> str | None:
    """Return the text after the last marker line, or None if it never printed."""
    idx = text.rfind(marker)
    if idx < 0:
        return None
    rest = text[idx + len(marker):]
    if rest.startswith("\r\n"):
        return rest[2:]
    if rest.startswith("\n"):
        return rest[1:]
    return rest


class ChapterSession:
    """
    Interpreter session shared by the snippets of one chapter.

    Every snippet runs in a fresh interpreter process inside the session's
    working directory. The script replays the chapter's earlier successful
    snippets of the same language after the seed preamble, then prints a
    boundary marker, then runs the snippet. Only output after the marker
    belongs to the snippet, so state carries over between snippets while
    each captured output stays reproducible.
    """

    def __init__(
        self,
        chapter: str,
        settings: Settings | None = None,
        seed: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self.chapter = chapter
        self.settings = settings or get_settings()
        self.seed = seed if seed is not None else self.settings.random_seed
        self.timeout = timeout if timeout is not None else self.settings.snippet_timeout
        self.marker = f"<<<bookcheck:{uuid.uuid4().hex}>>>"
        self._history: list[Snippet] = []
        self._workdir: Path | None = None
        self._process: asyncio.subprocess.Process | None = None

    @property
    def workdir(self) -> Path:
        """Temporary working directory, created on first use."""
        if self._workdir is None:
            self._workdir = Path(tempfile.mkdtemp(prefix=f"bookcheck-{self.chapter}-"))
        return self._workdir

    @property
    def history(self) -> list[Snippet]:
        return list(self._history)

    @property
    def active_process(self) -> asyncio.subprocess.Process | None:
        """Interpreter currently running a snippet, if any."""
        return self._process

    def _block(self, snippet: Snippet) -> str:
        """Snippet source, preceded by its own seed statement if it sets one."""
        if snippet.options.seed is None:
            return snippet.source
        profile = get_profile(snippet.language, self.settings)
        return f"{profile.seed_statement(snippet.options.seed)}\n{snippet.source}"

    def build_script(self, snippet: Snippet) -> str:
        """Assemble the script that reaches ``snippet`` from a clean interpreter."""
        profile = get_profile(snippet.language, self.settings)
        parts = [profile.seed_statement(self.seed)]
        parts.extend(
            self._block(previous)
            for previous in self._history
            if previous.language == snippet.language
        )
        parts.append(profile.boundary_statement(self.marker))
        parts.append(self._block(snippet))
        return "\n".join(parts) + "\n"

    def _environment(self) -> dict[str, str]:
        env = dict(os.environ)
        env["PYTHONHASHSEED"] = str(self.seed)
        env["NO_COLOR"] = "1"
        return env

    def replay_budget(self, snippet: Snippet) -> float:
        """Time allowed to reach the boundary: startup plus each replayed snippet's bound."""
        return self.timeout + sum(
            previous.options.timeout or self.timeout
            for previous in self._history
            if previous.language == snippet.language
        )

    async def _read_until_marker(self, stream: asyncio.StreamReader) -> tuple[bytes, bool]:
        """Read stdout until the boundary marker has been printed or the stream ends."""
        marker = self.marker.encode("utf-8")
        buffer = b""
        while True:
            chunk = await stream.read(65536)
            if not chunk:
                return buffer, False
            start = max(0, len(buffer) - len(marker))
            buffer += chunk
            if buffer.find(marker, start) >= 0:
                return buffer, True

    async def _terminate(
        self, process: asyncio.subprocess.Process, pending: asyncio.Task
    ) -> None:
        self._kill(process)
        await process.wait()
        pending.cancel()
        await asyncio.gather(pending, return_exceptions=True)

    async def run(self, snippet: Snippet) -> CapturedOutput:
        """
        Execute one snippet and capture its output.

        The snippet's timeout starts when the boundary marker appears. Replaying
        earlier snippets has its own budget, see ``replay_budget``.

        Raises:
            ExecutionError: interpreter missing, non-zero exit, or replay failure
            SnippetTimeoutError: execution exceeded the snippet's time bound
        """
        try:
            profile = get_profile(snippet.language, self.settings)
        except UnsupportedLanguageError as e:
            raise ExecutionError(str(e), snippet.id) from e

        timeout = snippet.options.timeout or self.timeout
        budget = self.replay_budget(snippet)
        script_path = self.workdir / f"{snippet.index:03d}_{uuid.uuid4().hex[:8]}{profile.suffix}"
        script_path.write_text(self.build_script(snippet), encoding="utf-8")
        argv = profile.argv(script_path)

        logger.debug(f"Running {snippet.id}: {' '.join(argv)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(self.workdir),
                env=self._environment(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=os.name == "posix",
            )
        except OSError as e:
            script_path.unlink(missing_ok=True)
            raise ExecutionError(
                f"Could not start interpreter {argv[0]!r}: {e}", snippet.id
            ) from e

        assert process.stdout is not None and process.stderr is not None
        self._process = process
        stderr_task = asyncio.create_task(process.stderr.read())

        try:
            try:
                head, _ = await asyncio.wait_for(
                    self._read_until_marker(process.stdout), timeout=budget
                )
            except asyncio.TimeoutError:
                await self._terminate(process, stderr_task)
                raise ExecutionError(
                    f"Session replay did not reach {snippet.id} within {budget:g}s",
                    snippet.id,
                ) from None

            start_time = time.monotonic()
            try:
                tail, stderr_bytes, _ = await asyncio.wait_for(
                    asyncio.gather(process.stdout.read(), stderr_task, process.wait()),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                await self._terminate(process, stderr_task)
                raise SnippetTimeoutError(snippet.id, timeout) from None
        finally:
            self._process = None
            script_path.unlink(missing_ok=True)

        elapsed_ms = (time.monotonic() - start_time) * 1000
        stdout = (head + tail).decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")

        own_stdout = split_at_marker(stdout, self.marker)
        own_stderr = split_at_marker(stderr, self.marker)

        if own_stdout is None:
            raise ExecutionError(
                f"Session replay failed before reaching {snippet.id} "
                f"(exit code {process.returncode})",
                snippet.id,
                returncode=process.returncode,
                stdout=stdout,
                stderr=stderr,
            )

        if process.returncode != 0:
            raise ExecutionError(
                f"Interpreter exited with code {process.returncode}",
                snippet.id,
                returncode=process.returncode,
                stdout=own_stdout,
                stderr=own_stderr if own_stderr is not None else stderr,
            )

        self._history.append(snippet)
        return CapturedOutput(
            stdout=own_stdout,
            stderr=own_stderr if own_stderr is not None else stderr,
            returncode=process.returncode or 0,
            duration_ms=elapsed_ms,
        )

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        """Kill the interpreter together with anything it spawned."""
        if process.returncode is not None:
            return
        try:
            if os.name == "posix":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass

    def abort(self) -> None:
        """Kill the running interpreter, if any, and clear the session."""
        if self._process is not None:
            self._kill(self._process)
        self.reset()

    def reset(self) -> None:
        """Forget every executed snippet and clear the working directory."""
        self._history.clear()
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None

    async def close(self) -> None:
        self.reset()

    async def __aenter__(self) -> ChapterSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
