"""Functional tests for the snippet executor, run against real interpreters."""

from __future__ import annotations

import asyncio
import os
import shutil
import sys

import pytest

from config.settings import Settings
from conftest import make_snippet
from executor.errors import ExecutionError, SnippetTimeoutError
from executor.languages import UnsupportedLanguageError, get_profile
from executor.runner import SnippetExecutor
from executor.session import ChapterSession, split_at_marker
from registry.registry import ExampleRegistry


def run_in_session(session: ChapterSession, *snippets):
    """Run snippets in order in one session and return the last captured output."""

    async def run():
        result = None
        for snippet in snippets:
            result = await session.run(snippet)
        return result

    return asyncio.run(run())


class TestLanguageProfiles:
    """Test interpreter profile construction."""

    def test_python_profile(self, settings: Settings) -> None:
        """Test: Python runs unbuffered with the configured interpreter."""
        profile = get_profile("python", settings)
        assert profile.command == [sys.executable, "-u"]
        assert profile.suffix == ".py"
        assert "seed(7)" in profile.seed_statement(7)

    def test_r_profile(self, settings: Settings) -> None:
        """Test: R runs through Rscript --vanilla and seeds with set.seed."""
        profile = get_profile("r", settings)
        assert profile.command == ["Rscript", "--vanilla"]
        assert profile.seed_statement(3) == "set.seed(3)"
        assert 'cat("<<<m>>>\\n")' in profile.boundary_statement("<<<m>>>")

    def test_command_with_arguments(self) -> None:
        """Test: Configured commands may carry arguments."""
        profile = get_profile("bash", Settings(bash_command="bash --noprofile"))
        assert profile.command == ["bash", "--noprofile"]

    def test_unknown_language(self, settings: Settings) -> None:
        """Edge Case: Unsupported language has no profile."""
        with pytest.raises(UnsupportedLanguageError):
            get_profile("julia", settings)


class TestSplitAtMarker:
    """Test separation of replayed output from snippet output."""

    def test_takes_text_after_last_marker(self) -> None:
        assert split_at_marker("old\nM\nnew\n", "M") == "new\n"
        assert split_at_marker("M\na\nM\nb", "M") == "b"

    def test_missing_marker(self) -> None:
        assert split_at_marker("no marker here", "M") is None


class TestChapterSession:
    """Test per-chapter session semantics with the running Python interpreter."""

    def test_captures_stdout(self, settings: Settings) -> None:
        """Test: Snippet stdout is captured exactly."""
        session = ChapterSession("basics", settings=settings)
        output = run_in_session(session, make_snippet("print('hello')"))

        assert output.stdout == "hello\n"
        assert output.returncode == 0
        assert output.duration_ms > 0
        session.reset()

    def test_state_shared_within_chapter(self, settings: Settings) -> None:
        """Test: Later snippets see earlier definitions but not their output."""
        session = ChapterSession("basics", settings=settings)
        output = run_in_session(
            session,
            make_snippet("x = 41\nprint('setup done')", snippet_id="basics/001"),
            make_snippet("print(x + 1)", snippet_id="basics/002", index=2),
        )

        assert output.stdout == "42\n"
        assert [s.id for s in session.history] == ["basics/001", "basics/002"]
        session.reset()

    def test_stderr_captured(self, settings: Settings) -> None:
        """Test: Warnings on stderr are captured separately."""
        session = ChapterSession("basics", settings=settings)
        output = run_in_session(
            session,
            make_snippet("import sys\nprint('out')\nprint('warn', file=sys.stderr)"),
        )

        assert output.stdout == "out\n"
        assert output.stderr == "warn\n"
        session.reset()

    def test_interpreter_error(self, settings: Settings) -> None:
        """Test: An exception in the snippet is an ExecutionError."""
        session = ChapterSession("basics", settings=settings)

        with pytest.raises(ExecutionError) as exc_info:
            run_in_session(session, make_snippet("print('before')\nraise ValueError('boom')"))

        error = exc_info.value
        assert error.snippet_id == "chapter/001"
        assert error.returncode == 1
        assert "ValueError: boom" in error.stderr
        assert error.stdout == "before\n"
        assert session.history == []
        session.reset()

    def test_failed_snippet_not_replayed(self, settings: Settings) -> None:
        """Test: A failed snippet does not poison later snippets."""
        session = ChapterSession("basics", settings=settings)

        async def run():
            with pytest.raises(ExecutionError):
                await session.run(make_snippet("raise SystemExit(3)", snippet_id="basics/001"))
            return await session.run(
                make_snippet("print('still fine')", snippet_id="basics/002", index=2)
            )

        output = asyncio.run(run())
        assert output.stdout == "still fine\n"
        session.reset()

    def test_timeout(self, settings: Settings) -> None:
        """Test: Runaway snippets are killed and raise SnippetTimeoutError."""
        session = ChapterSession("basics", settings=settings)

        with pytest.raises(SnippetTimeoutError) as exc_info:
            run_in_session(session, make_snippet("import time\ntime.sleep(30)", timeout=0.5))

        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.timeout == 0.5
        session.reset()

    def test_missing_interpreter(self, tmp_path) -> None:
        """Edge Case: A missing interpreter binary is an ExecutionError."""
        settings = Settings(python_command=str(tmp_path / "no-such-python"))
        session = ChapterSession("basics", settings=settings)

        with pytest.raises(ExecutionError, match="Could not start interpreter"):
            run_in_session(session, make_snippet("print(1)"))
        session.reset()

    def test_unsupported_language(self, settings: Settings) -> None:
        """Edge Case: Unknown language is reported as an ExecutionError."""
        session = ChapterSession("basics", settings=settings)

        with pytest.raises(ExecutionError, match="julia"):
            run_in_session(session, make_snippet("println(1)", language="julia"))

    def test_working_directory_isolated(self, settings: Settings) -> None:
        """Test: Files written by snippets stay in the session directory."""
        session = ChapterSession("basics", settings=settings)
        output = run_in_session(
            session,
            make_snippet("open('out.txt', 'w').write('x')\nimport os\nprint(os.getcwd())"),
        )

        workdir = session.workdir
        assert output.stdout.strip() == str(workdir.resolve()) or output.stdout.strip() == str(workdir)
        assert (workdir / "out.txt").exists()

        session.reset()
        assert not workdir.exists()

    def test_hash_seed_fixed(self, settings: Settings) -> None:
        """Test: String hashing is deterministic inside snippets."""
        session = ChapterSession("basics", settings=settings)
        output = run_in_session(session, make_snippet("import os\nprint(os.environ['PYTHONHASHSEED'])"))

        assert output.stdout == "42\n"
        session.reset()

    def test_abort_kills_running_interpreter(self, settings: Settings) -> None:
        """Test: abort stops the interpreter and removes the working directory."""
        session = ChapterSession("basics", settings=settings)

        async def run():
            task = asyncio.create_task(session.run(make_snippet("import time\ntime.sleep(30)")))
            while session.active_process is None:
                await asyncio.sleep(0.01)
            pid = session.active_process.pid
            workdir = session.workdir
            session.abort()
            with pytest.raises(ExecutionError):
                await task
            return pid, workdir

        pid, workdir = asyncio.run(run())

        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
        assert not workdir.exists()
        assert session.active_process is None

    def test_replay_budget_grows_with_history(self, settings: Settings) -> None:
        """Test: Replay gets startup time plus each replayed snippet's bound."""
        session = ChapterSession("basics", settings=settings, timeout=2.0)
        run_in_session(
            session,
            make_snippet("a = 1", snippet_id="basics/001"),
            make_snippet("b = 2", snippet_id="basics/002", index=2, timeout=5),
        )

        assert session.replay_budget(make_snippet("print(a)", index=3)) == 9.0
        assert session.replay_budget(make_snippet("echo", language="bash")) == 2.0
        session.reset()

    @pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")
    def test_bash_snippet(self, settings: Settings) -> None:
        """Test: Shell snippets run in the same session model."""
        session = ChapterSession("shell", settings=settings)
        output = run_in_session(
            session,
            make_snippet("GREETING=hi", language="bash", snippet_id="shell/001"),
            make_snippet("echo $GREETING", language="bash", snippet_id="shell/002", index=2),
        )

        assert output.stdout == "hi\n"
        session.reset()

    @pytest.mark.skipif(shutil.which("Rscript") is None, reason="R not installed")
    def test_r_snippet(self, settings: Settings) -> None:
        """Test: R snippets autoprint their values."""
        session = ChapterSession("r", settings=settings)
        output = run_in_session(
            session,
            make_snippet("x <- c(1, 2, 3)", language="r", snippet_id="r/001"),
            make_snippet("mean(x)", language="r", snippet_id="r/002", index=2),
        )

        assert output.stdout == "[1] 2\n"
        session.reset()


class TestSnippetExecutor:
    """Test run records produced by the executor."""

    def test_run_chapter_statuses(self, settings: Settings) -> None:
        """Test: Each failure kind is recorded and the chapter keeps going."""
        snippets = [
            make_snippet("print('ok')", snippet_id="c/ok", index=1, expected_output="ok"),
            make_snippet("print('no')", snippet_id="c/bad", index=2, expected_output="yes"),
            make_snippet("1 / 0", snippet_id="c/err", index=3),
            make_snippet("import time\ntime.sleep(30)", snippet_id="c/slow", index=4, timeout=0.5),
            make_snippet("print('never')", snippet_id="c/skip", index=5, eval=False),
            make_snippet("print('last')", snippet_id="c/last", index=6, expected_output="last"),
        ]
        seen: list[str] = []

        runs = asyncio.run(
            SnippetExecutor(settings=settings).run_chapter(
                snippets, on_result=lambda r: seen.append(r.snippet_id)
            )
        )

        assert [r.status for r in runs] == [
            "passed",
            "mismatch",
            "error",
            "timeout",
            "skipped",
            "passed",
        ]
        assert seen == [s.id for s in snippets]
        assert "-yes" in runs[1].diff  # type: ignore[operator]
        assert "ZeroDivisionError" in runs[2].stderr  # type: ignore[operator]
        assert runs[3].error_message == "Snippet timed out after 0.5s"

    def test_sessions_reset_between_chapters(self, settings: Settings) -> None:
        """Test: A chapter cannot see another chapter's variables."""
        registry = ExampleRegistry(
            [
                make_snippet("shared = 1", snippet_id="one/001"),
                make_snippet("print(shared)", snippet_id="two/001"),
            ]
        )

        runs = asyncio.run(SnippetExecutor(settings=settings).run_registry(registry))

        assert runs[0].status == "passed"
        assert runs[1].status == "error"
        assert "NameError" in runs[1].stderr  # type: ignore[operator]

    def test_cli_overrides_take_precedence(self, settings: Settings) -> None:
        """Test: Explicit seed and timeout override settings."""
        executor = SnippetExecutor(settings=settings, seed=7, timeout=3.0)
        session = executor.new_session("c")

        assert (executor.seed, executor.timeout) == (7, 3.0)
        assert (session.seed, session.timeout) == (7, 3.0)

    def test_timeout_excludes_replay(self, settings: Settings) -> None:
        """Test: Slow earlier snippets do not count against a later snippet's bound."""
        snippets = [
            make_snippet("import time\ntime.sleep(0.4)", snippet_id="c/001", index=1),
            make_snippet("time.sleep(0.4)", snippet_id="c/002", index=2),
            make_snippet("time.sleep(0.4)", snippet_id="c/003", index=3),
            make_snippet("print(1)", snippet_id="c/004", index=4, expected_output="1"),
        ]

        runs = asyncio.run(SnippetExecutor(settings=settings, timeout=1.0).run_chapter(snippets))

        assert [r.status for r in runs] == ["passed"] * 4
        assert all(r.duration_ms < 1000 for r in runs)  # type: ignore[operator]

    def test_slow_replay_is_an_error(self, settings: Settings) -> None:
        """Edge Case: A replay that overruns its budget is an error, not the snippet's timeout."""
        snippets = [
            make_snippet(
                "import os, time\nif os.path.exists('flag'):\n    time.sleep(30)",
                snippet_id="c/001",
                index=1,
            ),
            make_snippet("open('flag', 'w').close()", snippet_id="c/002", index=2),
            make_snippet("print('unreached')", snippet_id="c/003", index=3),
        ]

        runs = asyncio.run(SnippetExecutor(settings=settings, timeout=2.0).run_chapter(snippets))

        assert [r.status for r in runs] == ["passed", "passed", "error"]
        assert "Session replay did not reach c/003 within 6s" == runs[2].error_message
