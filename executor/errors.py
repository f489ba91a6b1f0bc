"""Exceptions raised while executing snippets."""

from __future__ import annotations


class SnippetError(Exception):
    """Base exception for snippet execution errors."""

    def __init__(
        self,
        message: str,
        snippet_id: str,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.snippet_id = snippet_id
        self.stdout = stdout
        self.stderr = stderr


class ExecutionError(SnippetError):
    """The interpreter crashed, raised, or could not be started."""

    def __init__(
        self,
        message: str,
        snippet_id: str,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message, snippet_id, stdout=stdout, stderr=stderr)
        self.returncode = returncode


class SnippetTimeoutError(SnippetError, TimeoutError):
    """The snippet ran longer than its time bound and was killed."""

    def __init__(self, snippet_id: str, timeout: float) -> None:
        super().__init__(f"Snippet timed out after {timeout:g}s", snippet_id)
        self.timeout = timeout
