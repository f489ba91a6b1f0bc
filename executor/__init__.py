"""Executor module for running snippets against language interpreters."""

from executor.errors import ExecutionError, SnippetError, SnippetTimeoutError
from executor.languages import LanguageProfile, UnsupportedLanguageError, get_profile
from executor.runner import SnippetExecutor
from executor.session import ChapterSession

__all__ = [
    "ChapterSession",
    "ExecutionError",
    "LanguageProfile",
    "SnippetError",
    "SnippetExecutor",
    "SnippetTimeoutError",
    "UnsupportedLanguageError",
    "get_profile",
]
