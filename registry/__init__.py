"""Registry module for collecting the book's snippets."""

from registry.parser import (
    ChapterParseError,
    RegistryError,
    parse_chapter,
    parse_chapter_file,
)
from registry.registry import (
    BookConfigError,
    DuplicateSnippetError,
    ExampleRegistry,
    discover_chapters,
)

__all__ = [
    "BookConfigError",
    "ChapterParseError",
    "DuplicateSnippetError",
    "ExampleRegistry",
    "RegistryError",
    "discover_chapters",
    "parse_chapter",
    "parse_chapter_file",
]
