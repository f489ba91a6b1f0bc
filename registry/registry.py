"""Example registry holding the book's snippets in document order."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path

import yaml

from models.schemas import Snippet
from registry.parser import RegistryError, parse_chapter_file


logger = logging.getLogger(__name__)

CHAPTER_SUFFIXES = (".Rmd", ".rmd", ".qmd", ".md")
IGNORED_CHAPTERS = {"readme", "license", "changelog"}


class DuplicateSnippetError(RegistryError):
    """Two snippets share the same id."""

    def __init__(self, snippet_id: str, chapter: str | None = None) -> None:
        super().__init__(f"Duplicate snippet id: {snippet_id}", chapter)
        self.snippet_id = snippet_id


class BookConfigError(RegistryError):
    """The book configuration file could not be read."""


class ExampleRegistry:
    """Ordered, id-unique collection of snippets."""

    def __init__(self, snippets: Iterable[Snippet] = ()) -> None:
        self._snippets: dict[str, Snippet] = {}
        for snippet in snippets:
            self.add(snippet)

    def add(self, snippet: Snippet) -> None:
        """Register a snippet; ids must be unique across the book."""
        if snippet.id in self._snippets:
            raise DuplicateSnippetError(snippet.id, snippet.chapter)
        self._snippets[snippet.id] = snippet

    def get(self, snippet_id: str) -> Snippet:
        try:
            return self._snippets[snippet_id]
        except KeyError:
            raise KeyError(f"Unknown snippet id: {snippet_id}") from None

    def __contains__(self, snippet_id: object) -> bool:
        return snippet_id in self._snippets

    def __iter__(self) -> Iterator[Snippet]:
        return iter(self._snippets.values())

    def __len__(self) -> int:
        return len(self._snippets)

    def chapters(self) -> list[str]:
        """Chapter names in the order their first snippet was registered."""
        seen: dict[str, None] = {}
        for snippet in self._snippets.values():
            seen.setdefault(snippet.chapter, None)
        return list(seen)

    def by_chapter(self, chapter: str) -> list[Snippet]:
        return [s for s in self._snippets.values() if s.chapter == chapter]

    def filter(
        self,
        chapters: Iterable[str] | None = None,
        snippet_ids: Iterable[str] | None = None,
    ) -> ExampleRegistry:
        """Return a registry restricted to the given chapters and/or ids."""
        chapter_set = set(chapters or [])
        id_set = set(snippet_ids or [])
        for snippet_id in id_set:
            self.get(snippet_id)

        return ExampleRegistry(
            s
            for s in self._snippets.values()
            if (not chapter_set or s.chapter in chapter_set)
            and (not id_set or s.id in id_set)
        )

    @classmethod
    def from_files(cls, paths: Iterable[str | Path]) -> ExampleRegistry:
        registry = cls()
        for path in paths:
            for snippet in parse_chapter_file(path):
                registry.add(snippet)
        return registry

    @classmethod
    def from_book(cls, root: str | Path) -> ExampleRegistry:
        """Load every chapter of the book rooted at ``root``."""
        chapters = discover_chapters(root)
        logger.info(f"Found {len(chapters)} chapters in {root}")
        registry = cls.from_files(chapters)
        logger.info(f"Registered {len(registry)} snippets")
        return registry


def _load_yaml(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise BookConfigError(f"Cannot read {path.name}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BookConfigError(f"{path.name} must contain a mapping")
    return data


def _flatten_quarto_chapters(entries: list) -> list[str]:
    """Quarto allows ``part`` entries that nest their own chapter lists."""
    files: list[str] = []
    for entry in entries:
        if isinstance(entry, str):
            files.append(entry)
        elif isinstance(entry, dict):
            if isinstance(entry.get("part"), str) and entry["part"].endswith(CHAPTER_SUFFIXES):
                files.append(entry["part"])
            files.extend(_flatten_quarto_chapters(entry.get("chapters") or []))
    return files


def discover_chapters(root: str | Path) -> list[Path]:
    """
    Find the book's chapter files in reading order.

    Order of precedence:
    1. ``rmd_files`` in ``_bookdown.yml``
    2. ``book.chapters`` in ``_quarto.yml``
    3. Sorted chapter files in the book directory
    """
    root = Path(root)
    if not root.is_dir():
        raise BookConfigError(f"Book directory not found: {root}")

    names: list[str] | None = None

    bookdown = root / "_bookdown.yml"
    quarto = root / "_quarto.yml"
    if bookdown.exists():
        rmd_files = _load_yaml(bookdown).get("rmd_files")
        if isinstance(rmd_files, dict):
            rmd_files = rmd_files.get("html")
        if isinstance(rmd_files, str):
            rmd_files = [rmd_files]
        if rmd_files and not isinstance(rmd_files, list):
            raise BookConfigError("rmd_files in _bookdown.yml must be a file name or a list")
        if rmd_files:
            names = [str(name) for name in rmd_files]
    elif quarto.exists():
        book = _load_yaml(quarto).get("book") or {}
        chapters = _flatten_quarto_chapters(book.get("chapters") or [])
        appendices = _flatten_quarto_chapters(book.get("appendices") or [])
        if chapters or appendices:
            names = chapters + appendices

    if names is not None:
        paths = [root / name for name in names if name.endswith(CHAPTER_SUFFIXES)]
        missing = [p.name for p in paths if not p.exists()]
        if missing:
            raise BookConfigError(f"Chapters listed but missing: {', '.join(missing)}")
        return paths

    # bookdown always reads index.* first
    return sorted(
        (
            p
            for p in root.iterdir()
            if p.is_file()
            and p.suffix in CHAPTER_SUFFIXES
            and not p.name.startswith("_")
            and p.stem.lower() not in IGNORED_CHAPTERS
        ),
        key=lambda p: (p.stem.lower() != "index", p.name),
    )
