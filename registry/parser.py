"""Chapter parser that extracts code snippets and their recorded output."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from models.schemas import ExpectedKind, Snippet, SnippetOptions


logger = logging.getLogger(__name__)

FENCE_OPEN = re.compile(r"^(?P<indent> {0,3})(?P<fence>`{3,}|~{3,})\s*(?P<info>[^`]*?)\s*$")
OUTPUT_INFO = re.compile(r"^\{?\s*output(?:\s+(?P<kind>text|table|csv))?\s*\}?$", re.IGNORECASE)
INFO_HEAD = re.compile(r"^(?P<lang>[A-Za-z][A-Za-z0-9_+.-]*)[\s,]*(?P<rest>.*)$")

LANGUAGE_ALIASES = {
    "r": "r",
    "python": "python",
    "python3": "python",
    "py": "python",
    "bash": "bash",
    "sh": "bash",
    "shell": "bash",
}


class RegistryError(Exception):
    """Base exception for problems found while loading the book."""

    def __init__(self, message: str, chapter: str | None = None) -> None:
        super().__init__(message)
        self.chapter = chapter


class ChapterParseError(RegistryError):
    """A chapter could not be split into fenced blocks."""

    def __init__(self, message: str, chapter: str, line: int) -> None:
        super().__init__(f"{chapter}:{line}: {message}", chapter)
        self.line = line


def normalize_language(tag: str) -> str | None:
    """Map a fence language tag onto a supported language, or None."""
    return LANGUAGE_ALIASES.get(tag.strip().lower())


def _split_options(text: str) -> list[str]:
    """Split knitr chunk options on top-level commas, keeping quoted commas."""
    parts: list[str] = []
    current: list[str] = []
    quote: str | None = None
    depth = 0

    for ch in text:
        if quote:
            current.append(ch)
            if ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
            current.append(ch)
        elif ch in "([{":
            depth += 1
            current.append(ch)
        elif ch in ")]}":
            depth -= 1
            current.append(ch)
        elif ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)

    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


def _parse_value(raw: str) -> Any:
    """Parse an R-style literal from a chunk option."""
    value = raw.strip()
    if value in ("TRUE", "T", "true", "True"):
        return True
    if value in ("FALSE", "F", "false", "False"):
        return False
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def parse_info_string(info: str) -> tuple[str, str | None, dict[str, Any]] | None:
    """
    Parse a code fence info string.

    Accepts knitr style (``{r label, eval=FALSE}``) and plain markdown style
    (``python``). Returns (language, label, options) or None when the fence
    is not an executable language.
    """
    text = info.strip()
    braced = text.startswith("{") and text.endswith("}")
    if braced:
        text = text[1:-1].strip()

    match = INFO_HEAD.match(text)
    if not match:
        return None

    language = normalize_language(match.group("lang"))
    if language is None:
        return None

    if not braced:
        return language, None, {}

    label: str | None = None
    options: dict[str, Any] = {}
    for position, part in enumerate(_split_options(match.group("rest"))):
        if "=" in part:
            key, _, raw = part.partition("=")
            options[key.strip()] = _parse_value(raw)
        elif position == 0:
            label = part.strip().strip("\"'")

    if "label" in options:
        label = str(options.pop("label"))

    return language, label, options


def build_options(raw: dict[str, Any]) -> SnippetOptions:
    """Keep the chunk options bookcheck understands and drop the rest."""
    known: dict[str, Any] = {}

    if isinstance(raw.get("eval"), bool):
        known["eval"] = raw["eval"]
    for key in ("timeout", "tolerance"):
        if isinstance(raw.get(key), (int, float)) and not isinstance(raw.get(key), bool):
            known[key] = float(raw[key])
    if isinstance(raw.get("seed"), int) and not isinstance(raw.get("seed"), bool):
        known["seed"] = raw["seed"]

    return SnippetOptions(**known)


def _output_kind(info: str) -> ExpectedKind | None:
    match = OUTPUT_INFO.match(info.strip())
    if not match:
        return None
    kind = (match.group("kind") or "text").lower()
    return kind  # type: ignore[return-value]


def _strip_indent(line: str, indent: int) -> str:
    if not indent:
        return line
    stripped = len(line) - len(line.lstrip(" "))
    return line[min(indent, stripped):]


def parse_chapter(text: str, chapter: str) -> list[Snippet]:
    """
    Split chapter text into snippets in document order.

    Rules:
    - A code fence with a supported language starts a snippet
    - An ``output`` fence directly after it (blank lines allowed) is its expected output
    - An ``output`` fence anywhere else is ignored
    """
    lines = text.splitlines()
    snippets: list[Snippet] = []
    pending: dict[str, Any] | None = None
    i = 0

    def flush() -> None:
        nonlocal pending
        if pending is not None:
            snippets.append(Snippet(**pending))
            pending = None

    while i < len(lines):
        line = lines[i]
        match = FENCE_OPEN.match(line)

        if not match:
            if line.strip():
                flush()
            i += 1
            continue

        fence = match.group("fence")
        indent = len(match.group("indent"))
        info = match.group("info")
        start = i
        closing = re.compile(rf"^ {{0,3}}{re.escape(fence[0])}{{{len(fence)},}}\s*$")

        body: list[str] = []
        i += 1
        while i < len(lines) and not closing.match(lines[i]):
            body.append(_strip_indent(lines[i], indent))
            i += 1
        if i >= len(lines):
            raise ChapterParseError("unterminated code fence", chapter, start + 1)
        i += 1

        kind = _output_kind(info)
        if kind is not None:
            if pending is not None:
                pending["expected_output"] = "\n".join(body)
                pending["expected_kind"] = kind
                flush()
            else:
                logger.debug(f"{chapter}:{start + 1}: output block without a snippet, ignored")
            continue

        flush()
        parsed = parse_info_string(info)
        if parsed is None:
            continue

        language, label, raw_options = parsed
        index = len(snippets) + 1
        snippet_id = f"{chapter}/{label}" if label else f"{chapter}/{index:03d}"
        pending = {
            "id": snippet_id,
            "chapter": chapter,
            "index": index,
            "line": start + 1,
            "language": language,
            "source": "\n".join(body),
            "options": build_options(raw_options),
        }

    flush()
    return snippets


def parse_chapter_file(path: str | Path, chapter: str | None = None) -> list[Snippet]:
    """Parse a chapter file; the chapter name defaults to the file stem."""
    path = Path(path)
    chapter = chapter or path.stem
    try:
        data = path.read_bytes()
    except OSError as e:
        raise RegistryError(f"Cannot read {path}: {e}", chapter) from e
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        line = data.count(b"\n", 0, e.start) + 1
        raise ChapterParseError(
            f"Chapter is not valid UTF-8 (byte {e.start})", chapter, line
        ) from e
    snippets = parse_chapter(text, chapter)
    logger.debug(f"Parsed {len(snippets)} snippets from {path.name}")
    return snippets
