"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from datetime import datetime
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ.setdefault("LOG_LEVEL", "WARNING")

from config.settings import Settings  # noqa: E402
from models.schemas import RunReport, Snippet, SnippetOptions, SnippetRun  # noqa: E402


def make_snippet(
    source: str,
    snippet_id: str = "chapter/001",
    chapter: str | None = None,
    index: int = 1,
    language: str = "python",
    expected_output: str | None = None,
    expected_kind: str = "text",
    **options: object,
) -> Snippet:
    """Factory for creating Snippet test fixtures."""
    return Snippet(
        id=snippet_id,
        chapter=chapter or snippet_id.split("/")[0],
        index=index,
        line=1,
        language=language,
        source=source,
        expected_output=expected_output,
        expected_kind=expected_kind,  # type: ignore[arg-type]
        options=SnippetOptions(**options),
    )


def make_run(
    snippet_id: str,
    status: str = "passed",
    chapter: str | None = None,
    actual_output: str | None = None,
    timestamp: datetime | None = None,
) -> SnippetRun:
    """Factory for creating SnippetRun test fixtures."""
    return SnippetRun(
        snippet_id=snippet_id,
        chapter=chapter or snippet_id.split("/")[0],
        status=status,  # type: ignore[arg-type]
        actual_output=actual_output,
        duration_ms=12.0,
        timestamp=timestamp or datetime(2024, 3, 1, 12, 0, 0),
    )


def make_report(runs: list[SnippetRun], timestamp: datetime | None = None) -> RunReport:
    """Factory for creating RunReport test fixtures."""
    return RunReport(
        book="book",
        seed=42,
        runs=runs,
        timestamp=timestamp or datetime(2024, 3, 1, 12, 0, 0),
    )


def write_book(root: Path, chapters: dict[str, str], config: str | None = None) -> Path:
    """Write chapter files (and an optional _bookdown.yml) into ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    for name, text in chapters.items():
        (root / name).write_text(text, encoding="utf-8")
    if config is not None:
        (root / "_bookdown.yml").write_text(config, encoding="utf-8")
    return root


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings using the running interpreter and a temporary report directory."""
    return Settings(
        python_command=sys.executable,
        snippet_timeout=20.0,
        random_seed=42,
        report_dir=str(tmp_path / "reports"),
    )


@pytest.fixture
def sample_chapter() -> str:
    """Chapter mixing R and Python snippets with recorded output."""
    return """# Wrangling

Some prose.

```{r load-data}
x <- c(1, 2, 3)
mean(x)
```

```output
[1] 2
```

```python
print(1 + 1)
```

Text between.

```output
orphan
```

```{r, eval=FALSE}
install.packages("dplyr")
```

```{r summary-table, tolerance=0.01}
summary(x)
```

```output table
   Min. 1st Qu.  Median    Mean 3rd Qu.    Max.
    1.0     1.5     2.0     2.0     2.5     3.0
```

```text
not code
```
"""
