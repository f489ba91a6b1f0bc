"""Interpreter profiles for the languages a chapter may contain."""

from __future__ import annotations

import shlex
from pathlib import Path

from pydantic import BaseModel, Field

from config.settings import Settings, get_settings


class LanguageProfile(BaseModel):
    """How to seed, delimit, and launch one interpreter."""

    name: str = Field(description="Normalized language tag")
    command: list[str] = Field(description="Interpreter argv, script path is appended")
    suffix: str = Field(description="Script file suffix")
    seed_template: str = Field(description="Statement that fixes the RNG seed")
    boundary_template: str = Field(
        description="Statements that print the marker on stdout and stderr"
    )

    def argv(self, script: Path) -> list[str]:
        return [*self.command, str(script)]

    def seed_statement(self, seed: int) -> str:
        return self.seed_template.format(seed=seed)

    def boundary_statement(self, marker: str) -> str:
        return self.boundary_template.format(marker=marker)


PYTHON_SEED = """\
import random as _bookcheck_random
_bookcheck_random.seed({seed})
try:
    import numpy as _bookcheck_numpy
    _bookcheck_numpy.random.seed({seed})
except ImportError:
    pass"""

PYTHON_BOUNDARY = """\
import sys as _bookcheck_sys
print("{marker}", flush=True)
print("{marker}", file=_bookcheck_sys.stderr, flush=True)"""

R_SEED = "set.seed({seed})"

R_BOUNDARY = """\
cat("{marker}\\n")
message("{marker}")"""

BASH_SEED = "RANDOM={seed}"

BASH_BOUNDARY = """\
echo '{marker}'
echo '{marker}' >&2"""


def _split_command(command: str) -> list[str]:
    """Split a configured command, keeping a bare path with spaces intact."""
    if Path(command).exists():
        return [command]
    return shlex.split(command)


class UnsupportedLanguageError(ValueError):
    """No interpreter profile exists for a language tag."""


def get_profile(language: str, settings: Settings | None = None) -> LanguageProfile:
    """Build the interpreter profile for a language from settings."""
    settings = settings or get_settings()

    if language == "python":
        return LanguageProfile(
            name="python",
            command=[*_split_command(settings.python_command), "-u"],
            suffix=".py",
            seed_template=PYTHON_SEED,
            boundary_template=PYTHON_BOUNDARY,
        )
    if language == "r":
        return LanguageProfile(
            name="r",
            command=[*_split_command(settings.rscript_command), "--vanilla"],
            suffix=".R",
            seed_template=R_SEED,
            boundary_template=R_BOUNDARY,
        )
    if language == "bash":
        return LanguageProfile(
            name="bash",
            command=_split_command(settings.bash_command),
            suffix=".sh",
            seed_template=BASH_SEED,
            boundary_template=BASH_BOUNDARY,
        )

    raise UnsupportedLanguageError(f"No interpreter profile for language: {language}")
