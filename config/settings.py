"""Configuration settings loaded from environment variables."""

from __future__ import annotations

import os
import sys
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field


load_dotenv()


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    log_level: str = Field(default="INFO", description="Logging level")

    # Execution
    snippet_timeout: float = Field(
        default=60.0,
        gt=0.0,
        description="Max seconds per snippet before the interpreter is killed",
    )
    random_seed: int = Field(
        default=42,
        description="Seed set at the top of every snippet script",
    )

    # Interpreters
    rscript_command: str = Field(default="Rscript", description="R interpreter")
    python_command: str = Field(
        default=sys.executable or "python3",
        description="Python interpreter",
    )
    bash_command: str = Field(default="bash", description="Shell interpreter")

    # Comparison
    relative_tolerance: float = Field(
        default=1e-6,
        ge=0.0,
        description="Relative tolerance for numeric table cells",
    )
    absolute_tolerance: float = Field(
        default=1e-9,
        ge=0.0,
        description="Absolute tolerance for numeric table cells",
    )

    # Reports
    report_dir: str = Field(default="reports", description="Directory for JSON reports")

    model_config = {"extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance loaded from environment."""
    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        snippet_timeout=float(os.getenv("SNIPPET_TIMEOUT", "60")),
        random_seed=int(os.getenv("RANDOM_SEED", "42")),
        rscript_command=os.getenv("RSCRIPT_COMMAND", "Rscript"),
        python_command=os.getenv("PYTHON_COMMAND", sys.executable or "python3"),
        bash_command=os.getenv("BASH_COMMAND", "bash"),
        relative_tolerance=float(os.getenv("RELATIVE_TOLERANCE", "1e-6")),
        absolute_tolerance=float(os.getenv("ABSOLUTE_TOLERANCE", "1e-9")),
        report_dir=os.getenv("REPORT_DIR", "reports"),
    )
