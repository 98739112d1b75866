"""Configuration containers for the kulgen pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar, Optional


def _optional_int(value: str | None) -> Optional[int]:
    if value is None or not value.strip():
        return None
    return int(value)


@dataclass(slots=True)
class PipelineConfig:
    """Static configuration applied to every pipeline run."""

    env_prefix: ClassVar[str] = "KULGEN_"

    runs_dir: str = "runs"
    output_dir: str = "outputs"
    enable_mock_generation: bool = True
    gemini_api_key: str | None = None
    text_model: str = "gemini-2.5-flash"
    image_model: str = "gemini-2.5-flash-image"
    timeout_sec: int = 120
    # None keeps the per-background fan-out unbounded.
    max_concurrency: int | None = None
    rate_limit_retries: int = 0
    rate_limit_backoff_sec: float = 2.0

    def __post_init__(self) -> None:
        if self.max_concurrency is not None and self.max_concurrency < 1:
            raise ValueError("max_concurrency must be a positive integer or None")
        if self.rate_limit_retries < 0:
            raise ValueError("rate_limit_retries cannot be negative")

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create a config object populated from environment variables."""
        prefix = cls.env_prefix
        return cls(
            runs_dir=os.getenv(f"{prefix}RUNS_DIR", "runs"),
            output_dir=os.getenv(f"{prefix}OUTPUT_DIR", "outputs"),
            enable_mock_generation=os.getenv(f"{prefix}ENABLE_MOCKS", "true").lower() == "true",
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY"),
            text_model=os.getenv(f"{prefix}TEXT_MODEL", "gemini-2.5-flash"),
            image_model=os.getenv(f"{prefix}IMAGE_MODEL", "gemini-2.5-flash-image"),
            timeout_sec=int(os.getenv(f"{prefix}TIMEOUT_SEC", "120")),
            max_concurrency=_optional_int(os.getenv(f"{prefix}MAX_CONCURRENCY")),
            rate_limit_retries=int(os.getenv(f"{prefix}RATE_LIMIT_RETRIES", "0")),
            rate_limit_backoff_sec=float(os.getenv(f"{prefix}RATE_LIMIT_BACKOFF_SEC", "2.0")),
        )
