"""Configuration models and helpers for the content collector."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Tuple

from pydantic import BaseModel, Field, ValidationError

__all__ = [
    "CollectorSettings",
    "DEFAULT_SETTINGS_PATH",
    "SETTINGS_ENV_VAR",
]

DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parents[2] / "data" / "collector.json"
SETTINGS_ENV_VAR = "CONTENTCOLLECTOR_SETTINGS"


class CollectorSettings(BaseModel):
    """Tunable limits for fetching, extraction and orchestration."""

    fetch_attempts: int = Field(default=3, ge=1, description="Attempts per HTTP fetch")
    fetch_backoff: float = Field(
        default=1.0,
        ge=0,
        description="Backoff factor in seconds, doubled after every failed attempt",
    )
    fetch_timeout: Tuple[float, float] = Field(
        default=(10, 45), description="Connect and read timeout for a single request"
    )
    max_redirects: int = Field(default=5, ge=0)
    source_timeout: float = Field(
        default=15.0, gt=0, description="Hard budget for extracting one source"
    )
    slow_threshold: float = Field(
        default=8.0, gt=0, description="Duration above which a productive source is slow"
    )
    max_concurrency: int = Field(default=3, ge=1, description="Concurrent extraction jobs")
    recency_months: int = Field(default=2, ge=0, description="Feed recency window")
    feed_min_content: int = Field(
        default=200, ge=0, description="Feed text shorter than this triggers a page fetch"
    )
    article_min_content: int = Field(
        default=200, ge=0, description="Body length that makes a page a single article"
    )
    detail_min_content: int = Field(
        default=100, ge=0, description="Body length a listing detail page must exceed"
    )
    max_detail_pages: int = Field(default=10, ge=0)
    detail_delay: float = Field(default=0.5, ge=0)
    max_body_length: int = Field(default=50_000, gt=0)
    summary_length: int = Field(default=200, gt=0)
    item_summary_length: int = Field(
        default=100, gt=0, description="Summary length shown in live item events"
    )

    @classmethod
    def from_file(cls, path: Path | str) -> "CollectorSettings":
        """Load settings from a JSON file."""

        config_path = Path(path)
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise FileNotFoundError(f"Configuration file not found: {config_path}") from exc
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in configuration file: {config_path}") from exc

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Configuration file is invalid: {config_path}\n{exc}") from exc

    @classmethod
    def load(cls) -> "CollectorSettings":
        """Return settings from the environment-selected file or the defaults.

        An explicitly configured path must exist; the default path is optional.
        """

        explicit = os.environ.get(SETTINGS_ENV_VAR)
        if explicit:
            return cls.from_file(explicit)
        if DEFAULT_SETTINGS_PATH.exists():
            return cls.from_file(DEFAULT_SETTINGS_PATH)
        return cls()

    def dump(self, path: Path | str | None = None) -> None:
        """Persist the settings back to disk as JSON."""

        config_path = Path(path) if path else DEFAULT_SETTINGS_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
