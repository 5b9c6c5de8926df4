"""
Pydantic configuration models for scrolldump.

These models provide type-safe configuration with validation for:
- Export settings (source, workers, page size, filter)
- Transport settings (scroll window, request timeout)
- Logging settings
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

import orjson
from pydantic import BaseModel, Field, field_validator


# Elasticsearch time units accepted for the scroll keep-alive
SCROLL_WINDOW_PATTERN = re.compile(r"^\d+(nanos|micros|ms|s|m|h|d)$")

DEFAULT_PAGE_SIZE = 100
DEFAULT_SCROLL_WINDOW = "1m"
ALL_INDICES_ALIAS = "_all"


class LogLevel(str, Enum):
    """Supported log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: LogLevel = Field(
        default=LogLevel.WARNING,
        description="Console log level",
    )
    file: str | None = Field(
        default=None,
        description="Optional log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Write the log file as JSON lines",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


# =============================================================================
# Export Configuration
# =============================================================================


class ExportConfig(BaseModel):
    """Settings for one export run."""

    source: str = Field(
        description="Cluster URL; the path selects the index",
    )
    workers: int | None = Field(
        default=None,
        ge=1,
        description="Number of sliced workers (default: CPU count)",
    )
    size: int = Field(
        default=DEFAULT_PAGE_SIZE,
        ge=0,
        description="Documents per page, per worker",
    )
    query: str | None = Field(
        default=None,
        description="Query filter as JSON (default: match_all)",
    )
    scroll: str = Field(
        default=DEFAULT_SCROLL_WINDOW,
        description="Scroll keep-alive sent with every request",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=3600.0,
        description="Transport timeout per request",
    )
    all_indices_alias: str = Field(
        default=ALL_INDICES_ALIAS,
        min_length=1,
        description="Index used when the source URL has no path",
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("query", mode="before")
    @classmethod
    def serialize_query(cls, v: Any) -> Any:
        """Accept a mapping from YAML and keep it as JSON text."""
        if isinstance(v, dict):
            return orjson.dumps(v).decode("utf-8")
        return v

    @field_validator("scroll")
    @classmethod
    def validate_scroll(cls, v: str) -> str:
        v = v.strip()
        if not SCROLL_WINDOW_PATTERN.match(v):
            raise ValueError(f"Invalid scroll window '{v}', expected e.g. '30s', '1m', '2h'")
        return v
