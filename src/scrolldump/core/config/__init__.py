"""Configuration loading and validation."""

from .models import (
    ALL_INDICES_ALIAS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SCROLL_WINDOW,
    ExportConfig,
    LoggingConfig,
    LogLevel,
)
from .loader import build_export_config, load_export_config

__all__ = [
    # Defaults
    "ALL_INDICES_ALIAS",
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_SCROLL_WINDOW",
    # Config models
    "ExportConfig",
    "LoggingConfig",
    "LogLevel",
    # Loaders
    "build_export_config",
    "load_export_config",
]
