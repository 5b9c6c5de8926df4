"""CLI command modules."""

from . import export

__all__ = [
    "export",
]
