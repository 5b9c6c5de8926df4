"""
Error taxonomy for exports.

Configuration and query errors are raised before any request is made.
Protocol and transport errors terminate the session that hit them.
"""

from __future__ import annotations

from pathlib import Path


class ExportError(Exception):
    """Base exception for export errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ConfigError(ExportError):
    """Invalid endpoint, worker count, config file or client setup."""

    def __init__(
        self,
        message: str,
        path: Path | None = None,
        details: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause)
        self.path = path
        self.details = details


class QueryError(ExportError):
    """User supplied filter or paging parameters are invalid."""
    pass


class SessionError(ExportError):
    """Error raised while a scroll session is running."""

    def __init__(
        self,
        message: str,
        worker_id: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause)
        self.worker_id = worker_id


class ProtocolError(SessionError):
    """Response from the engine does not have the expected shape."""
    pass


class TransportError(SessionError):
    """Request to the engine failed at the network or HTTP level."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        worker_id: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, worker_id=worker_id, cause=cause)
        self.url = url
        self.status_code = status_code
