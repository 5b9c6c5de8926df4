"""Clients for the remote search engine."""

from .base import SearchClient
from .http_client import HttpSearchClient

__all__ = [
    "SearchClient",
    "HttpSearchClient",
]
