"""
Search client base class.

Defines the interface contract between scroll sessions and the remote
search engine. A single client instance is shared by every session of
an export, so implementations must allow concurrent requests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class SearchClient(ABC):
    """Abstract base class for scroll-capable search clients."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Cluster address the client is bound to."""
        pass

    @abstractmethod
    async def search(self, index: str, body: dict[str, Any], scroll: str) -> dict[str, Any]:
        """Open a scroll with the initial query.

        Args:
            index: Index name or alias
            body: Query document
            scroll: Keep-alive for the new cursor (e.g. "1m")

        Returns:
            Decoded response envelope

        Raises:
            TransportError: On network failure or non-2xx status
            ProtocolError: If the body is not a JSON object
        """
        pass

    @abstractmethod
    async def scroll(self, cursor: str, scroll: str) -> dict[str, Any]:
        """Fetch the next page for a cursor.

        Args:
            cursor: Cursor token from the previous page
            scroll: Keep-alive, renewed on every call

        Returns:
            Decoded response envelope

        Raises:
            TransportError: On network failure or non-2xx status
            ProtocolError: If the body is not a JSON object
        """
        pass

    async def close(self) -> None:
        """Release connections held by the client."""
        pass

    async def __aenter__(self) -> "SearchClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
