"""
HTTP search client implementation using httpx.

Speaks the Elasticsearch/OpenSearch scroll API:
- POST /{index}/_search?scroll=<window> opens a cursor
- POST /_search/scroll with {"scroll", "scroll_id"} continues it

Failed requests are never retried here; a failed page fails its session.
"""

from __future__ import annotations

from typing import Any

import httpx
import orjson

from scrolldump import __app_name__, __version__
from scrolldump.core.errors import ConfigError, ProtocolError, TransportError
from scrolldump.core.logging import get_logger

from .base import SearchClient


logger = get_logger("client")

# Cap on response text quoted in error messages
MAX_ERROR_BODY = 500


class HttpSearchClient(SearchClient):
    """Search client over a pooled httpx.AsyncClient.

    The underlying httpx client is created eagerly so that an unusable
    address is reported before any session starts.
    """

    def __init__(
        self,
        address: str,
        timeout: float = 30.0,
        max_connections: int | None = None,
        default_headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            address: Cluster base URL (scheme://host:port)
            timeout: Transport timeout in seconds
            max_connections: Connection pool size (None: httpx default)
            default_headers: Extra headers sent with every request
            transport: Custom httpx transport (used by tests)

        Raises:
            ConfigError: If the client cannot be constructed
        """
        self._address = address
        self.timeout = timeout

        headers = {
            "User-Agent": f"{__app_name__}/{__version__}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            **(default_headers or {}),
        }

        limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections,
        )

        try:
            self._client = httpx.AsyncClient(
                base_url=address,
                timeout=httpx.Timeout(timeout),
                headers=headers,
                limits=limits,
                transport=transport,
            )
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise ConfigError(
                f"Unable to create client for {address}: {e}",
                cause=e,
            ) from e

    @property
    def address(self) -> str:
        return self._address

    async def search(self, index: str, body: dict[str, Any], scroll: str) -> dict[str, Any]:
        return await self._post(f"/{index}/_search", body, params={"scroll": scroll})

    async def scroll(self, cursor: str, scroll: str) -> dict[str, Any]:
        return await self._post("/_search/scroll", {"scroll": scroll, "scroll_id": cursor})

    async def _post(
        self,
        path: str,
        body: dict[str, Any],
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST a JSON body and decode the JSON envelope."""
        url = f"{self._address}{path}"

        try:
            response = await self._client.post(
                path,
                content=orjson.dumps(body),
                params=params,
            )
        except httpx.HTTPError as e:
            raise TransportError(
                f"Request to {url} failed: {e!r}",
                url=url,
                cause=e,
            ) from e

        if response.status_code >= 300:
            raise TransportError(
                f"Request to {url} failed with status {response.status_code}: "
                f"{_error_reason(response)}",
                url=url,
                status_code=response.status_code,
            )

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise ProtocolError(f"Response from {url} is not valid JSON", cause=e) from e

        if not isinstance(payload, dict):
            raise ProtocolError(f"Response from {url} is not a JSON object")

        return payload

    async def close(self) -> None:
        """Close the HTTP client."""
        if not self._client.is_closed:
            await self._client.aclose()
            logger.debug(f"Closed client for {self._address}")


def _error_reason(response: httpx.Response) -> str:
    """Pull the engine's error reason out of a failed response."""
    try:
        payload = orjson.loads(response.content)
    except orjson.JSONDecodeError:
        return response.text[:MAX_ERROR_BODY]

    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        kind = error.get("type", "error")
        reason = error.get("reason", "")
        return f"{kind}: {reason}" if reason else str(kind)
    if error:
        return str(error)[:MAX_ERROR_BODY]
    return response.text[:MAX_ERROR_BODY]
