"""
Pytest configuration and fixtures for scrolldump tests.
"""

from __future__ import annotations

import asyncio
import io
from typing import Any

import httpx
import orjson
import pytest

from scrolldump.core.client.base import SearchClient


def make_hit(doc_id: str, **source: Any) -> dict[str, Any]:
    """Build a search hit as the engine returns it."""
    return {
        "_index": "logs",
        "_id": doc_id,
        "_score": None,
        "_source": source or {"id": doc_id},
        "sort": [0],
    }


def make_page(hits: list[dict[str, Any]], cursor: Any = "cursor-0") -> dict[str, Any]:
    """Build a scroll response envelope."""
    body: dict[str, Any] = {"took": 1, "hits": {"total": {"value": len(hits)}, "hits": hits}}
    if cursor is not None:
        body["_scroll_id"] = cursor
    return body


class ScriptedClient(SearchClient):
    """Client that replays a fixed sequence of responses.

    Entries that are exceptions are raised instead of returned.
    """

    def __init__(self, responses: list[Any]):
        self.responses = list(responses)
        self.calls: list[tuple[Any, ...]] = []
        self.closed = False

    @property
    def address(self) -> str:
        return "http://scripted:9200"

    async def search(self, index: str, body: dict[str, Any], scroll: str) -> dict[str, Any]:
        self.calls.append(("search", index, body, scroll))
        return self._next()

    async def scroll(self, cursor: str, scroll: str) -> dict[str, Any]:
        self.calls.append(("scroll", cursor, scroll))
        return self._next()

    async def close(self) -> None:
        self.closed = True

    def _next(self) -> dict[str, Any]:
        if not self.responses:
            raise AssertionError("Unexpected request: no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeEngine:
    """In-process search engine served through httpx.MockTransport.

    Pages are keyed by slice id; a session asking past its last page gets
    an empty page. Cursors have the form "<slice>:<next page>".
    """

    def __init__(
        self,
        pages: dict[int, list[list[dict[str, Any]]]],
        errors: dict[tuple[int, int], httpx.Response] | None = None,
        block: set[int] | None = None,
    ):
        self.pages = pages
        self.errors = errors or {}
        self.block = block or set()
        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = orjson.loads(request.content)

        if request.url.path == "/_search/scroll":
            worker, page = (int(part) for part in body["scroll_id"].split(":"))
        else:
            worker = body.get("slice", {}).get("id", 0)
            page = 0

        if (worker, page) in self.errors:
            return self.errors[(worker, page)]

        if worker in self.block:
            await asyncio.Event().wait()

        worker_pages = self.pages.get(worker, [])
        hits = worker_pages[page] if page < len(worker_pages) else []

        return httpx.Response(200, json=make_page(hits, cursor=f"{worker}:{page + 1}"))

    def requests_for(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def output() -> io.StringIO:
    """Document output stream."""
    return io.StringIO()


@pytest.fixture
def diagnostics() -> io.StringIO:
    """Diagnostic (progress) stream."""
    return io.StringIO()


def read_records(stream: io.StringIO) -> list[dict[str, Any]]:
    """Decode every JSON line written to a stream."""
    return [orjson.loads(line) for line in stream.getvalue().splitlines()]
