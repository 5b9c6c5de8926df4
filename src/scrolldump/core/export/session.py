"""
Per-worker scroll session.

A session walks one slice of the index through an explicit state machine:

    INIT -> FETCHING -> EMITTING -> CONTINUING -> FETCHING -> ... -> TERMINATED

TERMINATED is reached on success (an empty page), on the first error, or
when the session is cancelled. A cancelled session is not marked done.
An empty page is always the last request a session makes.

The engine drops a cursor once the scroll window passes without a
request on it. Pages are emitted synchronously between two requests, so
a session only stalls for as long as writing one page to the output
takes; a consumer that blocks the pipe for longer than the window makes
the next request fail with a TransportError.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TextIO

from scrolldump.core.client.base import SearchClient
from scrolldump.core.config.models import DEFAULT_SCROLL_WINDOW
from scrolldump.core.errors import ProtocolError, SessionError
from scrolldump.core.logging import get_contextual_logger

from .progress import ProgressCounter, format_progress
from .query import Query
from .sink import DocumentSink


class SessionState(str, Enum):
    """States of a scroll session."""

    INIT = "init"
    FETCHING = "fetching"
    EMITTING = "emitting"
    CONTINUING = "continuing"
    TERMINATED = "terminated"


@dataclass
class WorkerState:
    """Mutable state owned by exactly one session."""

    worker_id: int
    max: int
    state: SessionState = SessionState.INIT
    cursor: str | None = None
    done: bool = False
    requests: int = 0
    pages: int = 0
    documents: int = 0
    error: SessionError | None = None

    @property
    def succeeded(self) -> bool:
        return self.done and self.error is None


@dataclass
class _Response:
    """Envelope of the page currently being processed."""

    body: dict[str, Any]
    hits: list[dict[str, Any]] = field(default_factory=list)


class ScrollSession:
    """Pages through one slice of an index.

    Use run() to drive the session to completion, or step() to advance
    it one transition at a time.
    """

    def __init__(
        self,
        worker_id: int,
        worker_count: int,
        index: str,
        query: Query,
        client: SearchClient,
        sink: DocumentSink,
        counter: ProgressCounter,
        diagnostics: TextIO,
        scroll: str = DEFAULT_SCROLL_WINDOW,
    ):
        self.index = index
        self.query = query
        self.client = client
        self.sink = sink
        self.counter = counter
        self.diagnostics = diagnostics
        self.scroll = scroll

        self.worker = WorkerState(worker_id=worker_id, max=worker_count)
        self.logger = get_contextual_logger("session", worker=worker_id, index=index)

        self._response: _Response | None = None

    @property
    def state(self) -> SessionState:
        return self.worker.state

    async def run(self) -> WorkerState:
        """Run the session until it terminates.

        Returns:
            Final worker state

        Raises:
            ProtocolError: On a malformed response
            TransportError: On a failed request
        """
        self.logger.info(f"Starting scroll on '{self.index}' (slice {self.worker.worker_id}/{self.worker.max})")

        try:
            while self.worker.state is not SessionState.TERMINATED:
                await self.step()
        except asyncio.CancelledError:
            self._response = None
            self._transition(SessionState.TERMINATED)
            self.logger.info(f"Cancelled after {self.worker.pages} pages")
            raise

        if self.worker.error is not None:
            raise self.worker.error

        self.logger.info(
            f"Finished after {self.worker.pages} pages, {self.worker.documents} documents"
        )
        return self.worker

    async def step(self) -> SessionState:
        """Advance the state machine by one transition.

        Returns:
            The new state
        """
        state = self.worker.state

        try:
            if state is SessionState.INIT:
                self._transition(SessionState.FETCHING)
            elif state is SessionState.FETCHING:
                await self._fetch()
            elif state is SessionState.EMITTING:
                self._emit()
            elif state is SessionState.CONTINUING:
                self._continue()
        except SessionError as e:
            self._fail(e)

        return self.worker.state

    # =========================================================================
    # Transitions
    # =========================================================================

    async def _fetch(self) -> None:
        """Issue the initial query or the continuation request."""
        self.worker.requests += 1

        if self.worker.cursor is None:
            self.logger.debug("Opening scroll cursor")
            body = await self.client.search(self.index, self.query.to_dict(), self.scroll)
        else:
            body = await self.client.scroll(self.worker.cursor, self.scroll)

        hits = self._extract_hits(body)

        if not hits:
            self._response = None
            self.worker.done = True
            self._transition(SessionState.TERMINATED)
            return

        self._response = _Response(body=body, hits=hits)
        self._transition(SessionState.EMITTING)

    def _emit(self) -> None:
        """Write every document of the page, then account for it."""
        assert self._response is not None

        hits = self._response.hits
        for hit in hits:
            self.sink.emit(hit)

        batch = len(hits)
        total = self.counter.add(batch)
        self.worker.pages += 1
        self.worker.documents += batch

        self.diagnostics.write(format_progress(batch, total) + "\n")
        self.diagnostics.flush()
        self.logger.debug(f"Page {self.worker.pages}: {batch} documents")

        self._transition(SessionState.CONTINUING)

    def _continue(self) -> None:
        """Take the cursor for the next request from the current page."""
        assert self._response is not None

        cursor = self._response.body.get("_scroll_id")
        self._response = None

        if cursor is None:
            raise ProtocolError("Response has no _scroll_id", worker_id=self.worker.worker_id)
        if not isinstance(cursor, str):
            raise ProtocolError(
                f"_scroll_id must be a string, got {type(cursor).__name__}",
                worker_id=self.worker.worker_id,
            )

        self.worker.cursor = cursor
        self._transition(SessionState.FETCHING)

    def _fail(self, error: SessionError) -> None:
        if error.worker_id is None:
            error.worker_id = self.worker.worker_id
        self.worker.error = error
        self.worker.done = True
        self._response = None
        self._transition(SessionState.TERMINATED)
        self.logger.error(f"Session failed: {error}")

    def _transition(self, state: SessionState) -> None:
        self.worker.state = state

    def _extract_hits(self, body: dict[str, Any]) -> list[dict[str, Any]]:
        """Return the documents array of a response.

        Raises:
            ProtocolError: If hits.hits is missing or malformed
        """
        outer = body.get("hits")
        hits = outer.get("hits") if isinstance(outer, dict) else None

        if not isinstance(hits, list):
            raise ProtocolError(
                "Response has no hits.hits array",
                worker_id=self.worker.worker_id,
            )

        for hit in hits:
            if not isinstance(hit, dict):
                raise ProtocolError(
                    f"Document must be a JSON object, got {type(hit).__name__}",
                    worker_id=self.worker.worker_id,
                )

        return hits
