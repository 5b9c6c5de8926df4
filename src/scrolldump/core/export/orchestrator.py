"""
Export orchestrator.

Coordinates a full export: validate -> build queries -> create client ->
run one scroll session per worker -> join.

Failure policy is fail-fast: the first session to fail cancels all of
its siblings and its error becomes the result of the export. Documents
already written stay on the output.
"""

from __future__ import annotations

import asyncio
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TextIO
from urllib.parse import urlparse

import httpx

from scrolldump.core.client.base import SearchClient
from scrolldump.core.client.http_client import HttpSearchClient
from scrolldump.core.config.models import ALL_INDICES_ALIAS, ExportConfig
from scrolldump.core.errors import ConfigError
from scrolldump.core.logging import get_logger

from .progress import ProgressCounter
from .query import Query, build_query
from .session import ScrollSession, WorkerState
from .sink import DocumentSink


logger = get_logger("orchestrator")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ExportStats:
    """Statistics for an export run."""

    workers: int = 0
    index: str = ""
    documents: int = 0
    pages: int = 0
    requests: int = 0

    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Get run duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "workers": self.workers,
            "index": self.index,
            "documents": self.documents,
            "pages": self.pages,
            "requests": self.requests,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True)
class ExportPlan:
    """Validated inputs of an export, computed before anything is opened."""

    workers: int
    address: str
    index: str
    queries: tuple[Query, ...]


def parse_endpoint(source: str, all_indices: str = ALL_INDICES_ALIAS) -> tuple[str, str]:
    """Split a source URL into cluster address and index name.

    Only the scheme and host are checked; no connection is made.

    Args:
        source: URL such as http://localhost:9200/logs
        all_indices: Index used when the URL has no path

    Returns:
        (cluster_address, index_name)

    Raises:
        ConfigError: If the URL has no host or is not http(s)
    """
    try:
        parsed = urlparse(source)
        hostname = parsed.hostname
    except ValueError as e:
        raise ConfigError(f"Invalid cluster resource provided: {source}", cause=e) from e

    if parsed.scheme not in ("http", "https") or not hostname:
        raise ConfigError(f"Invalid cluster resource provided: {source}")

    index = parsed.path.lstrip("/") or all_indices
    address = f"{parsed.scheme}://{parsed.netloc}"

    return address, index


def resolve_worker_count(workers: int | None) -> int:
    """Explicit worker count, else the number of CPUs.

    Raises:
        ConfigError: If the count is below one
    """
    if workers is None:
        return os.cpu_count() or 1
    if workers < 1:
        raise ConfigError(f"Worker count must be at least 1, got {workers}")
    return workers


class ExportOrchestrator:
    """Runs a complete export of one index.

    All validation (endpoint, worker count, every worker's query) happens
    before the client is created or any session starts, so a bad argument
    never produces a request or partial output.
    """

    def __init__(
        self,
        config: ExportConfig,
        *,
        output: TextIO | None = None,
        diagnostics: TextIO | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Export configuration
            output: Document stream (default: stdout)
            diagnostics: Progress stream (default: stderr)
            transport: Custom httpx transport for the shared client
        """
        self.config = config
        self.output = output if output is not None else sys.stdout
        self.diagnostics = diagnostics if diagnostics is not None else sys.stderr
        self.transport = transport

        self.counter = ProgressCounter()
        self.sessions: list[ScrollSession] = []

    def prepare(self) -> ExportPlan:
        """Validate the configuration and build every worker's query.

        Performs no I/O, so callers can check the settings before opening
        the output.

        Raises:
            ConfigError: Invalid endpoint or worker count
            QueryError: Invalid filter or page size
        """
        workers = resolve_worker_count(self.config.workers)
        address, index = parse_endpoint(self.config.source, self.config.all_indices_alias)

        queries = tuple(
            build_query(self.config.query, self.config.size, worker_id, workers)
            for worker_id in range(workers)
        )

        return ExportPlan(workers=workers, address=address, index=index, queries=queries)

    async def run(self, plan: ExportPlan | None = None) -> ExportStats:
        """Execute the export.

        Args:
            plan: Result of prepare(); computed here when omitted

        Returns:
            ExportStats for a successful export

        Raises:
            ConfigError: Invalid endpoint, worker count or client setup
            QueryError: Invalid filter or page size
            ProtocolError: A session received a malformed response
            TransportError: A session's request failed
        """
        if plan is None:
            plan = self.prepare()

        workers, address, index = plan.workers, plan.address, plan.index

        stats = ExportStats(workers=workers, index=index)
        logger.info(f"Exporting '{index}' from {address} with {workers} workers")

        client = self._create_client(address, workers)
        try:
            sink = DocumentSink(self.output)
            self.sessions = [
                self._create_session(worker_id, workers, index, query, client, sink)
                for worker_id, query in enumerate(plan.queries)
            ]
            results = await self._run_sessions(self.sessions)
        finally:
            await client.close()

        stats.finished_at = _utcnow()
        stats.documents = self.counter.total
        stats.pages = sum(r.pages for r in results)
        stats.requests = sum(r.requests for r in results)

        logger.info(
            f"Export of '{index}' complete: {stats.documents} documents "
            f"in {stats.pages} pages"
        )
        return stats

    def _create_client(self, address: str, workers: int) -> SearchClient:
        """Create the client shared by every session."""
        return HttpSearchClient(
            address,
            timeout=self.config.timeout_seconds,
            max_connections=max(workers, 1),
            transport=self.transport,
        )

    def _create_session(
        self,
        worker_id: int,
        workers: int,
        index: str,
        query: Query,
        client: SearchClient,
        sink: DocumentSink,
    ) -> ScrollSession:
        return ScrollSession(
            worker_id=worker_id,
            worker_count=workers,
            index=index,
            query=query,
            client=client,
            sink=sink,
            counter=self.counter,
            diagnostics=self.diagnostics,
            scroll=self.config.scroll,
        )

    async def _run_sessions(self, sessions: list[ScrollSession]) -> list[WorkerState]:
        """Run all sessions concurrently and fail fast.

        The first failed session cancels the rest; its error is raised.
        Cancelling this coroutine cancels every session.
        """
        failures: list[BaseException] = []

        def record_failure(task: asyncio.Task[WorkerState]) -> None:
            if not task.cancelled() and task.exception() is not None:
                failures.append(task.exception())

        tasks = []
        for session in sessions:
            task = asyncio.create_task(
                session.run(),
                name=f"scroll-worker-{session.worker.worker_id}",
            )
            task.add_done_callback(record_failure)
            tasks.append(task)

        try:
            _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await _cancel_all(tasks)
            raise

        if failures:
            await _cancel_all(list(pending))
            if pending:
                logger.warning(f"Cancelled {len(pending)} running sessions after failure")
            if len(failures) > 1:
                logger.warning(f"{len(failures)} sessions failed, reporting the first")
            raise failures[0]

        return [task.result() for task in tasks]


async def _cancel_all(tasks: list[asyncio.Task[Any]]) -> None:
    """Cancel tasks and wait until they have all finished."""
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


async def run_export(
    config: ExportConfig,
    *,
    output: TextIO | None = None,
    diagnostics: TextIO | None = None,
) -> ExportStats:
    """Convenience function to run an export from a config.

    Args:
        config: Export configuration
        output: Document stream (default: stdout)
        diagnostics: Progress stream (default: stderr)

    Returns:
        ExportStats with execution statistics
    """
    orchestrator = ExportOrchestrator(config, output=output, diagnostics=diagnostics)
    return await orchestrator.run()
