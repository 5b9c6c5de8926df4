"""
Integration tests for the export orchestrator.

Tests:
- Endpoint parsing
- Worker fan-out over slices
- Validation before any request
- Fail-fast propagation
"""

import asyncio

import httpx
import orjson
import pytest

from conftest import FakeEngine, make_hit, read_records
from scrolldump.core.config import ExportConfig
from scrolldump.core.errors import ConfigError, ProtocolError, QueryError, TransportError
from scrolldump.core.export.orchestrator import (
    ExportOrchestrator,
    parse_endpoint,
    resolve_worker_count,
)
from scrolldump.core.export.session import SessionState


def make_orchestrator(engine, output, diagnostics, **settings):
    settings.setdefault("source", "http://localhost:9200/logs")
    config = ExportConfig(**settings)
    return ExportOrchestrator(
        config,
        output=output,
        diagnostics=diagnostics,
        transport=engine.transport,
    )


class TestParseEndpoint:
    """Tests for parse_endpoint."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("http://localhost:9200/logs", ("http://localhost:9200", "logs")),
            ("https://es.example.com/logs-2024", ("https://es.example.com", "logs-2024")),
            ("http://localhost:9200//logs", ("http://localhost:9200", "logs")),
            ("http://user:pw@localhost:9200/a,b", ("http://user:pw@localhost:9200", "a,b")),
        ],
    )
    def test_index_from_path(self, url, expected):
        """The path minus its leading slash is the index."""
        assert parse_endpoint(url) == expected

    @pytest.mark.parametrize("url", ["http://localhost:9200", "http://localhost:9200/"])
    def test_empty_path_uses_alias(self, url):
        """No path selects every index."""
        assert parse_endpoint(url) == ("http://localhost:9200", "_all")

    def test_custom_alias(self):
        """The all-indices alias is configurable."""
        assert parse_endpoint("http://localhost:9200", all_indices="*") == ("http://localhost:9200", "*")

    @pytest.mark.parametrize(
        "url",
        ["ftp://localhost/logs", "localhost:9200/logs", "/logs", "http:///logs", "", "httpx://host/logs"],
    )
    def test_invalid_endpoint(self, url):
        """Non-http schemes and missing hosts are rejected."""
        with pytest.raises(ConfigError):
            parse_endpoint(url)


class TestResolveWorkerCount:
    """Tests for resolve_worker_count."""

    def test_explicit(self):
        assert resolve_worker_count(3) == 3

    def test_default_is_cpu_count(self, monkeypatch):
        monkeypatch.setattr("os.cpu_count", lambda: 6)
        assert resolve_worker_count(None) == 6

    def test_unknown_cpu_count(self, monkeypatch):
        monkeypatch.setattr("os.cpu_count", lambda: None)
        assert resolve_worker_count(None) == 1

    def test_zero_rejected(self):
        with pytest.raises(ConfigError):
            resolve_worker_count(0)


class TestExportOrchestrator:
    """End-to-end exports against a fake engine."""

    async def test_two_workers(self, output, diagnostics):
        """Worker 0 has three docs over two pages, worker 1 none."""
        engine = FakeEngine({
            0: [[make_hit("d1"), make_hit("d2")], [make_hit("d3")]],
            1: [],
        })
        orchestrator = make_orchestrator(engine, output, diagnostics, workers=2, size=2)

        stats = await orchestrator.run()

        records = read_records(output)
        assert [r["_id"] for r in records] == ["d1", "d2", "d3"]
        assert all("sort" not in r and "_score" not in r for r in records)
        assert orchestrator.counter.total == 3
        assert stats.documents == 3
        assert stats.pages == 2
        assert stats.workers == 2
        assert stats.index == "logs"

        # worker 0: search + 2 scrolls, worker 1: search only
        searches = engine.requests_for("/logs/_search")
        assert len(searches) == 2
        assert len(engine.requests_for("/_search/scroll")) == 2
        slices = sorted(orjson.loads(r.content)["slice"]["id"] for r in searches)
        assert slices == [0, 1]
        assert all(r.url.params["scroll"] == "1m" for r in searches)

        assert sorted(diagnostics.getvalue().splitlines()) == sorted([
            "Fetched batch of 2, have now processed 2",
            "Fetched batch of 1, have now processed 3",
        ])

    async def test_single_worker_has_no_slice(self, output, diagnostics):
        """One worker scans the index without a slice clause."""
        engine = FakeEngine({0: [[make_hit("d1")]]})
        orchestrator = make_orchestrator(engine, output, diagnostics, workers=1)

        await orchestrator.run()

        body = orjson.loads(engine.requests_for("/logs/_search")[0].content)
        assert "slice" not in body
        assert body["size"] == 100

    async def test_counter_sums_all_workers(self, output, diagnostics):
        """The final count is the sum of every non-empty page."""
        engine = FakeEngine({
            0: [[make_hit("a1"), make_hit("a2")], [make_hit("a3")]],
            1: [[make_hit("b1")]],
            2: [[make_hit("c1"), make_hit("c2")], [make_hit("c3"), make_hit("c4")], [make_hit("c5")]],
        })
        orchestrator = make_orchestrator(engine, output, diagnostics, workers=3, size=2)

        stats = await orchestrator.run()

        assert stats.documents == 9
        assert orchestrator.counter.total == 9
        assert len(read_records(output)) == 9

        # per-worker order is preserved
        ids = [r["_id"] for r in read_records(output)]
        c_ids = [i for i in ids if i.startswith("c")]
        assert c_ids == ["c1", "c2", "c3", "c4", "c5"]

    async def test_default_index_alias(self, output, diagnostics):
        """A source without a path exports _all."""
        engine = FakeEngine({0: []})
        orchestrator = make_orchestrator(
            engine, output, diagnostics, source="http://localhost:9200", workers=1
        )

        await orchestrator.run()

        assert engine.requests[0].url.path == "/_all/_search"

    async def test_custom_filter_and_scroll(self, output, diagnostics):
        """Filter and scroll window reach the wire."""
        engine = FakeEngine({0: [[make_hit("d1")]]})
        orchestrator = make_orchestrator(
            engine, output, diagnostics,
            workers=1, query='{"term": {"level": "error"}}', scroll="5m",
        )

        await orchestrator.run()

        first = engine.requests[0]
        assert orjson.loads(first.content)["query"] == {"term": {"level": "error"}}
        assert first.url.params["scroll"] == "5m"
        assert orjson.loads(engine.requests[1].content) == {"scroll": "5m", "scroll_id": "0:1"}


class TestExportValidation:
    """Invalid settings fail before any request."""

    async def test_invalid_filter(self, output, diagnostics):
        engine = FakeEngine({0: [[make_hit("d1")]]})
        orchestrator = make_orchestrator(engine, output, diagnostics, workers=2, query="{nope")

        with pytest.raises(QueryError):
            await orchestrator.run()

        assert engine.requests == []
        assert output.getvalue() == ""
        assert orchestrator.sessions == []

    async def test_invalid_endpoint(self, output, diagnostics):
        engine = FakeEngine({0: []})
        orchestrator = make_orchestrator(engine, output, diagnostics, source="ftp://localhost/logs")

        with pytest.raises(ConfigError):
            await orchestrator.run()

        assert engine.requests == []

    def test_prepare_builds_every_query(self, output, diagnostics):
        """prepare() validates and builds queries without any request."""
        engine = FakeEngine({})
        orchestrator = make_orchestrator(engine, output, diagnostics, workers=3, size=5)

        plan = orchestrator.prepare()

        assert plan.workers == 3
        assert plan.address == "http://localhost:9200"
        assert plan.index == "logs"
        assert [q.slice.id for q in plan.queries] == [0, 1, 2]
        assert all(q.size == 5 for q in plan.queries)
        assert engine.requests == []

    async def test_run_with_prepared_plan(self, output, diagnostics):
        engine = FakeEngine({0: [[make_hit("d1")]]})
        orchestrator = make_orchestrator(engine, output, diagnostics, workers=1)

        stats = await orchestrator.run(orchestrator.prepare())

        assert stats.documents == 1
        assert [r["_id"] for r in read_records(output)] == ["d1"]


class TestExportFailures:
    """Fail-fast behaviour when a session fails."""

    async def test_failure_is_reported(self, output, diagnostics):
        """A failed page fails the whole export."""
        engine = FakeEngine(
            {0: [[make_hit("d1")], [make_hit("d2")]]},
            errors={(0, 1): httpx.Response(500, json={"error": "boom"})},
        )
        orchestrator = make_orchestrator(engine, output, diagnostics, workers=1)

        with pytest.raises(TransportError) as exc_info:
            await orchestrator.run()

        assert exc_info.value.status_code == 500
        assert exc_info.value.worker_id == 0
        # documents already written stay written
        assert [r["_id"] for r in read_records(output)] == ["d1"]

    async def test_siblings_are_cancelled(self, output, diagnostics):
        """The first failure cancels sessions still in flight."""
        engine = FakeEngine(
            {0: [[make_hit("d1")]], 1: []},
            errors={(1, 0): httpx.Response(503, text="unavailable")},
            block={0},
        )
        orchestrator = make_orchestrator(engine, output, diagnostics, workers=2)

        with pytest.raises(TransportError) as exc_info:
            await asyncio.wait_for(orchestrator.run(), timeout=5)

        assert exc_info.value.worker_id == 1
        blocked = orchestrator.sessions[0].worker
        assert not blocked.done
        assert blocked.state is SessionState.TERMINATED
        assert output.getvalue() == ""

    async def test_protocol_error(self, output, diagnostics):
        """A malformed response fails the export with ProtocolError."""
        engine = FakeEngine(
            {0: []},
            errors={(0, 0): httpx.Response(200, json={"_scroll_id": "x"})},
        )
        orchestrator = make_orchestrator(engine, output, diagnostics, workers=1)

        with pytest.raises(ProtocolError):
            await orchestrator.run()

    async def test_cancellation_stops_all_sessions(self, output, diagnostics):
        """Cancelling the export cancels every session."""
        engine = FakeEngine({0: [], 1: []}, block={0, 1})
        orchestrator = make_orchestrator(engine, output, diagnostics, workers=2)

        task = asyncio.create_task(orchestrator.run())
        while len(engine.requests) < 2:
            await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert all(not s.worker.done for s in orchestrator.sessions)
        assert all(s.state is SessionState.TERMINATED for s in orchestrator.sessions)
        assert len(engine.requests) == 2
