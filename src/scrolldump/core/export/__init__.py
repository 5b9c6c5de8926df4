"""Export engine - sliced scroll sessions, output and coordination."""

from .orchestrator import (
    ExportOrchestrator,
    ExportPlan,
    ExportStats,
    parse_endpoint,
    resolve_worker_count,
    run_export,
)
from .progress import ProgressCounter
from .query import Query, SliceSpec, build_query
from .session import ScrollSession, SessionState, WorkerState
from .sink import DocumentSink, TRANSIENT_FIELDS

__all__ = [
    # Orchestration
    "ExportOrchestrator",
    "ExportPlan",
    "ExportStats",
    "parse_endpoint",
    "resolve_worker_count",
    "run_export",
    # Sessions
    "ScrollSession",
    "SessionState",
    "WorkerState",
    # Building blocks
    "Query",
    "SliceSpec",
    "build_query",
    "DocumentSink",
    "TRANSIENT_FIELDS",
    "ProgressCounter",
]
