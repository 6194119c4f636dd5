"""Span tracing with SQLite persistence."""

from tracing.models import SpanStatus, SpanType, TraceSpan
from tracing.store import TraceStore
from tracing.tracer import Tracer
from tracing.monitor import Monitor, TraceMonitor

__all__ = [
    "SpanStatus",
    "SpanType",
    "TraceSpan",
    "TraceStore",
    "Tracer",
    "Monitor",
    "TraceMonitor",
]
