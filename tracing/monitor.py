"""
Monitor: process and timer bookkeeping for workflows.

A Workflow reports to any Monitor it is given:
  begin_process("workflow.<name>")  → handle   ... end_process / fail_process
  start_timer("workflow_step.<id>") → handle   ... stop_timer

Handles are opaque strings. TraceMonitor backs both with tracer spans, so a
run shows up in the trace store as one workflow_run span with one
workflow_step child per executed step.
"""
import time
from abc import ABC, abstractmethod
from typing import Any

from tracing.models import SpanType, SpanStatus, TraceSpan
from tracing.tracer import Tracer


class Monitor(ABC):
    """Contract consumed by Workflow."""

    @abstractmethod
    def begin_process(self, process_name: str, context: dict[str, Any] | None = None) -> str:
        ...

    @abstractmethod
    def end_process(self, process_id: str, context: dict[str, Any] | None = None) -> None:
        ...

    @abstractmethod
    def fail_process(self, process_id: str, reason: str, context: dict[str, Any] | None = None) -> None:
        ...

    @abstractmethod
    def start_timer(self, operation: str, context: dict[str, Any] | None = None) -> str:
        ...

    @abstractmethod
    def stop_timer(self, timer_id: str, context: dict[str, Any] | None = None) -> float:
        """Stop a timer and return the elapsed seconds."""
        ...


class TraceMonitor(Monitor):
    """Monitor that records processes and timers as trace spans."""

    def __init__(self, tracer: Tracer | None = None):
        self.tracer = tracer or Tracer()
        self._open: dict[str, tuple[TraceSpan, float]] = {}

    def _start(self, span_type: SpanType, name: str, context: dict | None) -> str:
        context = dict(context or {})
        span = self.tracer.start_span(
            span_type, name, workflow=context.get("workflow"), input_data=context
        )
        self._open[span.id] = (span, time.monotonic())
        return span.id

    def _finish(
        self,
        handle: str,
        status: SpanStatus,
        context: dict | None,
        error: str | None = None,
    ) -> float:
        if handle not in self._open:
            raise KeyError(f"Unknown monitor handle: {handle}")
        span, t0 = self._open.pop(handle)
        elapsed = time.monotonic() - t0
        self.tracer.end_span(span, status=status, error=error, output_data=dict(context or {}))
        return elapsed

    def begin_process(self, process_name, context=None):
        return self._start(SpanType.WORKFLOW_RUN, process_name, context)

    def end_process(self, process_id, context=None):
        context = context or {}
        status = SpanStatus.SUCCESS if context.get("success", True) else SpanStatus.ERROR
        self._finish(process_id, status, context)

    def fail_process(self, process_id, reason, context=None):
        self._finish(process_id, SpanStatus.ERROR, context, error=reason)

    def start_timer(self, operation, context=None):
        return self._start(SpanType.WORKFLOW_STEP, operation, context)

    def stop_timer(self, timer_id, context=None):
        context = context or {}
        if context.get("success", True):
            return self._finish(timer_id, SpanStatus.SUCCESS, context)
        return self._finish(timer_id, SpanStatus.ERROR, context, error=context.get("error"))

    @property
    def open_handles(self) -> list[str]:
        return list(self._open)
