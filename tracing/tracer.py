"""
Tracer: opens and closes spans and hands closed spans to the store.

    tracer = Tracer(TraceStore("traces.db"))
    run = tracer.start_span(SpanType.WORKFLOW_RUN, "workflow.content", workflow="content")
    with tracer.span(SpanType.WORKFLOW_STEP, "workflow_step.research") as step:
        step.output_data = {"chars": 1200}
    tracer.end_span(run)

The open-span stack lives in a ContextVar. asyncio copies the context into
every task it creates, so steps gathered under a run span each see the run
as their parent and never see one another.
"""
import contextvars
import uuid
from contextlib import contextmanager

from tracing.models import TraceSpan, SpanType, SpanStatus
from tracing.store import TraceStore

_open_spans: contextvars.ContextVar[tuple[TraceSpan, ...]] = contextvars.ContextVar(
    "open_spans", default=()
)


class Tracer:
    def __init__(self, store: TraceStore | None = None):
        self._store = store or TraceStore()

    @property
    def store(self) -> TraceStore:
        return self._store

    @property
    def current_span(self) -> TraceSpan | None:
        stack = _open_spans.get()
        return stack[-1] if stack else None

    def start_span(
        self,
        span_type: SpanType,
        name: str,
        *,
        workflow: str | None = None,
        input_data: dict | None = None,
    ) -> TraceSpan:
        """Open a span under the current one, or as the root of a new trace."""
        parent = self.current_span
        span = TraceSpan(
            span_type=span_type,
            name=name,
            trace_id=parent.trace_id if parent else uuid.uuid4().hex[:16],
            parent_id=parent.id if parent else None,
            workflow=workflow or (parent.workflow if parent else None),
            input_data=input_data or {},
        )
        _open_spans.set(_open_spans.get() + (span,))
        return span

    def end_span(
        self,
        span: TraceSpan,
        *,
        status: SpanStatus = SpanStatus.SUCCESS,
        error: str | None = None,
        output_data: dict | None = None,
    ) -> None:
        """Close a span (and anything left open above it) and persist it."""
        span.close(status, error, output_data)
        stack = _open_spans.get()
        if span in stack:
            _open_spans.set(stack[:stack.index(span)])
        self._store.save(span)

    @contextmanager
    def span(
        self,
        span_type: SpanType,
        name: str,
        *,
        workflow: str | None = None,
        input_data: dict | None = None,
    ):
        """Yield an open span; it ends as SUCCESS, or ERROR if the block raises."""
        s = self.start_span(span_type, name, workflow=workflow, input_data=input_data)
        try:
            yield s
        except Exception as exc:
            self.end_span(s, status=SpanStatus.ERROR, error=str(exc))
            raise
        self.end_span(s, output_data=s.output_data)
