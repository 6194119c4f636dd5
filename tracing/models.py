"""
Span model for workflow traces.

One Workflow.execute() produces one trace:

  workflow_run  workflow.<name>
  ├── workflow_step  workflow_step.<a>
  └── workflow_step  workflow_step.<b>

Steps of the same batch are siblings; their parent is always the run span.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


def _now() -> str:
    return datetime.now().isoformat()


class SpanType(str, Enum):
    WORKFLOW_RUN = "workflow_run"
    WORKFLOW_STEP = "workflow_step"


class SpanStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class TraceSpan:
    """A timed run or step, linked to its trace and parent."""
    span_type: SpanType
    name: str
    trace_id: str
    parent_id: str | None = None
    workflow: str | None = None
    id: str = field(default_factory=_new_id)

    started_at: str = field(default_factory=_now)
    ended_at: str | None = None
    duration_ms: float = 0.0
    status: SpanStatus = SpanStatus.PENDING
    error: str | None = None

    input_data: dict = field(default_factory=dict)
    output_data: dict = field(default_factory=dict)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def close(
        self,
        status: SpanStatus,
        error: str | None = None,
        output_data: dict | None = None,
    ) -> None:
        """Stamp the end time and outcome."""
        self.ended_at = _now()
        self.status = status
        delta = datetime.fromisoformat(self.ended_at) - datetime.fromisoformat(self.started_at)
        self.duration_ms = delta.total_seconds() * 1000
        if error is not None:
            self.error = error
        if output_data is not None:
            self.output_data = output_data
