"""Workflow data models."""

import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class StepType(Enum):
    """Closed set of step variants the engine knows how to run."""
    AGENT = "agent"         # Delegate a task to an agent
    FUNCTION = "function"   # Call a plain function


class StepStatus(Enum):
    """Status recorded in the execution log."""
    STARTING = "starting"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class FunctionErrorPolicy(Enum):
    """How the engine treats an error-shaped output of a function step."""
    RECORD_OUTPUT = "record_output"  # keep it as a normal result
    FAIL_STEP = "fail_step"          # treat it as a step failure


@dataclass(frozen=True)
class StepError:
    """Structured failure of a single step."""
    step_id: str
    message: str
    error_type: str = "StepExecutionError"

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, str]:
        return {"step": self.step_id, "message": self.message, "error_type": self.error_type}


@dataclass(frozen=True)
class LogEntry:
    """One line of the ordered execution log."""
    step_id: str
    status: StepStatus
    timestamp: float = field(default_factory=time.time)
    error: str | None = None
    result: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "time": self.timestamp,
            "step": self.step_id,
            "status": self.status.value,
        }
        if self.error is not None:
            entry["error"] = self.error
        if self.result is not None:
            entry["result"] = self.result
        return entry


@dataclass(frozen=True)
class WorkflowResult:
    """Immutable outcome of one workflow execution."""
    success: bool
    output: Mapping[str, Any]
    execution_time: float
    step_results: Mapping[str, dict[str, Any]]
    step_errors: Mapping[str, StepError]
    completed_steps: tuple[str, ...]
    skipped_steps: Mapping[str, str]  # step id -> reason
    execution_log: tuple[LogEntry, ...]
    cancelled: bool = False

    def __post_init__(self):
        # Freeze the mappings so callers cannot edit a finished run
        for name in ("output", "step_results", "step_errors", "skipped_steps"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))
        object.__setattr__(self, "completed_steps", tuple(self.completed_steps))
        object.__setattr__(self, "execution_log", tuple(self.execution_log))

    def is_successful(self) -> bool:
        return self.success

    @property
    def errors(self) -> dict[str, str]:
        """Error messages keyed by step id."""
        return {step_id: err.message for step_id, err in self.step_errors.items()}

    def get_step_result(self, step_id: str) -> dict[str, Any] | None:
        return self.step_results.get(step_id)

    def get_output_value(self, key: str, default: Any = None) -> Any:
        return self.output.get(key, default)

    def is_step_successful(self, step_id: str) -> bool:
        """True if the step ran and did not fail."""
        return step_id in self.completed_steps and step_id not in self.step_errors

    def summary(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "execution_time": self.execution_time,
            "steps_completed": len(self.completed_steps),
            "steps_skipped": len(self.skipped_steps),
            "errors_count": len(self.step_errors),
            "output_keys": list(self.output),
            "cancelled": self.cancelled,
        }

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view, suitable for json.dumps(default=str)."""
        return {
            "success": self.success,
            "output": dict(self.output),
            "execution_time": self.execution_time,
            "step_results": dict(self.step_results),
            "errors": self.errors,
            "completed_steps": list(self.completed_steps),
            "skipped_steps": dict(self.skipped_steps),
            "execution_log": [entry.to_dict() for entry in self.execution_log],
            "cancelled": self.cancelled,
        }
