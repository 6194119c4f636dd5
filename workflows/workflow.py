"""Workflow facade: build a step graph, then execute it."""

import asyncio
import logging
import os
import time
from typing import Any, Iterable

from core.errors import GraphError, StructuralError, WorkflowError
from workflows.engine import WorkflowEngine
from workflows.graph import DependencyGraph
from workflows.models import (
    FunctionErrorPolicy, LogEntry, StepError, StepStatus, WorkflowResult
)
from workflows.steps import WorkflowStep
from tracing.monitor import Monitor


def _env_number(name: str, cast: type, default: Any) -> Any:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise WorkflowError(f"Environment variable {name}={raw!r} is not a valid {cast.__name__}")


class Workflow:
    """
    A named set of steps plus the dependencies between them.

    Usage:
        wf = Workflow("content")
        wf.add_step("research", AgentStep("Research", "Research {topic}", agent=researcher))
        wf.add_step("outline", FunctionStep("Outline", make_outline))
        wf.add_dependency("outline", "research")
        result = await wf.execute({"topic": "solar power"})

    The workflow keeps no state between executions; each call to execute()
    works on its own run.
    """

    def __init__(
        self,
        name: str,
        description: str = "",
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        monitor: Monitor | None = None,
        *,
        max_parallel_steps: int | None = None,
        default_timeout: float | None = None,
        function_errors: FunctionErrorPolicy = FunctionErrorPolicy.RECORD_OUTPUT,
    ):
        self.name = name
        self.description = description
        self.logger = logger or logging.getLogger(__name__)
        self.monitor = monitor
        self.function_errors = function_errors
        self._steps: dict[str, WorkflowStep] = {}
        self._graph = DependencyGraph()

        self._max_parallel_steps = 1
        self.set_max_parallel_steps(
            max_parallel_steps
            if max_parallel_steps is not None
            else _env_number("WORKFLOW_MAX_PARALLEL_STEPS", int, 1)
        )
        self.default_timeout = (
            default_timeout
            if default_timeout is not None
            else _env_number("WORKFLOW_STEP_TIMEOUT", float, None)
        )
        if self.default_timeout is not None and self.default_timeout <= 0:
            raise WorkflowError("Default step timeout must be positive", self.name)

    # ── construction ───────────────────────────────────────────────
    def add_step(self, step_id: str, step: WorkflowStep) -> "Workflow":
        """Add a step under a unique id."""
        if step_id in self._steps:
            raise GraphError(f"Step with ID '{step_id}' already exists in workflow", self.name)
        self._graph.add_node(step_id)
        self._steps[step_id] = step
        self.logger.debug(
            f"Added step '{step_id}' to workflow",
            extra={"workflow": self.name, "step_name": step.name},
        )
        return self

    def add_dependency(self, step_id: str, depends_on_id: str) -> "Workflow":
        """Make step_id wait for depends_on_id."""
        self._graph.add_dependency(step_id, depends_on_id)
        self.logger.debug(
            f"Added dependency: '{step_id}' depends on '{depends_on_id}'",
            extra={"workflow": self.name},
        )
        return self

    def set_dependencies(self, step_id: str, depends_on_ids: Iterable[str]) -> "Workflow":
        """Replace all dependencies of step_id; nothing changes if any is invalid."""
        depends_on_ids = list(depends_on_ids)
        self._graph.set_dependencies(step_id, depends_on_ids)
        self.logger.debug(
            f"Set dependencies of '{step_id}': {depends_on_ids}",
            extra={"workflow": self.name},
        )
        return self

    def set_max_parallel_steps(self, width: int) -> "Workflow":
        if width < 1:
            raise WorkflowError("Maximum parallel steps must be at least 1", self.name)
        self._max_parallel_steps = width
        return self

    # ── inspection ─────────────────────────────────────────────────
    @property
    def max_parallel_steps(self) -> int:
        return self._max_parallel_steps

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    def get_steps(self) -> dict[str, WorkflowStep]:
        return dict(self._steps)

    def get_step(self, step_id: str) -> WorkflowStep | None:
        return self._steps.get(step_id)

    def get_dependencies(self, step_id: str) -> tuple[str, ...]:
        return self._graph.get_dependencies(step_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "max_parallel_steps": self._max_parallel_steps,
            "function_errors": self.function_errors.value,
            "steps": {
                step_id: {
                    "type": step.step_type.value,
                    "name": step.name,
                    "required": step.required,
                    "timeout": step.timeout,
                    "depends_on": list(self._graph.get_dependencies(step_id)),
                }
                for step_id, step in self._steps.items()
            },
        }

    # ── execution ──────────────────────────────────────────────────
    def validate(self) -> None:
        """Raise StructuralError if the workflow cannot run."""
        if not self._steps:
            raise StructuralError("Workflow has no steps", self.name)
        if set(self._steps) != set(self._graph.nodes):
            raise StructuralError("Step table and dependency graph disagree", self.name)
        try:
            self._graph.topological_order()
        except GraphError as e:
            raise StructuralError(str(e), self.name) from e

    async def execute(
        self,
        initial_input: dict[str, Any] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkflowResult:
        """
        Run the workflow.

        Step failures never raise; they end up in the result. A structurally
        broken workflow comes back as a failed result with a single
        "workflow" error.
        """
        inputs = dict(initial_input or {})
        started = time.monotonic()

        process_id = None
        if self.monitor:
            process_id = self.monitor.begin_process(f"workflow.{self.name}", {
                "workflow": self.name,
                "steps_count": len(self._steps),
            })
        self.logger.info(
            f"Starting workflow '{self.name}'",
            extra={"workflow": self.name, "steps_count": len(self._steps), "input_keys": list(inputs)},
        )

        try:
            self.validate()
            engine = WorkflowEngine(
                self.name,
                dict(self._steps),
                self._graph,
                self._max_parallel_steps,
                default_timeout=self.default_timeout,
                function_errors=self.function_errors,
                logger=self.logger,
                monitor=self.monitor,
            )
            result = await engine.run(inputs, cancel_event)

        except StructuralError as e:
            elapsed = time.monotonic() - started
            if self.monitor and process_id:
                self.monitor.fail_process(process_id, str(e), {
                    "execution_time": elapsed,
                    "exception": type(e).__name__,
                })
            self.logger.error(
                f"Workflow '{self.name}' failed: {e}",
                extra={"workflow": self.name, "execution_time": elapsed},
            )
            return self._failed_result(e, elapsed)

        except BaseException as e:
            if self.monitor and process_id:
                self.monitor.fail_process(process_id, str(e) or type(e).__name__, {
                    "exception": type(e).__name__,
                })
            raise

        if self.monitor and process_id:
            self.monitor.end_process(process_id, {
                "execution_time": result.execution_time,
                "success": result.success,
                "errors": result.errors,
                "cancelled": result.cancelled,
            })
        status = "successfully" if result.success else "with errors"
        self.logger.info(
            f"Workflow '{self.name}' completed {status} in {result.execution_time:.3f}s",
            extra={
                "workflow": self.name,
                "success": result.success,
                "execution_time": result.execution_time,
                "errors_count": len(result.step_errors),
            },
        )
        return result

    def run_sync(self, initial_input: dict[str, Any] | None = None) -> WorkflowResult:
        """Blocking wrapper around execute() for scripts."""
        return asyncio.run(self.execute(initial_input))

    def _failed_result(self, error: StructuralError, elapsed: float) -> WorkflowResult:
        message = f"Workflow execution failed: {error}"
        return WorkflowResult(
            success=False,
            output={},
            execution_time=elapsed,
            step_results={},
            step_errors={"workflow": StepError("workflow", str(error), type(error).__name__)},
            completed_steps=(),
            skipped_steps={step_id: message for step_id in self._steps},
            execution_log=(LogEntry("workflow", StepStatus.FAILED, error=message),),
        )

    def __repr__(self) -> str:
        return f"Workflow(name={self.name!r}, steps={len(self._steps)})"
