"""Workflow engine for DAG execution.

The engine turns a dependency graph into a sequence of batches:

  ready  = steps without dependencies
  loop   : take up to `max_parallel_steps` ready steps, run them together,
           wait for the whole batch, then promote every step whose
           dependencies have all completed
  finish : whatever was never reached is marked skipped

A failing required step skips all of its transitive dependents. A failing
optional step is still "completed", so its dependents run normally.
"""

import asyncio
import copy
import logging
import time
import uuid
from typing import Any, Mapping

from core.errors import StepExecutionError
from workflows.graph import DependencyGraph
from workflows.models import (
    FunctionErrorPolicy, LogEntry, StepError, StepStatus, StepType, WorkflowResult
)
from workflows.steps import WorkflowStep, is_error_output
from tracing.monitor import Monitor

SKIP_DEPENDENCY_FAILED = "Depends on failed step {step_id}"
SKIP_UNREACHABLE = "Unreachable due to dependency graph"
SKIP_CANCELLED = "Workflow cancelled"


class _RaisedTimeout(Exception):
    """A TimeoutError raised by the step itself, not by its time limit."""

    def __init__(self, original: BaseException):
        super().__init__(str(original))
        self.original = original


class WorkflowRun:
    """
    Accumulators of a single execution.

    Steps of one batch finish concurrently; every write goes through
    `_lock` so a step's result, error, log entry and skip cascade land
    together or not at all.
    """

    def __init__(self, workflow: str):
        self.id = str(uuid.uuid4())[:8]
        self.workflow = workflow
        self.step_results: dict[str, dict[str, Any]] = {}
        self.step_errors: dict[str, StepError] = {}
        self.completed_steps: list[str] = []
        self.skipped_steps: dict[str, str] = {}
        self.execution_log: list[LogEntry] = []
        self.cancelled = False
        self._completed: set[str] = set()
        self._lock = asyncio.Lock()

    def is_resolved(self, step_id: str) -> bool:
        return step_id in self._completed or step_id in self.skipped_steps

    def is_completed(self, step_id: str) -> bool:
        return step_id in self._completed

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Deep copy of the results so far, handed to one step as prior outputs."""
        return copy.deepcopy(self.step_results)

    async def log(self, entry: LogEntry) -> None:
        async with self._lock:
            self.execution_log.append(entry)

    async def record_success(self, step_id: str, output: dict[str, Any]) -> None:
        async with self._lock:
            self.step_results[step_id] = copy.deepcopy(output)
            self._complete(step_id)
            self.execution_log.append(
                LogEntry(step_id, StepStatus.COMPLETED, result=output)
            )

    async def record_failure(self, error: StepError, dependents: list[str] | None = None) -> list[str]:
        """Record a failed step and skip `dependents`. Returns the ids newly skipped."""
        async with self._lock:
            self.step_errors[error.step_id] = error
            self._complete(error.step_id)
            self.execution_log.append(
                LogEntry(error.step_id, StepStatus.FAILED, error=error.message)
            )
            reason = SKIP_DEPENDENCY_FAILED.format(step_id=error.step_id)
            return [s for s in dependents or [] if self._skip(s, reason)]

    async def skip(self, step_id: str, reason: str) -> bool:
        async with self._lock:
            return self._skip(step_id, reason)

    def _complete(self, step_id: str) -> None:
        if step_id not in self._completed:
            self._completed.add(step_id)
            self.completed_steps.append(step_id)

    def _skip(self, step_id: str, reason: str) -> bool:
        if self.is_resolved(step_id):
            return False
        self.skipped_steps[step_id] = reason
        self.execution_log.append(LogEntry(step_id, StepStatus.SKIPPED, error=reason))
        return True


class WorkflowEngine:
    """Executes one workflow's steps over its dependency graph."""

    def __init__(
        self,
        name: str,
        steps: Mapping[str, WorkflowStep],
        graph: DependencyGraph,
        max_parallel_steps: int = 1,
        *,
        default_timeout: float | None = None,
        function_errors: FunctionErrorPolicy = FunctionErrorPolicy.RECORD_OUTPUT,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        monitor: Monitor | None = None,
    ):
        self.name = name
        self.steps = steps
        self.graph = graph
        self.max_parallel_steps = max_parallel_steps
        self.default_timeout = default_timeout
        self.function_errors = function_errors
        self.logger = logger or logging.getLogger(__name__)
        self.monitor = monitor

    async def run(
        self,
        inputs: dict[str, Any],
        cancel_event: asyncio.Event | None = None,
    ) -> WorkflowResult:
        """Execute every reachable step and build the result."""
        started = time.monotonic()
        run = WorkflowRun(self.name)

        ready = self.graph.roots()
        queued = set(ready)

        while ready:
            if cancel_event is not None and cancel_event.is_set():
                run.cancelled = True
                self.logger.warning(
                    f"Workflow '{self.name}' cancelled, {len(ready)} ready step(s) not started",
                    extra={"workflow": self.name, "run_id": run.id},
                )
                break

            batch = [s for s in ready[:self.max_parallel_steps] if not run.is_resolved(s)]
            ready = ready[self.max_parallel_steps:]

            # Each step of the batch gets its own copy
            await asyncio.gather(*(
                self._execute_step(run, step_id, inputs, run.snapshot())
                for step_id in batch
            ))

            for step_id in self.graph.nodes:
                if step_id in queued or run.is_resolved(step_id):
                    continue
                deps = self.graph.get_dependencies(step_id)
                if all(run.is_completed(d) for d in deps):
                    ready.append(step_id)
                    queued.add(step_id)

        # Without cancellation the failure cascade has already resolved every
        # step of an acyclic graph; anything left still gets a reason.
        reason = SKIP_CANCELLED if run.cancelled else SKIP_UNREACHABLE
        for step_id in self.graph.nodes:
            if await run.skip(step_id, reason):
                self.logger.warning(
                    f"Skipping workflow step '{step_id}': {reason}",
                    extra={"workflow": self.name, "step_id": step_id},
                )

        return WorkflowResult(
            success=self._is_successful(run),
            output=self.aggregate_output(run.step_results),
            execution_time=time.monotonic() - started,
            step_results=run.step_results,
            step_errors=run.step_errors,
            completed_steps=tuple(run.completed_steps),
            skipped_steps=run.skipped_steps,
            execution_log=tuple(run.execution_log),
            cancelled=run.cancelled,
        )

    async def _execute_step(
        self,
        run: WorkflowRun,
        step_id: str,
        inputs: dict[str, Any],
        prior_outputs: dict[str, dict[str, Any]],
    ) -> None:
        step = self.steps[step_id]
        timeout = step.timeout or self.default_timeout
        await run.log(LogEntry(step_id, StepStatus.STARTING))

        timer_id = None
        if self.monitor:
            timer_id = self.monitor.start_timer(f"workflow_step.{step_id}", {
                "workflow": self.name,
                "step": step_id,
            })
        self.logger.info(
            f"Executing workflow step '{step_id}'",
            extra={"workflow": self.name, "step_id": step_id, "step_name": step.name},
        )

        try:
            step_input = self.prepare_step_input(step, inputs)
            if timeout:
                output = await asyncio.wait_for(
                    self._call_step(step, step_input, prior_outputs), timeout
                )
            else:
                output = await self._call_step(step, step_input, prior_outputs)
            error = self._output_error(step_id, step, output)

        except asyncio.TimeoutError:
            # Only wait_for gets here; a step's own TimeoutError is wrapped
            error = StepError(step_id, f"Step {step_id} failed: timed out after {timeout}s", "TimeoutError")
        except _RaisedTimeout as e:
            original = e.original
            error = StepError(
                step_id, f"Step {step_id} failed: {str(original) or 'timed out'}", type(original).__name__
            )
        except Exception as e:
            error = StepError(step_id, f"Step {step_id} failed: {e}", type(e).__name__)

        if error is None:
            await run.record_success(step_id, output)
            if self.monitor and timer_id:
                self.monitor.stop_timer(timer_id, {"success": True})
            self.logger.info(
                f"Workflow step '{step_id}' completed successfully",
                extra={"workflow": self.name, "step_id": step_id, "step_name": step.name},
            )
            return

        dependents = self.graph.dependents(step_id) if step.required else []
        skipped = await run.record_failure(error, dependents)
        if self.monitor and timer_id:
            self.monitor.stop_timer(timer_id, {"success": False, "error": error.message})
        self.logger.error(
            f"Workflow step '{step_id}' failed: {error.message}",
            extra={"workflow": self.name, "step_id": step_id, "error_type": error.error_type},
        )
        for dependent in skipped:
            self.logger.warning(
                f"Skipping workflow step '{dependent}' due to dependency failure",
                extra={"workflow": self.name, "step_id": dependent, "failed_dependency": step_id},
            )

    @staticmethod
    async def _call_step(
        step: WorkflowStep,
        step_input: dict[str, Any],
        prior_outputs: dict[str, dict[str, Any]],
    ) -> Any:
        try:
            return await step.execute(step_input, prior_outputs)
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise _RaisedTimeout(e) from e

    def _output_error(self, step_id: str, step: WorkflowStep, output: Any) -> StepError | None:
        """Return a StepError if the output itself counts as a failure."""
        if not isinstance(output, dict):
            return StepError(
                step_id,
                f"Step {step_id} failed: returned {type(output).__name__} instead of a dict",
            )

        if step.step_type is StepType.FUNCTION:
            if self.function_errors is FunctionErrorPolicy.FAIL_STEP and is_error_output(output):
                return StepError(
                    step_id, f"Step {step_id} failed: {output['error']}", output["error_type"]
                )
        elif step.step_type is not StepType.AGENT:
            raise StepExecutionError(step_id, f"unsupported step type {step.step_type!r}")
        return None

    @staticmethod
    def prepare_step_input(step: WorkflowStep, inputs: dict[str, Any]) -> dict[str, Any]:
        """Rename mapped workflow fields, pass every unmapped field through."""
        step_input: dict[str, Any] = {}
        for workflow_key, step_key in step.input_mapping.items():
            if workflow_key in inputs:
                step_input[step_key] = inputs[workflow_key]

        for key, value in inputs.items():
            if key in step.input_mapping or key in step_input:
                continue
            step_input[key] = value
        return step_input

    def aggregate_output(self, step_results: dict[str, dict[str, Any]]) -> dict[str, Any]:
        """
        Build the workflow output from step results, in step order.

        Mapped steps contribute only their mapped fields; a step without an
        output mapping is nested whole under its own id.
        """
        output: dict[str, Any] = {}
        for step_id, step in self.steps.items():
            if step_id not in step_results:
                continue
            result = step_results[step_id]
            if step.output_mapping:
                for step_key, workflow_key in step.output_mapping.items():
                    if step_key in result:
                        output[workflow_key] = result[step_key]
            else:
                output[step_id] = copy.deepcopy(result)
        return output

    def _is_successful(self, run: WorkflowRun) -> bool:
        for step_id in list(run.step_errors) + list(run.skipped_steps):
            if self.steps[step_id].required:
                return False
        return True

