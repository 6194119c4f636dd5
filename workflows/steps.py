"""Workflow steps: the units of work a workflow schedules."""

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, ClassVar

from core.agent import Agent
from core.errors import StepExecutionError
from workflows.models import StepType

StepFunction = Callable[[dict[str, Any], dict[str, Any]], Any | Awaitable[Any]]

SCALAR_TYPES = (str, int, float, bool)


class WorkflowStep(ABC):
    """
    Base class for all steps.

    A step receives its resolved input (workflow input after input_mapping)
    plus the outputs of every step that finished before its batch started,
    and returns a dict of output fields.
    """

    step_type: ClassVar[StepType]

    def __init__(
        self,
        name: str,
        description: str = "",
        *,
        required: bool = True,
        timeout: float | None = None,
        input_mapping: dict[str, str] | None = None,
        output_mapping: dict[str, str] | None = None,
    ):
        if timeout is not None and timeout <= 0:
            raise ValueError(f"Step timeout must be positive, got {timeout}")
        self.name = name
        self.description = description
        self.required = required
        self.timeout = timeout
        self.input_mapping = dict(input_mapping or {})    # workflow field -> step field
        self.output_mapping = dict(output_mapping or {})  # step field -> workflow field

    @abstractmethod
    async def execute(
        self,
        inputs: dict[str, Any],
        prior_outputs: dict[str, dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Run the step and return its output fields."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, required={self.required})"


class AgentStep(WorkflowStep):
    """Delegates an interpolated task to an agent."""

    step_type = StepType.AGENT

    def __init__(
        self,
        name: str,
        task: str,
        description: str = "",
        agent: Agent | None = None,
        **options: Any,
    ):
        super().__init__(name, description, **options)
        self.task = task
        self.agent = agent

    def interpolate_task(self, inputs: dict[str, Any]) -> str:
        """Replace {field} tokens with scalar input values; others stay as-is."""
        task = self.task
        for key, value in inputs.items():
            if value is None:
                task = task.replace("{" + key + "}", "")
            elif isinstance(value, SCALAR_TYPES):
                task = task.replace("{" + key + "}", str(value))
        return task

    async def execute(self, inputs, prior_outputs=None):
        if self.agent is None:
            raise StepExecutionError(self.name, f"No agent assigned to step '{self.name}'")

        response = await self.agent.run(self.interpolate_task(inputs), inputs)
        return {
            "content": response.content,
            "metadata": response.metadata,
            "execution_time": response.execution_time,
        }


class FunctionStep(WorkflowStep):
    """
    Wraps a caller-supplied function(inputs, prior_outputs).

    Sync functions run in a worker thread so they do not block the batch;
    coroutine functions are awaited. A function that raises does not fail
    the step: the error comes back as an output with `error`, `error_type`
    and `execution_time` fields.
    """

    step_type = StepType.FUNCTION

    def __init__(
        self,
        name: str,
        function: StepFunction,
        description: str = "",
        **options: Any,
    ):
        super().__init__(name, description, **options)
        if not callable(function):
            raise TypeError(f"Step '{name}' function is not callable")
        self.function = function

    async def execute(self, inputs, prior_outputs=None):
        prior_outputs = prior_outputs or {}
        t0 = time.monotonic()
        try:
            if inspect.iscoroutinefunction(self.function):
                result = await self.function(inputs, prior_outputs)
            else:
                result = await asyncio.to_thread(self.function, inputs, prior_outputs)
                if inspect.isawaitable(result):
                    result = await result

            if not isinstance(result, dict):
                result = {"result": result}
            else:
                result = dict(result)
            result["execution_time"] = time.monotonic() - t0
            return result

        except Exception as e:
            return {
                "error": str(e),
                "error_type": type(e).__name__,
                "execution_time": time.monotonic() - t0,
            }


def is_error_output(output: dict[str, Any]) -> bool:
    """True for the error-shaped output a FunctionStep returns on failure."""
    return "error" in output and "error_type" in output
