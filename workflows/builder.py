"""Fluent builder for workflows."""

import logging
from typing import Any

from core.agent import Agent
from workflows.models import FunctionErrorPolicy
from workflows.steps import AgentStep, FunctionStep, StepFunction, WorkflowStep
from workflows.workflow import Workflow
from tracing.monitor import Monitor


class WorkflowBuilder:
    """
    Fluent builder for Workflow objects.

    Usage:
        workflow = (
            WorkflowBuilder("report")
            .agent("research", "Research {topic}", researcher)
            .function("summarize", summarize, required=False)
            .chain("research", "summarize")
            .parallel(2)
            .build()
        )

    Steps and dependencies are recorded first and applied in build(), so
    dependencies may name steps that are added later in the chain.
    """

    def __init__(self, name: str, description: str = ""):
        self._name = name
        self._description = description
        self._steps: dict[str, WorkflowStep] = {}
        self._edges: list[tuple[str, str]] = []
        self._max_parallel_steps: int | None = None
        self._default_timeout: float | None = None
        self._function_errors = FunctionErrorPolicy.RECORD_OUTPUT
        self._logger: logging.Logger | logging.LoggerAdapter | None = None
        self._monitor: Monitor | None = None

    def step(self, step_id: str, step: WorkflowStep) -> "WorkflowBuilder":
        """Add a ready-made step."""
        if step_id in self._steps:
            raise ValueError(f"Step '{step_id}' already added")
        self._steps[step_id] = step
        return self

    def agent(
        self,
        step_id: str,
        task: str,
        agent: Agent | None = None,
        *,
        name: str | None = None,
        description: str = "",
        **options: Any,
    ) -> "WorkflowBuilder":
        """Add an agent step."""
        return self.step(step_id, AgentStep(
            name or step_id, task, description, agent, **options
        ))

    def function(
        self,
        step_id: str,
        function: StepFunction,
        *,
        name: str | None = None,
        description: str = "",
        **options: Any,
    ) -> "WorkflowBuilder":
        """Add a function step."""
        return self.step(step_id, FunctionStep(
            name or step_id, function, description, **options
        ))

    def depends(self, step_id: str, *depends_on: str) -> "WorkflowBuilder":
        """step_id waits for every id in depends_on."""
        for dep in depends_on:
            self._edges.append((step_id, dep))
        return self

    def chain(self, *step_ids: str) -> "WorkflowBuilder":
        """Chain steps in sequence: each waits for the one before it."""
        for i in range(len(step_ids) - 1):
            self.depends(step_ids[i + 1], step_ids[i])
        return self

    def parallel(self, width: int) -> "WorkflowBuilder":
        self._max_parallel_steps = width
        return self

    def timeout(self, seconds: float) -> "WorkflowBuilder":
        """Default timeout for steps that do not set their own."""
        self._default_timeout = seconds
        return self

    def function_errors(self, policy: FunctionErrorPolicy | str) -> "WorkflowBuilder":
        self._function_errors = FunctionErrorPolicy(policy)
        return self

    def logger(self, logger: logging.Logger | logging.LoggerAdapter) -> "WorkflowBuilder":
        self._logger = logger
        return self

    def monitor(self, monitor: Monitor) -> "WorkflowBuilder":
        self._monitor = monitor
        return self

    def build(self) -> Workflow:
        """Build and validate the workflow. Graph errors surface as GraphError."""
        workflow = Workflow(
            self._name,
            self._description,
            logger=self._logger,
            monitor=self._monitor,
            max_parallel_steps=self._max_parallel_steps,
            default_timeout=self._default_timeout,
            function_errors=self._function_errors,
        )
        for step_id, step in self._steps.items():
            workflow.add_step(step_id, step)
        for step_id, dep in self._edges:
            workflow.add_dependency(step_id, dep)
        workflow.validate()
        return workflow
