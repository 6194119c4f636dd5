"""
Agent contract: the only view the workflow engine has of an agent.

An agent receives a task (already interpolated by the step) plus the step's
resolved input as context, and answers with an AgentResponse:

    class Researcher(Agent):
        async def run(self, task, context):
            text = await my_llm.complete(task)
            return AgentResponse(content=text, metadata={"model": "local"})

LLM connectors, tool loops and memory live behind this contract and are not
part of the engine.
"""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable


@dataclass
class AgentResponse:
    """Structured answer of an agent run."""
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    execution_time: float = 0.0


class Agent(ABC):
    """Base class for anything a workflow can delegate a task to."""

    name: str = "agent"

    @abstractmethod
    async def run(self, task: str, context: dict[str, Any]) -> AgentResponse:
        """Perform the task and return a structured response."""
        ...


class CallableAgent(Agent):
    """
    Adapts a plain async function into an Agent.

    The function receives (task, context) and may return either an
    AgentResponse or a string; strings become the response content and the
    wall-clock duration is recorded as execution_time.
    """

    def __init__(
        self,
        func: Callable[[str, dict[str, Any]], Awaitable[AgentResponse | str]],
        name: str | None = None,
    ):
        self._func = func
        self.name = name or getattr(func, "__name__", "agent")

    async def run(self, task: str, context: dict[str, Any]) -> AgentResponse:
        t0 = time.monotonic()
        result = await self._func(task, context)
        if isinstance(result, AgentResponse):
            return result
        return AgentResponse(
            content=str(result),
            metadata={"agent": self.name},
            execution_time=time.monotonic() - t0,
        )
