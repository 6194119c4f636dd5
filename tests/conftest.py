"""Shared fixtures for workflow tests."""

import asyncio

import pytest

from core.agent import Agent, AgentResponse
from tracing.monitor import TraceMonitor
from tracing.store import TraceStore
from tracing.tracer import Tracer


class EchoAgent(Agent):
    """Answers with the task it was given and remembers every call."""

    def __init__(self, name: str = "echo", delay: float = 0.0):
        self.name = name
        self.delay = delay
        self.calls: list[tuple[str, dict]] = []

    async def run(self, task, context):
        self.calls.append((task, dict(context)))
        if self.delay:
            await asyncio.sleep(self.delay)
        return AgentResponse(content=f"done: {task}", metadata={"agent": self.name}, execution_time=0.01)


class FailingAgent(Agent):
    name = "failing"

    def __init__(self, message: str = "agent exploded"):
        self.message = message

    async def run(self, task, context):
        raise RuntimeError(self.message)


@pytest.fixture
def echo_agent():
    return EchoAgent()


@pytest.fixture
def failing_agent():
    return FailingAgent()


@pytest.fixture
def trace_store(tmp_path):
    return TraceStore(str(tmp_path / "traces.db"))


@pytest.fixture
def trace_monitor(trace_store):
    return TraceMonitor(Tracer(trace_store))


def make_agent(name: str = "echo", delay: float = 0.0) -> EchoAgent:
    """Zero-argument-friendly factory used by loader tests."""
    return EchoAgent(name, delay)
