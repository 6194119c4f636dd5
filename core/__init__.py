"""Core contracts shared by the workflow engine."""

from core.agent import Agent, AgentResponse, CallableAgent
from core.errors import (
    AgentPlatformError,
    GraphError,
    StepExecutionError,
    StructuralError,
    WorkflowError,
    WorkflowLoadError,
)

__all__ = [
    "Agent",
    "AgentResponse",
    "CallableAgent",
    "AgentPlatformError",
    "WorkflowError",
    "GraphError",
    "StepExecutionError",
    "StructuralError",
    "WorkflowLoadError",
]
