"""Workflow engine for DAG-based task execution."""

from workflows.models import (
    FunctionErrorPolicy, LogEntry, StepError, StepStatus, StepType, WorkflowResult
)
from workflows.graph import DependencyGraph
from workflows.steps import AgentStep, FunctionStep, WorkflowStep
from workflows.engine import WorkflowEngine
from workflows.workflow import Workflow
from workflows.builder import WorkflowBuilder
from workflows.loader import load_workflow, parse_workflow

__all__ = [
    "FunctionErrorPolicy", "LogEntry", "StepError", "StepStatus", "StepType", "WorkflowResult",
    "DependencyGraph",
    "AgentStep", "FunctionStep", "WorkflowStep",
    "WorkflowEngine", "Workflow", "WorkflowBuilder",
    "load_workflow", "parse_workflow",
]
