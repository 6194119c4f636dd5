"""Tests for the fluent WorkflowBuilder."""

import pytest

from conftest import EchoAgent
from core.errors import GraphError, StructuralError
from workflows.builder import WorkflowBuilder
from workflows.models import FunctionErrorPolicy
from workflows.steps import FunctionStep


class TestWorkflowBuilder:
    def test_builds_chain(self):
        agent = EchoAgent()
        wf = (
            WorkflowBuilder("report", "research then summarize")
            .agent("research", "Research {topic}", agent)
            .function("summarize", lambda i, p: {"summary": "short"}, required=False)
            .chain("research", "summarize")
            .parallel(2)
            .timeout(10)
            .build()
        )

        assert wf.name == "report"
        assert wf.description == "research then summarize"
        assert wf.max_parallel_steps == 2
        assert wf.default_timeout == 10
        assert wf.get_dependencies("summarize") == ("research",)
        assert wf.get_step("summarize").required is False
        assert wf.get_step("research").name == "research"

    def test_dependencies_may_precede_steps(self):
        wf = (
            WorkflowBuilder("late")
            .depends("b", "a")
            .function("b", lambda i, p: {})
            .function("a", lambda i, p: {})
            .build()
        )
        assert wf.get_dependencies("b") == ("a",)

    def test_ready_made_step(self):
        step = FunctionStep("Custom", lambda i, p: {})
        wf = WorkflowBuilder("custom").step("c", step).build()
        assert wf.get_step("c") is step

    def test_duplicate_step_rejected(self):
        builder = WorkflowBuilder("dup").function("a", lambda i, p: {})
        with pytest.raises(ValueError, match="already added"):
            builder.function("a", lambda i, p: {})

    def test_cycle_surfaces_as_graph_error(self):
        builder = (
            WorkflowBuilder("cycle")
            .function("a", lambda i, p: {})
            .function("b", lambda i, p: {})
            .chain("a", "b", "a")
        )
        with pytest.raises(GraphError, match="circular"):
            builder.build()

    def test_unknown_dependency(self):
        builder = WorkflowBuilder("unknown").function("a", lambda i, p: {}).depends("a", "ghost")
        with pytest.raises(GraphError, match="does not exist"):
            builder.build()

    def test_empty_builder_is_structural_error(self):
        with pytest.raises(StructuralError):
            WorkflowBuilder("empty").build()

    def test_function_error_policy(self):
        wf = (
            WorkflowBuilder("policy")
            .function("a", lambda i, p: {})
            .function_errors("fail_step")
            .build()
        )
        assert wf.function_errors is FunctionErrorPolicy.FAIL_STEP

    @pytest.mark.asyncio
    async def test_built_workflow_runs(self):
        agent = EchoAgent()
        wf = (
            WorkflowBuilder("run")
            .agent("greet", "Hello {name}", agent, output_mapping={"content": "greeting"})
            .build()
        )

        result = await wf.execute({"name": "Ada"})

        assert result.get_output_value("greeting") == "done: Hello Ada"
