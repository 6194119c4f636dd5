"""Tests for loading workflows from YAML definitions."""

import textwrap

import pytest

from conftest import EchoAgent
from core.errors import GraphError, WorkflowLoadError
from workflows.loader import load_workflow, parse_workflow, workflow_template
from workflows.models import FunctionErrorPolicy, StepType
from workflows.steps import AgentStep, FunctionStep


STEPS_MODULE = '''
def shout(inputs, prior):
    return {"text": inputs.get("text", "").upper()}

NOT_CALLABLE = 5
'''


@pytest.fixture
def workflow_dir(tmp_path):
    (tmp_path / "steps.py").write_text(STEPS_MODULE)
    return tmp_path


def write(directory, body: str, name: str = "workflow.yaml"):
    path = directory / name
    path.write_text(textwrap.dedent(body))
    return path


class TestLoadWorkflow:
    def test_full_definition(self, workflow_dir):
        path = write(workflow_dir, """
            name: content
            description: research then shout
            max_parallel_steps: 2
            timeout: 30
            function_errors: fail_step
            steps:
              research:
                type: agent
                task: "Research {topic}"
                agent: conftest:make_agent
                input_mapping: {research_topic: topic}
                output_mapping: {content: research_results}
                timeout: 5
              shout:
                type: function
                function: steps.py:shout
                required: false
                depends_on: research
        """)

        wf = load_workflow(path)

        assert wf.name == "content"
        assert wf.max_parallel_steps == 2
        assert wf.default_timeout == 30
        assert wf.function_errors is FunctionErrorPolicy.FAIL_STEP

        research = wf.get_step("research")
        assert isinstance(research, AgentStep)
        assert isinstance(research.agent, EchoAgent)
        assert research.input_mapping == {"research_topic": "topic"}
        assert research.timeout == 5

        shout = wf.get_step("shout")
        assert isinstance(shout, FunctionStep)
        assert shout.step_type is StepType.FUNCTION
        assert shout.required is False
        assert wf.get_dependencies("shout") == ("research",)

    def test_forward_references(self, workflow_dir):
        path = write(workflow_dir, """
            name: forward
            steps:
              last:
                type: function
                function: steps.py:shout
                depends_on: [first]
              first:
                type: function
                function: steps.py:shout
        """)
        wf = load_workflow(path)
        assert wf.graph.topological_order() == ["first", "last"]

    def test_explicit_mappings_win(self, tmp_path):
        agent = EchoAgent("mapped")
        path = write(tmp_path, """
            name: mapped
            steps:
              ask:
                type: agent
                task: ask
                agent: researcher
              tidy:
                type: function
                function: tidy
                depends_on: [ask]
        """)

        wf = load_workflow(path, agents={"researcher": agent}, functions={"tidy": lambda i, p: {}})

        assert wf.get_step("ask").agent is agent

    @pytest.mark.asyncio
    async def test_loaded_workflow_runs(self, workflow_dir):
        path = write(workflow_dir, """
            name: shouting
            steps:
              shout:
                type: function
                function: steps.py:shout
                output_mapping: {text: loud}
        """)

        result = await load_workflow(path).execute({"text": "hi"})

        assert result.success
        assert result.get_output_value("loud") == "HI"

    def test_template_is_loadable(self, tmp_path):
        path = write(tmp_path, workflow_template("starter"))
        agent = EchoAgent()

        wf = load_workflow(
            path,
            agents={"my_agents:make_researcher": agent},
            functions={"my_steps:summarize": lambda i, p: {}},
        )

        assert wf.name == "starter"
        assert list(wf.get_steps()) == ["research", "summarize"]


class TestLoadErrors:
    def test_missing_file(self, tmp_path):
        with pytest.raises(WorkflowLoadError, match="file not found"):
            load_workflow(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("name: [unclosed")
        with pytest.raises(WorkflowLoadError, match="invalid YAML"):
            load_workflow(path)

    @pytest.mark.parametrize("data, message", [
        (["not", "a", "mapping"], "must be a mapping"),
        ({"steps": {}}, "'name' is required"),
        ({"name": "x", "steps": []}, "'steps' must be a mapping"),
        ({"name": "x", "steps": {}, "extra": 1}, "unknown keys"),
        ({"name": "x", "steps": {}, "function_errors": "explode"}, "not a valid"),
        ({"name": "x", "steps": {"a": {"type": "shell"}}}, "'type' must be one of"),
        ({"name": "x", "steps": {"a": {"type": "agent"}}}, "need a 'task'"),
        ({"name": "x", "steps": {"a": {"type": "function"}}}, "need a 'function'"),
        ({"name": "x", "steps": {"a": {"type": "function", "function": "f", "colour": 1}}}, "unknown keys"),
        ({"name": "x", "steps": {"a": {"type": "function", "function": "nocolon"}}}, "module:attr"),
        ({"name": "x", "steps": {"a": {"type": "function", "function": "no_such_mod_xyz:f"}}}, "cannot import"),
        ({"name": "x", "steps": {"a": {"type": "function", "function": "os:no_such_attr"}}}, "no attribute"),
        ({"name": "x", "steps": {"a": {"type": "function", "function": "os:sep"}}}, "not callable"),
        ({"name": "x", "steps": {"a": {"type": "agent", "task": "t", "agent": "os:getcwd"}}}, "did not produce an Agent"),
        ({"name": "x", "steps": {"a": {"type": "agent", "task": "t", "timeout": -1}}}, "positive"),
        ({"name": "x", "steps": {"a": {"type": "agent", "task": "t", "input_mapping": ["x"]}}}, "must be a mapping"),
        ({"name": "x", "steps": {"a": {"type": "agent", "task": "t", "required": "no"}}}, "true or false"),
        ({"name": "x", "steps": {"a": {"type": "agent", "task": "t", "depends_on": 3}}}, "depends_on"),
        ({"name": "x", "max_parallel_steps": 0, "steps": {}}, "at least 1"),
    ])
    def test_invalid_definitions(self, data, message):
        with pytest.raises(WorkflowLoadError, match=message):
            parse_workflow(data)

    def test_missing_module_file(self, tmp_path):
        data = {"name": "x", "steps": {"a": {"type": "function", "function": "gone.py:f"}}}
        with pytest.raises(WorkflowLoadError, match="module file not found"):
            parse_workflow(data, base_dir=tmp_path)

    def test_cycle_is_graph_error(self):
        data = {"name": "x", "steps": {
            "a": {"type": "function", "function": "f", "depends_on": ["b"]},
            "b": {"type": "function", "function": "f", "depends_on": ["a"]},
        }}
        with pytest.raises(GraphError, match="circular"):
            parse_workflow(data, functions={"f": lambda i, p: {}})

    def test_unknown_dependency_is_graph_error(self):
        data = {"name": "x", "steps": {
            "a": {"type": "function", "function": "f", "depends_on": ["ghost"]},
        }}
        with pytest.raises(GraphError, match="does not exist"):
            parse_workflow(data, functions={"f": lambda i, p: {}})
