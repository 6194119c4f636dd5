"""Load workflow definitions from YAML files."""

import importlib
import importlib.util
import logging
from pathlib import Path
from typing import Any, Callable

import yaml

from core.agent import Agent
from core.errors import WorkflowError, WorkflowLoadError
from workflows.models import FunctionErrorPolicy, StepType
from workflows.steps import AgentStep, FunctionStep, WorkflowStep
from workflows.workflow import Workflow
from tracing.monitor import Monitor

log = logging.getLogger(__name__)

WORKFLOW_KEYS = {"name", "description", "max_parallel_steps", "timeout", "function_errors", "steps"}
STEP_KEYS = {
    "type", "name", "description", "required", "timeout",
    "input_mapping", "output_mapping", "depends_on",
    "task", "agent", "function",
}

WORKFLOW_TEMPLATE = """\
name: {name}
description: Describe what this workflow does
max_parallel_steps: 1
# record_output keeps a failing function's error as its output,
# fail_step turns it into a step failure
function_errors: record_output

steps:
  research:
    type: agent
    task: "Research the following topic: {{topic}}"
    agent: my_agents:make_researcher      # module:attr or file.py:attr
    output_mapping:
      content: research_results

  summarize:
    type: function
    function: my_steps:summarize
    required: false
    timeout: 30
    depends_on: [research]
"""


def workflow_template(name: str) -> str:
    """Starter YAML for a new workflow."""
    return WORKFLOW_TEMPLATE.format(name=name)


def load_workflow(
    path: str | Path,
    *,
    functions: dict[str, Callable] | None = None,
    agents: dict[str, Agent] | None = None,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
    monitor: Monitor | None = None,
) -> Workflow:
    """Parse a YAML workflow file. `file.py:attr` references resolve next to it."""
    path = Path(path)
    if not path.exists():
        raise WorkflowLoadError(str(path), "file not found")
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise WorkflowLoadError(str(path), f"invalid YAML: {e}") from e

    return parse_workflow(
        data,
        source=str(path),
        base_dir=path.parent,
        functions=functions,
        agents=agents,
        logger=logger,
        monitor=monitor,
    )


def parse_workflow(
    data: Any,
    *,
    source: str = "<workflow>",
    base_dir: Path | None = None,
    functions: dict[str, Callable] | None = None,
    agents: dict[str, Agent] | None = None,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
    monitor: Monitor | None = None,
) -> Workflow:
    """Build a Workflow from an already-parsed definition."""
    if not isinstance(data, dict):
        raise WorkflowLoadError(source, "definition must be a mapping")
    unknown = set(data) - WORKFLOW_KEYS
    if unknown:
        raise WorkflowLoadError(source, f"unknown keys: {sorted(unknown)}")
    if not isinstance(data.get("name"), str) or not data["name"]:
        raise WorkflowLoadError(source, "'name' is required")
    steps = data.get("steps")
    if not isinstance(steps, dict):
        raise WorkflowLoadError(source, "'steps' must be a mapping of step id to step")

    resolver = _Resolver(source, base_dir, functions or {}, agents or {})
    try:
        workflow = Workflow(
            data["name"],
            data.get("description", ""),
            logger=logger,
            monitor=monitor,
            max_parallel_steps=data.get("max_parallel_steps"),
            default_timeout=data.get("timeout"),
            function_errors=FunctionErrorPolicy(data.get("function_errors", "record_output")),
        )
    except (ValueError, TypeError, WorkflowError) as e:
        raise WorkflowLoadError(source, str(e)) from e

    dependencies: dict[str, list[str]] = {}
    for step_id, spec in steps.items():
        step_id = str(step_id)
        workflow.add_step(step_id, _build_step(step_id, spec, resolver))
        deps = spec.get("depends_on", [])
        if not isinstance(deps, (str, list)):
            raise WorkflowLoadError(source, f"step '{step_id}': 'depends_on' must be a step id or a list")
        dependencies[step_id] = [deps] if isinstance(deps, str) else [str(d) for d in deps]

    # Steps may depend on ones declared further down
    for step_id, deps in dependencies.items():
        if deps:
            workflow.set_dependencies(step_id, deps)

    log.debug(f"Loaded workflow '{workflow.name}' with {len(steps)} steps from {source}")
    return workflow


def _build_step(step_id: str, spec: Any, resolver: "_Resolver") -> WorkflowStep:
    where = f"step '{step_id}'"
    if not isinstance(spec, dict):
        raise WorkflowLoadError(resolver.source, f"{where} must be a mapping")
    unknown = set(spec) - STEP_KEYS
    if unknown:
        raise WorkflowLoadError(resolver.source, f"{where}: unknown keys {sorted(unknown)}")

    try:
        step_type = StepType(spec.get("type", ""))
    except ValueError:
        choices = [t.value for t in StepType]
        raise WorkflowLoadError(
            resolver.source, f"{where}: 'type' must be one of {choices}"
        ) from None

    if not isinstance(spec.get("required", True), bool):
        raise WorkflowLoadError(resolver.source, f"{where}: 'required' must be true or false")

    options = {
        "required": spec.get("required", True),
        "timeout": spec.get("timeout"),
        "input_mapping": spec.get("input_mapping"),
        "output_mapping": spec.get("output_mapping"),
    }
    for key in ("input_mapping", "output_mapping"):
        if options[key] is not None and not isinstance(options[key], dict):
            raise WorkflowLoadError(resolver.source, f"{where}: '{key}' must be a mapping")

    name = spec.get("name", step_id)
    description = spec.get("description", "")
    try:
        if step_type is StepType.AGENT:
            if "task" not in spec:
                raise WorkflowLoadError(resolver.source, f"{where}: agent steps need a 'task'")
            agent = resolver.agent(spec["agent"]) if spec.get("agent") else None
            return AgentStep(name, spec["task"], description, agent, **options)

        if "function" not in spec:
            raise WorkflowLoadError(resolver.source, f"{where}: function steps need a 'function'")
        return FunctionStep(name, resolver.function(spec["function"]), description, **options)
    except (TypeError, ValueError) as e:
        raise WorkflowLoadError(resolver.source, f"{where}: {e}") from e


class _Resolver:
    """Turns references into objects: explicit mappings first, then imports."""

    def __init__(
        self,
        source: str,
        base_dir: Path | None,
        functions: dict[str, Callable],
        agents: dict[str, Agent],
    ):
        self.source = source
        self.base_dir = base_dir
        self.functions = functions
        self.agents = agents

    def function(self, ref: str) -> Callable:
        if ref in self.functions:
            return self.functions[ref]
        obj = self._import(ref)
        if not callable(obj):
            raise WorkflowLoadError(self.source, f"'{ref}' is not callable")
        return obj

    def agent(self, ref: str) -> Agent:
        if ref in self.agents:
            return self.agents[ref]
        obj = self._import(ref)
        # Accept an agent instance, an Agent subclass or a zero-arg factory
        if not isinstance(obj, Agent) and callable(obj):
            obj = obj()
        if not isinstance(obj, Agent):
            raise WorkflowLoadError(self.source, f"'{ref}' did not produce an Agent")
        return obj

    def _import(self, ref: str) -> Any:
        module_ref, _, attr = ref.rpartition(":")
        if not module_ref or not attr:
            raise WorkflowLoadError(self.source, f"'{ref}' is not a 'module:attr' reference")

        if module_ref.endswith(".py"):
            module = self._load_file(module_ref)
        else:
            try:
                module = importlib.import_module(module_ref)
            except ImportError as e:
                raise WorkflowLoadError(self.source, f"cannot import '{module_ref}': {e}") from e

        try:
            return getattr(module, attr)
        except AttributeError:
            raise WorkflowLoadError(self.source, f"'{module_ref}' has no attribute '{attr}'") from None

    def _load_file(self, file_ref: str):
        module_file = Path(file_ref)
        if not module_file.is_absolute() and self.base_dir is not None:
            module_file = self.base_dir / module_file
        if not module_file.exists():
            raise WorkflowLoadError(self.source, f"module file not found: {module_file}")

        spec = importlib.util.spec_from_file_location(
            f"workflow_steps.{module_file.stem}",
            module_file
        )
        if not spec or not spec.loader:
            raise WorkflowLoadError(self.source, f"failed to load module file: {module_file}")

        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module
