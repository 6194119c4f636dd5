"""Agent Workflows CLI: main entry point."""
import asyncio
import json
import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from core.errors import WorkflowError
from workflows.loader import load_workflow, workflow_template
from workflows.models import WorkflowResult

app = typer.Typer(name="agent-workflows", help="DAG workflow engine for agent applications")
console = Console()


def _configure_logging(verbose: bool) -> None:
    level = "DEBUG" if verbose else os.environ.get("WORKFLOW_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _parse_inputs(pairs: list[str], input_file: str | None) -> dict:
    """Merge --input-file JSON with -i key=value pairs; pairs win."""
    inputs: dict = {}
    if input_file:
        with open(input_file) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise typer.BadParameter("input file must hold a JSON object", param_hint="--input-file")
        inputs.update(data)

    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected key=value, got '{pair}'", param_hint="--input")
        # Numbers, booleans and JSON literals keep their type; anything else is a string
        try:
            inputs[key] = json.loads(raw)
        except json.JSONDecodeError:
            inputs[key] = raw
    return inputs


def _load(file: str, **kwargs):
    try:
        return load_workflow(file, **kwargs)
    except WorkflowError as e:
        console.print(f"[bold red]✗ {e}[/]", soft_wrap=True)
        raise typer.Exit(code=2)


def _print_result(result: WorkflowResult) -> None:
    table = Table(title="Steps")
    table.add_column("Step", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")

    for step_id in result.completed_steps:
        if step_id in result.step_errors:
            table.add_row(step_id, "[red]failed[/]", result.step_errors[step_id].message)
        else:
            table.add_row(step_id, "[green]completed[/]", "")
    for step_id, reason in result.skipped_steps.items():
        table.add_row(step_id, "[yellow]skipped[/]", reason)
    console.print(table)

    if result.output:
        console.print("\n[bold]Output:[/]")
        console.print_json(json.dumps(result.output, default=str))

    status = "[bold green]✓ Success[/]" if result.success else "[bold red]✗ Failed[/]"
    if result.cancelled:
        status += " [yellow](cancelled)[/]"
    console.print(f"\n{status} in {result.execution_time:.2f}s")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Agent Workflows: run DAG workflows of agent and function steps."""
    if ctx.invoked_subcommand is None:
        console.print(Panel(
            "[bold green]Agent Workflows v0.1.0[/]\n\n"
            "Commands:\n"
            "  [cyan]agent-workflows run[/]        Run a workflow file\n"
            "  [cyan]agent-workflows validate[/]   Check a workflow file\n"
            "  [cyan]agent-workflows new[/]        Scaffold a workflow file\n"
            "  [cyan]agent-workflows traces[/]     Show recorded traces\n",
            title="Welcome",
            border_style="green"
        ))


@app.command()
def run(
    file: str = typer.Argument(..., help="Workflow YAML file"),
    inputs: list[str] = typer.Option(None, "--input", "-i", help="Workflow input as key=value (repeatable)"),
    input_file: str = typer.Option(None, "--input-file", help="JSON file with workflow input"),
    parallel: int = typer.Option(None, "--parallel", "-p", help="Override max parallel steps"),
    trace: bool = typer.Option(False, "--trace", help="Record the run in the trace store"),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Run a workflow and report its result."""
    _configure_logging(verbose)
    initial_input = _parse_inputs(inputs, input_file)

    monitor = None
    if trace:
        from tracing.monitor import TraceMonitor
        monitor = TraceMonitor()

    workflow = _load(file, monitor=monitor)
    if parallel is not None:
        try:
            workflow.set_max_parallel_steps(parallel)
        except WorkflowError as e:
            raise typer.BadParameter(str(e), param_hint="--parallel")

    if not as_json:
        console.print(f"[bold]Running workflow:[/] [cyan]{workflow.name}[/] "
                      f"({len(workflow.get_steps())} steps, width {workflow.max_parallel_steps})")

    result = asyncio.run(workflow.execute(initial_input))

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        _print_result(result)

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def validate(file: str = typer.Argument(..., help="Workflow YAML file")):
    """Load a workflow and print its steps and execution order."""
    workflow = _load(file)
    try:
        workflow.validate()
    except WorkflowError as e:
        console.print(f"[bold red]✗ {e}[/]", soft_wrap=True)
        raise typer.Exit(code=2)

    table = Table(title=f"Workflow: {workflow.name}")
    table.add_column("Step", style="cyan")
    table.add_column("Type")
    table.add_column("Required")
    table.add_column("Depends on")
    for step_id, step in workflow.get_steps().items():
        table.add_row(
            step_id,
            step.step_type.value,
            "yes" if step.required else "no",
            ", ".join(workflow.get_dependencies(step_id)) or "-",
        )
    console.print(table)
    console.print(f"[bold]Order:[/] {' → '.join(workflow.graph.topological_order())}")
    console.print("[green]✓ Workflow is valid[/]")


@app.command()
def new(
    name: str = typer.Argument(..., help="Workflow name"),
    output: str = typer.Option(None, "--output", "-o", help="Target file (default: NAME.yaml)"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Scaffold a new workflow definition."""
    path = Path(output or f"{name}.yaml")
    if path.exists() and not force:
        console.print(f"[bold red]✗ {path} already exists (use --force to overwrite)[/]")
        raise typer.Exit(code=1)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(workflow_template(name))
    console.print(f"[green]✓ Created {path}[/]")


@app.command()
def traces(
    trace_id: str = typer.Argument(None, help="Show every span of one trace"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of traces to list"),
    workflow: str = typer.Option(None, "--workflow", "-w", help="Only runs of this workflow"),
):
    """List recent workflow traces, the runs of one workflow, or the spans of one trace."""
    from tracing.store import TraceStore

    store = TraceStore()
    if trace_id:
        spans = store.get_trace(trace_id)
        if not spans:
            console.print(f"[yellow]No spans for trace {trace_id}[/]")
            raise typer.Exit(code=1)
        table = Table(title=f"Trace {trace_id}")
        table.add_column("Span")
        table.add_column("Type")
        table.add_column("Status")
        table.add_column("Duration (ms)", justify="right")
        table.add_column("Error")
        for span in spans:
            table.add_row(
                span["name"], span["span_type"], span["status"],
                f"{span['duration_ms']:.1f}", span.get("error") or "",
            )
        console.print(table)
        return

    if workflow:
        runs = store.get_workflow_runs(workflow, limit)
        if not runs:
            console.print(f"[yellow]No recorded runs of {workflow}[/]")
            return
        table = Table(title=f"Runs of {workflow}")
        table.add_column("Trace", style="cyan")
        table.add_column("Status")
        table.add_column("Duration (ms)", justify="right")
        table.add_column("Started")
        for run_span in runs:
            table.add_row(
                run_span["trace_id"], run_span["status"],
                f"{run_span['duration_ms']:.1f}", run_span["started_at"],
            )
        console.print(table)
        return

    rows = store.get_recent_traces(limit)
    if not rows:
        console.print("[yellow]No traces recorded yet (run with --trace)[/]")
        return

    table = Table(title="Recent traces")
    table.add_column("Trace", style="cyan")
    table.add_column("Workflow")
    table.add_column("Spans", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Started")
    for row in rows:
        table.add_row(
            row["trace_id"], row["workflow"] or row["root_name"] or "-", str(row["span_count"]),
            str(row["error_count"]), row["started_at"] or "",
        )
    console.print(table)


if __name__ == "__main__":
    app()
