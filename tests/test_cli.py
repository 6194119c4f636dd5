"""Tests for the agent-workflows CLI."""

import json
import logging
import textwrap

import pytest
from typer.testing import CliRunner

from core.cli import app
from tracing.store import TraceStore

runner = CliRunner()

STEPS_MODULE = '''
def shout(inputs, prior):
    return {"text": str(inputs.get("text", "")).upper(), "count_type": type(inputs.get("count")).__name__}

def explode(inputs, prior):
    raise RuntimeError("kaboom")
'''


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def workflow_file(tmp_path):
    (tmp_path / "steps.py").write_text(STEPS_MODULE)
    path = tmp_path / "shout.yaml"
    path.write_text(textwrap.dedent("""
        name: shouting
        steps:
          first:
            type: function
            function: steps.py:shout
            output_mapping: {text: loud, count_type: count_type}
          last:
            type: function
            function: steps.py:shout
            depends_on: [first]
    """))
    return path


@pytest.fixture
def failing_file(tmp_path):
    (tmp_path / "steps.py").write_text(STEPS_MODULE)
    path = tmp_path / "fail.yaml"
    path.write_text(textwrap.dedent("""
        name: failing
        function_errors: fail_step
        steps:
          boom:
            type: function
            function: steps.py:explode
    """))
    return path


class TestRun:
    def test_json_output(self, workflow_file):
        result = runner.invoke(app, ["run", str(workflow_file), "-i", "text=hi", "-i", "count=3", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["output"]["loud"] == "HI"
        assert data["output"]["count_type"] == "int"
        assert data["completed_steps"] == ["first", "last"]

    def test_input_file(self, workflow_file, tmp_path):
        input_file = tmp_path / "input.json"
        input_file.write_text(json.dumps({"text": "from file"}))

        result = runner.invoke(app, ["run", str(workflow_file), "--input-file", str(input_file), "--json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["output"]["loud"] == "FROM FILE"

    def test_table_output(self, workflow_file):
        result = runner.invoke(app, ["run", str(workflow_file), "-i", "text=hi"])

        assert result.exit_code == 0, result.output
        assert "Running workflow" in result.output
        assert "Success" in result.output

    def test_failed_workflow_exits_one(self, failing_file):
        result = runner.invoke(app, ["run", str(failing_file)])

        assert result.exit_code == 1
        assert "Failed" in result.output

    def test_load_error_exits_two(self, tmp_path):
        result = runner.invoke(app, ["run", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 2
        assert "file not found" in result.output

    def test_bad_input_pair(self, workflow_file):
        result = runner.invoke(app, ["run", str(workflow_file), "-i", "novalue"])
        assert result.exit_code == 2

    def test_bad_parallel(self, workflow_file):
        result = runner.invoke(app, ["run", str(workflow_file), "--parallel", "0"])
        assert result.exit_code == 2

    def test_trace_flag_records_run(self, workflow_file, tmp_path, monkeypatch):
        db = tmp_path / "traces.db"
        monkeypatch.setenv("TRACE_DB_PATH", str(db))

        result = runner.invoke(app, ["run", str(workflow_file), "--trace", "--json"])

        assert result.exit_code == 0, result.output
        rows = TraceStore(str(db)).get_recent_traces()
        assert rows[0]["root_name"] == "workflow.shouting"
        assert rows[0]["span_count"] == 3


class TestOtherCommands:
    def test_validate(self, workflow_file):
        result = runner.invoke(app, ["validate", str(workflow_file)])

        assert result.exit_code == 0, result.output
        assert "first → last" in result.output
        assert "valid" in result.output

    def test_validate_bad_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("name: bad\nsteps:\n  a: {type: shell}\n")

        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 2

    def test_new_scaffolds_file(self, tmp_path):
        target = tmp_path / "flows" / "report.yaml"

        result = runner.invoke(app, ["new", "report", "--output", str(target)])

        assert result.exit_code == 0, result.output
        assert target.read_text().startswith("name: report")

    def test_new_refuses_overwrite(self, tmp_path):
        target = tmp_path / "report.yaml"
        target.write_text("keep me")

        result = runner.invoke(app, ["new", "report", "--output", str(target)])

        assert result.exit_code == 1
        assert target.read_text() == "keep me"

    def test_traces_empty(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRACE_DB_PATH", str(tmp_path / "empty.db"))

        result = runner.invoke(app, ["traces"])

        assert result.exit_code == 0
        assert "No traces recorded yet" in result.output

    def test_traces_listing_and_detail(self, workflow_file, tmp_path, monkeypatch):
        db = tmp_path / "traces.db"
        monkeypatch.setenv("TRACE_DB_PATH", str(db))
        runner.invoke(app, ["run", str(workflow_file), "--trace", "--json"])
        trace_id = TraceStore(str(db)).get_recent_traces()[0]["trace_id"]

        listing = runner.invoke(app, ["traces", "--limit", "5"])
        detail = runner.invoke(app, ["traces", trace_id])
        missing = runner.invoke(app, ["traces", "0000"])
        by_workflow = runner.invoke(app, ["traces", "--workflow", "shouting"])

        assert listing.exit_code == 0, listing.output
        assert "Recent traces" in listing.output
        assert detail.exit_code == 0, detail.output
        assert missing.exit_code == 1
        assert by_workflow.exit_code == 0, by_workflow.output
        assert "Runs of shouting" in by_workflow.output

    def test_welcome_panel(self):
        result = runner.invoke(app, [])

        assert result.exit_code == 0
        assert "Agent Workflows" in result.output
