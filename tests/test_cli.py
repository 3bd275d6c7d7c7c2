"""Tests for the effectflow command-line interface."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from effectflow.cli import cli
from effectflow.config import RUNS_DIR_ENV
from effectflow.domain.tasks import TaskDefinition

APP_DIR = str(Path(__file__).parent)

DRAFT = TaskDefinition(
    "draft",
    lambda args, task_ctx: {"agent": {"name": "writer", "prompt": args}},
    output_schema={"type": "object", "required": ["text"]},
)


def approval_flow(inputs, ctx):
    ctx.checkpoint(title="started")
    answer = ctx.breakpoint(question=f"Ship {inputs['feature']}?")
    return {"feature": inputs["feature"], "approved": answer.get("approved", False)}


def drafting_flow(inputs, ctx):
    return ctx.task(DRAFT, {"topic": inputs.get("topic", "release notes")})


def broken_flow(inputs, ctx):
    raise RuntimeError("process bug")


@pytest.fixture
def invoke(tmp_path, monkeypatch):
    """Invoke the CLI against a temporary runs directory."""
    monkeypatch.delenv(RUNS_DIR_ENV, raising=False)
    runner = CliRunner()
    base = ["--runs-dir", str(tmp_path / "runs"), "--app-dir", APP_DIR]

    def _invoke(*args: str):
        return runner.invoke(cli, [*base, *args])

    return _invoke


class TestRunCommand:
    def test_run_suspends_at_breakpoint(self, invoke) -> None:
        result = invoke(
            "run",
            "test_cli:approval_flow",
            "--inputs",
            '{"feature": "login"}',
            "--run-id",
            "r1",
        )

        assert result.exit_code == 0, result.output
        assert "waiting for input" in result.output
        assert "0002" in result.output
        assert "Ship login?" in result.output

    def test_run_with_mock_agent(self, invoke) -> None:
        result = invoke(
            "--agent",
            "mock",
            "--agent-options",
            '{"responses": {"draft": {"text": "All good"}}}',
            "run",
            "test_cli:drafting_flow",
        )

        assert result.exit_code == 0, result.output
        assert "completed" in result.output
        assert "All good" in result.output

    def test_inputs_file(self, invoke, tmp_path) -> None:
        inputs = tmp_path / "inputs.json"
        inputs.write_text('{"feature": "search"}')

        result = invoke(
            "run", "test_cli:approval_flow", "--inputs-file", str(inputs)
        )

        assert result.exit_code == 0, result.output
        assert "Ship search?" in result.output

    def test_failed_run_exits_nonzero(self, invoke) -> None:
        result = invoke("run", "test_cli:broken_flow")

        assert result.exit_code == 1
        assert "process bug" in result.output

    def test_unknown_process(self, invoke) -> None:
        result = invoke("run", "test_cli:nope")

        assert result.exit_code == 1
        assert "Process not found" in result.output

    def test_invalid_inputs_json(self, invoke) -> None:
        result = invoke("run", "test_cli:approval_flow", "--inputs", "{oops")

        assert result.exit_code == 2
        assert "not valid JSON" in result.output


class TestLifecycle:
    """Run, inspect, resolve and resume through the CLI."""

    @pytest.fixture
    def suspended(self, invoke) -> str:
        result = invoke(
            "run",
            "test_cli:approval_flow",
            "--inputs",
            '{"feature": "login"}',
            "--run-id",
            "r1",
        )
        assert result.exit_code == 0, result.output
        return "r1"

    def test_status(self, invoke, suspended) -> None:
        result = invoke("status", suspended)

        assert result.exit_code == 0
        assert "suspended" in result.output
        assert "test_cli:approval_flow" in result.output

    def test_resolve_resumes(self, invoke, suspended) -> None:
        result = invoke("resolve", suspended, "0002", "--payload", '{"approved": true}')

        assert result.exit_code == 0, result.output
        assert "resolved" in result.output
        assert "completed" in result.output

        status = invoke("status", suspended)
        assert "completed" in status.output

    def test_resolve_without_resume(self, invoke, suspended) -> None:
        result = invoke("resolve", suspended, "0002", "--no-resume")

        assert result.exit_code == 0, result.output
        assert "running" in invoke("status", suspended).output

        resumed = invoke("resume", suspended)
        assert resumed.exit_code == 0, resumed.output
        assert "completed" in resumed.output

    def test_resolve_twice(self, invoke, suspended) -> None:
        invoke("resolve", suspended, "0002", "--payload", "{}")

        result = invoke("resolve", suspended, "0002", "--payload", "{}")

        assert result.exit_code == 1
        assert "already completed" in result.output

    def test_effects_json(self, invoke, suspended) -> None:
        result = invoke("effects", suspended, "--json")

        records = json.loads(result.output)
        assert [(r["effectId"], r["kind"], r["status"]) for r in records] == [
            ("0001", "checkpoint", "completed"),
            ("0002", "breakpoint", "pending"),
        ]

    def test_effects_table(self, invoke, suspended) -> None:
        result = invoke("effects", suspended)

        assert result.exit_code == 0
        assert "breakpoint" in result.output

    def test_runs(self, invoke, suspended) -> None:
        result = invoke("runs")

        assert result.exit_code == 0
        assert suspended in result.output


class TestErrors:
    def test_status_unknown_run(self, invoke) -> None:
        result = invoke("status", "missing")

        assert result.exit_code == 1
        assert "Run not found: missing" in result.output

    def test_resume_unknown_run(self, invoke) -> None:
        assert invoke("resume", "missing").exit_code == 1

    def test_invalid_config(self, invoke, tmp_path) -> None:
        config = tmp_path / "bad.json"
        config.write_text('{"max_parallelism": 0}')

        result = invoke("--config", str(config), "runs")

        assert result.exit_code == 1
        assert "Invalid config" in result.output
