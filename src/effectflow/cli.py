"""
Command-line interface for running and inspecting durable processes.

Usage:
    effectflow run myproject.processes:atdd --inputs '{"feature": "login"}'
    effectflow status <run-id>
    effectflow resolve <run-id> 0004 --payload '{"approved": true}'
    effectflow effects <run-id>
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from effectflow.config import RuntimeConfig, create_driver, load_config
from effectflow.console import (
    print_effects_table,
    print_error,
    print_run_result,
    print_run_status,
    print_runs_table,
    print_success,
)
from effectflow.domain.exceptions import EffectflowError
from effectflow.domain.models import RunStatus
from effectflow.infrastructure.persistence import FilesystemEffectStore
from effectflow.infrastructure.registry import load_process
from effectflow.logging_setup import setup_logging

logger = logging.getLogger("effectflow.cli")


def _parse_json(value: str | None, option: str) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint=option) from e


def _fail(message: str, hint: str | None = None) -> NoReturn:
    print_error(message, hint)
    sys.exit(1)


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a runtime configuration JSON file",
)
@click.option(
    "--runs-dir",
    default=None,
    type=click.Path(file_okay=False),
    help="Directory holding run state (default: .effectflow/runs)",
)
@click.option(
    "--agent",
    default=None,
    help="Agent runner name from the 'effectflow.agents' entry points",
)
@click.option(
    "--agent-options",
    default=None,
    help="JSON object passed to the agent runner constructor",
)
@click.option(
    "--log-file",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to log file",
)
@click.option(
    "--app-dir",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory prepended to sys.path when importing process modules",
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable verbose (DEBUG) logging to console",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    runs_dir: str | None,
    agent: str | None,
    agent_options: str | None,
    log_file: str | None,
    app_dir: str,
    verbose: bool,
) -> None:
    """Run, resume and inspect durable processes."""
    if app_dir not in sys.path:
        sys.path.insert(0, app_dir)
    try:
        config = load_config(config_path).with_overrides(
            runs_dir=runs_dir,
            agent=agent,
            agent_options=_parse_json(agent_options, "--agent-options"),
            log_file=log_file,
        )
    except EffectflowError as e:
        _fail(str(e), "Check the --config file against the configuration schema")

    if verbose or config.log_file:
        setup_logging(verbose=verbose, log_file=config.log_file)
    ctx.obj = config


@cli.command()
@click.argument("process_ref")
@click.option("--inputs", default=None, help="Process inputs as a JSON object")
@click.option(
    "--inputs-file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Read process inputs from a JSON file",
)
@click.option("--run-id", default=None, help="Explicit run id")
@click.pass_obj
def run(
    config: RuntimeConfig,
    process_ref: str,
    inputs: str | None,
    inputs_file: str | None,
    run_id: str | None,
) -> None:
    """Start a new run of PROCESS_REF (package.module:function)."""
    data = _parse_json(inputs, "--inputs")
    if inputs_file:
        data = _parse_json(Path(inputs_file).read_text(), "--inputs-file")

    try:
        process_fn = load_process(process_ref)
        logger.debug("Loaded process %s", process_ref)
        driver = create_driver(config)
        result = driver.run(process_fn, data, run_id=run_id, process_id=process_ref)
    except (KeyError, ValueError, EffectflowError) as e:
        _fail(_message(e))

    print_run_result(result)
    if result.status == RunStatus.FAILED:
        sys.exit(1)


@cli.command()
@click.argument("run_id")
@click.pass_obj
def resume(config: RuntimeConfig, run_id: str) -> None:
    """Replay RUN_ID from the start and continue it."""
    try:
        result = create_driver(config).resume(run_id)
    except (KeyError, ValueError, EffectflowError) as e:
        _fail(_message(e))

    print_run_result(result)
    if result.status == RunStatus.FAILED:
        sys.exit(1)


@cli.command()
@click.argument("run_id")
@click.argument("effect_id")
@click.option("--payload", default=None, help="Resolution payload as JSON")
@click.option(
    "--resume/--no-resume",
    "resume_after",
    default=True,
    help="Continue the run once no breakpoint is pending (default: resume)",
)
@click.pass_obj
def resolve(
    config: RuntimeConfig,
    run_id: str,
    effect_id: str,
    payload: str | None,
    resume_after: bool,
) -> None:
    """Resolve breakpoint EFFECT_ID of RUN_ID."""
    value = _parse_json(payload, "--payload")
    try:
        driver = create_driver(config)
        resolved = driver.resolve(run_id, effect_id, value)
        print_success(f"Breakpoint {effect_id} of run {run_id} resolved")
        if resume_after and resolved.status == RunStatus.RUNNING:
            result = driver.resume(run_id)
            print_run_result(result)
            if result.status == RunStatus.FAILED:
                sys.exit(1)
    except (KeyError, ValueError, EffectflowError) as e:
        _fail(_message(e))


@cli.command()
@click.argument("run_id")
@click.pass_obj
def status(config: RuntimeConfig, run_id: str) -> None:
    """Show the stored state of RUN_ID."""
    try:
        run_record = FilesystemEffectStore(config.runs_dir).get_run(run_id)
    except (KeyError, EffectflowError) as e:
        _fail(_message(e))
    print_run_status(run_record)


@cli.command()
@click.argument("run_id")
@click.option("--json", "as_json", is_flag=True, help="Print raw effect records")
@click.pass_obj
def effects(config: RuntimeConfig, run_id: str, as_json: bool) -> None:
    """List the effect log of RUN_ID."""
    store = FilesystemEffectStore(config.runs_dir)
    try:
        store.get_run(run_id)
        records = store.list_effects(run_id)
    except (KeyError, EffectflowError) as e:
        _fail(_message(e))

    if as_json:
        click.echo(json.dumps([e.to_record() for e in records], indent=2))
    else:
        print_effects_table(records)


@cli.command()
@click.pass_obj
def runs(config: RuntimeConfig) -> None:
    """List stored runs."""
    try:
        records = FilesystemEffectStore(config.runs_dir).list_runs()
    except EffectflowError as e:
        _fail(_message(e))
    print_runs_table(records)


def _message(error: Exception) -> str:
    # KeyError repr-quotes its message
    if isinstance(error, KeyError) and error.args:
        return str(error.args[0])
    return str(error)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
