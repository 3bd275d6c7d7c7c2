"""Runtime configuration loading and driver wiring."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import jsonschema

from effectflow.application.driver import ProcessDriver
from effectflow.application.parallel import DEFAULT_MAX_PARALLELISM
from effectflow.domain.exceptions import ConfigurationError
from effectflow.domain.interfaces import AgentRunnerInterface
from effectflow.infrastructure.persistence import (
    FilesystemEffectStore,
    FilesystemRunEventStore,
)
from effectflow.infrastructure.registry import AgentRunnerRegistry, load_process
from effectflow.schemas import validate_config

RUNS_DIR_ENV = "EFFECTFLOW_RUNS_DIR"
DEFAULT_RUNS_DIR = ".effectflow/runs"


@dataclass(frozen=True)
class RuntimeConfig:
    """Settings shared by every run a driver executes."""

    runs_dir: str = DEFAULT_RUNS_DIR
    max_task_retries: int = 0
    retry_backoff_seconds: float = 0.0
    max_parallelism: int = DEFAULT_MAX_PARALLELISM
    agent: str | None = None  # Entry point name in "effectflow.agents"
    agent_options: dict[str, Any] = field(default_factory=dict)
    log_file: str | None = None

    def with_overrides(self, **overrides: Any) -> RuntimeConfig:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def load_config(path: Path | str | None = None) -> RuntimeConfig:
    """
    Load runtime configuration from a JSON file.

    Without a path, defaults are used. ``EFFECTFLOW_RUNS_DIR`` overrides the
    runs directory in both cases.

    Args:
        path: Path to the configuration file

    Returns:
        The RuntimeConfig

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid
    """
    data: dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Expected dict in {path}, got {type(data).__name__}"
            )
        try:
            validate_config(data)
        except jsonschema.ValidationError as e:
            location = "/".join(str(p) for p in e.absolute_path) or "<root>"
            raise ConfigurationError(f"Invalid config in {path}: {location}: {e.message}") from e

    known = {f.name for f in fields(RuntimeConfig)}
    config = RuntimeConfig(**{k: v for k, v in data.items() if k in known})
    env_runs_dir = os.environ.get(RUNS_DIR_ENV)
    if env_runs_dir:
        config = replace(config, runs_dir=env_runs_dir)
    return config


def create_agent_runner(config: RuntimeConfig) -> AgentRunnerInterface | None:
    """
    Instantiate the configured agent runner, if any.

    Raises:
        ConfigurationError: If the runner is unknown or rejects its options
    """
    if config.agent is None:
        return None
    try:
        return AgentRunnerRegistry.create(config.agent, **config.agent_options)
    except KeyError as e:
        raise ConfigurationError(str(e.args[0])) from e
    except TypeError as e:
        raise ConfigurationError(
            f"Invalid agent_options for '{config.agent}': {e}"
        ) from e


def create_driver(
    config: RuntimeConfig,
    agent_runner: AgentRunnerInterface | None = None,
    **driver_options: Any,
) -> ProcessDriver:
    """
    Wire a driver with filesystem persistence under ``config.runs_dir``.

    Args:
        config: Runtime configuration
        agent_runner: Explicit runner; defaults to the configured one
        **driver_options: Extra ProcessDriver keyword arguments
            (clock, id_factory, scheduler)
    """
    store = FilesystemEffectStore(config.runs_dir)
    return ProcessDriver(
        store,
        agent_runner or create_agent_runner(config),
        event_store=FilesystemRunEventStore(config.runs_dir),
        max_task_retries=config.max_task_retries,
        retry_backoff_seconds=config.retry_backoff_seconds,
        max_parallelism=config.max_parallelism,
        process_loader=load_process,
        **driver_options,
    )
