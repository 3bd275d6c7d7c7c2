"""
Agent Runner Registry with Entry Points Discovery.

Provides dynamic agent runner loading via Python entry points
(effectflow.agents group). External packages can register runners in their
pyproject.toml:

    [project.entry-points."effectflow.agents"]
    my-agent = "mypackage.agents:MyAgentRunner"

Also resolves ``module:function`` references to process functions, which is
how a stored run finds its process function again after a restart.
"""

import importlib
import warnings
from importlib.metadata import entry_points
from typing import Any

from effectflow.application.context import ProcessFn
from effectflow.domain.interfaces import AgentRunnerInterface


class AgentRunnerRegistry:
    """
    Registry for AgentRunnerInterface implementations.

    Discovers runners via the 'effectflow.agents' entry point group.
    Uses lazy loading - entry points are only loaded on first access.

    Example usage:
        runner = AgentRunnerRegistry.create("mock", responses={"greet": "hi"})
    """

    _runners: dict[str, type[AgentRunnerInterface]] = {}
    _loaded: bool = False

    @classmethod
    def _load_entry_points(cls) -> None:
        """Load runners from entry points (lazy, called once)."""
        if cls._loaded:
            return

        for ep in entry_points(group="effectflow.agents"):
            try:
                cls._runners.setdefault(ep.name, ep.load())
            except Exception as e:
                warnings.warn(
                    f"Failed to load agent runner '{ep.name}' from entry point: {e}",
                    stacklevel=2,
                )

        cls._loaded = True

    @classmethod
    def register(cls, name: str, runner_class: type[AgentRunnerInterface]) -> None:
        """
        Manually register a runner class.

        Useful for testing or dynamically-created runners.
        """
        cls._runners[name] = runner_class

    @classmethod
    def get(cls, name: str) -> type[AgentRunnerInterface]:
        """
        Get a runner class by name.

        Raises:
            KeyError: If runner not found
        """
        cls._load_entry_points()
        if name not in cls._runners:
            available = ", ".join(sorted(cls._runners)) or "(none)"
            raise KeyError(
                f"Agent runner '{name}' not found. Available runners: {available}"
            )
        return cls._runners[name]

    @classmethod
    def create(cls, name: str, **config: Any) -> AgentRunnerInterface:
        """
        Create a runner instance by name.

        Raises:
            KeyError: If runner not found
            TypeError: If config doesn't match constructor signature
        """
        return cls.get(name)(**config)

    @classmethod
    def available(cls) -> list[str]:
        """List available runner names."""
        cls._load_entry_points()
        return sorted(cls._runners)

    @classmethod
    def clear(cls) -> None:
        """
        Clear all registered runners (useful for testing).

        Also resets the loaded flag so entry points can be reloaded.
        """
        cls._runners.clear()
        cls._loaded = False


def load_process(reference: str) -> ProcessFn:
    """
    Import a process function from a ``module:qualified.name`` reference.

    Raises:
        ValueError: If the reference is malformed
        KeyError: If the module or attribute cannot be found
    """
    module_name, sep, qualname = reference.partition(":")
    if not sep or not module_name or not qualname:
        raise ValueError(
            f"Process reference must look like 'package.module:function', got "
            f"'{reference}'"
        )
    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise KeyError(f"Process not found: {reference} ({e})") from e
    for part in qualname.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise KeyError(f"Process not found: {reference}") from e
    if not callable(target):
        raise KeyError(f"Process reference is not callable: {reference}")
    return target  # type: ignore[no-any-return]
