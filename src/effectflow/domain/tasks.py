"""
Task definitions for the durable process runtime.

This module provides:
- TaskContext: Per-call context handed to a task builder
- WorkDescriptor: What the agent collaborator is asked to do
- TaskDefinition: Named, reusable template producing work descriptors
- define_task: Module-level constructor registering the definition by name

These are structures only. Prompt content belongs to the process modules
that define tasks; the runtime only reads the declared output schema.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

# =============================================================================
# TASK CONTEXT
# =============================================================================


@dataclass(frozen=True)
class TaskContext:
    """Per-call context passed to a task builder and to the agent runner."""

    run_id: str
    effect_id: str
    task_name: str
    attempt: int = 1

    @property
    def task_dir(self) -> str:
        """Relative directory reserved for this call's I/O files."""
        return f"tasks/{self.effect_id}"


# =============================================================================
# WORK DESCRIPTOR
# =============================================================================


@dataclass(frozen=True)
class AgentSpec:
    """Agent invocation spec: who to ask, what to ask, what shape to expect."""

    name: str
    prompt: dict[str, Any] = field(default_factory=dict)
    output_schema: dict[str, Any] | None = None


@dataclass(frozen=True)
class TaskIO:
    """I/O path hints for the collaborator."""

    input_json_path: str
    output_json_path: str


@dataclass(frozen=True)
class WorkDescriptor:
    """Work handed to the agent collaborator for one task call."""

    kind: str
    title: str
    agent: AgentSpec
    io: TaskIO
    description: str = ""
    labels: tuple[str, ...] = ()

    @property
    def output_schema(self) -> dict[str, Any] | None:
        return self.agent.output_schema

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any], task_context: TaskContext
    ) -> WorkDescriptor:
        """
        Build a descriptor from a plain mapping.

        Accepts both snake_case and camelCase keys (``output_schema`` /
        ``outputSchema``, ``input_json_path`` / ``inputJsonPath``), so
        builders can return the same shape the agent runtime reads.

        Args:
            data: Mapping returned by a task builder
            task_context: Context of the call, used for default I/O paths

        Returns:
            The normalized WorkDescriptor

        Raises:
            ValueError: If the agent section is missing a name
        """
        agent_data = dict(data.get("agent") or {})
        name = agent_data.get("name") or data.get("name")
        if not name:
            raise ValueError(
                f"Task '{task_context.task_name}' descriptor has no agent name"
            )
        schema = _pick(agent_data, "output_schema", "outputSchema")
        if schema is None:
            schema = _pick(data, "output_schema", "outputSchema")

        io_data = dict(data.get("io") or {})
        io = TaskIO(
            input_json_path=_pick(io_data, "input_json_path", "inputJsonPath")
            or f"{task_context.task_dir}/input.json",
            output_json_path=_pick(io_data, "output_json_path", "outputJsonPath")
            or f"{task_context.task_dir}/result.json",
        )
        return cls(
            kind=data.get("kind", "agent"),
            title=data.get("title", task_context.task_name),
            description=data.get("description", ""),
            agent=AgentSpec(
                name=name,
                prompt=dict(agent_data.get("prompt") or {}),
                output_schema=schema,
            ),
            io=io,
            labels=tuple(data.get("labels", ())),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON shape agent runtimes consume."""
        return {
            "kind": self.kind,
            "title": self.title,
            "description": self.description,
            "agent": {
                "name": self.agent.name,
                "prompt": self.agent.prompt,
                "outputSchema": self.agent.output_schema,
            },
            "io": {
                "inputJsonPath": self.io.input_json_path,
                "outputJsonPath": self.io.output_json_path,
            },
            "labels": list(self.labels),
        }


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


# =============================================================================
# TASK DEFINITION
# =============================================================================

TaskBuilder = Callable[
    [dict[str, Any], TaskContext], WorkDescriptor | Mapping[str, Any]
]


@dataclass(frozen=True)
class TaskDefinition:
    """
    Named, stateless template that turns arguments into a work descriptor.

    Created once at module load; never mutated.
    """

    name: str
    builder: TaskBuilder
    input_schema: dict[str, Any] | None = None
    output_schema: dict[str, Any] | None = None
    retryable: bool = True

    def build(
        self, args: dict[str, Any], task_context: TaskContext
    ) -> WorkDescriptor:
        """Call the builder and normalize its result."""
        built = self.builder(args, task_context)
        if isinstance(built, WorkDescriptor):
            return built
        if isinstance(built, Mapping):
            return WorkDescriptor.from_mapping(built, task_context)
        raise TypeError(
            f"Task '{self.name}' builder returned {type(built).__name__}, "
            "expected WorkDescriptor or mapping"
        )

    def resolve_output_schema(
        self, descriptor: WorkDescriptor
    ) -> dict[str, Any] | None:
        """The declared schema wins; otherwise use the descriptor's."""
        if self.output_schema is not None:
            return self.output_schema
        return descriptor.output_schema


class TaskRegistry:
    """Process-wide registry of task definitions, keyed by name."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskDefinition] = {}
        self._lock = threading.Lock()

    def register(self, definition: TaskDefinition) -> TaskDefinition:
        """
        Register a definition.

        A builder from the same module and qualified name replaces the old
        one, so reloading a process module is harmless. Lambdas must also
        have the same code.

        Raises:
            ValueError: If the name is taken by a different builder
        """
        with self._lock:
            existing = self._tasks.get(definition.name)
            if existing is not None and not _same_origin(
                existing.builder, definition.builder
            ):
                raise ValueError(f"Task '{definition.name}' is already defined")
            self._tasks[definition.name] = definition
            return definition

    def get(self, name: str) -> TaskDefinition:
        if name not in self._tasks:
            raise KeyError(f"Task not found: {name}")
        return self._tasks[name]

    def names(self) -> list[str]:
        return sorted(self._tasks)


def _same_origin(first: Callable[..., Any], second: Callable[..., Any]) -> bool:
    """
    Whether two builders come from the same place in the source.

    Module and qualified name survive a reload. Every lambda in a module is
    named ``<lambda>``, so lambdas must also share their code.
    """
    if first is second:
        return True

    def origin(fn: Callable[..., Any]) -> tuple[str | None, str | None]:
        return getattr(fn, "__module__", None), getattr(fn, "__qualname__", None)

    if origin(first) != origin(second):
        return False
    if (origin(first)[1] or "").endswith("<lambda>"):
        return getattr(first, "__code__", None) == getattr(second, "__code__", None)
    return True


registry = TaskRegistry()


def define_task(
    name: str,
    builder: TaskBuilder,
    *,
    input_schema: dict[str, Any] | None = None,
    output_schema: dict[str, Any] | None = None,
    retryable: bool = True,
) -> TaskDefinition:
    """
    Define and register a task.

    Example:
        draft_criteria = define_task(
            "define-acceptance-criteria",
            lambda args, task_ctx: {
                "kind": "agent",
                "title": f"Define acceptance criteria: {args['feature']}",
                "agent": {
                    "name": "acceptance-criteria-analyst",
                    "prompt": {"task": "Define acceptance criteria"},
                    "outputSchema": {"type": "object", "required": ["criteria"]},
                },
            },
        )

    Args:
        name: Unique task name
        builder: Pure function ``(args, task_ctx) -> WorkDescriptor | mapping``
        input_schema: Optional JSON Schema the arguments must satisfy
        output_schema: Optional JSON Schema overriding the descriptor's
        retryable: False forbids automatic retries of collaborator failures

    Returns:
        The registered TaskDefinition
    """
    return registry.register(
        TaskDefinition(
            name=name,
            builder=builder,
            input_schema=input_schema,
            output_schema=output_schema,
            retryable=retryable,
        )
    )
