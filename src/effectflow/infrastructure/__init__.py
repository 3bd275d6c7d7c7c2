"""
Infrastructure layer for the durable process runtime.

Contains adapters for external concerns (persistence, agents, registry).
"""

from effectflow.infrastructure.agents import MockAgentRunner
from effectflow.infrastructure.persistence import (
    FilesystemEffectStore,
    FilesystemRunEventStore,
    InMemoryEffectStore,
    InMemoryRunEventStore,
)
from effectflow.infrastructure.registry import AgentRunnerRegistry, load_process

__all__ = [
    # Persistence
    "InMemoryEffectStore",
    "FilesystemEffectStore",
    "InMemoryRunEventStore",
    "FilesystemRunEventStore",
    # Agents
    "MockAgentRunner",
    # Registry
    "AgentRunnerRegistry",
    "load_process",
]
