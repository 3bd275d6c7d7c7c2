"""
Persistence adapters for effects, runs and run journals.
"""

from effectflow.infrastructure.persistence.filesystem import FilesystemEffectStore
from effectflow.infrastructure.persistence.memory import InMemoryEffectStore
from effectflow.infrastructure.persistence.run_events import (
    FilesystemRunEventStore,
    InMemoryRunEventStore,
)

__all__ = [
    "FilesystemEffectStore",
    "FilesystemRunEventStore",
    "InMemoryEffectStore",
    "InMemoryRunEventStore",
]
