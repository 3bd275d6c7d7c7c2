"""Run journal models: one record per runtime state transition."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RunEventType(str, Enum):
    """Types of run journal events."""

    RUN_CREATED = "RUN_CREATED"
    RUN_RESUMED = "RUN_RESUMED"
    RUN_SUSPENDED = "RUN_SUSPENDED"
    RUN_COMPLETED = "RUN_COMPLETED"
    RUN_FAILED = "RUN_FAILED"
    EFFECT_COMPLETED = "EFFECT_COMPLETED"
    EFFECT_FAILED = "EFFECT_FAILED"
    BREAKPOINT_OPENED = "BREAKPOINT_OPENED"
    BREAKPOINT_RESOLVED = "BREAKPOINT_RESOLVED"
    CHECKPOINT = "CHECKPOINT"


@dataclass(frozen=True)
class RunEvent:
    """Single journal entry.

    The journal is an audit trail for humans and tooling; replay never reads
    it. The effect store alone decides what is memoized.
    """

    event_id: str
    event_type: RunEventType
    run_id: str
    effect_id: str | None = None
    summary: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""  # ISO 8601
