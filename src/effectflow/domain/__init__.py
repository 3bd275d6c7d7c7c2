"""
Domain layer for the durable process runtime.

Contains core records and contracts with no external dependencies.
"""

from effectflow.domain.effect_ids import (
    EffectScope,
    canonical_json,
    fingerprint,
    follows,
)
from effectflow.domain.exceptions import (
    AgentError,
    BreakpointPending,
    ConfigurationError,
    EffectAlreadyCompleted,
    EffectflowError,
    EffectPersistenceError,
    FatalRunError,
    InputValidationError,
    InvalidResolution,
    NondeterminismDetected,
    OutputSchemaViolation,
    ParallelGroupError,
    RunFailed,
    TaskExecutionError,
    error_from_effect,
)
from effectflow.domain.interfaces import (
    AgentRunnerInterface,
    EffectStoreInterface,
    RunEventStoreInterface,
    RunStoreInterface,
)
from effectflow.domain.models import (
    Effect,
    EffectError,
    EffectKind,
    EffectStatus,
    Run,
    RunResult,
    RunStatus,
)
from effectflow.domain.run_event import RunEvent, RunEventType
from effectflow.domain.tasks import (
    AgentSpec,
    TaskContext,
    TaskDefinition,
    TaskIO,
    WorkDescriptor,
    define_task,
)

__all__ = [
    # Models
    "Effect",
    "EffectError",
    "EffectKind",
    "EffectStatus",
    "Run",
    "RunResult",
    "RunStatus",
    "RunEvent",
    "RunEventType",
    # Tasks (structures only, no prompt content)
    "AgentSpec",
    "TaskContext",
    "TaskDefinition",
    "TaskIO",
    "WorkDescriptor",
    "define_task",
    # Effect ids
    "EffectScope",
    "canonical_json",
    "fingerprint",
    "follows",
    # Interfaces
    "AgentRunnerInterface",
    "EffectStoreInterface",
    "RunEventStoreInterface",
    "RunStoreInterface",
    # Exceptions
    "AgentError",
    "BreakpointPending",
    "ConfigurationError",
    "EffectAlreadyCompleted",
    "EffectflowError",
    "EffectPersistenceError",
    "FatalRunError",
    "InputValidationError",
    "InvalidResolution",
    "NondeterminismDetected",
    "OutputSchemaViolation",
    "ParallelGroupError",
    "RunFailed",
    "TaskExecutionError",
    "error_from_effect",
]
