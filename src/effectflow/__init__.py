"""
Effectflow: durable, replayable process execution.

Process functions are ordinary Python code that reaches the outside world
only through ``ctx``. Every such call is recorded as an effect, so a run can
be suspended, crash, and resume without redoing completed work.

Example:
    from effectflow import ProcessDriver, define_task
    from effectflow.infrastructure import InMemoryEffectStore, MockAgentRunner

    greet = define_task(
        "greet",
        lambda args, task_ctx: {"agent": {"name": "greeter"}, "title": "Greet"},
    )

    def hello(inputs, ctx):
        return ctx.task(greet, {"name": inputs["name"]})

    driver = ProcessDriver(InMemoryEffectStore(), MockAgentRunner(["hi"]))
    result = driver.run(hello, {"name": "Ada"})
"""

from effectflow.application import (
    ProcessContext,
    ProcessDriver,
    process_id_for,
)
from effectflow.domain import (
    AgentError,
    BreakpointPending,
    Effect,
    EffectKind,
    EffectStatus,
    EffectflowError,
    EffectPersistenceError,
    FatalRunError,
    InputValidationError,
    InvalidResolution,
    NondeterminismDetected,
    OutputSchemaViolation,
    ParallelGroupError,
    Run,
    RunFailed,
    RunResult,
    RunStatus,
    TaskContext,
    TaskDefinition,
    TaskExecutionError,
    WorkDescriptor,
    define_task,
)

__version__ = "0.1.0"

__all__ = [
    # Runtime
    "ProcessDriver",
    "ProcessContext",
    "process_id_for",
    # Tasks
    "define_task",
    "TaskDefinition",
    "TaskContext",
    "WorkDescriptor",
    # Records
    "Effect",
    "EffectKind",
    "EffectStatus",
    "Run",
    "RunResult",
    "RunStatus",
    # Errors
    "EffectflowError",
    "AgentError",
    "BreakpointPending",
    "EffectPersistenceError",
    "FatalRunError",
    "InputValidationError",
    "InvalidResolution",
    "NondeterminismDetected",
    "OutputSchemaViolation",
    "ParallelGroupError",
    "RunFailed",
    "TaskExecutionError",
]
