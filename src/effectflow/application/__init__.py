"""
Application layer for the durable process runtime.

Contains the orchestration that turns process code into recorded effects.
"""

from effectflow.application.breakpoints import BreakpointController
from effectflow.application.context import ProcessContext, ProcessFn
from effectflow.application.driver import ProcessDriver, process_id_for
from effectflow.application.executor import TaskExecutor
from effectflow.application.parallel import ParallelCoordinator
from effectflow.application.run_event_emitter import RunEventEmitter

__all__ = [
    "BreakpointController",
    "ParallelCoordinator",
    "ProcessContext",
    "ProcessDriver",
    "ProcessFn",
    "RunEventEmitter",
    "TaskExecutor",
    "process_id_for",
]
