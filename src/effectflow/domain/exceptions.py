"""
Domain exceptions for the durable process runtime.

Errors raised inside a single effect reach the process function, which may
handle them. ``FatalRunError`` subclasses cannot be handled: the run is marked
Failed even if the process function swallows them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from effectflow.domain.models import Effect


class EffectflowError(Exception):
    """Base class for runtime errors."""


class ConfigurationError(EffectflowError):
    """Raised when configuration files are invalid or missing."""


class InputValidationError(EffectflowError):
    """
    Raised when call-site arguments are malformed before dispatch.

    Never retried and never persisted: the arguments may not even be
    serializable.
    """

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class TaskExecutionError(EffectflowError):
    """Raised when the agent collaborator fails to execute a task."""

    def __init__(
        self,
        message: str,
        task_name: str,
        effect_id: str,
        attempts: int = 1,
        retryable: bool = True,
    ):
        """
        Args:
            message: Human-readable error message
            task_name: Name of the failing task definition
            effect_id: Effect id of the failing call
            attempts: Number of attempts made (including retries)
            retryable: Whether a later resume may re-attempt the task
        """
        super().__init__(message)
        self.task_name = task_name
        self.effect_id = effect_id
        self.attempts = attempts
        self.retryable = retryable


class OutputSchemaViolation(EffectflowError):
    """
    Raised when the collaborator returns data violating the declared schema.

    The effect is marked Failed; the result is never coerced or retried
    automatically.
    """

    def __init__(
        self, message: str, task_name: str, effect_id: str, errors: list[str]
    ):
        super().__init__(message)
        self.task_name = task_name
        self.effect_id = effect_id
        self.errors = errors


class ParallelGroupError(EffectflowError):
    """
    Raised by ``ctx.parallel.all`` when one or more members failed.

    Succeeded members stay Completed; only failed members run again on retry.
    """

    def __init__(
        self,
        group_id: str,
        first_failure: BaseException | None,
        succeeded: tuple[int, ...],
        failed: tuple[int, ...],
        message: str | None = None,
    ):
        """
        Args:
            group_id: Effect id of the parallel group
            first_failure: Error of the lowest failed member (None on replay)
            succeeded: Indexes of members that completed
            failed: Indexes of members that failed
            message: Recorded message, used instead of a summary of first_failure
        """
        if message is None:
            message = (
                f"Parallel group {group_id} failed: {len(failed)} of "
                f"{len(succeeded) + len(failed)} members failed "
                f"(first: {type(first_failure).__name__}: {first_failure})"
            )
        super().__init__(message)
        self.group_id = group_id
        self.first_failure = first_failure
        self.succeeded = succeeded
        self.failed = failed


class InvalidResolution(EffectflowError):
    """Raised when a breakpoint resolution targets the wrong effect or state."""


class EffectAlreadyCompleted(EffectflowError):
    """Raised by a store when a write targets an already Completed effect."""

    def __init__(self, run_id: str, effect_id: str):
        super().__init__(f"Effect {effect_id} of run {run_id} is already completed")
        self.run_id = run_id
        self.effect_id = effect_id


class FatalRunError(EffectflowError):
    """Base for errors that abort the whole run regardless of handling."""


class EffectPersistenceError(FatalRunError):
    """Raised when the effect store cannot durably record progress."""


class NondeterminismDetected(FatalRunError):
    """Raised when a replayed call site diverges from the recorded effect."""

    def __init__(self, effect_id: str, expected: Any, actual: Any, reason: str):
        super().__init__(f"Nondeterminism at effect {effect_id}: {reason}")
        self.effect_id = effect_id
        self.expected = expected
        self.actual = actual
        self.reason = reason


class AgentError(Exception):
    """
    Raised by agent collaborators.

    ``transient`` failures may be retried per policy; permanent ones never.
    """

    def __init__(self, message: str, transient: bool = True):
        super().__init__(message)
        self.transient = transient


class RunFailed(EffectflowError):
    """Raised by ``RunResult.raise_for_status`` for a Failed run."""

    def __init__(
        self,
        run_id: str,
        cause: BaseException | None,
        effects: tuple[Effect, ...] = (),
    ):
        super().__init__(f"Run {run_id} failed: {cause}")
        self.run_id = run_id
        self.cause = cause
        self.effects = effects


class BreakpointPending(BaseException):
    """
    Control-flow signal: the run must suspend at a pending breakpoint.

    Derives from BaseException so that ``except Exception`` blocks in process
    code do not swallow the suspension.
    """

    def __init__(self, effects: tuple[Effect, ...]):
        super().__init__(
            "Breakpoint pending: " + ", ".join(e.effect_id for e in effects)
        )
        self.effects = effects


def error_from_effect(effect: Effect) -> EffectflowError:
    """
    Rebuild the error a Failed effect recorded.

    Replay raises it again at the call site so process code that handled the
    failure takes the same path without re-running the effect.
    """
    error = effect.error
    if error is None:
        return EffectflowError(f"Effect {effect.effect_id} failed")

    details = error.details
    task_name = effect.input.get("task", "") if isinstance(effect.input, dict) else ""
    if error.type == "OutputSchemaViolation":
        return OutputSchemaViolation(
            error.message, task_name, effect.effect_id, list(details.get("errors", []))
        )
    if error.type == "ParallelGroupError":
        return ParallelGroupError(
            effect.effect_id,
            None,
            tuple(details.get("succeeded", ())),
            tuple(details.get("failed", ())),
            message=error.message,
        )
    if error.type == "TaskExecutionError":
        return TaskExecutionError(
            error.message,
            task_name,
            effect.effect_id,
            attempts=details.get("attempts", 1),
            retryable=error.retryable,
        )
    return EffectflowError(f"{error.type}: {error.message}")
