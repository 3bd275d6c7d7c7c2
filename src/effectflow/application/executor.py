"""
TaskExecutor: Durable execution of a single task call.

Validates arguments, builds the work descriptor, dispatches it to the agent
collaborator, gates the result on the output schema and records the terminal
effect. Memoization (returning a Completed effect) happens in the process
context before the executor is reached.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any, TypeVar

from effectflow.application.run_event_emitter import RunEventEmitter
from effectflow.application.validation import schema_errors, validate_arguments
from effectflow.domain.effect_ids import normalize
from effectflow.domain.exceptions import (
    AgentError,
    OutputSchemaViolation,
    TaskExecutionError,
)
from effectflow.domain.interfaces import AgentRunnerInterface, EffectStoreInterface
from effectflow.domain.models import (
    Effect,
    EffectError,
    EffectKind,
    EffectStatus,
    isoformat,
)
from effectflow.domain.tasks import TaskContext, TaskDefinition, WorkDescriptor

logger = logging.getLogger("effectflow.executor")

E = TypeVar("E", bound=Exception)


class TaskExecutor:
    """
    Stateless executor for task effects.

    Manages only the in-call retry loop. Run state is managed by the driver.
    """

    def __init__(
        self,
        store: EffectStoreInterface,
        agent_runner: AgentRunnerInterface | None,
        clock: Callable[[], datetime],
        max_retries: int = 0,
        retry_backoff_seconds: float = 0.0,
        emitter: RunEventEmitter | None = None,
    ):
        """
        Args:
            store: Where terminal task effects are recorded
            agent_runner: The collaborator; None means tasks cannot run
            clock: Source of timestamps for effect records
            max_retries: Extra attempts for transient collaborator failures
            retry_backoff_seconds: Base delay, doubled on each retry
            emitter: Run journal (optional)
        """
        self._store = store
        self._agent_runner = agent_runner
        self._clock = clock
        self._max_retries = max_retries
        self._retry_backoff_seconds = retry_backoff_seconds
        self._emitter = emitter or RunEventEmitter()

    def execute(
        self,
        definition: TaskDefinition,
        args: Any,
        effect_id: str,
        *,
        run_id: str,
        previous: Effect | None = None,
    ) -> Any:
        """
        Execute one task call and record its terminal effect.

        Args:
            definition: The task definition invoked
            args: Call-site arguments
            effect_id: Deterministic id of the call site
            run_id: Run the call belongs to
            previous: Failed record from an earlier resume, if any

        Returns:
            The validated (JSON-normalized) result

        Raises:
            InputValidationError: Arguments malformed; nothing is recorded
            TaskExecutionError: The collaborator failed after all attempts
            OutputSchemaViolation: The result violates the output schema
        """
        args = validate_arguments(args, definition.input_schema)
        effect = Effect(
            run_id=run_id,
            effect_id=effect_id,
            kind=EffectKind.TASK,
            status=EffectStatus.RUNNING,
            input={"task": definition.name, "args": args},
            attempt=previous.attempt + 1 if previous else 1,
            created_at=isoformat(self._clock()),
        )
        retries_allowed = self._max_retries if definition.retryable else 0
        retry_count = 0

        while True:
            task_context = TaskContext(
                run_id=run_id,
                effect_id=effect_id,
                task_name=definition.name,
                attempt=effect.attempt,
            )
            try:
                descriptor = definition.build(args, task_context)
            except Exception as e:
                # Builder bugs are deterministic; retrying cannot help
                raise self._fail(
                    effect,
                    TaskExecutionError(
                        f"Task '{definition.name}' builder failed: {e}",
                        definition.name,
                        effect_id,
                        attempts=retry_count + 1,
                        retryable=False,
                    ),
                ) from e

            if self._agent_runner is None:
                raise self._fail(
                    effect,
                    TaskExecutionError(
                        f"No agent runner configured for agent "
                        f"'{descriptor.agent.name}'",
                        definition.name,
                        effect_id,
                        retryable=False,
                    ),
                )

            try:
                result = self._dispatch(self._agent_runner, descriptor, task_context)
            except AgentError as e:
                transient = e.transient
                cause: Exception = e
            except Exception as e:
                transient = True
                cause = e
            else:
                return self._accept(effect, definition, descriptor, result)

            if transient and retry_count < retries_allowed:
                retry_count += 1
                delay = self._retry_backoff_seconds * (2 ** (retry_count - 1))
                logger.warning(
                    "Task %s (%s) attempt %d failed: %s; retrying in %.2fs",
                    definition.name,
                    effect_id,
                    effect.attempt,
                    cause,
                    delay,
                )
                if delay > 0:
                    time.sleep(delay)
                effect = replace(effect, attempt=effect.attempt + 1)
                continue

            raise self._fail(
                effect,
                TaskExecutionError(
                    f"Task '{definition.name}' failed after "
                    f"{retry_count + 1} attempt(s): {cause}",
                    definition.name,
                    effect_id,
                    attempts=retry_count + 1,
                    retryable=transient and definition.retryable,
                ),
            ) from cause

    def _dispatch(
        self,
        agent_runner: AgentRunnerInterface,
        descriptor: WorkDescriptor,
        task_context: TaskContext,
    ) -> Any:
        logger.debug(
            "Dispatching task %s (%s) to agent %s, attempt %d",
            task_context.task_name,
            task_context.effect_id,
            descriptor.agent.name,
            task_context.attempt,
        )
        return agent_runner.run(descriptor, task_context)

    def _accept(
        self,
        effect: Effect,
        definition: TaskDefinition,
        descriptor: WorkDescriptor,
        result: Any,
    ) -> Any:
        try:
            output = normalize(result)
        except (TypeError, ValueError) as e:
            raise self._fail(
                effect,
                OutputSchemaViolation(
                    f"Task '{definition.name}' returned a non-JSON result: {e}",
                    definition.name,
                    effect.effect_id,
                    [str(e)],
                ),
            ) from e

        schema = definition.resolve_output_schema(descriptor)
        if schema is not None:
            errors = schema_errors(output, schema)
            if errors:
                raise self._fail(
                    effect,
                    OutputSchemaViolation(
                        f"Task '{definition.name}' output violates its schema: "
                        f"{errors[0]}",
                        definition.name,
                        effect.effect_id,
                        errors,
                    ),
                )

        completed = effect.complete(output, isoformat(self._clock()))
        self._store.put(completed)
        self._emitter.effect_completed(completed)
        logger.info(
            "Task %s (%s) completed on attempt %d",
            definition.name,
            effect.effect_id,
            effect.attempt,
        )
        return output

    def _fail(self, effect: Effect, error: E) -> E:
        """Record the Failed effect and hand the error back for raising."""
        details: dict[str, Any] = {}
        if isinstance(error, OutputSchemaViolation):
            details["errors"] = error.errors
        elif isinstance(error, TaskExecutionError):
            details["attempts"] = error.attempts
        retryable = isinstance(error, TaskExecutionError) and error.retryable
        failed = effect.fail(
            EffectError.from_exception(error, retryable=retryable, **details),
            isoformat(self._clock()),
        )
        self._store.put(failed)
        self._emitter.effect_failed(failed)
        logger.error("Task effect %s failed: %s", effect.effect_id, error)
        return error
