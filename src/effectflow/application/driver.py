"""
ProcessDriver: Runs, suspends, resumes and finishes runs.

Resumption is replay from the start: the process function is called again
with the same inputs and every call site whose effect is already Completed
returns its recorded output immediately. Only the first unfinished call
site does new work.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from effectflow.application.breakpoints import BreakpointController
from effectflow.application.context import ProcessContext, ProcessFn
from effectflow.application.executor import TaskExecutor
from effectflow.application.parallel import (
    DEFAULT_MAX_PARALLELISM,
    ParallelCoordinator,
)
from effectflow.application.run_event_emitter import RunEventEmitter
from effectflow.domain.effect_ids import normalize
from effectflow.domain.exceptions import (
    BreakpointPending,
    InputValidationError,
    InvalidResolution,
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
    Run,
    RunResult,
    RunStatus,
    isoformat,
)

logger = logging.getLogger("effectflow.driver")


@dataclass
class _RunLock:
    """Per-run lock and the number of callers holding or awaiting it."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


def process_id_for(process_fn: Callable[..., Any]) -> str:
    """Importable ``module:qualname`` reference of a process function."""
    return f"{process_fn.__module__}:{process_fn.__qualname__}"


class ProcessDriver:
    """
    Entry point of the runtime.

    Owns the collaborators shared by every run and serializes work on each
    run: two replays of the same run never overlap.
    """

    def __init__(
        self,
        store: EffectStoreInterface,
        agent_runner: AgentRunnerInterface | None = None,
        *,
        run_store: RunStoreInterface | None = None,
        event_store: RunEventStoreInterface | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
        max_task_retries: int = 0,
        retry_backoff_seconds: float = 0.0,
        max_parallelism: int = DEFAULT_MAX_PARALLELISM,
        process_loader: Callable[[str], ProcessFn] | None = None,
        scheduler: Callable[[str], None] | None = None,
    ):
        """
        Args:
            store: Effect store (usually also the run store)
            agent_runner: Collaborator executing task descriptors
            run_store: Run metadata store; defaults to ``store``
            event_store: Run journal (optional)
            clock: Time source for records and ``ctx.now()``
            id_factory: Generator of new run ids
            max_task_retries: In-call retries of transient task failures
            retry_backoff_seconds: Base delay between task retries
            max_parallelism: Upper bound on threads per parallel group
            process_loader: Resolves a stored process id to a function
            scheduler: Called with the run id when a resolution makes a
                suspended run ready to continue
        """
        if run_store is None:
            if not isinstance(store, RunStoreInterface):
                raise TypeError(
                    "store does not implement RunStoreInterface; pass run_store"
                )
            run_store = store
        self._store = store
        self._runs = run_store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._process_loader = process_loader
        self._scheduler = scheduler
        self._processes: dict[str, ProcessFn] = {}
        self._run_locks: dict[str, _RunLock] = {}
        self._locks_guard = threading.Lock()

        self._emitter = RunEventEmitter(event_store, self._clock)
        self._executor = TaskExecutor(
            store,
            agent_runner,
            self._clock,
            max_retries=max_task_retries,
            retry_backoff_seconds=retry_backoff_seconds,
            emitter=self._emitter,
        )
        self._coordinator = ParallelCoordinator(
            store, self._clock, max_parallelism, emitter=self._emitter
        )
        self._breakpoints = BreakpointController(
            store, self._clock, emitter=self._emitter
        )

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def register_process(self, process_id: str, process_fn: ProcessFn) -> None:
        """Make a process function resumable by id without importing it."""
        self._processes[process_id] = process_fn

    def run(
        self,
        process_fn: ProcessFn,
        inputs: Any = None,
        *,
        run_id: str | None = None,
        process_id: str | None = None,
    ) -> RunResult:
        """
        Start a new run and drive it until it completes, suspends or fails.

        Args:
            process_fn: ``process_fn(inputs, ctx)``
            inputs: JSON-serializable process inputs
            run_id: Explicit run id (default: generated)
            process_id: Id used to find the function on resume

        Returns:
            The RunResult; Failed runs are reported, not raised

        Raises:
            InputValidationError: If inputs are not JSON-serializable
            ValueError: If the run id is already taken
        """
        process_id = process_id or process_id_for(process_fn)
        self.register_process(process_id, process_fn)
        try:
            inputs = normalize({} if inputs is None else inputs)
        except (TypeError, ValueError) as e:
            raise InputValidationError(
                f"Process inputs must be JSON-serializable: {e}"
            ) from e

        timestamp = self._timestamp()
        run = self._runs.create_run(
            Run(
                run_id=run_id or self._id_factory(),
                process_id=process_id,
                status=RunStatus.RUNNING,
                inputs=inputs,
                created_at=timestamp,
                updated_at=timestamp,
            )
        )
        self._emitter.run_created(run.run_id, process_id)
        logger.info("Run %s created for process %s", run.run_id, process_id)
        with self._lock_for(run.run_id):
            return self._drive(run, process_fn)

    def resume(self, run_id: str, process_fn: ProcessFn | None = None) -> RunResult:
        """
        Replay a stored run from the start.

        A Completed run returns its recorded output without replaying.
        Concurrent resumes of one run are serialized; a resume that finds
        the run already Completed by another returns that result.

        Raises:
            KeyError: If the run, or its process function, is unknown
        """
        with self._lock_for(run_id):
            run = self._runs.get_run(run_id)
            if run.status == RunStatus.COMPLETED:
                return self._result(run)

            if process_fn is not None:
                self.register_process(run.process_id, process_fn)
            else:
                process_fn = self._resolve_process(run.process_id)

            run = self._runs.save_run(
                replace(
                    run,
                    status=RunStatus.RUNNING,
                    error=None,
                    pending_breakpoints=(),
                    updated_at=self._timestamp(),
                )
            )
            self._emitter.run_resumed(run_id)
            logger.info("Resuming run %s", run_id)
            return self._drive(run, process_fn)

    def resolve(self, run_id: str, effect_id: str, payload: Any = None) -> Run:
        """
        Resolve a pending breakpoint.

        The run becomes ready once no breakpoint is left pending; the
        configured scheduler (if any) is then told to continue it.

        Raises:
            KeyError: If the run or effect does not exist
            InvalidResolution: If the effect is not a Pending breakpoint of
                a run that can still continue
        """
        with self._lock_for(run_id):
            run = self._runs.get_run(run_id)
            if run.status == RunStatus.COMPLETED:
                raise InvalidResolution(f"Run {run_id} is already completed")
            self._breakpoints.resolve(run_id, effect_id, payload)

            remaining = tuple(b for b in run.pending_breakpoints if b != effect_id)
            status = run.status
            if status == RunStatus.SUSPENDED and not remaining:
                status = RunStatus.RUNNING
            run = self._runs.save_run(
                replace(
                    run,
                    status=status,
                    pending_breakpoints=remaining,
                    updated_at=self._timestamp(),
                )
            )

        if run.status == RunStatus.RUNNING and self._scheduler is not None:
            self._scheduler(run_id)
        return run

    def get_run(self, run_id: str) -> Run:
        """Stored run metadata. Raises KeyError for unknown runs."""
        return self._runs.get_run(run_id)

    def list_effects(self, run_id: str) -> list[Effect]:
        """Latest record of every effect of a run, in first-recorded order."""
        self._runs.get_run(run_id)
        return self._store.list_effects(run_id)

    # =========================================================================
    # REPLAY
    # =========================================================================

    def _drive(self, run: Run, process_fn: ProcessFn) -> RunResult:
        """Replay the process once. Callers hold the run lock."""
        ctx = ProcessContext(
            run.run_id,
            self._store,
            self._executor,
            self._coordinator,
            self._breakpoints,
            self._clock,
            self._emitter,
        )
        try:
            output = ctx.execute(process_fn, normalize(run.inputs))
        except BreakpointPending as pending:
            if ctx.fatal_error is not None:
                return self._fail(run, ctx.fatal_error)
            return self._suspend(run, pending.effects)
        except Exception as e:
            return self._fail(run, ctx.fatal_error or e)

        if ctx.fatal_error is not None:
            return self._fail(run, ctx.fatal_error)
        try:
            output = normalize(output)
        except (TypeError, ValueError) as e:
            return self._fail(
                run,
                InputValidationError(
                    f"Process output must be JSON-serializable: {e}"
                ),
            )
        return self._complete(run, output)

    def _complete(self, run: Run, output: Any) -> RunResult:
        run = self._runs.save_run(
            replace(
                run,
                status=RunStatus.COMPLETED,
                output=output,
                updated_at=self._timestamp(),
            )
        )
        self._emitter.run_completed(run.run_id)
        logger.info("Run %s completed", run.run_id)
        return self._result(run)

    def _suspend(self, run: Run, pending: tuple[Effect, ...]) -> RunResult:
        run = self._runs.save_run(
            replace(
                run,
                status=RunStatus.SUSPENDED,
                pending_breakpoints=tuple(e.effect_id for e in pending),
                updated_at=self._timestamp(),
            )
        )
        self._emitter.run_suspended(run.run_id, run.pending_breakpoints)
        logger.info(
            "Run %s suspended at %s",
            run.run_id,
            ", ".join(run.pending_breakpoints),
        )
        return self._result(run, pending=pending)

    def _fail(self, run: Run, error: BaseException) -> RunResult:
        run = self._runs.save_run(
            replace(
                run,
                status=RunStatus.FAILED,
                error=EffectError.from_exception(error),
                updated_at=self._timestamp(),
            )
        )
        self._emitter.run_failed(run.run_id, error)
        logger.error("Run %s failed: %s: %s", run.run_id, type(error).__name__, error)
        return self._result(run, error=error)

    def _result(
        self,
        run: Run,
        error: BaseException | None = None,
        pending: tuple[Effect, ...] = (),
    ) -> RunResult:
        return RunResult(
            run_id=run.run_id,
            status=run.status,
            output=run.output,
            error=error,
            effects=tuple(self._store.list_effects(run.run_id)),
            pending_breakpoints=pending,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _resolve_process(self, process_id: str) -> ProcessFn:
        if process_id in self._processes:
            return self._processes[process_id]
        if self._process_loader is None:
            raise KeyError(f"Process not registered: {process_id}")
        process_fn = self._process_loader(process_id)
        self.register_process(process_id, process_fn)
        return process_fn

    @contextmanager
    def _lock_for(self, run_id: str) -> Iterator[None]:
        """Hold the run's lock; the entry is dropped once nobody waits on it."""
        with self._locks_guard:
            entry = self._run_locks.setdefault(run_id, _RunLock())
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if not entry.holders:
                    del self._run_locks[run_id]

    def _timestamp(self) -> str:
        return isoformat(self._clock())
