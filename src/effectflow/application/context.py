"""
ProcessContext: The surface a process function sees.

Every call that touches the outside world goes through the context so it
can be recorded as an effect and replayed. Call sites are identified by
program order within the current scope, which is tracked in a context
variable so parallel members each get their own sequence.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import TYPE_CHECKING, Any

from effectflow.domain.effect_ids import (
    EffectScope,
    canonical_json,
    follows,
    normalize,
)
from effectflow.domain.exceptions import (
    FatalRunError,
    InputValidationError,
    NondeterminismDetected,
    error_from_effect,
)
from effectflow.domain.interfaces import EffectStoreInterface
from effectflow.domain.models import Effect, EffectKind, EffectStatus, isoformat
from effectflow.domain.tasks import TaskDefinition

if TYPE_CHECKING:
    from effectflow.application.breakpoints import BreakpointController
    from effectflow.application.executor import TaskExecutor
    from effectflow.application.parallel import ParallelCoordinator
    from effectflow.application.run_event_emitter import RunEventEmitter

process_logger = logging.getLogger("effectflow.process")

_current_scope: ContextVar[EffectScope | None] = ContextVar(
    "effectflow_scope", default=None
)

ProcessFn = Callable[[Any, "ProcessContext"], Any]


class _Parallel:
    """Namespace object behind ``ctx.parallel``."""

    def __init__(self, ctx: ProcessContext):
        self._ctx = ctx

    def all(self, thunks: Iterable[Callable[[], Any]]) -> list[Any]:
        """
        Run thunks concurrently; return their results in input order.

        Each thunk is a zero-argument callable that may itself use ``ctx``.

        Raises:
            ParallelGroupError: If one or more members failed
            BreakpointPending: If a member is waiting at a breakpoint
        """
        return self._ctx._parallel_all(list(thunks))


class ProcessContext:
    """
    Deterministic, replay-aware handle passed to ``process_fn(inputs, ctx)``.

    Created once per replay by the driver. Completed effects short-circuit:
    the recorded output is returned without touching the collaborator. A
    Failed effect that later effects were recorded after raises its recorded
    error again; only a failure nothing followed is re-attempted.
    """

    def __init__(
        self,
        run_id: str,
        store: EffectStoreInterface,
        executor: TaskExecutor,
        coordinator: ParallelCoordinator,
        breakpoints: BreakpointController,
        clock: Callable[[], datetime],
        emitter: RunEventEmitter,
    ):
        self._run_id = run_id
        self._store = store
        self._executor = executor
        self._coordinator = coordinator
        self._breakpoints = breakpoints
        self._clock = clock
        self._emitter = emitter
        self._root = EffectScope(run_id)
        self._recorded: tuple[str, ...] | None = None
        self._replaying = True
        self._fatal: FatalRunError | None = None
        self._lock = threading.Lock()
        self.parallel = _Parallel(self)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def is_replaying(self) -> bool:
        """True until the first call site that is not already Completed."""
        return self._replaying

    @property
    def fatal_error(self) -> FatalRunError | None:
        """First unrecoverable error seen, even if process code caught it."""
        return self._fatal

    # =========================================================================
    # PROCESS-AUTHOR SURFACE
    # =========================================================================

    def task(self, definition: TaskDefinition, args: Any = None) -> Any:
        """
        Invoke a task and return its validated result.

        Raises:
            InputValidationError: Arguments malformed
            TaskExecutionError: The collaborator failed
            OutputSchemaViolation: The result violates the output schema
        """
        args = {} if args is None else args
        with self._fatal_guard():
            effect_id = self._current_scope().next_id()
            effect_input = {
                "task": definition.name,
                "args": self._normalize(args, "Task arguments"),
            }
            existing = self._lookup(effect_id, EffectKind.TASK, effect_input)
            if existing is not None and existing.completed:
                return existing.output
            self._raise_handled_failure(existing)
            self._go_live()
            return self._executor.execute(
                definition,
                args,
                effect_id,
                run_id=self._run_id,
                previous=existing,
            )

    def breakpoint(
        self,
        request: dict[str, Any] | None = None,
        *,
        question: str | None = None,
        title: str | None = None,
        context: Any = None,
    ) -> Any:
        """
        Suspend the run until an external actor resolves this point.

        Returns:
            The resolver's payload (on the replay after resolution)

        Raises:
            BreakpointPending: Unwinds the process; not meant to be caught
        """
        payload = dict(request or {})
        for key, value in (
            ("question", question),
            ("title", title),
            ("context", context),
        ):
            if value is not None:
                payload[key] = value

        with self._fatal_guard():
            effect_id = self._current_scope().next_id()
            payload = self._normalize(payload, "Breakpoint request")
            existing = self._lookup(effect_id, EffectKind.BREAKPOINT, payload)
            if existing is None:
                self._go_live()
            return self._breakpoints.request(
                self._run_id, effect_id, payload, existing
            )

    def now(self) -> datetime:
        """Current time, recorded on first call and replayed afterwards."""
        with self._fatal_guard():
            effect_id = self._current_scope().next_id()
            existing = self._lookup(effect_id, EffectKind.NOW, {})
            if existing is not None and existing.completed:
                return datetime.fromisoformat(existing.output)
            self._go_live()
            moment = self._clock()
            self._store.put(
                Effect(
                    run_id=self._run_id,
                    effect_id=effect_id,
                    kind=EffectKind.NOW,
                    status=EffectStatus.COMPLETED,
                    input={},
                    output=isoformat(moment),
                    created_at=isoformat(moment),
                    completed_at=isoformat(moment),
                )
            )
            return moment

    def checkpoint(self, payload: dict[str, Any] | None = None, **fields: Any) -> None:
        """
        Record a non-suspending milestone (title, message, context).

        Replays are silent; the journal sees each checkpoint once.
        """
        data = {**(payload or {}), **fields}
        with self._fatal_guard():
            effect_id = self._current_scope().next_id()
            data = self._normalize(data, "Checkpoint payload")
            existing = self._lookup(effect_id, EffectKind.CHECKPOINT, data)
            if existing is not None and existing.completed:
                return
            self._go_live()
            timestamp = isoformat(self._clock())
            effect = self._store.put(
                Effect(
                    run_id=self._run_id,
                    effect_id=effect_id,
                    kind=EffectKind.CHECKPOINT,
                    status=EffectStatus.COMPLETED,
                    input=data,
                    created_at=timestamp,
                    completed_at=timestamp,
                )
            )
            self._emitter.checkpoint(effect)
            process_logger.info(
                "[%s] checkpoint %s: %s",
                self._run_id,
                effect_id,
                data.get("title") or data.get("message") or "",
            )

    def log(self, level: str | int, message: str, *args: Any) -> None:
        """Log from process code; suppressed while replaying recorded effects."""
        if self._replaying:
            return
        if isinstance(level, str):
            resolved = logging.getLevelName(level.upper())
            level = resolved if isinstance(resolved, int) else logging.INFO
        process_logger.log(level, "[%s] " + message, self._run_id, *args)

    # =========================================================================
    # RUNTIME INTERNALS
    # =========================================================================

    def execute(self, process_fn: ProcessFn, inputs: Any) -> Any:
        """Run the process function from the top under the root scope."""
        token = _current_scope.set(self._root)
        try:
            return process_fn(inputs, self)
        finally:
            _current_scope.reset(token)

    def _parallel_all(self, thunks: list[Callable[[], Any]]) -> list[Any]:
        with self._fatal_guard():
            group_id = self._current_scope().next_id()
            group_input = {"size": len(thunks)}
            existing = self._lookup(group_id, EffectKind.PARALLEL_GROUP, group_input)
            if existing is not None and existing.completed:
                return existing.output
            self._raise_handled_failure(existing)
            return self._coordinator.all(self, group_id, thunks, existing)

    def _current_scope(self) -> EffectScope:
        scope = _current_scope.get()
        if scope is None or scope.run_id != self._run_id:
            raise RuntimeError(
                f"Context of run {self._run_id} used outside its process function"
            )
        return scope

    @contextmanager
    def _scoped(self, scope: EffectScope) -> Iterator[EffectScope]:
        token = _current_scope.set(scope)
        try:
            yield scope
        finally:
            _current_scope.reset(token)

    @contextmanager
    def _fatal_guard(self) -> Iterator[None]:
        try:
            yield
        except FatalRunError as e:
            with self._lock:
                if self._fatal is None:
                    self._fatal = e
            raise

    def _lookup(
        self, effect_id: str, kind: EffectKind, effect_input: Any
    ) -> Effect | None:
        """
        Fetch the recorded effect for a call site and check it still matches.

        Raises:
            NondeterminismDetected: Kind or input differs from the record
        """
        existing = self._store.get(self._run_id, effect_id)
        if existing is None:
            return None
        if existing.kind != kind:
            raise NondeterminismDetected(
                effect_id,
                existing.kind.value,
                kind.value,
                f"recorded a {existing.kind.value} effect, "
                f"replay issued {kind.value}",
            )
        if canonical_json(existing.input) != canonical_json(effect_input):
            raise NondeterminismDetected(
                effect_id,
                existing.input,
                effect_input,
                f"{kind.value} input differs from the recorded input",
            )
        return existing

    def _raise_handled_failure(self, existing: Effect | None) -> None:
        """Replay a recorded failure that the process went on past."""
        if existing is None or not existing.failed:
            return
        if self._recorded is None:
            self._recorded = tuple(
                e.effect_id for e in self._store.list_effects(self._run_id)
            )
        if any(follows(other, existing.effect_id) for other in self._recorded):
            raise error_from_effect(existing)

    def _go_live(self) -> None:
        self._replaying = False

    @staticmethod
    def _normalize(value: Any, what: str) -> Any:
        try:
            return normalize(value)
        except (TypeError, ValueError) as e:
            raise InputValidationError(f"{what} must be JSON-serializable: {e}") from e
