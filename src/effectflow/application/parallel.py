"""
ParallelCoordinator: Fan-out/fan-in of independent process branches.

Each member runs in its own thread with its own effect scope, so the effect
ids issued inside a member depend only on the group id, the member's index
and the member's own program order, never on scheduling. Every member is
awaited before the group settles; members that completed stay Completed
even when a sibling fails.
"""

from __future__ import annotations

import contextvars
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import TYPE_CHECKING, Any

from effectflow.application.run_event_emitter import RunEventEmitter
from effectflow.domain.effect_ids import EffectScope, member_id, normalize
from effectflow.domain.exceptions import (
    BreakpointPending,
    FatalRunError,
    InputValidationError,
    ParallelGroupError,
)
from effectflow.domain.interfaces import EffectStoreInterface
from effectflow.domain.models import (
    Effect,
    EffectError,
    EffectKind,
    EffectStatus,
    isoformat,
)

if TYPE_CHECKING:
    from effectflow.application.context import ProcessContext

logger = logging.getLogger("effectflow.parallel")

DEFAULT_MAX_PARALLELISM = 8


class ParallelCoordinator:
    """Runs the members of a parallel group and records the group outcome."""

    def __init__(
        self,
        store: EffectStoreInterface,
        clock: Callable[[], datetime],
        max_parallelism: int = DEFAULT_MAX_PARALLELISM,
        emitter: RunEventEmitter | None = None,
    ):
        """
        Args:
            store: Where group and member effects are recorded
            clock: Source of timestamps for effect records
            max_parallelism: Upper bound on member threads per group
            emitter: Run journal (optional)
        """
        if max_parallelism < 1:
            raise ValueError("max_parallelism must be at least 1")
        self._store = store
        self._clock = clock
        self._max_parallelism = max_parallelism
        self._emitter = emitter or RunEventEmitter()

    def all(
        self,
        ctx: ProcessContext,
        group_id: str,
        thunks: list[Callable[[], Any]],
        previous: Effect | None = None,
    ) -> list[Any]:
        """
        Run every member and settle the group.

        Args:
            ctx: Context of the replay issuing the group
            group_id: Deterministic id of the group call site
            thunks: Zero-argument member callables, in result order
            previous: Failed group record from an earlier resume, if any

        Returns:
            Member results in input order

        Raises:
            FatalRunError: A member hit an unrecoverable error
            ParallelGroupError: One or more members failed
            BreakpointPending: No member failed but some are suspended
        """
        group = Effect(
            run_id=ctx.run_id,
            effect_id=group_id,
            kind=EffectKind.PARALLEL_GROUP,
            status=EffectStatus.RUNNING,
            input={"size": len(thunks)},
            attempt=previous.attempt + 1 if previous else 1,
            created_at=isoformat(self._clock()),
        )
        scope = ctx._current_scope()
        results: list[Any] = [None] * len(thunks)
        errors: dict[int, BaseException] = {}

        if thunks:
            workers = min(len(thunks), self._max_parallelism)
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix=f"effectflow-{group_id}"
            ) as pool:
                futures = [
                    pool.submit(
                        contextvars.copy_context().run,
                        self._run_member,
                        ctx,
                        scope.member(group_id, index),
                        group_id,
                        index,
                        thunk,
                    )
                    for index, thunk in enumerate(thunks)
                ]
                for index, future in enumerate(futures):
                    try:
                        results[index] = future.result()
                    except BaseException as e:  # noqa: BLE001 - settled below
                        errors[index] = e

        return self._settle(group, results, errors)

    def _run_member(
        self,
        ctx: ProcessContext,
        scope: EffectScope,
        group_id: str,
        index: int,
        thunk: Callable[[], Any],
    ) -> Any:
        effect_id = member_id(group_id, index)
        member_input = {"group": group_id, "index": index}
        existing = ctx._lookup(effect_id, EffectKind.PARALLEL_MEMBER, member_input)
        if existing is not None and existing.completed:
            return existing.output

        member = Effect(
            run_id=ctx.run_id,
            effect_id=effect_id,
            kind=EffectKind.PARALLEL_MEMBER,
            status=EffectStatus.RUNNING,
            input=member_input,
            attempt=existing.attempt + 1 if existing else 1,
            created_at=isoformat(self._clock()),
        )
        with ctx._scoped(scope):
            try:
                value = thunk()
            except FatalRunError:
                raise
            except Exception as e:
                self._record_member_failure(member, e)
                raise

        try:
            output = normalize(value)
        except (TypeError, ValueError) as e:
            error = InputValidationError(
                f"Parallel member {effect_id} returned a non-JSON value: {e}"
            )
            self._record_member_failure(member, error)
            raise error from e

        self._store.put(member.complete(output, isoformat(self._clock())))
        return output

    def _record_member_failure(self, member: Effect, error: BaseException) -> None:
        failed = member.fail(
            EffectError.from_exception(error), isoformat(self._clock())
        )
        self._store.put(failed)
        self._emitter.effect_failed(failed)
        logger.warning("Parallel member %s failed: %s", member.effect_id, error)

    def _settle(
        self,
        group: Effect,
        results: list[Any],
        errors: dict[int, BaseException],
    ) -> list[Any]:
        for error in errors.values():
            if isinstance(error, FatalRunError):
                raise error
        for error in errors.values():
            # Interpreter-level signals (crashes, interrupts) propagate as is
            if not isinstance(error, (Exception, BreakpointPending)):
                raise error

        failed = tuple(
            i for i, e in sorted(errors.items()) if not isinstance(e, BreakpointPending)
        )
        if failed:
            succeeded = tuple(i for i in range(len(results)) if i not in errors)
            first = errors[failed[0]]
            error = ParallelGroupError(group.effect_id, first, succeeded, failed)
            failed_group = group.fail(
                EffectError.from_exception(
                    error,
                    retryable=True,
                    succeeded=list(succeeded),
                    failed=list(failed),
                ),
                isoformat(self._clock()),
            )
            self._store.put(failed_group)
            self._emitter.effect_failed(failed_group)
            logger.error("%s", error)
            raise error from first

        if errors:
            pending: list[Effect] = []
            for _, error in sorted(errors.items()):
                pending.extend(error.effects)  # type: ignore[attr-defined]
            raise BreakpointPending(tuple(pending))

        completed = group.complete(results, isoformat(self._clock()))
        self._store.put(completed)
        self._emitter.effect_completed(completed)
        logger.info(
            "Parallel group %s completed with %d members",
            group.effect_id,
            len(results),
        )
        return results
