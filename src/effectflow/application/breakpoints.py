"""
BreakpointController: Human-in-the-loop suspension points.

A breakpoint effect is persisted Pending the first time its call site is
reached, which suspends the run. An external actor later resolves it with
a payload; on the next replay the call site returns that payload.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from effectflow.application.run_event_emitter import RunEventEmitter
from effectflow.domain.effect_ids import normalize
from effectflow.domain.exceptions import (
    BreakpointPending,
    EffectAlreadyCompleted,
    InputValidationError,
    InvalidResolution,
)
from effectflow.domain.interfaces import EffectStoreInterface
from effectflow.domain.models import Effect, EffectKind, EffectStatus, isoformat

logger = logging.getLogger("effectflow.breakpoints")


class BreakpointController:
    """Opens, re-checks and resolves breakpoint effects."""

    def __init__(
        self,
        store: EffectStoreInterface,
        clock: Callable[[], datetime],
        emitter: RunEventEmitter | None = None,
    ):
        self._store = store
        self._clock = clock
        self._emitter = emitter or RunEventEmitter()

    def request(
        self,
        run_id: str,
        effect_id: str,
        request: dict[str, Any],
        previous: Effect | None = None,
    ) -> Any:
        """
        Return the resolution payload or suspend the run.

        Args:
            run_id: Run owning the breakpoint
            effect_id: Deterministic id of the call site
            request: Normalized request payload (question, title, context)
            previous: Existing record for this id, if any

        Returns:
            The payload supplied by the resolver

        Raises:
            BreakpointPending: The breakpoint is not resolved yet
        """
        if previous is not None and previous.completed:
            return previous.output
        if previous is not None:
            raise BreakpointPending((previous,))

        effect = Effect(
            run_id=run_id,
            effect_id=effect_id,
            kind=EffectKind.BREAKPOINT,
            status=EffectStatus.PENDING,
            input=request,
            created_at=isoformat(self._clock()),
        )
        self._store.put(effect)
        self._emitter.breakpoint_opened(effect)
        logger.info(
            "Run %s waiting at breakpoint %s: %s",
            run_id,
            effect_id,
            request.get("question") or request.get("title") or "(no question)",
        )
        raise BreakpointPending((effect,))

    def resolve(self, run_id: str, effect_id: str, payload: Any) -> Effect:
        """
        Complete a Pending breakpoint with the resolver's payload.

        Raises:
            KeyError: If the effect does not exist
            InvalidResolution: If the effect is not a Pending breakpoint
            InputValidationError: If the payload is not JSON-serializable
        """
        effect = self._store.get(run_id, effect_id)
        if effect is None:
            raise KeyError(f"Effect not found: {effect_id} (run {run_id})")
        if effect.kind != EffectKind.BREAKPOINT:
            raise InvalidResolution(
                f"Effect {effect_id} is a {effect.kind.value} effect, not a breakpoint"
            )
        if effect.status != EffectStatus.PENDING:
            raise InvalidResolution(
                f"Breakpoint {effect_id} is {effect.status.value}, not pending"
            )

        try:
            output = normalize(payload)
        except (TypeError, ValueError) as e:
            raise InputValidationError(
                f"Resolution payload is not JSON-serializable: {e}"
            ) from e

        resolved = effect.complete(output, isoformat(self._clock()))
        try:
            self._store.put(resolved)
        except EffectAlreadyCompleted as e:
            raise InvalidResolution(f"Breakpoint {effect_id} is already resolved") from e
        self._emitter.breakpoint_resolved(resolved)
        logger.info("Breakpoint %s of run %s resolved", effect_id, run_id)
        return resolved
