"""Run journal emission service."""

import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from effectflow.domain.interfaces import RunEventStoreInterface
from effectflow.domain.models import Effect
from effectflow.domain.run_event import RunEvent, RunEventType


class RunEventEmitter:
    """Emits run events to a store.

    Provides convenience methods for the runtime's state transitions,
    handling ID generation and timestamps. Without a store every call is a
    no-op, so components can emit unconditionally.
    """

    def __init__(
        self,
        event_store: RunEventStoreInterface | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = event_store
        self._clock = clock or (lambda: datetime.now(UTC))

    def _emit(
        self,
        event_type: RunEventType,
        run_id: str,
        effect_id: str | None = None,
        summary: str = "",
        data: dict[str, Any] | None = None,
    ) -> str | None:
        if self._store is None:
            return None
        return self._store.store_event(
            RunEvent(
                event_id=str(uuid.uuid4()),
                event_type=event_type,
                run_id=run_id,
                effect_id=effect_id,
                summary=summary[:500],
                data=data or {},
                created_at=self._clock().isoformat(),
            )
        )

    def run_created(self, run_id: str, process_id: str) -> None:
        """Emit RUN_CREATED when a run is first started."""
        self._emit(
            RunEventType.RUN_CREATED, run_id, data={"processId": process_id}
        )

    def run_resumed(self, run_id: str) -> None:
        """Emit RUN_RESUMED when a stored run is driven again."""
        self._emit(RunEventType.RUN_RESUMED, run_id)

    def run_suspended(self, run_id: str, effect_ids: tuple[str, ...]) -> None:
        """Emit RUN_SUSPENDED when a breakpoint is pending."""
        self._emit(
            RunEventType.RUN_SUSPENDED,
            run_id,
            summary=", ".join(effect_ids),
            data={"pendingBreakpoints": list(effect_ids)},
        )

    def run_completed(self, run_id: str) -> None:
        """Emit RUN_COMPLETED when the process function returned."""
        self._emit(RunEventType.RUN_COMPLETED, run_id)

    def run_failed(self, run_id: str, error: BaseException) -> None:
        """Emit RUN_FAILED when an error escaped the process function."""
        self._emit(
            RunEventType.RUN_FAILED,
            run_id,
            summary=f"{type(error).__name__}: {error}",
        )

    def effect_completed(self, effect: Effect) -> None:
        """Emit EFFECT_COMPLETED for a live (not replayed) completion."""
        self._emit(
            RunEventType.EFFECT_COMPLETED,
            effect.run_id,
            effect.effect_id,
            data={"kind": effect.kind.value, "attempt": effect.attempt},
        )

    def effect_failed(self, effect: Effect) -> None:
        """Emit EFFECT_FAILED with the recorded error."""
        error = effect.error
        self._emit(
            RunEventType.EFFECT_FAILED,
            effect.run_id,
            effect.effect_id,
            summary=f"{error.type}: {error.message}" if error else "",
            data={"kind": effect.kind.value, "attempt": effect.attempt},
        )

    def breakpoint_opened(self, effect: Effect) -> None:
        """Emit BREAKPOINT_OPENED when a breakpoint first suspends the run."""
        question = ""
        if isinstance(effect.input, dict):
            question = str(effect.input.get("question", ""))
        self._emit(
            RunEventType.BREAKPOINT_OPENED,
            effect.run_id,
            effect.effect_id,
            summary=question,
        )

    def breakpoint_resolved(self, effect: Effect) -> None:
        """Emit BREAKPOINT_RESOLVED when an external actor answers."""
        self._emit(RunEventType.BREAKPOINT_RESOLVED, effect.run_id, effect.effect_id)

    def checkpoint(self, effect: Effect) -> None:
        """Emit CHECKPOINT for a process milestone."""
        title = ""
        if isinstance(effect.input, dict):
            title = str(effect.input.get("title", ""))
        self._emit(
            RunEventType.CHECKPOINT,
            effect.run_id,
            effect.effect_id,
            summary=title,
            data={"payload": effect.input},
        )
