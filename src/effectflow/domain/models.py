"""
Domain models for the durable process runtime.

Pure data structures: every persisted record is an immutable (frozen)
dataclass so that a Completed effect can never be altered in place.
State transitions produce new instances via ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from effectflow.domain.exceptions import RunFailed

# =============================================================================
# EFFECT MODEL
# =============================================================================


class EffectKind(str, Enum):
    """What a process function asked the runtime to do."""

    TASK = "task"
    PARALLEL_GROUP = "parallel-group"
    PARALLEL_MEMBER = "parallel-member"
    BREAKPOINT = "breakpoint"
    NOW = "now"
    CHECKPOINT = "checkpoint"


class EffectStatus(str, Enum):
    """Lifecycle of an effect: Pending -> Running -> Completed | Failed."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (EffectStatus.COMPLETED, EffectStatus.FAILED)


@dataclass(frozen=True)
class EffectError:
    """Serializable summary of why an effect failed."""

    type: str  # Exception class name
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(
        cls, exc: BaseException, retryable: bool = False, **details: Any
    ) -> EffectError:
        return cls(
            type=type(exc).__name__,
            message=str(exc),
            retryable=retryable,
            details=dict(details),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EffectError:
        return cls(
            type=data["type"],
            message=data.get("message", ""),
            retryable=data.get("retryable", False),
            details=data.get("details", {}),
        )


@dataclass(frozen=True)
class Effect:
    """
    Unit of durable progress within a run.

    The effect id is a deterministic function of call-site order, so a replay
    maps the same call site to the same id. Once Completed, ``output`` is
    returned verbatim to every later request for the same id.
    """

    run_id: str
    effect_id: str
    kind: EffectKind
    status: EffectStatus
    input: Any  # Call-site arguments, compared on replay
    output: Any = None
    error: EffectError | None = None
    attempt: int = 1  # Attempt number across resumes
    created_at: str = ""  # ISO 8601
    completed_at: str | None = None

    @property
    def completed(self) -> bool:
        return self.status == EffectStatus.COMPLETED

    @property
    def failed(self) -> bool:
        return self.status == EffectStatus.FAILED

    def complete(self, output: Any, completed_at: str) -> Effect:
        """Return the Completed version of this effect."""
        return replace(
            self,
            status=EffectStatus.COMPLETED,
            output=output,
            error=None,
            completed_at=completed_at,
        )

    def fail(self, error: EffectError, completed_at: str) -> Effect:
        """Return the Failed version of this effect."""
        return replace(
            self,
            status=EffectStatus.FAILED,
            output=None,
            error=error,
            completed_at=completed_at,
        )

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted effect record (wire format)."""
        return {
            "runId": self.run_id,
            "effectId": self.effect_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "input": self.input,
            "output": self.output,
            "error": self.error.to_dict() if self.error else None,
            "attempt": self.attempt,
            "createdAt": self.created_at,
            "completedAt": self.completed_at,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Effect:
        """Deserialize from the persisted effect record."""
        error = data.get("error")
        return cls(
            run_id=data["runId"],
            effect_id=data["effectId"],
            kind=EffectKind(data["kind"]),
            status=EffectStatus(data["status"]),
            input=data.get("input"),
            output=data.get("output"),
            error=EffectError.from_dict(error) if error else None,
            attempt=data.get("attempt", 1),
            created_at=data.get("createdAt", ""),
            completed_at=data.get("completedAt"),
        )


# =============================================================================
# RUN MODEL
# =============================================================================


class RunStatus(str, Enum):
    """Run lifecycle."""

    RUNNING = "running"
    SUSPENDED = "suspended"  # A breakpoint is pending
    COMPLETED = "completed"  # process_fn returned, output persisted
    FAILED = "failed"  # An error escaped process_fn

    @property
    def terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


@dataclass(frozen=True)
class Run:
    """One instantiation of a process. Owns its effect log (kept in the store)."""

    run_id: str
    process_id: str
    status: RunStatus
    inputs: Any
    output: Any = None
    error: EffectError | None = None
    created_at: str = ""
    updated_at: str = ""
    pending_breakpoints: tuple[str, ...] = ()

    def to_record(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "processId": self.process_id,
            "status": self.status.value,
            "inputs": self.inputs,
            "output": self.output,
            "error": self.error.to_dict() if self.error else None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "pendingBreakpoints": list(self.pending_breakpoints),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Run:
        error = data.get("error")
        return cls(
            run_id=data["runId"],
            process_id=data["processId"],
            status=RunStatus(data["status"]),
            inputs=data.get("inputs"),
            output=data.get("output"),
            error=EffectError.from_dict(error) if error else None,
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
            pending_breakpoints=tuple(data.get("pendingBreakpoints", ())),
        )


@dataclass(frozen=True)
class RunResult:
    """Outcome of one ``run``/``resume`` call."""

    run_id: str
    status: RunStatus
    output: Any = None
    error: BaseException | None = None
    effects: tuple[Effect, ...] = ()
    pending_breakpoints: tuple[Effect, ...] = ()

    @property
    def completed(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def suspended(self) -> bool:
        return self.status == RunStatus.SUSPENDED

    def raise_for_status(self) -> RunResult:
        """Raise RunFailed if the run failed; return self otherwise."""
        if self.status == RunStatus.FAILED:
            raise RunFailed(self.run_id, self.error, self.effects)
        return self


def isoformat(moment: datetime) -> str:
    """Render a timestamp the way every record stores it."""
    return moment.isoformat()
