"""
Domain interfaces (Ports) for the durable process runtime.

These abstract base classes define the contracts that adapters must satisfy.
They have no external dependencies and represent the core domain boundaries.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from effectflow.domain.models import Effect, Run
    from effectflow.domain.run_event import RunEvent, RunEventType
    from effectflow.domain.tasks import TaskContext, WorkDescriptor


class EffectStoreInterface(ABC):
    """
    Port for durable effect persistence.

    Implementations provide append-only storage: every ``put`` appends a new
    record for the effect id and ``get`` returns the latest one. A Completed
    effect can never be written again.

    Failure semantics: any storage failure surfaces as EffectPersistenceError.
    """

    @abstractmethod
    def get(self, run_id: str, effect_id: str) -> "Effect | None":
        """
        Retrieve the latest record of an effect.

        Args:
            run_id: Run owning the effect
            effect_id: Deterministic effect identifier

        Returns:
            The effect, or None if it was never recorded
        """

    @abstractmethod
    def put(self, effect: "Effect") -> "Effect":
        """
        Append an effect record, atomically per effect id.

        Args:
            effect: The effect to record

        Returns:
            The stored effect

        Raises:
            EffectAlreadyCompleted: If the effect id is already Completed
            EffectPersistenceError: If the record could not be made durable
        """

    @abstractmethod
    def list_effects(self, run_id: str) -> list["Effect"]:
        """
        Latest record of every effect in a run, in first-recorded order.

        Args:
            run_id: Run to list

        Returns:
            Effects ordered by when each id was first recorded
        """

    @abstractmethod
    def history(self, run_id: str, effect_id: str) -> list["Effect"]:
        """
        Every record ever appended for one effect id, oldest first.

        Args:
            run_id: Run owning the effect
            effect_id: Effect identifier

        Returns:
            The audit trail of the effect (empty if never recorded)
        """


class RunStoreInterface(ABC):
    """Port for run metadata persistence."""

    @abstractmethod
    def create_run(self, run: "Run") -> "Run":
        """
        Record a new run.

        Raises:
            ValueError: If a run with the same id exists
            EffectPersistenceError: If the record could not be made durable
        """

    @abstractmethod
    def save_run(self, run: "Run") -> "Run":
        """
        Overwrite the run record with a new state.

        Raises:
            KeyError: If the run does not exist
            EffectPersistenceError: If the record could not be made durable
        """

    @abstractmethod
    def get_run(self, run_id: str) -> "Run":
        """
        Retrieve a run.

        Raises:
            KeyError: If the run does not exist
        """

    @abstractmethod
    def list_runs(self) -> list["Run"]:
        """All runs, oldest first."""


class AgentRunnerInterface(ABC):
    """
    Port for the external agent collaborator.

    Given a work descriptor, returns a JSON value claimed to satisfy the
    descriptor's output schema. Failures are reported by raising AgentError
    (``transient=False`` for permanent failures); any other exception is
    treated as transient.
    """

    @abstractmethod
    def run(self, descriptor: "WorkDescriptor", task_context: "TaskContext") -> Any:
        """
        Execute one unit of work.

        Args:
            descriptor: What to do, for whom, and the expected output shape
            task_context: Run id, effect id and attempt of the call

        Returns:
            The JSON-serializable result
        """


class RunEventStoreInterface(ABC):
    """Port for the per-run journal of runtime events."""

    @abstractmethod
    def store_event(self, event: "RunEvent") -> str:
        """Append an event; returns its event_id."""

    @abstractmethod
    def get_events(
        self,
        run_id: str,
        event_type: "RunEventType | None" = None,
    ) -> list["RunEvent"]:
        """Events of a run in append order, optionally filtered by type."""
