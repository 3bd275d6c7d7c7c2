"""
In-memory implementation of the effect and run stores.

Useful for testing and ephemeral runs. Nothing survives the process.
"""

import threading

from effectflow.domain.exceptions import EffectAlreadyCompleted
from effectflow.domain.interfaces import EffectStoreInterface, RunStoreInterface
from effectflow.domain.models import Effect, Run


class InMemoryEffectStore(EffectStoreInterface, RunStoreInterface):
    """Append-only, thread-safe effect log plus run records, held in dicts."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, list[Effect]]] = {}
        self._runs: dict[str, Run] = {}
        self._lock = threading.Lock()

    # Effects

    def get(self, run_id: str, effect_id: str) -> Effect | None:
        with self._lock:
            history = self._records.get(run_id, {}).get(effect_id)
            return history[-1] if history else None

    def put(self, effect: Effect) -> Effect:
        with self._lock:
            history = self._records.setdefault(effect.run_id, {}).setdefault(
                effect.effect_id, []
            )
            if history and history[-1].completed:
                raise EffectAlreadyCompleted(effect.run_id, effect.effect_id)
            history.append(effect)
            return effect

    def list_effects(self, run_id: str) -> list[Effect]:
        with self._lock:
            return [
                history[-1] for history in self._records.get(run_id, {}).values()
            ]

    def history(self, run_id: str, effect_id: str) -> list[Effect]:
        with self._lock:
            return list(self._records.get(run_id, {}).get(effect_id, []))

    # Runs

    def create_run(self, run: Run) -> Run:
        with self._lock:
            if run.run_id in self._runs:
                raise ValueError(f"Run already exists: {run.run_id}")
            self._runs[run.run_id] = run
            return run

    def save_run(self, run: Run) -> Run:
        with self._lock:
            if run.run_id not in self._runs:
                raise KeyError(f"Run not found: {run.run_id}")
            self._runs[run.run_id] = run
            return run

    def get_run(self, run_id: str) -> Run:
        with self._lock:
            if run_id not in self._runs:
                raise KeyError(f"Run not found: {run_id}")
            return self._runs[run_id]

    def list_runs(self) -> list[Run]:
        with self._lock:
            return sorted(self._runs.values(), key=lambda r: r.created_at)
