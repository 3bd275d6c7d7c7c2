"""Tests for InMemoryEffectStore."""

from dataclasses import replace

import pytest

from effectflow.domain.exceptions import EffectAlreadyCompleted
from effectflow.domain.models import EffectError, EffectStatus, Run, RunStatus
from effectflow.infrastructure.persistence.memory import InMemoryEffectStore


def _run(run_id: str, created_at: str = "2025-01-01T00:00:00+00:00") -> Run:
    return Run(
        run_id=run_id,
        process_id="flows:demo",
        status=RunStatus.RUNNING,
        inputs={},
        created_at=created_at,
        updated_at=created_at,
    )


class TestEffects:
    """Tests for the append-only effect log."""

    def test_get_missing_returns_none(self) -> None:
        """Unknown run or effect id yields None."""
        store = InMemoryEffectStore()

        assert store.get("run-000001", "0001") is None

    def test_put_then_get(self, sample_effect) -> None:
        """A stored effect is returned by get."""
        store = InMemoryEffectStore()

        store.put(sample_effect)

        assert store.get(sample_effect.run_id, "0001") == sample_effect

    def test_completed_effect_is_immutable(self, sample_effect) -> None:
        """Writing over a Completed effect raises."""
        store = InMemoryEffectStore()
        store.put(sample_effect)

        with pytest.raises(EffectAlreadyCompleted):
            store.put(replace(sample_effect, output={"answer": "43"}))
        assert store.get(sample_effect.run_id, "0001").output == {"answer": "42"}

    def test_failed_attempts_kept_in_history(self, sample_effect) -> None:
        """Failed records stay in history; get returns the latest."""
        store = InMemoryEffectStore()
        failed = replace(
            sample_effect,
            status=EffectStatus.FAILED,
            output=None,
            error=EffectError(type="AgentError", message="busy"),
        )
        store.put(failed)
        store.put(replace(sample_effect, attempt=2))

        history = store.history(sample_effect.run_id, "0001")

        assert [e.status for e in history] == [
            EffectStatus.FAILED,
            EffectStatus.COMPLETED,
        ]
        assert store.get(sample_effect.run_id, "0001").attempt == 2
        assert len(store.list_effects(sample_effect.run_id)) == 1

    def test_list_effects_in_first_recorded_order(self, sample_effect) -> None:
        """list_effects keeps insertion order and isolates runs."""
        store = InMemoryEffectStore()
        for effect_id in ("0002", "0001", "0001.0"):
            store.put(replace(sample_effect, effect_id=effect_id))
        store.put(replace(sample_effect, run_id="other"))

        ids = [e.effect_id for e in store.list_effects(sample_effect.run_id)]

        assert ids == ["0002", "0001", "0001.0"]


class TestRuns:
    """Tests for run metadata."""

    def test_create_and_get(self) -> None:
        """Created runs are retrievable."""
        store = InMemoryEffectStore()

        store.create_run(_run("a"))

        assert store.get_run("a").process_id == "flows:demo"

    def test_create_duplicate_raises(self) -> None:
        """Run ids are unique."""
        store = InMemoryEffectStore()
        store.create_run(_run("a"))

        with pytest.raises(ValueError, match="already exists"):
            store.create_run(_run("a"))

    def test_save_requires_existing_run(self) -> None:
        """save_run never creates."""
        store = InMemoryEffectStore()

        with pytest.raises(KeyError, match="Run not found"):
            store.save_run(_run("a"))

    def test_save_replaces(self) -> None:
        """save_run stores the new state."""
        store = InMemoryEffectStore()
        run = store.create_run(_run("a"))

        store.save_run(replace(run, status=RunStatus.COMPLETED, output=[1]))

        assert store.get_run("a").status == RunStatus.COMPLETED

    def test_list_runs_sorted_by_creation(self) -> None:
        """Runs are listed oldest first."""
        store = InMemoryEffectStore()
        store.create_run(_run("late", "2025-01-02T00:00:00+00:00"))
        store.create_run(_run("early", "2025-01-01T00:00:00+00:00"))

        assert [r.run_id for r in store.list_runs()] == ["early", "late"]
