"""Tests for FilesystemEffectStore."""

import json
from dataclasses import replace

import pytest

from effectflow.domain.exceptions import EffectAlreadyCompleted, EffectPersistenceError
from effectflow.domain.models import EffectKind, EffectStatus, Run, RunStatus
from effectflow.infrastructure.persistence.filesystem import FilesystemEffectStore


@pytest.fixture
def run() -> Run:
    return Run(
        run_id="run-000001",
        process_id="flows:demo",
        status=RunStatus.RUNNING,
        inputs={"feature": "login"},
        created_at="2025-01-01T00:00:00+00:00",
        updated_at="2025-01-01T00:00:00+00:00",
    )


# =============================================================================
# Effects
# =============================================================================


class TestEffectLog:
    """Tests for the JSONL effect log."""

    def test_put_appends_line(self, tmp_path, sample_effect) -> None:
        """Each put appends exactly one JSON line."""
        store = FilesystemEffectStore(tmp_path)

        store.put(sample_effect)

        lines = (tmp_path / "run-000001" / "effects.jsonl").read_text().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["effectId"] == "0001"
        assert record["status"] == "completed"
        assert record["output"] == {"answer": "42"}

    def test_survives_new_instance(self, tmp_path, sample_effect) -> None:
        """A fresh store sees every record written by an earlier one."""
        FilesystemEffectStore(tmp_path).put(sample_effect)

        reopened = FilesystemEffectStore(tmp_path)

        assert reopened.get("run-000001", "0001") == sample_effect
        assert reopened.list_effects("run-000001") == [sample_effect]

    def test_completed_effect_is_immutable(self, tmp_path, sample_effect) -> None:
        """A second write to a Completed id is rejected, also after reload."""
        FilesystemEffectStore(tmp_path).put(sample_effect)
        store = FilesystemEffectStore(tmp_path)

        with pytest.raises(EffectAlreadyCompleted):
            store.put(replace(sample_effect, output={"answer": "0"}))

    def test_pending_then_completed_history(self, tmp_path, sample_effect) -> None:
        """A breakpoint's Pending and Completed records are both kept."""
        pending = replace(
            sample_effect,
            kind=EffectKind.BREAKPOINT,
            status=EffectStatus.PENDING,
            input={"question": "approve?"},
            output=None,
            completed_at=None,
        )
        store = FilesystemEffectStore(tmp_path)
        store.put(pending)
        store.put(pending.complete({"approved": True}, "2025-01-01T00:01:00+00:00"))

        history = FilesystemEffectStore(tmp_path).history("run-000001", "0001")

        assert [e.status for e in history] == [
            EffectStatus.PENDING,
            EffectStatus.COMPLETED,
        ]

    def test_missing_run_has_no_effects(self, tmp_path) -> None:
        """Unknown runs read as empty."""
        store = FilesystemEffectStore(tmp_path)

        assert store.get("nope", "0001") is None
        assert store.list_effects("nope") == []


class TestCrashRecovery:
    """Tests for torn and corrupt effect logs."""

    def test_torn_trailing_line_dropped(self, tmp_path, sample_effect) -> None:
        """A partial last line (crash mid-append) is ignored and cut off."""
        FilesystemEffectStore(tmp_path).put(sample_effect)
        path = tmp_path / "run-000001" / "effects.jsonl"
        with open(path, "a") as f:
            f.write('{"runId": "run-000001", "effectId": "00')

        store = FilesystemEffectStore(tmp_path)
        effects = store.list_effects("run-000001")
        store.put(replace(sample_effect, effect_id="0002"))

        assert [e.effect_id for e in effects] == ["0001"]
        lines = path.read_text().splitlines()
        assert [json.loads(line)["effectId"] for line in lines] == ["0001", "0002"]

    def test_corrupt_middle_line_raises(self, tmp_path, sample_effect) -> None:
        """Corruption before the tail is not silently skipped."""
        store = FilesystemEffectStore(tmp_path)
        store.put(sample_effect)
        path = tmp_path / "run-000001" / "effects.jsonl"
        path.write_text("not json\n" + path.read_text())

        with pytest.raises(EffectPersistenceError, match="Corrupt effect record"):
            FilesystemEffectStore(tmp_path).list_effects("run-000001")


class TestSharedDirectory:
    """Several store instances over one runs directory."""

    def test_sees_appends_of_other_instance(self, tmp_path, sample_effect) -> None:
        store = FilesystemEffectStore(tmp_path)
        store.put(sample_effect)

        FilesystemEffectStore(tmp_path).put(replace(sample_effect, effect_id="0002"))

        assert [e.effect_id for e in store.list_effects("run-000001")] == [
            "0001",
            "0002",
        ]
        assert store.get("run-000001", "0002") is not None

    def test_completion_by_other_instance_blocks_write(
        self, tmp_path, sample_effect
    ) -> None:
        """The completed check reads the log, not a stale cache."""
        pending = replace(
            sample_effect,
            kind=EffectKind.BREAKPOINT,
            status=EffectStatus.PENDING,
            input={"question": "approve?"},
            output=None,
            completed_at=None,
        )
        store = FilesystemEffectStore(tmp_path)
        store.put(pending)
        FilesystemEffectStore(tmp_path).put(
            pending.complete({"approved": True}, "2025-01-01T00:01:00+00:00")
        )

        with pytest.raises(EffectAlreadyCompleted):
            store.put(
                pending.complete({"approved": False}, "2025-01-01T00:02:00+00:00")
            )
        assert store.get("run-000001", "0001").output == {"approved": True}

    def test_rewritten_log_is_reloaded(self, tmp_path, sample_effect) -> None:
        store = FilesystemEffectStore(tmp_path)
        store.put(sample_effect)
        store.put(replace(sample_effect, effect_id="0002"))
        path = tmp_path / "run-000001" / "effects.jsonl"
        path.write_text(path.read_text().splitlines(keepends=True)[0])

        assert [e.effect_id for e in store.list_effects("run-000001")] == ["0001"]


class TestValidation:
    """Tests for schema validation of records."""

    def test_invalid_effect_id_rejected(self, tmp_path, sample_effect) -> None:
        """Effect ids must be dotted numeric paths."""
        store = FilesystemEffectStore(tmp_path)

        with pytest.raises(EffectPersistenceError, match="not a valid record"):
            store.put(replace(sample_effect, effect_id="first"))
        assert not (tmp_path / "run-000001" / "effects.jsonl").exists()

    def test_failed_effect_requires_error(self, tmp_path, sample_effect) -> None:
        """A Failed record without error details is rejected."""
        store = FilesystemEffectStore(tmp_path)

        with pytest.raises(EffectPersistenceError):
            store.put(replace(sample_effect, status=EffectStatus.FAILED, output=None))

    def test_validation_can_be_disabled(self, tmp_path, sample_effect) -> None:
        """validate=False writes without schema checks."""
        store = FilesystemEffectStore(tmp_path, validate=False)

        store.put(replace(sample_effect, effect_id="first"))

        assert store.get("run-000001", "first") is not None

    def test_non_json_output_rejected(self, tmp_path, sample_effect) -> None:
        """Values json cannot encode never reach disk."""
        store = FilesystemEffectStore(tmp_path, validate=False)

        with pytest.raises(EffectPersistenceError, match="not JSON-serializable"):
            store.put(replace(sample_effect, output=float("nan")))


# =============================================================================
# Runs
# =============================================================================


class TestRunRecords:
    """Tests for run.json handling."""

    def test_create_writes_run_json(self, tmp_path, run) -> None:
        """create_run writes a camelCase record."""
        FilesystemEffectStore(tmp_path).create_run(run)

        data = json.loads((tmp_path / "run-000001" / "run.json").read_text())
        assert data["runId"] == "run-000001"
        assert data["status"] == "running"
        assert data["pendingBreakpoints"] == []
        assert not (tmp_path / "run-000001" / "run.tmp").exists()

    def test_round_trip_through_new_instance(self, tmp_path, run) -> None:
        """Run state survives a new store instance."""
        store = FilesystemEffectStore(tmp_path)
        store.create_run(run)
        store.save_run(
            replace(run, status=RunStatus.SUSPENDED, pending_breakpoints=("0002",))
        )

        loaded = FilesystemEffectStore(tmp_path).get_run("run-000001")

        assert loaded.status == RunStatus.SUSPENDED
        assert loaded.pending_breakpoints == ("0002",)
        assert loaded.inputs == {"feature": "login"}

    def test_duplicate_and_missing(self, tmp_path, run) -> None:
        """create_run rejects duplicates; save/get reject unknown runs."""
        store = FilesystemEffectStore(tmp_path)
        store.create_run(run)

        with pytest.raises(ValueError):
            store.create_run(run)
        with pytest.raises(KeyError):
            store.get_run("missing")
        with pytest.raises(KeyError):
            store.save_run(replace(run, run_id="missing"))

    def test_invalid_run_rejected(self, tmp_path, run) -> None:
        """Run records are validated before writing."""
        store = FilesystemEffectStore(tmp_path)

        with pytest.raises(EffectPersistenceError):
            store.create_run(replace(run, process_id=""))

    def test_corrupt_run_json(self, tmp_path, run) -> None:
        """Unreadable run.json surfaces as EffectPersistenceError."""
        store = FilesystemEffectStore(tmp_path)
        store.create_run(run)
        (tmp_path / "run-000001" / "run.json").write_text("{")

        with pytest.raises(EffectPersistenceError):
            store.get_run("run-000001")

    def test_list_runs(self, tmp_path, run) -> None:
        """list_runs finds every run directory."""
        store = FilesystemEffectStore(tmp_path)
        store.create_run(replace(run, run_id="b", created_at="2025-01-02T00:00:00+00:00"))
        store.create_run(replace(run, run_id="a"))

        assert [r.run_id for r in store.list_runs()] == ["a", "b"]
