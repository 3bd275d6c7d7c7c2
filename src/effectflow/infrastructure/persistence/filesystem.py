"""
Filesystem implementation of the effect and run stores.

Provides persistent, append-only storage that survives process crashes.

Layout::

    {base_dir}/
        {run_id}/
            run.json        # Run record, replaced atomically (write-temp + rename)
            effects.jsonl   # One effect record per line, append-only

A record is durable once ``put`` returns: the line is flushed and fsynced
before the call completes. A crash mid-append leaves at most one truncated
trailing line, which is ignored on load and cut off by the next append.
Appends take an exclusive ``fcntl.flock`` on the log and reads take a shared one,
so several processes may drive the same runs directory.
"""

import fcntl
import json
import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, BinaryIO

import jsonschema

from effectflow.domain.exceptions import EffectAlreadyCompleted, EffectPersistenceError
from effectflow.domain.interfaces import EffectStoreInterface, RunStoreInterface
from effectflow.domain.models import Effect, Run
from effectflow.schemas import validate_effect, validate_run

logger = logging.getLogger("effectflow.store")


class FilesystemEffectStore(EffectStoreInterface, RunStoreInterface):
    """
    Persistent, append-only effect log with per-run JSON metadata.

    Effect logs are loaded lazily per run and cached. Each access re-reads
    whatever other store instances appended since the last one, and every
    ``put`` appends to disk before the cache is updated.
    """

    def __init__(self, base_dir: str | Path, validate: bool = True):
        """
        Args:
            base_dir: Root directory holding one subdirectory per run
            validate: Check records against the JSON schemas before writing
        """
        self._base_dir = Path(base_dir)
        self._validate = validate
        self._lock = threading.RLock()
        self._cache: dict[str, dict[str, list[Effect]]] = {}
        self._offsets: dict[str, int] = {}
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise EffectPersistenceError(
                f"Cannot create runs directory {self._base_dir}: {e}"
            ) from e

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _run_dir(self, run_id: str) -> Path:
        return self._base_dir / run_id

    def _effects_path(self, run_id: str) -> Path:
        return self._run_dir(run_id) / "effects.jsonl"

    def _run_path(self, run_id: str) -> Path:
        return self._run_dir(run_id) / "run.json"

    # =========================================================================
    # EFFECTS
    # =========================================================================

    @contextmanager
    def _locked(self, path: Path, mode: str, operation: int) -> Iterator[BinaryIO]:
        """Open ``path`` and hold an flock on it across processes."""
        with open(path, mode) as f:
            fcntl.flock(f.fileno(), operation)
            try:
                yield f
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    def _load_effects(self, run_id: str) -> dict[str, list[Effect]]:
        """Return the effect histories of a run, including other writers' records."""
        path = self._effects_path(run_id)
        try:
            with self._locked(path, "rb", fcntl.LOCK_SH) as f:
                return self._refresh(run_id, f)
        except FileNotFoundError:
            self._cache.pop(run_id, None)
            self._offsets.pop(run_id, None)
            return {}
        except OSError as e:
            raise EffectPersistenceError(f"Cannot read {path}: {e}") from e

    def _refresh(
        self, run_id: str, f: BinaryIO, repair: bool = False
    ) -> dict[str, list[Effect]]:
        """
        Bring the cached histories up to date with the log behind ``f``.

        Only bytes past the last consumed offset are parsed. A log shorter
        than that offset was rewritten and is read again from the start.
        A trailing fragment without a newline belongs to an append that never
        returned; it is skipped, and cut off when ``repair`` is set.
        """
        records = self._cache.get(run_id)
        offset = self._offsets.get(run_id, 0)
        size = os.fstat(f.fileno()).st_size
        if records is None or size < offset:
            records, offset = {}, 0

        if size > offset:
            f.seek(offset)
            *lines, tail = f.read().split(b"\n")
            for line in lines:
                if line.strip():
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise EffectPersistenceError(
                            f"Corrupt effect record at {f.name} (byte {offset}): {e}"
                        ) from e
                    effect = Effect.from_record(data)
                    records.setdefault(effect.effect_id, []).append(effect)
                offset += len(line) + 1
            if tail and repair:
                logger.warning("Dropping truncated trailing record in %s", f.name)
                f.truncate(offset)

        self._cache[run_id] = records
        self._offsets[run_id] = offset
        return records

    def get(self, run_id: str, effect_id: str) -> Effect | None:
        with self._lock:
            history = self._load_effects(run_id).get(effect_id)
            return history[-1] if history else None

    def put(self, effect: Effect) -> Effect:
        """
        Append an effect record and fsync it.

        The completed-check and the append run under an exclusive flock on
        the log, so store instances in other processes see a single order.

        Raises:
            EffectAlreadyCompleted: If the effect id is already Completed
            EffectPersistenceError: On I/O failure or an invalid record
        """
        record = effect.to_record()
        if self._validate:
            try:
                validate_effect(record)
            except jsonschema.ValidationError as e:
                raise EffectPersistenceError(
                    f"Effect {effect.effect_id} is not a valid record: {e.message}"
                ) from e
        line = self._encode(record, effect.effect_id).encode("utf-8")

        with self._lock:
            path = self._effects_path(effect.run_id)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with self._locked(path, "a+b", fcntl.LOCK_EX) as f:
                    records = self._refresh(effect.run_id, f, repair=True)
                    history = records.get(effect.effect_id, [])
                    if history and history[-1].completed:
                        raise EffectAlreadyCompleted(effect.run_id, effect.effect_id)

                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise EffectPersistenceError(
                    f"Cannot append effect {effect.effect_id} to {path}: {e}"
                ) from e

            records.setdefault(effect.effect_id, []).append(effect)
            self._offsets[effect.run_id] += len(line)
            return effect

    def list_effects(self, run_id: str) -> list[Effect]:
        with self._lock:
            return [history[-1] for history in self._load_effects(run_id).values()]

    def history(self, run_id: str, effect_id: str) -> list[Effect]:
        with self._lock:
            return list(self._load_effects(run_id).get(effect_id, []))

    @staticmethod
    def _encode(record: dict[str, Any], effect_id: str) -> str:
        try:
            return json.dumps(record, sort_keys=True, allow_nan=False) + "\n"
        except (TypeError, ValueError) as e:
            raise EffectPersistenceError(
                f"Effect {effect_id} is not JSON-serializable: {e}"
            ) from e

    # =========================================================================
    # RUNS
    # =========================================================================

    def create_run(self, run: Run) -> Run:
        with self._lock:
            if self._run_path(run.run_id).exists():
                raise ValueError(f"Run already exists: {run.run_id}")
            self._write_run_atomic(run)
            return run

    def save_run(self, run: Run) -> Run:
        with self._lock:
            if not self._run_path(run.run_id).exists():
                raise KeyError(f"Run not found: {run.run_id}")
            self._write_run_atomic(run)
            return run

    def get_run(self, run_id: str) -> Run:
        path = self._run_path(run_id)
        if not path.exists():
            raise KeyError(f"Run not found: {run_id}")
        try:
            with open(path, encoding="utf-8") as f:
                data: dict[str, Any] = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise EffectPersistenceError(f"Cannot read run record {path}: {e}") from e
        return Run.from_record(data)

    def list_runs(self) -> list[Run]:
        runs = [
            self.get_run(path.parent.name)
            for path in self._base_dir.glob("*/run.json")
        ]
        return sorted(runs, key=lambda r: r.created_at)

    def _write_run_atomic(self, run: Run) -> None:
        """Atomically replace run.json using write-to-temp + rename."""
        record = run.to_record()
        if self._validate:
            try:
                validate_run(record)
            except jsonschema.ValidationError as e:
                raise EffectPersistenceError(
                    f"Run {run.run_id} is not a valid record: {e.message}"
                ) from e

        path = self._run_path(run.run_id)
        temp_path = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            temp_path.replace(path)  # Atomic on POSIX
        except (OSError, TypeError, ValueError) as e:
            raise EffectPersistenceError(
                f"Cannot write run record {path}: {e}"
            ) from e
