"""Shared pytest fixtures for effectflow tests."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from effectflow.application.driver import ProcessDriver
from effectflow.domain.models import Effect, EffectKind, EffectStatus
from effectflow.infrastructure.agents.mock import MockAgentRunner
from effectflow.infrastructure.persistence.memory import InMemoryEffectStore
from effectflow.infrastructure.persistence.run_events import InMemoryRunEventStore
from effectflow.testing import DeterministicIds, FixedClock


@pytest.fixture
def store() -> InMemoryEffectStore:
    return InMemoryEffectStore()


@pytest.fixture
def event_store() -> InMemoryRunEventStore:
    return InMemoryRunEventStore()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def make_driver(store, event_store, clock):
    """Factory building a driver over the shared in-memory stores."""

    def _make(agent_runner: MockAgentRunner | None = None, **options: Any) -> ProcessDriver:
        options.setdefault("event_store", event_store)
        options.setdefault("clock", clock)
        options.setdefault("id_factory", DeterministicIds(prefix="run"))
        return ProcessDriver(store, agent_runner, **options)

    return _make


@pytest.fixture
def sample_effect() -> Effect:
    """A Completed task effect."""
    return Effect(
        run_id="run-000001",
        effect_id="0001",
        kind=EffectKind.TASK,
        status=EffectStatus.COMPLETED,
        input={"task": "analyze", "args": {"topic": "billing"}},
        output={"answer": "42"},
        attempt=1,
        created_at=datetime(2025, 1, 1, tzinfo=UTC).isoformat(),
        completed_at=datetime(2025, 1, 1, 0, 0, 1, tzinfo=UTC).isoformat(),
    )
