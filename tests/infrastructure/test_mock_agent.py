"""Tests for MockAgentRunner."""

import pytest

from effectflow.domain.exceptions import AgentError
from effectflow.domain.tasks import AgentSpec, TaskContext, TaskIO, WorkDescriptor
from effectflow.infrastructure.agents.mock import MockAgentRunner, failing


def _call(task_name: str, agent: str = "writer") -> tuple[WorkDescriptor, TaskContext]:
    descriptor = WorkDescriptor(
        kind="agent",
        title=task_name,
        agent=AgentSpec(name=agent),
        io=TaskIO("tasks/in.json", "tasks/out.json"),
    )
    return descriptor, TaskContext(run_id="r", effect_id="0001", task_name=task_name)


class TestSequenceResponses:
    """Responses given as a list."""

    def test_returns_in_order(self) -> None:
        runner = MockAgentRunner(["first", "second"])

        assert runner.run(*_call("a")) == "first"
        assert runner.run(*_call("b")) == "second"

    def test_exhausted(self) -> None:
        runner = MockAgentRunner(["only"])
        runner.run(*_call("a"))

        with pytest.raises(RuntimeError, match="exhausted"):
            runner.run(*_call("a"))

    def test_raises_exception_responses(self) -> None:
        runner = MockAgentRunner([AgentError("busy"), ValueError])

        with pytest.raises(AgentError, match="busy"):
            runner.run(*_call("a"))
        with pytest.raises(ValueError):
            runner.run(*_call("a"))

    def test_reset(self) -> None:
        runner = MockAgentRunner(["x"])
        runner.run(*_call("a"))

        runner.reset()

        assert runner.call_count == 0
        assert runner.run(*_call("a")) == "x"


class TestMappingResponses:
    """Responses keyed by task or agent name."""

    def test_constant_per_task(self) -> None:
        runner = MockAgentRunner({"a": {"ok": True}})

        assert runner.run(*_call("a")) == {"ok": True}
        assert runner.run(*_call("a")) == {"ok": True}

    def test_list_consumed_per_key(self) -> None:
        runner = MockAgentRunner({"a": [1, 2], "b": [10]})

        assert [runner.run(*_call(n)) for n in ("a", "b", "a")] == [1, 10, 2]

    def test_falls_back_to_agent_name(self) -> None:
        runner = MockAgentRunner({"reviewer": "lgtm"})

        assert runner.run(*_call("review-pr", agent="reviewer")) == "lgtm"

    def test_callable_response(self) -> None:
        runner = MockAgentRunner({"a": lambda d, c: f"{d.agent.name}/{c.effect_id}"})

        assert runner.run(*_call("a")) == "writer/0001"

    def test_unknown_key(self) -> None:
        with pytest.raises(KeyError, match="no response for task 'zzz'"):
            MockAgentRunner({"a": 1}).run(*_call("zzz"))


class TestCallTracking:
    """Call inspection helpers."""

    def test_calls_recorded(self) -> None:
        runner = MockAgentRunner({"a": 1, "b": 2})
        runner.run(*_call("a"))
        runner.run(*_call("b"))
        runner.run(*_call("a"))

        assert runner.call_count == 3
        assert [d.title for d, _ in runner.calls] == ["a", "b", "a"]
        assert len(runner.calls_for("a")) == 2


class TestFailing:
    """The failing() response helper."""

    def test_fails_then_succeeds(self) -> None:
        runner = MockAgentRunner({"a": failing(AgentError("busy"), 2, "done")})

        for _ in range(2):
            with pytest.raises(AgentError):
                runner.run(*_call("a"))
        assert runner.run(*_call("a")) == "done"
