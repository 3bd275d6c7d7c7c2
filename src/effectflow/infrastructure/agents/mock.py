"""
Mock agent runner for testing without a real agent runtime.

Returns predefined results in sequence, or per task name.
"""

import threading
from collections.abc import Callable, Mapping
from typing import Any

from effectflow.domain.interfaces import AgentRunnerInterface
from effectflow.domain.tasks import TaskContext, WorkDescriptor

Response = Any  # value | BaseException | callable(descriptor, task_context)


class MockAgentRunner(AgentRunnerInterface):
    """Returns predefined responses for testing.

    ``responses`` is either a list consumed in call order across all tasks,
    or a mapping keyed by task name (falling back to agent name). A mapping
    value may be a list consumed per key, a callable
    ``(descriptor, task_context) -> result``, or a constant. Exceptions in
    place of a result are raised.
    """

    def __init__(self, responses: list[Response] | Mapping[str, Response]):
        """
        Args:
            responses: Sequence or per-task mapping of responses
        """
        self._responses = responses
        self._positions: dict[str, int] = {}
        self._calls: list[tuple[WorkDescriptor, TaskContext]] = []
        self._lock = threading.Lock()

    def run(self, descriptor: WorkDescriptor, task_context: TaskContext) -> Any:
        """Return (or raise) the next predefined response."""
        with self._lock:
            self._calls.append((descriptor, task_context))
            response = self._next_response(descriptor, task_context)

        if callable(response) and not isinstance(response, type):
            response = response(descriptor, task_context)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, type) and issubclass(response, BaseException):
            raise response()
        return response

    def _next_response(
        self, descriptor: WorkDescriptor, task_context: TaskContext
    ) -> Response:
        if not isinstance(self._responses, Mapping):
            return self._take("", self._responses)

        for key in (task_context.task_name, descriptor.agent.name):
            if key in self._responses:
                value = self._responses[key]
                if isinstance(value, list):
                    return self._take(key, value)
                return value
        raise KeyError(
            f"MockAgentRunner has no response for task '{task_context.task_name}'"
        )

    def _take(self, key: str, sequence: list[Response]) -> Response:
        position = self._positions.get(key, 0)
        if position >= len(sequence):
            raise RuntimeError(
                f"MockAgentRunner exhausted responses{f' for {key}' if key else ''}"
            )
        self._positions[key] = position + 1
        return sequence[position]

    @property
    def call_count(self) -> int:
        """Number of times run() has been called."""
        with self._lock:
            return len(self._calls)

    @property
    def calls(self) -> list[tuple[WorkDescriptor, TaskContext]]:
        """Every (descriptor, task_context) received, in call order."""
        with self._lock:
            return list(self._calls)

    def calls_for(self, task_name: str) -> list[TaskContext]:
        """Task contexts of the calls made for one task."""
        with self._lock:
            return [ctx for _, ctx in self._calls if ctx.task_name == task_name]

    def reset(self) -> None:
        """Reset the counters to reuse responses."""
        with self._lock:
            self._calls.clear()
            self._positions.clear()


def failing(error: BaseException, times: int, then: Any) -> Callable[..., Any]:
    """Response that raises ``error`` for the first ``times`` calls, then succeeds.

    Example:
        MockAgentRunner({"flaky": failing(AgentError("busy"), 2, {"ok": True})})
    """
    remaining = [times]
    lock = threading.Lock()

    def respond(_descriptor: WorkDescriptor, _task_context: TaskContext) -> Any:
        with lock:
            if remaining[0] > 0:
                remaining[0] -= 1
                raise error
        return then

    return respond
