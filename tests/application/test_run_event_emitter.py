"""Tests for RunEventEmitter."""

from effectflow.application.run_event_emitter import RunEventEmitter
from effectflow.domain.models import EffectError
from effectflow.domain.run_event import RunEventType


class TestRunEventEmitter:
    def test_no_store_is_noop(self, sample_effect):
        emitter = RunEventEmitter()

        emitter.run_created("r", "flows:demo")
        emitter.effect_completed(sample_effect)

    def test_run_lifecycle(self, event_store, clock):
        emitter = RunEventEmitter(event_store, clock)

        emitter.run_created("r", "flows:demo")
        emitter.run_suspended("r", ("0002", "0003"))
        emitter.run_resumed("r")
        emitter.run_failed("r", ValueError("bad"))

        events = event_store.get_events("r")
        assert [e.event_type for e in events] == [
            RunEventType.RUN_CREATED,
            RunEventType.RUN_SUSPENDED,
            RunEventType.RUN_RESUMED,
            RunEventType.RUN_FAILED,
        ]
        assert events[0].data == {"processId": "flows:demo"}
        assert events[1].data == {"pendingBreakpoints": ["0002", "0003"]}
        assert events[3].summary == "ValueError: bad"
        assert events[0].created_at == "2025-01-01T00:00:00+00:00"
        assert len({e.event_id for e in events}) == 4

    def test_effect_events(self, event_store, sample_effect):
        emitter = RunEventEmitter(event_store)
        failed = sample_effect.fail(
            EffectError(type="TaskExecutionError", message="agent down"), "later"
        )

        emitter.effect_completed(sample_effect)
        emitter.effect_failed(failed)

        completed_event, failed_event = event_store.get_events(sample_effect.run_id)
        assert completed_event.effect_id == "0001"
        assert completed_event.data == {"kind": "task", "attempt": 1}
        assert failed_event.event_type == RunEventType.EFFECT_FAILED
        assert failed_event.summary == "TaskExecutionError: agent down"

    def test_summary_truncated(self, event_store):
        RunEventEmitter(event_store).run_failed("r", RuntimeError("x" * 2000))

        (event,) = event_store.get_events("r")
        assert len(event.summary) == 500

    def test_filter_by_type(self, event_store):
        emitter = RunEventEmitter(event_store)
        emitter.run_created("r", "p")
        emitter.run_completed("r")
        emitter.run_created("other", "p")

        completed = event_store.get_events("r", RunEventType.RUN_COMPLETED)

        assert [e.run_id for e in completed] == ["r"]
