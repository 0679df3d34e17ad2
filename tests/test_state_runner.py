import threading

import pytest

from enrollment.pipeline.runner import BatchRunner
from enrollment.pipeline.state import StatePublisher
from enrollment.types import BatchState


def test_publisher_keeps_last_state_and_notifies():
    publisher = StatePublisher()
    seen = []
    publisher.subscribe(seen.append)

    first = BatchState(status="one")
    second = BatchState(status="two")
    publisher.publish(first)
    publisher.publish(second)

    assert publisher.value is second
    assert seen == [first, second]


def test_unsubscribe_stops_notifications():
    publisher = StatePublisher()
    seen = []
    unsubscribe = publisher.subscribe(seen.append)

    unsubscribe()
    unsubscribe()
    publisher.publish(BatchState(status="ignored"))

    assert seen == []


def test_failing_subscriber_does_not_break_publishing():
    publisher = StatePublisher()
    seen = []

    def broken(state):
        raise RuntimeError("boom")

    publisher.subscribe(broken)
    publisher.subscribe(seen.append)
    publisher.publish(BatchState(status="ok"))

    assert publisher.value.status == "ok"
    assert [s.status for s in seen] == ["ok"]


class _BlockingPipeline:
    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.cancel_seen = None

    def run_csv(self, raw_text, cancel_event=None):
        self.started.set()
        self.release.wait(timeout=5)
        self.cancel_seen = cancel_event.is_set()
        return BatchState(status=f"parsed {len(raw_text)}")

    def run_batch(self, records, cancel_event=None):
        return BatchState(status=f"batch {len(records)}")

    def rerun_failed(self, cancel_event=None):
        return BatchState(status="retry")


def test_runner_rejects_concurrent_jobs_and_forwards_cancel():
    pipeline = _BlockingPipeline()
    with BatchRunner(pipeline) as runner:
        future = runner.submit_csv("ID,Name\n")
        assert pipeline.started.wait(timeout=5)
        assert runner.busy

        with pytest.raises(RuntimeError):
            runner.submit_retry()

        runner.cancel()
        pipeline.release.set()
        state = future.result(timeout=5)

    assert state.status == "parsed 8"
    assert pipeline.cancel_seen is True


def test_runner_accepts_next_job_after_completion():
    pipeline = _BlockingPipeline()
    pipeline.release.set()
    with BatchRunner(pipeline) as runner:
        runner.submit_csv("x").result(timeout=5)
        batch = runner.submit_batch([object(), object()]).result(timeout=5)
        retry = runner.submit_retry().result(timeout=5)

    assert batch.status == "batch 2"
    assert retry.status == "retry"
