"""Run registration jobs off the caller's thread, one at a time."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Sequence

from enrollment.pipeline.registration import RegistrationPipeline
from enrollment.types import BatchState, CandidateRecord

LOGGER = logging.getLogger("enrollment.pipeline.runner")


class BatchRunner:
    """Single-worker executor around a :class:`RegistrationPipeline`.

    Submitting while a job is still in flight raises ``RuntimeError``.
    """

    def __init__(self, pipeline: RegistrationPipeline) -> None:
        self.pipeline = pipeline
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="enrollment")
        self._lock = threading.Lock()
        self._current: Optional[Future] = None
        self._cancel = threading.Event()

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._current is not None and not self._current.done()

    def _submit(self, job: Callable[[threading.Event], BatchState]) -> "Future[BatchState]":
        with self._lock:
            if self._current is not None and not self._current.done():
                raise RuntimeError("A registration job is already running")
            self._cancel = threading.Event()
            cancel = self._cancel
            self._current = self._executor.submit(job, cancel)
            return self._current

    def submit_csv(self, raw_text: str) -> "Future[BatchState]":
        return self._submit(lambda cancel: self.pipeline.run_csv(raw_text, cancel_event=cancel))

    def submit_batch(self, records: Sequence[CandidateRecord]) -> "Future[BatchState]":
        records = list(records)
        return self._submit(lambda cancel: self.pipeline.run_batch(records, cancel_event=cancel))

    def submit_retry(self) -> "Future[BatchState]":
        return self._submit(lambda cancel: self.pipeline.rerun_failed(cancel_event=cancel))

    def cancel(self) -> None:
        """Ask the running job to stop before its next record."""
        LOGGER.info("Cancellation requested")
        self._cancel.set()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "BatchRunner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)
