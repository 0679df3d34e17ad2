"""Sequential registration of parsed roster records.

Each record runs through photo resolution, face extraction, duplicate
classification and persistence. Row failures are captured as ``Error``
outcomes and never stop the batch. Progress is published as immutable
:class:`~enrollment.types.BatchState` snapshots after every step.
"""

from __future__ import annotations

import datetime as _dt
import logging
import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

import cv2

from enrollment.errors import (
    EnrollmentError, FatalInputError, NoFaceDetectedError, PersistenceError, PhotoResolutionError
)
from enrollment.ingest.records import parse_records
from enrollment.photos.resolver import (
    PhotoResolver, estimate_processing_seconds, format_estimate, format_file_size, photo_source_type
)
from enrollment.pipeline.state import StatePublisher
from enrollment.recognition.extractor import FaceExtractor
from enrollment.recognition.matcher import DuplicateDetector, MatchKind
from enrollment.registry.photo_store import FacePhotoStore
from enrollment.registry.store import Registry
from enrollment.types import (
    BatchState, CandidateRecord, OutcomeStatus, RegistryEntry, ResolvedPhoto, RowOutcome
)

LOGGER = logging.getLogger("enrollment.pipeline")

NO_RECORDS_STATUS = "No valid students found in CSV"
MISSING_CACHE_ERROR = "Missing cached data"


def _summary_counts(outcomes: Iterable[RowOutcome]) -> Dict[str, int]:
    counts = {"ok": 0, "dup": 0, "err": 0}
    for outcome in outcomes:
        if outcome.is_error:
            counts["err"] += 1
        elif outcome.is_duplicate:
            counts["dup"] += 1
        else:
            counts["ok"] += 1
    return counts


class RegistrationPipeline:
    def __init__(
        self,
        resolver: PhotoResolver,
        extractor: FaceExtractor,
        photo_store: FacePhotoStore,
        registry: Registry,
        detector: Optional[DuplicateDetector] = None,
        publisher: Optional[StatePublisher] = None,
    ) -> None:
        self.resolver = resolver
        self.extractor = extractor
        self.photo_store = photo_store
        self.registry = registry
        self.detector = detector or DuplicateDetector()
        self.publisher = publisher or StatePublisher()
        self._records: List[CandidateRecord] = []

    @property
    def state(self) -> BatchState:
        return self.publisher.value

    def _publish(self, **changes) -> BatchState:
        state = replace(self.publisher.value, **changes)
        self.publisher.publish(state)
        return state

    def prepare(self, records: Sequence[CandidateRecord]) -> str:
        """Cache ``records`` for later retries and publish a time estimate."""
        self._records = list(records)
        try:
            seconds = estimate_processing_seconds(record.photo_source for record in records)
            estimate = f"Estimated time: {format_estimate(seconds)}"
        except (KeyError, TypeError, ValueError):
            LOGGER.exception("Could not estimate processing time")
            estimate = "Time estimate unavailable"
        self._publish(estimated_time=estimate)
        return estimate

    def process_record(self, record: CandidateRecord) -> RowOutcome:
        """Run one record through the full registration flow."""
        photo: Optional[ResolvedPhoto] = None
        try:
            photo = self.resolver.resolve(record.photo_source, record.student_id)
            if not photo.success:
                raise PhotoResolutionError(photo.error or "Photo processing failed")
            return self._register(record, photo)
        except EnrollmentError as exc:
            LOGGER.warning("Row %s (%s) failed: %s", record.student_id, record.name, exc)
            size = photo.original_size if photo is not None else 0
            return RowOutcome.failed(record, str(exc), photo_size=size)
        except Exception as exc:
            LOGGER.exception("Unexpected failure registering %s", record.student_id)
            size = photo.original_size if photo is not None else 0
            return RowOutcome.failed(record, str(exc) or "Registration failed", photo_size=size)

    def _register(self, record: CandidateRecord, photo: ResolvedPhoto) -> RowOutcome:
        image = cv2.imread(str(photo.local_path)) if photo.local_path is not None else None
        if image is None:
            raise PhotoResolutionError("Failed to load processed photo")

        face = self.extractor.extract(image)
        if face is None:
            raise NoFaceDetectedError()

        photo_path = self.photo_store.save_face_photo(face.crop, record.student_id)
        if photo_path is None:
            raise PersistenceError("Failed to save face photo")

        verdict = self.detector.classify(record, face.embedding, self.registry)
        if verdict.kind is MatchKind.DUPLICATE_ID:
            return RowOutcome(
                student_id=record.student_id,
                name=record.name,
                status=OutcomeStatus.DUPLICATE_ID,
                photo_size=photo.original_size,
                matched_name=verdict.matched_name,
            )
        if verdict.kind is MatchKind.DUPLICATE_EMBEDDING:
            return RowOutcome(
                student_id=record.student_id,
                name=record.name,
                status=OutcomeStatus.DUPLICATE_EMBEDDING,
                photo_size=photo.original_size,
                matched_name=verdict.matched_name,
            )

        entry = RegistryEntry.from_record(
            record,
            face.embedding,
            photo_path,
            created_at=_dt.datetime.now(_dt.timezone.utc),
        )
        if not self.registry.insert(entry):
            raise PersistenceError("Failed to save registry entry")
        LOGGER.info("Registered %s (%s)", record.student_id, record.name)
        return RowOutcome(
            student_id=record.student_id,
            name=record.name,
            status=OutcomeStatus.REGISTERED,
            photo_size=photo.processed_size,
        )

    def run_batch(
        self,
        records: Sequence[CandidateRecord],
        cancel_event: Optional[threading.Event] = None,
        parse_errors: Sequence[str] = (),
    ) -> BatchState:
        """Register ``records`` in order, publishing progress after each one."""
        records = list(records)
        total = len(records)
        self.publisher.publish(BatchState(is_processing=True, status="Starting...", parse_errors=tuple(parse_errors)))
        if total == 0:
            return self._publish(is_processing=False, status=NO_RECORDS_STATUS)

        self.prepare(records)
        results: List[RowOutcome] = []
        for index, record in enumerate(records):
            if cancel_event is not None and cancel_event.is_set():
                LOGGER.info("Batch cancelled after %d/%d rows", index, total)
                return self._publish(is_processing=False, status=f"Cancelled after {index}/{total} rows")
            self._publish(
                status=f"Processing {index + 1}/{total}: {record.name}",
                current_photo_type=f"Photo source: {photo_source_type(record.photo_source)}",
            )
            outcome = self.process_record(record)
            results.append(outcome)
            self._publish(
                progress=(index + 1) / total,
                current_photo_size=f"Photo size: {format_file_size(outcome.photo_size)}",
                results=tuple(results),
            )

        counts = _summary_counts(results)
        status = (
            f"Processed {total} rows: {counts['ok']} registered, "
            f"{counts['dup']} duplicates, {counts['err']} errors"
        )
        LOGGER.info(status)
        return self._publish(is_processing=False, progress=1.0, status=status)

    def run_csv(self, raw_text: str, cancel_event: Optional[threading.Event] = None) -> BatchState:
        """Parse roster text and register every valid row.

        A :class:`FatalInputError` is published as a failed state and re-raised.
        """
        self.publisher.publish(BatchState(is_processing=True, status="Parsing CSV..."))
        try:
            parsed = parse_records(raw_text)
        except FatalInputError as exc:
            LOGGER.error("Roster rejected: %s", exc)
            self.publisher.publish(
                BatchState(status=f"Processing failed: {exc}", parse_errors=tuple(exc.diagnostics))
            )
            raise
        for error in parsed.errors:
            LOGGER.warning(error)
        return self.run_batch(parsed.records, cancel_event=cancel_event, parse_errors=parsed.errors)

    def rerun_failed(self, cancel_event: Optional[threading.Event] = None) -> BatchState:
        """Reprocess every ``Error`` outcome in place.

        Each failed position is retried with the record cached at that same
        position, so repeated identifiers keep their own row data. Returns the
        current state untouched if a batch is running or nothing failed.
        """
        state = self.publisher.value
        if state.is_processing or state.error_count == 0:
            return state

        positions = [i for i, outcome in enumerate(state.results) if outcome.is_error]
        total = len(positions)
        results = list(state.results)
        self._publish(is_processing=True, progress=0.0, status=f"Re-running {total} failed rows...")

        retried: List[RowOutcome] = []
        for done, position in enumerate(positions):
            if cancel_event is not None and cancel_event.is_set():
                LOGGER.info("Re-run cancelled after %d/%d rows", done, total)
                return self._publish(is_processing=False, status=f"Cancelled after {done}/{total} rows")
            previous = results[position]
            record = self._cached_record(position, previous.student_id)
            if record is None:
                outcome = replace(previous, error=MISSING_CACHE_ERROR, photo_size=0)
            else:
                self._publish(
                    status=f"Processing {done + 1}/{total}: {record.name}",
                    current_photo_type=f"Photo source: {photo_source_type(record.photo_source)}",
                )
                outcome = self.process_record(record)
            results[position] = outcome
            retried.append(outcome)
            self._publish(
                progress=(done + 1) / total,
                current_photo_size=f"Photo size: {format_file_size(outcome.photo_size)}",
                results=tuple(results),
            )

        counts = _summary_counts(retried)
        status = f"Re-run done: +{counts['ok']} ok, +{counts['dup']} dup, +{counts['err']} err"
        LOGGER.info(status)
        return self._publish(is_processing=False, progress=1.0, status=status)

    def _cached_record(self, position: int, student_id: str) -> Optional[CandidateRecord]:
        if position >= len(self._records):
            return None
        record = self._records[position]
        return record if record.student_id == student_id else None

    def reset(self) -> None:
        self._records = []
        self.publisher.publish(BatchState())
