"""Common dataclasses and type aliases used across the enrollment package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

# Fixed-length float32 face signature
FeatureVector = np.ndarray

DEFAULT_ROLE = "Student"


@dataclass(frozen=True)
class CandidateRecord:
    """One parsed input row describing a person to enroll."""

    student_id: str
    name: str
    class_name: str = ""
    sub_class: str = ""
    grade: str = ""
    sub_grade: str = ""
    program: str = ""
    role: str = DEFAULT_ROLE
    photo_source: str = ""


@dataclass
class ParseResult:
    records: List[CandidateRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    total_rows: int = 0
    valid_rows: int = 0

    @property
    def success(self) -> bool:
        return bool(self.records)


@dataclass
class ResolvedPhoto:
    """Outcome of turning a photo reference into a local decodable file."""

    success: bool
    local_path: Optional[Path] = None
    original_size: int = 0
    processed_size: int = 0
    error: Optional[str] = None
    source_type: str = "local"


@dataclass
class ExtractedFace:
    """Aligned face crop and its embedding."""

    crop: np.ndarray
    embedding: FeatureVector


@dataclass
class RegistryEntry:
    """A persisted identity."""

    student_id: str
    name: str
    embedding: FeatureVector
    photo_path: str
    created_at: datetime
    class_name: str = ""
    sub_class: str = ""
    grade: str = ""
    sub_grade: str = ""
    program: str = ""
    role: str = ""

    @classmethod
    def from_record(
        cls,
        record: CandidateRecord,
        embedding: FeatureVector,
        photo_path: str,
        created_at: datetime,
    ) -> "RegistryEntry":
        return cls(
            student_id=record.student_id,
            name=record.name,
            embedding=np.asarray(embedding, dtype=np.float32).reshape(-1),
            photo_path=photo_path,
            created_at=created_at,
            class_name=record.class_name,
            sub_class=record.sub_class,
            grade=record.grade,
            sub_grade=record.sub_grade,
            program=record.program,
            role=record.role,
        )


class OutcomeStatus(str, Enum):
    REGISTERED = "Registered"
    DUPLICATE_ID = "DuplicateById"
    DUPLICATE_EMBEDDING = "DuplicateByEmbedding"
    ERROR = "Error"


@dataclass(frozen=True)
class RowOutcome:
    """Terminal status of one record after processing."""

    student_id: str
    name: str
    status: OutcomeStatus
    photo_size: int = 0
    error: Optional[str] = None
    matched_name: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status is OutcomeStatus.ERROR

    @property
    def is_duplicate(self) -> bool:
        return self.status in (OutcomeStatus.DUPLICATE_ID, OutcomeStatus.DUPLICATE_EMBEDDING)

    @property
    def label(self) -> str:
        """Human readable status text."""
        if self.status is OutcomeStatus.DUPLICATE_ID:
            return "Duplicate (ID already exists)"
        if self.status is OutcomeStatus.DUPLICATE_EMBEDDING:
            return f"Duplicate (Matched {self.matched_name})"
        return self.status.value

    @classmethod
    def failed(cls, record: CandidateRecord, message: str, photo_size: int = 0) -> "RowOutcome":
        return cls(
            student_id=record.student_id,
            name=record.name,
            status=OutcomeStatus.ERROR,
            photo_size=photo_size,
            error=message,
        )


@dataclass(frozen=True)
class BatchState:
    """Observable aggregate of a batch run; replaced wholesale on every update."""

    is_processing: bool = False
    progress: float = 0.0
    status: str = ""
    estimated_time: str = ""
    current_photo_type: str = ""
    current_photo_size: str = ""
    results: Tuple[RowOutcome, ...] = ()
    parse_errors: Tuple[str, ...] = ()

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.status is OutcomeStatus.REGISTERED)

    @property
    def duplicate_count(self) -> int:
        return sum(1 for r in self.results if r.is_duplicate)

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.is_error)

    @property
    def failed_ids(self) -> List[str]:
        return [r.student_id for r in self.results if r.is_error]


def l2_normalize(vec: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    """L2-normalize the input vector."""
    norm = np.linalg.norm(vec)
    if norm < eps:
        return vec
    return vec / norm
