"""Duplicate detection against the registry by identifier and cosine distance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from enrollment.registry.store import Registry
from enrollment.types import CandidateRecord, FeatureVector

LOGGER = logging.getLogger("enrollment.recognition.matcher")

DUPLICATE_THRESHOLD = 0.3

# Residue of 1 - cos for parallel vectors after float64 rounding
_SNAP_EPS = 4 * np.finfo(np.float64).eps


def cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Return ``1 - cos(a, b)``, clipped to ``[0, 2]``.

    Identical vectors are exactly ``0.0``; rounding residue within a few ULP
    of a perfect match is snapped to zero as well.
    """
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.shape != b.shape:
        raise ValueError(f"Embedding shapes do not match: {a.shape} vs {b.shape}")
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0.0 or norm_b == 0.0:
        raise ValueError("Cosine distance is undefined for a zero-length embedding")
    if np.array_equal(a, b):
        return 0.0
    similarity = float(np.clip(np.dot(a, b) / (norm_a * norm_b), -1.0, 1.0))
    distance = 1.0 - similarity
    if distance <= _SNAP_EPS:
        return 0.0
    return float(min(distance, 2.0))


class MatchKind(str, Enum):
    NEW = "New"
    DUPLICATE_ID = "DuplicateById"
    DUPLICATE_EMBEDDING = "DuplicateByEmbedding"


@dataclass(frozen=True)
class Classification:
    kind: MatchKind
    matched_id: Optional[str] = None
    matched_name: Optional[str] = None
    distance: Optional[float] = None

    @property
    def is_new(self) -> bool:
        return self.kind is MatchKind.NEW


class DuplicateDetector:
    """Classifies a candidate as new, an identifier collision, or a look-alike.

    Identifier collisions win over embedding matches and skip the distance
    scan. The scan follows registry order and stops at the first entry within
    the threshold (inclusive).
    """

    def __init__(self, threshold: float = DUPLICATE_THRESHOLD) -> None:
        self.threshold = threshold

    def classify(
        self,
        candidate: CandidateRecord,
        embedding: FeatureVector,
        registry: Registry,
    ) -> Classification:
        existing = registry.get_by_identifier(candidate.student_id)
        if existing is not None:
            LOGGER.debug("Candidate %s collides with existing identifier", candidate.student_id)
            return Classification(
                kind=MatchKind.DUPLICATE_ID,
                matched_id=existing.student_id,
                matched_name=existing.name,
            )

        for entry in registry.get_all():
            distance = cosine_distance(entry.embedding, embedding)
            if distance <= self.threshold:
                LOGGER.info(
                    "Candidate %s matches %s (%s) at distance %.3f",
                    candidate.student_id,
                    entry.student_id,
                    entry.name,
                    distance,
                )
                return Classification(
                    kind=MatchKind.DUPLICATE_EMBEDDING,
                    matched_id=entry.student_id,
                    matched_name=entry.name,
                    distance=distance,
                )
        return Classification(kind=MatchKind.NEW)
