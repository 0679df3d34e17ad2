"""Face extraction: detect, align and embed the most prominent face in a photo."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from enrollment.config import EnrollmentConfig
from enrollment.types import ExtractedFace

LOGGER = logging.getLogger("enrollment.recognition.extractor")


class FaceExtractor(ABC):
    """Boundary used by the pipeline. ``None`` means no usable face was found."""

    @abstractmethod
    def extract(self, image: np.ndarray) -> Optional[ExtractedFace]:
        raise NotImplementedError


class ArcFaceExtractor(FaceExtractor):
    def __init__(self, detector, embedder, min_face_px: int = 0) -> None:
        self.detector = detector
        self.embedder = embedder
        self.min_face_px = min_face_px

    def extract(self, image: np.ndarray) -> Optional[ExtractedFace]:
        if image is None or image.size == 0:
            return None
        detections = [d for d in self.detector.detect(image) if d.min_side >= self.min_face_px]
        if not detections:
            LOGGER.debug("No detections above %dpx", self.min_face_px)
            return None
        best = max(detections, key=lambda d: d.score)
        aligned = self.detector.align_to_112(image, best.landmarks, best.bbox)
        embedding = self.embedder.embed(aligned)
        return ExtractedFace(crop=aligned, embedding=np.asarray(embedding, dtype=np.float32))


def build_extractor(config: EnrollmentConfig) -> ArcFaceExtractor:
    """Load RetinaFace and ArcFace models according to ``config``."""
    from enrollment.recognition.embed_arcface import ArcFaceEmbedder
    from enrollment.recognition.face_retina import RetinaFaceDetector

    detector = RetinaFaceDetector(
        providers=config.providers,
        det_size=config.det_size,
        det_thresh=config.det_thresh,
    )
    embedder = ArcFaceEmbedder(model_path=config.arcface_model, providers=config.providers)
    return ArcFaceExtractor(detector, embedder, min_face_px=config.min_face_px)
