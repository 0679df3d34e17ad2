"""RetinaFace detection and alignment utilities."""

from __future__ import annotations

import logging
import os
import platform
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np

LOGGER = logging.getLogger("enrollment.recognition.face")

# Bounding box order: x1, y1, x2, y2 (pixel coordinates)
BBox = Tuple[float, float, float, float]

# ArcFace reference landmarks for a 112x112 crop
_ARCFACE_DST = np.array(
    [
        [38.2946, 51.6963],
        [73.5318, 51.5014],
        [56.0252, 71.7366],
        [41.5493, 92.3655],
        [70.7299, 92.2041],
    ],
    dtype=np.float32,
)


@dataclass
class FaceDetection:
    bbox: BBox
    score: float
    landmarks: Optional[np.ndarray] = None

    @property
    def min_side(self) -> float:
        x1, y1, x2, y2 = self.bbox
        return min(x2 - x1, y2 - y1)


def _default_providers() -> Tuple[str, ...]:
    """Choose default ONNX providers for RetinaFace."""
    system = platform.system()
    machine = platform.machine().lower()
    if system == "Darwin" and machine in {"arm64", "aarch64"}:
        return ("CoreMLExecutionProvider", "CPUExecutionProvider")
    return ("CPUExecutionProvider",)


class RetinaFaceDetector:
    """Wrapper around InsightFace RetinaFace detector with alignment utilities."""

    def __init__(
        self,
        providers: Optional[Tuple[str, ...]] = None,
        det_size: Tuple[int, int] = (640, 640),
        det_thresh: float = 0.5,
    ) -> None:
        os.environ.setdefault("OMP_NUM_THREADS", "2")
        os.environ.setdefault("ORT_INTRA_OP_NUM_THREADS", "2")
        try:
            from insightface.app import FaceAnalysis
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "insightface is required for RetinaFaceDetector. "
                "Install it via `pip install insightface`."
            ) from exc

        self.det_size = det_size
        self.det_thresh = det_thresh
        self.providers = tuple(providers) if providers is not None else _default_providers()
        self.app = FaceAnalysis(name="buffalo_l", allowed_modules=["detection"], providers=list(self.providers))
        self.app.prepare(ctx_id=0, det_size=self.det_size)
        LOGGER.info(
            "Loaded RetinaFace detector det_size=%s det_thresh=%.2f providers=%s",
            det_size,
            det_thresh,
            self.providers,
        )

    def detect(self, image: np.ndarray) -> List[FaceDetection]:
        """Run RetinaFace on a BGR image and return detections above threshold."""
        detections: List[FaceDetection] = []
        for face in self.app.get(image):
            score = float(face.det_score)
            if score < self.det_thresh:
                continue
            landmarks = np.asarray(face.kps, dtype=np.float32) if face.kps is not None else None
            detections.append(
                FaceDetection(
                    bbox=tuple(float(v) for v in face.bbox),  # type: ignore[arg-type]
                    score=score,
                    landmarks=landmarks,
                )
            )
        return detections

    @staticmethod
    def align_to_112(image: np.ndarray, landmarks: Optional[np.ndarray], bbox: BBox) -> np.ndarray:
        """Align face to 112x112 using landmarks if available, else simple crop+resize."""
        target_size = (112, 112)
        crop = crop_to_bbox(image, bbox)
        if landmarks is None or landmarks.shape != (5, 2):
            return cv2.resize(crop, target_size, interpolation=cv2.INTER_LINEAR)
        trans = cv2.estimateAffinePartial2D(landmarks.astype(np.float32), _ARCFACE_DST, method=cv2.LMEDS)[0]
        if trans is None:
            return cv2.resize(crop, target_size, interpolation=cv2.INTER_LINEAR)
        return cv2.warpAffine(image, trans, target_size, borderValue=0.0)


def crop_to_bbox(image: np.ndarray, bbox: BBox) -> np.ndarray:
    x1, y1, x2, y2 = [int(round(v)) for v in bbox]
    if x2 <= x1 or y2 <= y1:
        return image.copy()
    crop = image[max(0, y1) : max(0, y2), max(0, x1) : max(0, x2)]
    if crop.size == 0:
        return image.copy()
    return crop
