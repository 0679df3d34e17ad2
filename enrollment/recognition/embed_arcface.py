"""ArcFace embedding utilities."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from enrollment.recognition.face_retina import _default_providers
from enrollment.types import l2_normalize

LOGGER = logging.getLogger("enrollment.recognition.embed")

_INPUT_SIZE = (112, 112)


class ArcFaceEmbedder:
    """Loads an ArcFace ONNX model via InsightFace for embedding extraction."""

    def __init__(self, model_path: Optional[str] = None, providers: Optional[Sequence[str]] = None) -> None:
        os.environ.setdefault("OMP_NUM_THREADS", "2")
        os.environ.setdefault("ORT_INTRA_OP_NUM_THREADS", "2")
        try:
            from insightface.model_zoo import get_model
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "insightface is required for ArcFaceEmbedder. "
                "Install it via `pip install insightface`."
            ) from exc

        resolved = str(Path(model_path).expanduser()) if model_path else "arcface_r100_v1"
        provider_list: Tuple[str, ...] = tuple(providers) if providers is not None else _default_providers()
        LOGGER.info("Loading ArcFace model %s providers=%s", resolved, provider_list)
        model = get_model(resolved, download=True, providers=list(provider_list))
        if model is None:
            LOGGER.info("Falling back to FaceAnalysis recognition model")
            from insightface.app import FaceAnalysis

            analysis = FaceAnalysis(name="buffalo_l", providers=list(provider_list))
            analysis.prepare(ctx_id=0)
            model = analysis.models.get("recognition")
            if model is None:
                raise RuntimeError("Unable to load ArcFace recognition model via insightface FaceAnalysis")
        if hasattr(model, "prepare"):
            model.prepare(ctx_id=0)
        self.model = model
        self.providers = provider_list

    def embed(self, aligned_face: np.ndarray) -> np.ndarray:
        """Compute L2-normalized embedding for an aligned 112x112 face image.

        Raises ``ValueError`` when the model output is all zeros.
        """
        if aligned_face.shape[:2] != _INPUT_SIZE:
            aligned_face = cv2.resize(aligned_face, _INPUT_SIZE, interpolation=cv2.INTER_LINEAR)
        feat = np.asarray(self.model.get_feat(aligned_face), dtype=np.float32).reshape(-1)
        if feat.size == 0 or not np.any(feat):
            raise ValueError("ArcFace returned an empty embedding")
        return l2_normalize(feat)
