"""Durable storage for enrolled face crops."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from enrollment.io_utils import ensure_dir, safe_filename

LOGGER = logging.getLogger("enrollment.registry.photos")


class FacePhotoStore:
    """Writes face crops as JPEG files under a root directory."""

    def __init__(self, root: Path, jpeg_quality: int = 95) -> None:
        self.root = Path(root)
        self.jpeg_quality = jpeg_quality

    def save_face_photo(self, image: np.ndarray, student_id: str) -> Optional[str]:
        """Return the stored path, or ``None`` if the crop could not be written."""
        if image is None or getattr(image, "size", 0) == 0:
            LOGGER.warning("Refusing to save empty face crop for %s", student_id)
            return None
        try:
            ensure_dir(self.root)
            dest = self.root / f"{safe_filename(student_id)}_{int(time.time() * 1000)}.jpg"
            ok = cv2.imwrite(str(dest), image, [int(cv2.IMWRITE_JPEG_QUALITY), self.jpeg_quality])
        except (OSError, cv2.error) as exc:
            LOGGER.warning("Failed to save face photo for %s: %s", student_id, exc)
            return None
        if not ok:
            LOGGER.warning("OpenCV could not write face photo %s", dest)
            return None
        return str(dest)
