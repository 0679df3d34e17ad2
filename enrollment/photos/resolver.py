"""Photo source resolution: remote URLs, inline data payloads and local files.

Every source class ends in the same place: a resized JPEG under the work
directory that OpenCV can decode, plus byte sizes for reporting. Failures
are returned as a :class:`ResolvedPhoto` with ``success=False``; nothing
escapes :meth:`PhotoResolver.resolve`.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from pathlib import Path
from typing import Iterable, Optional

import requests
from PIL import Image, ImageOps, UnidentifiedImageError

from enrollment.errors import PhotoResolutionError
from enrollment.io_utils import ensure_dir, safe_filename
from enrollment.types import ResolvedPhoto

LOGGER = logging.getLogger("enrollment.photos.resolver")

SOURCE_URL = "url"
SOURCE_DATA = "data"
SOURCE_LOCAL = "local"
SOURCE_NONE = "none"

# Rough seconds per row by source type, before face extraction
_ESTIMATE_SECONDS = {SOURCE_URL: 3, SOURCE_DATA: 2, SOURCE_LOCAL: 1, SOURCE_NONE: 0}
_EXTRACTION_SECONDS = 1


def photo_source_type(source: Optional[str]) -> str:
    """Classify a photo reference by prefix."""
    value = (source or "").strip()
    if not value:
        return SOURCE_NONE
    lowered = value.lower()
    if lowered.startswith(("http://", "https://")):
        return SOURCE_URL
    if lowered.startswith("data:"):
        return SOURCE_DATA
    return SOURCE_LOCAL


def estimate_processing_seconds(sources: Iterable[Optional[str]]) -> int:
    total = 0
    for source in sources:
        total += _ESTIMATE_SECONDS[photo_source_type(source)] + _EXTRACTION_SECONDS
    return total


def format_estimate(seconds: int) -> str:
    if seconds > 120:
        return f"{seconds // 60} minutes"
    if seconds > 60:
        return f"1 minute {seconds % 60} seconds"
    return f"{seconds} seconds"


def format_file_size(size: int) -> str:
    if size == 0:
        return "0 KB"
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size // 1024} KB"
    return f"{size / (1024.0 * 1024.0):.1f} MB"


def decode_data_payload(source: str) -> bytes:
    """Decode a ``data:image/...;base64,`` payload into raw bytes."""
    header, sep, payload = source.partition(",")
    if not sep:
        raise PhotoResolutionError("Invalid data URL", details="missing ',' separator")
    if ";base64" not in header.lower():
        raise PhotoResolutionError("Unsupported data URL encoding", details=header)
    try:
        return base64.b64decode(payload.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PhotoResolutionError("Invalid base64 photo data") from exc


class PhotoResolver:
    """Turns photo references into local decodable JPEG files."""

    def __init__(
        self,
        work_dir: Path,
        timeout: float = 20.0,
        max_side: int = 1024,
        jpeg_quality: int = 90,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self.work_dir = ensure_dir(Path(work_dir))
        self.timeout = timeout
        self.max_side = max_side
        self.jpeg_quality = jpeg_quality
        self.session = session or requests.Session()
        if user_agent:
            self.session.headers.setdefault("User-Agent", user_agent)

    def resolve(self, photo_source: Optional[str], student_id: str) -> ResolvedPhoto:
        source = (photo_source or "").strip()
        source_type = photo_source_type(source)
        if source_type == SOURCE_NONE:
            return ResolvedPhoto(success=False, error="No photo source provided", source_type=source_type)

        raw: Optional[bytes] = None
        try:
            raw = self._acquire(source, source_type)
            dest = self._store(raw, student_id)
        except PhotoResolutionError as exc:
            LOGGER.warning("Photo for %s (%s) failed: %s", student_id, source_type, exc)
            return ResolvedPhoto(
                success=False,
                original_size=len(raw) if raw is not None else 0,
                error=str(exc),
                source_type=source_type,
            )

        processed_size = dest.stat().st_size
        LOGGER.debug(
            "Resolved photo for %s via %s: %d -> %d bytes",
            student_id,
            source_type,
            len(raw),
            processed_size,
        )
        return ResolvedPhoto(
            success=True,
            local_path=dest,
            original_size=len(raw),
            processed_size=processed_size,
            source_type=source_type,
        )

    def _acquire(self, source: str, source_type: str) -> bytes:
        if source_type == SOURCE_URL:
            return self._fetch(source)
        if source_type == SOURCE_DATA:
            return decode_data_payload(source)
        return self._read_local(source)

    def _fetch(self, url: str) -> bytes:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout as exc:
            raise PhotoResolutionError("Photo download timed out", details=url) from exc
        except requests.RequestException as exc:
            raise PhotoResolutionError(f"Photo download failed: {exc}") from exc
        if not response.content:
            raise PhotoResolutionError("Photo download returned no data", details=url)
        return response.content

    @staticmethod
    def _read_local(source: str) -> bytes:
        if source.lower().startswith("file://"):
            source = source[len("file://"):]
        path = Path(source).expanduser()
        if not path.is_file():
            raise PhotoResolutionError("Photo file not found", details=str(path))
        try:
            return path.read_bytes()
        except OSError as exc:
            raise PhotoResolutionError(f"Unable to read photo file: {exc}") from exc

    def _store(self, raw: bytes, student_id: str) -> Path:
        """Decode, orient and shrink the photo, then write it as JPEG."""
        try:
            with Image.open(io.BytesIO(raw)) as image:
                image = ImageOps.exif_transpose(image)
                image = image.convert("RGB")
                image.thumbnail((self.max_side, self.max_side), Image.LANCZOS)
                dest = self.work_dir / f"{safe_filename(student_id)}.jpg"
                image.save(dest, format="JPEG", quality=self.jpeg_quality, optimize=True)
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise PhotoResolutionError("Unsupported or corrupt image data") from exc
        return dest
