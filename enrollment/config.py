"""Run configuration for bulk enrollment."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from enrollment.io_utils import load_yaml, resolve_path

LOGGER = logging.getLogger("enrollment.config")

DEFAULT_CONFIG_PATH = Path("configs/enrollment.yaml")

_PATH_FIELDS = ("work_dir", "faces_dir", "db_path")


@dataclass
class EnrollmentConfig:
    # Maximum cosine distance at which two faces count as the same person (inclusive)
    duplicate_threshold: float = 0.3
    photo_timeout_s: float = 20.0
    photo_max_side: int = 1024
    jpeg_quality: int = 90
    user_agent: str = "enrollment-bulk-import/0.1"
    work_dir: Path = Path("data/enrollment/processed")
    faces_dir: Path = Path("data/enrollment/faces")
    db_path: Path = Path("data/enrollment/registry.sqlite")
    det_size: Tuple[int, int] = (640, 640)
    det_thresh: float = 0.5
    min_face_px: int = 40
    arcface_model: Optional[str] = None
    providers: Optional[Tuple[str, ...]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "EnrollmentConfig":
        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                LOGGER.warning("Ignoring unknown config key %r", key)
                extra[key] = value
                continue
            kwargs[key] = value
        for key in _PATH_FIELDS:
            if key in kwargs and kwargs[key] is not None:
                kwargs[key] = resolve_path(str(kwargs[key]))
        if kwargs.get("det_size") is not None:
            kwargs["det_size"] = tuple(int(v) for v in kwargs["det_size"])
        if kwargs.get("providers") is not None:
            kwargs["providers"] = tuple(str(p) for p in kwargs["providers"])
        return cls(extra=extra, **kwargs)


def load_config(path: Optional[Path] = None) -> EnrollmentConfig:
    """Load configuration from YAML, falling back to defaults when absent."""
    config_path = path if path is not None else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        if path is not None:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        LOGGER.debug("No config at %s; using defaults", config_path)
        return EnrollmentConfig()
    data = load_yaml(config_path)
    config = EnrollmentConfig.from_mapping(data)
    LOGGER.info("Loaded enrollment config from %s", config_path)
    return config
