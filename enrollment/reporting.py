"""Tabular and summary views of a finished batch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import pandas as pd

from enrollment.io_utils import ensure_dir
from enrollment.photos.resolver import format_file_size
from enrollment.types import BatchState

LOGGER = logging.getLogger("enrollment.reporting")

RESULT_COLUMNS = ["row", "student_id", "name", "status", "label", "matched_name", "error", "photo_size", "photo_size_text"]


def results_frame(state: BatchState) -> pd.DataFrame:
    rows = []
    for index, outcome in enumerate(state.results, start=1):
        rows.append(
            {
                "row": index,
                "student_id": outcome.student_id,
                "name": outcome.name,
                "status": outcome.status.value,
                "label": outcome.label,
                "matched_name": outcome.matched_name or "",
                "error": outcome.error or "",
                "photo_size": outcome.photo_size,
                "photo_size_text": format_file_size(outcome.photo_size),
            }
        )
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def write_results_csv(state: BatchState, path: Path) -> Path:
    path = Path(path)
    ensure_dir(path.parent)
    results_frame(state).to_csv(path, index=False)
    LOGGER.info("Wrote %d result rows to %s", len(state.results), path)
    return path


def summarize(state: BatchState) -> Dict[str, Any]:
    """Counts and status of a batch, suitable for JSON output."""
    return {
        "status": state.status,
        "total": len(state.results),
        "registered": state.success_count,
        "duplicates": state.duplicate_count,
        "errors": state.error_count,
        "failed_ids": state.failed_ids,
        "parse_errors": list(state.parse_errors),
        "estimated_time": state.estimated_time,
    }
