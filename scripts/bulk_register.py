#!/usr/bin/env python3
"""CLI for registering every person in a roster CSV."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from enrollment.config import EnrollmentConfig, load_config
from enrollment.errors import FatalInputError
from enrollment.io_utils import dump_json, ensure_dir, read_text, setup_logging
from enrollment.photos.resolver import PhotoResolver
from enrollment.pipeline.registration import RegistrationPipeline
from enrollment.recognition.extractor import build_extractor
from enrollment.recognition.matcher import DuplicateDetector
from enrollment.registry.photo_store import FacePhotoStore
from enrollment.registry.store import InMemoryRegistry, Registry, SqlRegistry
from enrollment.reporting import summarize, write_results_csv
from enrollment.types import BatchState


LOGGER = logging.getLogger("scripts.bulk_register")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Register people in bulk from a roster CSV")
    parser.add_argument("--csv", type=Path, required=True, help="Roster CSV with Student ID and Name columns")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Enrollment YAML config (defaults to configs/enrollment.yaml when present)",
    )
    parser.add_argument("--db", type=Path, default=None, help="SQLite registry path")
    parser.add_argument("--in-memory", action="store_true", help="Use a throwaway in-memory registry")
    parser.add_argument("--faces-dir", type=Path, default=None, help="Directory for stored face crops")
    parser.add_argument("--work-dir", type=Path, default=None, help="Directory for resized source photos")
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Cosine distance at or below which a face counts as a duplicate",
    )
    parser.add_argument("--arcface-model", type=str, default=None, help="Optional ArcFace model path or name")
    parser.add_argument(
        "--providers",
        type=str,
        nargs="*",
        default=None,
        help="Execution providers for ONNXRuntime (e.g. CUDAExecutionProvider)",
    )
    parser.add_argument(
        "--retry-failed",
        type=int,
        default=0,
        help="Re-run rows that ended in an error this many times",
    )
    parser.add_argument("--results-csv", type=Path, default=None, help="Write per-row outcomes to this CSV")
    parser.add_argument("--summary-json", type=Path, default=None, help="Write batch summary JSON here")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _apply_overrides(config: EnrollmentConfig, args: argparse.Namespace) -> EnrollmentConfig:
    """CLI flags win over YAML values."""
    overrides = {}
    if args.db is not None:
        overrides["db_path"] = args.db
    if args.faces_dir is not None:
        overrides["faces_dir"] = args.faces_dir
    if args.work_dir is not None:
        overrides["work_dir"] = args.work_dir
    if args.threshold is not None:
        overrides["duplicate_threshold"] = args.threshold
    if args.arcface_model is not None:
        overrides["arcface_model"] = args.arcface_model
    if args.providers is not None:
        overrides["providers"] = tuple(args.providers)
    return dataclasses.replace(config, **overrides) if overrides else config


def _build_registry(config: EnrollmentConfig, in_memory: bool) -> Registry:
    if in_memory:
        LOGGER.info("Using in-memory registry; nothing will be persisted")
        return InMemoryRegistry()
    LOGGER.info("Using registry database %s", config.db_path)
    return SqlRegistry(config.db_path)


def _attach_progress(pipeline: RegistrationPipeline):
    bar = tqdm(total=100, desc="Registering", unit="%")

    def _on_state(state: BatchState) -> None:
        bar.n = int(round(state.progress * 100))
        if state.status:
            bar.set_postfix_str(state.status, refresh=False)
        bar.refresh()

    unsubscribe = pipeline.publisher.subscribe(_on_state)

    def _close() -> None:
        unsubscribe()
        bar.close()

    return _close


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    config = _apply_overrides(load_config(args.config), args)
    try:
        raw_text = read_text(args.csv)
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.error("Failed to read roster %s: %s", args.csv, exc)
        return 2

    resolver = PhotoResolver(
        work_dir=config.work_dir,
        timeout=config.photo_timeout_s,
        max_side=config.photo_max_side,
        jpeg_quality=config.jpeg_quality,
        user_agent=config.user_agent,
    )
    pipeline = RegistrationPipeline(
        resolver=resolver,
        extractor=build_extractor(config),
        photo_store=FacePhotoStore(ensure_dir(config.faces_dir)),
        registry=_build_registry(config, args.in_memory),
        detector=DuplicateDetector(threshold=config.duplicate_threshold),
    )

    close_progress = None if args.no_progress else _attach_progress(pipeline)
    try:
        state = pipeline.run_csv(raw_text)
        for attempt in range(args.retry_failed):
            if state.error_count == 0:
                break
            LOGGER.info("Retry round %d/%d for %d failed rows", attempt + 1, args.retry_failed, state.error_count)
            state = pipeline.rerun_failed()
    except FatalInputError as exc:
        LOGGER.error("Roster rejected: %s", exc)
        for line in exc.diagnostics:
            LOGGER.error("  %s", line)
        return 2
    finally:
        if close_progress is not None:
            close_progress()

    for error in state.parse_errors:
        LOGGER.warning("Skipped %s", error)
    LOGGER.info(state.status)
    if args.results_csv is not None:
        write_results_csv(state, args.results_csv)
    if args.summary_json is not None:
        ensure_dir(args.summary_json.parent)
        dump_json(args.summary_json, summarize(state))
        LOGGER.info("Summary written to %s", args.summary_json)
    return 1 if state.error_count else 0


if __name__ == "__main__":
    sys.exit(main())
