#!/usr/bin/env python3
"""CLI for writing a roster CSV template and a default enrollment config."""

from __future__ import annotations

import argparse
import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from enrollment.config import EnrollmentConfig
from enrollment.ingest.records import csv_template
from enrollment.io_utils import dump_yaml, ensure_dir, setup_logging


LOGGER = logging.getLogger("scripts.make_template")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Write a roster CSV template")
    parser.add_argument("--output", type=Path, default=Path("student_template.csv"), help="Template CSV path")
    parser.add_argument("--no-samples", action="store_true", help="Write the header row only")
    parser.add_argument("--photo-column", action="store_true", help="Include an empty Photo column")
    parser.add_argument(
        "--config-out",
        type=Path,
        default=None,
        help="Also write the default enrollment config YAML to this path",
    )
    return parser.parse_args(argv)


def default_config_mapping() -> Dict[str, Any]:
    """Default config values in YAML-friendly types."""
    data = dataclasses.asdict(EnrollmentConfig())
    data.pop("extra", None)
    for key, value in data.items():
        if isinstance(value, Path):
            data[key] = str(value)
        elif isinstance(value, tuple):
            data[key] = list(value)
    return data


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    setup_logging()

    ensure_dir(args.output.parent)
    text = csv_template(with_samples=not args.no_samples, photo_column=args.photo_column)
    args.output.write_text(text, encoding="utf-8")
    LOGGER.info("Template written to %s", args.output)

    if args.config_out is not None:
        ensure_dir(args.config_out.parent)
        dump_yaml(args.config_out, default_config_mapping())
        LOGGER.info("Default config written to %s", args.config_out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
