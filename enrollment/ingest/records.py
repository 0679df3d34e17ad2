"""Column-tolerant CSV parsing of enrollment rosters.

Header cells are matched to fields by substring rules rather than exact
names so rosters exported from different spreadsheets load without edits.
Row problems are collected as diagnostics; only a roster without identifier
and name columns is rejected outright.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from enrollment.errors import FatalInputError
from enrollment.io_utils import read_text
from enrollment.types import DEFAULT_ROLE, CandidateRecord, ParseResult

LOGGER = logging.getLogger("enrollment.ingest.records")

TEMPLATE_HEADER = "Student ID,Name,Class,Sub Class,Grade,Sub Grade,Program,Role"
TEMPLATE_ROWS = (
    "STU001,John Doe,Class A,Sub A1,Grade 1,Sub 1A,Program X,Student",
    "STU002,Jane Smith,Class B,Sub B1,Grade 2,Sub 2A,Program Y,Student",
    "TEA001,Mr. Johnson,,,,,,Teacher",
)

# Evaluated in order; a column takes the first rule whose field is still unclaimed.
_HEADER_RULES: Tuple[Tuple[str, Callable[[str], bool]], ...] = (
    ("student_id", lambda col: ("student" in col and "id" in col) or col == "id"),
    ("name", lambda col: "name" in col),
    ("class_name", lambda col: "class" in col and "sub" not in col),
    ("sub_class", lambda col: "sub" in col and "class" in col),
    ("grade", lambda col: "grade" in col and "sub" not in col),
    ("sub_grade", lambda col: "sub" in col and "grade" in col),
    ("program", lambda col: col == "program"),
    ("role", lambda col: col == "role"),
    ("photo_source", lambda col: "photo" in col or "image" in col or "url" in col),
)


def split_csv_line(line: str) -> List[str]:
    """Split one CSV line honoring double-quoted fields.

    A doubled quote inside a quoted field is a literal quote. Fields are
    trimmed. Raises ``ValueError`` when a quoted field is never closed.
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    if in_quotes:
        raise ValueError("Unterminated quoted field")
    fields.append("".join(current).strip())
    return fields


def map_header(header: Sequence[str]) -> Dict[str, int]:
    """Map logical field names to column indices."""
    column_map: Dict[str, int] = {}
    for idx, raw in enumerate(header):
        col = raw.strip().lower()
        for field_name, matches in _HEADER_RULES:
            if field_name in column_map:
                continue
            if matches(col):
                column_map[field_name] = idx
                break
    return column_map


def _cell(row: Sequence[str], column_map: Dict[str, int], field_name: str) -> Optional[str]:
    idx = column_map.get(field_name)
    if idx is None or idx >= len(row):
        return None
    return row[idx].strip()


def _build_record(row: Sequence[str], column_map: Dict[str, int]) -> Optional[CandidateRecord]:
    student_id = _cell(row, column_map, "student_id") or ""
    name = _cell(row, column_map, "name") or ""
    if not student_id or not name:
        return None
    role = _cell(row, column_map, "role")
    return CandidateRecord(
        student_id=student_id,
        name=name,
        class_name=_cell(row, column_map, "class_name") or "",
        sub_class=_cell(row, column_map, "sub_class") or "",
        grade=_cell(row, column_map, "grade") or "",
        sub_grade=_cell(row, column_map, "sub_grade") or "",
        program=_cell(row, column_map, "program") or "",
        role=DEFAULT_ROLE if role is None else role,
        photo_source=_cell(row, column_map, "photo_source") or "",
    )


def parse_records(raw_text: str) -> ParseResult:
    """Parse roster text into candidate records.

    Raises :class:`FatalInputError` when the text is empty or lacks an
    identifier or name column. Every other problem is reported per row in
    ``ParseResult.errors``.
    """
    lines = raw_text.lstrip("\ufeff").splitlines()
    header_idx = next((i for i, line in enumerate(lines) if line.strip()), None)
    if header_idx is None:
        raise FatalInputError(["CSV file is empty"])

    try:
        header = [col.lower() for col in split_csv_line(lines[header_idx].strip())]
    except ValueError as exc:
        raise FatalInputError([f"Invalid CSV header: {exc}"]) from exc
    column_map = map_header(header)
    if "student_id" not in column_map or "name" not in column_map:
        raise FatalInputError(
            [
                "CSV file must have 'Student ID' and 'Name' columns",
                f"Detected columns: {', '.join(header)}",
            ]
        )

    result = ParseResult()
    for line_idx in range(header_idx + 1, len(lines)):
        line = lines[line_idx].strip()
        if not line:
            continue
        row_number = line_idx + 1
        result.total_rows += 1
        try:
            record = _build_record(split_csv_line(line), column_map)
        except Exception as exc:
            result.errors.append(f"Row {row_number}: {str(exc) or 'Invalid format'}")
            continue
        if record is None:
            result.errors.append(f"Row {row_number}: Student ID and Name are required")
            continue
        result.records.append(record)
        result.valid_rows += 1

    LOGGER.info(
        "Parsed roster: %d/%d rows valid, %d errors, columns=%s",
        result.valid_rows,
        result.total_rows,
        len(result.errors),
        sorted(column_map),
    )
    return result


def read_records(path: Path) -> ParseResult:
    """Read and parse a roster file."""
    try:
        text = read_text(path)
    except (OSError, UnicodeDecodeError) as exc:
        raise FatalInputError([f"Failed to process CSV: {exc}"]) from exc
    return parse_records(text)


def csv_template(with_samples: bool = True, photo_column: bool = False) -> str:
    """Return a reference roster with the canonical header."""
    header = TEMPLATE_HEADER + (",Photo" if photo_column else "")
    lines = [header]
    if with_samples:
        suffix = "," if photo_column else ""
        lines.extend(row + suffix for row in TEMPLATE_ROWS)
    return "\n".join(lines) + "\n"
