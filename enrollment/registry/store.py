"""Registry of enrolled identities.

The pipeline needs three operations from a registry: lookup by identifier,
iteration over all entries in a stable order, and insert-if-absent. Two
implementations are provided: an in-memory dictionary for tests and short
sessions, and a SQLite table accessed through SQLAlchemy Core.
"""

from __future__ import annotations

import datetime as _dt
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from sqlalchemy import (
    JSON, Column, DateTime, Integer, MetaData, String, Table, create_engine, func, insert, select
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from enrollment.io_utils import ensure_dir
from enrollment.types import RegistryEntry

LOGGER = logging.getLogger("enrollment.registry")


class Registry(ABC):
    """Interface consumed by the duplicate detector and the pipeline."""

    @abstractmethod
    def get_by_identifier(self, student_id: str) -> Optional[RegistryEntry]:
        raise NotImplementedError

    @abstractmethod
    def get_all(self) -> List[RegistryEntry]:
        """Return every entry in insertion order."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, entry: RegistryEntry) -> bool:
        """Persist a new entry; return ``False`` if the identifier already exists."""
        raise NotImplementedError

    def count(self) -> int:
        return len(self.get_all())


class InMemoryRegistry(Registry):
    def __init__(self) -> None:
        self._entries: Dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()

    def get_by_identifier(self, student_id: str) -> Optional[RegistryEntry]:
        with self._lock:
            return self._entries.get(student_id)

    def get_all(self) -> List[RegistryEntry]:
        with self._lock:
            return list(self._entries.values())

    def insert(self, entry: RegistryEntry) -> bool:
        with self._lock:
            if entry.student_id in self._entries:
                return False
            self._entries[entry.student_id] = entry
            return True

    def count(self) -> int:
        with self._lock:
            return len(self._entries)


def _make_metadata() -> MetaData:
    """Define and return SQLAlchemy metadata with the registry table."""
    metadata = MetaData()
    Table(
        "registry", metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("student_id", String, nullable=False, unique=True),
        Column("name", String, nullable=False),
        Column("embedding", JSON, nullable=False),  # list of floats
        Column("photo_path", String, nullable=False),
        Column("class_name", String, nullable=False, default=""),
        Column("sub_class", String, nullable=False, default=""),
        Column("grade", String, nullable=False, default=""),
        Column("sub_grade", String, nullable=False, default=""),
        Column("program", String, nullable=False, default=""),
        Column("role", String, nullable=False, default=""),
        Column("created_at", DateTime, nullable=False),
    )
    return metadata


def init_db(db_path: Path) -> Engine:
    """Create the SQLite database and registry table if needed."""
    ensure_dir(Path(db_path).parent)
    engine = create_engine(f"sqlite:///{db_path}")
    _make_metadata().create_all(engine)
    return engine


def _row_to_entry(row: Dict[str, Any]) -> RegistryEntry:
    created_at = row["created_at"]
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=_dt.timezone.utc)
    return RegistryEntry(
        student_id=row["student_id"],
        name=row["name"],
        embedding=np.asarray(row["embedding"], dtype=np.float32).reshape(-1),
        photo_path=row["photo_path"],
        created_at=created_at,
        class_name=row["class_name"],
        sub_class=row["sub_class"],
        grade=row["grade"],
        sub_grade=row["sub_grade"],
        program=row["program"],
        role=row["role"],
    )


class SqlRegistry(Registry):
    """Registry persisted in a SQLite table, ordered by insertion id."""

    def __init__(self, db_path: Path, engine: Optional[Engine] = None) -> None:
        self.db_path = Path(db_path)
        self.engine = engine if engine is not None else init_db(self.db_path)
        self.table = _make_metadata().tables["registry"]

    def get_by_identifier(self, student_id: str) -> Optional[RegistryEntry]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(self.table).where(self.table.c.student_id == student_id)
            ).mappings().first()
        return _row_to_entry(dict(row)) if row else None

    def get_all(self) -> List[RegistryEntry]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(self.table).order_by(self.table.c.id)).mappings().all()
        return [_row_to_entry(dict(row)) for row in rows]

    def insert(self, entry: RegistryEntry) -> bool:
        values = {
            "student_id": entry.student_id,
            "name": entry.name,
            "embedding": np.asarray(entry.embedding, dtype=np.float32).astype(float).tolist(),
            "photo_path": entry.photo_path,
            "class_name": entry.class_name,
            "sub_class": entry.sub_class,
            "grade": entry.grade,
            "sub_grade": entry.sub_grade,
            "program": entry.program,
            "role": entry.role,
            "created_at": entry.created_at.astimezone(_dt.timezone.utc).replace(tzinfo=None),
        }
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(self.table).values(**values))
        except IntegrityError:
            LOGGER.warning("Registry already contains %s; insert rejected", entry.student_id)
            return False
        except SQLAlchemyError:
            LOGGER.exception("Registry insert failed for %s", entry.student_id)
            raise
        return True

    def count(self) -> int:
        with self.engine.connect() as conn:
            return int(conn.execute(select(func.count()).select_from(self.table)).scalar_one())
