import datetime as dt

import numpy as np
import pytest

from enrollment.registry.store import InMemoryRegistry, Registry, SqlRegistry, init_db
from enrollment.types import CandidateRecord, RegistryEntry


def _entry(student_id, name, seed=0):
    record = CandidateRecord(student_id, name, class_name="7A", role="Teacher")
    embedding = np.random.default_rng(seed).normal(size=8).astype(np.float32)
    created = dt.datetime(2024, 5, 1, 12, 30, tzinfo=dt.timezone.utc)
    return RegistryEntry.from_record(record, embedding, f"/faces/{student_id}.jpg", created)


@pytest.fixture(params=["memory", "sql"])
def registry(request, tmp_path):
    if request.param == "memory":
        return InMemoryRegistry()
    return SqlRegistry(tmp_path / "db" / "registry.sqlite")


def test_insert_and_lookup(registry):
    entry = _entry("S1", "Alice")

    assert registry.insert(entry) is True
    stored = registry.get_by_identifier("S1")

    assert stored is not None
    assert stored.name == "Alice"
    assert stored.class_name == "7A"
    assert stored.role == "Teacher"
    assert stored.photo_path == "/faces/S1.jpg"
    np.testing.assert_allclose(stored.embedding, entry.embedding, rtol=1e-6)
    assert registry.get_by_identifier("missing") is None


def test_identifier_is_unique(registry):
    assert registry.insert(_entry("S1", "Alice"))
    assert registry.insert(_entry("S1", "Impostor", seed=1)) is False

    assert registry.count() == 1
    assert registry.get_by_identifier("S1").name == "Alice"


def test_get_all_keeps_insertion_order(registry):
    for idx, sid in enumerate(["S3", "S1", "S2"]):
        registry.insert(_entry(sid, f"Person {sid}", seed=idx))

    assert [e.student_id for e in registry.get_all()] == ["S3", "S1", "S2"]
    assert registry.count() == 3


def test_sql_registry_persists_across_instances(tmp_path):
    db_path = tmp_path / "registry.sqlite"
    SqlRegistry(db_path).insert(_entry("S1", "Alice"))

    reopened = SqlRegistry(db_path)
    stored = reopened.get_by_identifier("S1")

    assert stored is not None
    assert stored.created_at == dt.datetime(2024, 5, 1, 12, 30, tzinfo=dt.timezone.utc)


def test_init_db_creates_parent_directory(tmp_path):
    db_path = tmp_path / "nested" / "dir" / "registry.sqlite"

    engine = init_db(db_path)

    assert db_path.parent.is_dir()
    registry = SqlRegistry(db_path, engine=engine)
    assert registry.count() == 0


def test_registry_interface_cannot_be_instantiated():
    with pytest.raises(TypeError):
        Registry()
