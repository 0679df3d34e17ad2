import json

from enrollment.errors import FatalInputError, NoFaceDetectedError, PhotoResolutionError
from enrollment.io_utils import dump_json, safe_filename
from enrollment.types import OutcomeStatus, RowOutcome


def test_safe_filename():
    assert safe_filename("STU 001/ä") == "STU_001"
    assert safe_filename("..") == "unknown"
    assert safe_filename("a.b-c_d") == "a.b-c_d"


def test_dump_json_handles_dataclasses_and_enums(tmp_path):
    path = tmp_path / "out.json"
    dump_json(path, {"outcome": RowOutcome("S1", "Alice", OutcomeStatus.REGISTERED)})

    data = json.loads(path.read_text())
    assert data["outcome"]["status"] == "Registered"
    assert data["outcome"]["student_id"] == "S1"


def test_error_messages():
    assert str(NoFaceDetectedError()) == "No face detected"
    assert str(PhotoResolutionError("Photo file not found", details="/x.jpg")) == "Photo file not found - Details: /x.jpg"

    fatal = FatalInputError(["CSV file must have 'Student ID' and 'Name' columns", "Detected columns: a, b"])
    assert fatal.message == "CSV file must have 'Student ID' and 'Name' columns"
    assert str(fatal).endswith("Details: Detected columns: a, b")
    assert str(FatalInputError(["CSV file is empty"])) == "CSV file is empty"
