"""
JSON encoding of the durable slots.
"""

import json
from typing import Any, List, Optional

from ..core.entities import Student
from ..core.exceptions import PersistenceError, ValidationError


def _loads(raw: bytes, what: str) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PersistenceError(f"Stored {what} is not valid JSON: {str(e)}")


def encode_students(students: List[Student]) -> bytes:
    """Serialize the collection as a JSON array."""
    return json.dumps([student.to_dict() for student in students]).encode("utf-8")


def decode_students(raw: bytes) -> List[Student]:
    """Parse a JSON array of student records."""
    data = _loads(raw, "students")
    if not isinstance(data, list):
        raise PersistenceError("Stored students must be a JSON array")
    try:
        return [Student.from_dict(item) for item in data]
    except ValidationError as e:
        raise PersistenceError(f"Stored students are malformed: {e.message}")


def encode_student(student: Student) -> bytes:
    return json.dumps(student.to_dict()).encode("utf-8")


def decode_student(raw: Optional[bytes]) -> Optional[Student]:
    """Parse one student record; None and JSON null both mean no record."""
    if raw is None:
        return None
    data = _loads(raw, "session")
    if data is None:
        return None
    try:
        return Student.from_dict(data)
    except ValidationError as e:
        raise PersistenceError(f"Stored session is malformed: {e.message}")
