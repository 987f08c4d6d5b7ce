"""
Persistence module for durable storage of students and the session.
"""

from .store import InMemoryStore, FileStore, SQLiteStore, StoreFactory
from .codec import encode_students, decode_students, encode_student, decode_student
from .repositories import RecordRepository
from .seed import INITIAL_STUDENTS

__all__ = [
    "InMemoryStore",
    "FileStore",
    "SQLiteStore",
    "StoreFactory",
    "encode_students",
    "decode_students",
    "encode_student",
    "decode_student",
    "RecordRepository",
    "INITIAL_STUDENTS",
]
