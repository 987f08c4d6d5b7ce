"""
Repository for the student collection.
"""

import logging
import threading
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional

from ..core.entities import Student
from ..core.enums import StorageKey
from ..core.exceptions import DuplicateEmailError, NotFoundError, ValidationError
from ..core.interfaces import PersistentStore
from .codec import decode_students, encode_students
from .seed import INITIAL_STUDENTS

if TYPE_CHECKING:
    from ..services.sync_broadcaster import SyncBroadcaster

logger = logging.getLogger(__name__)

Mutator = Callable[[Student], Student]


class RecordRepository:
    """In-memory view of the student collection, written through to a store.

    Every mutation validates against the in-memory snapshot, writes the whole
    new snapshot under the ``students`` key and then publishes it through the
    broadcaster. The in-memory view only moves forward once the write has
    succeeded. Publishing happens after the record lock is released; the
    snapshot is read under a separate publish lock so the last message sent
    always carries the latest collection.
    """
    
    def __init__(self, store: PersistentStore, broadcaster: Optional["SyncBroadcaster"] = None,
                 seed: Optional[Iterable[Student]] = None):
        self._store = store
        self._broadcaster = broadcaster
        self._seed = tuple(INITIAL_STUDENTS if seed is None else seed)
        self._records: Dict[str, Student] = {}
        self._lock = threading.RLock()
        self._publish_lock = threading.RLock()
    
    def load(self) -> List[Student]:
        """Load the collection, seeding it on first ever initialization."""
        with self._lock:
            raw = self._store.load(StorageKey.STUDENTS.value)
            if raw is None:
                seeded = {student.id: student for student in self._seed}
                self._write(seeded)
                self._records = seeded
                logger.info("Seeded student collection with %d records", len(seeded))
            else:
                self._records = {student.id: student for student in decode_students(raw)}
                logger.info("Loaded %d students", len(self._records))
            return self.all()
    
    def all(self) -> List[Student]:
        """Return the current collection in insertion order."""
        with self._lock:
            return list(self._records.values())
    
    def find_by_id(self, student_id: str) -> Optional[Student]:
        with self._lock:
            return self._records.get(student_id)
    
    def find_by_credentials(self, email: str, password: str) -> Optional[Student]:
        """Exact, case-sensitive match on both email and password.

        Passwords are compared as plain values. Not suitable for a real
        deployment.
        """
        with self._lock:
            for student in self._records.values():
                if student.email == email and student.password == password:
                    return student
            return None
    
    def email_exists(self, email: str, excluding_id: Optional[str] = None) -> bool:
        with self._lock:
            return any(
                student.email == email and student.id != excluding_id
                for student in self._records.values()
            )
    
    def insert(self, student: Student) -> Student:
        """Add a new student."""
        with self._lock:
            if student.id in self._records:
                raise ValidationError(f"Student id already exists: {student.id}")
            if self.email_exists(student.email):
                raise DuplicateEmailError(student.email, self._id_for_email(student.email))
            
            records = dict(self._records)
            records[student.id] = student
            self._commit(records)
            logger.info("Inserted student %s", student.id)
        self._publish()
        return student
    
    def update(self, student_id: str, mutator: Mutator) -> Student:
        """Apply mutator to exactly one record."""
        with self._lock:
            current = self._records.get(student_id)
            if current is None:
                raise NotFoundError(student_id)
            
            updated = mutator(current)
            if not isinstance(updated, Student):
                raise ValidationError("Mutator must return a Student")
            if updated.id != current.id:
                raise ValidationError("Student id is immutable")
            if current.fees_paid and not updated.fees_paid:
                raise ValidationError("Fee status cannot be reverted")
            if updated.email != current.email and self.email_exists(updated.email, excluding_id=student_id):
                raise DuplicateEmailError(updated.email, self._id_for_email(updated.email))
            
            records = dict(self._records)
            records[student_id] = updated
            self._commit(records)
            logger.info("Updated student %s", student_id)
        self._publish()
        return updated
    
    def replace_all(self, students: Iterable[Student]) -> List[Student]:
        """Adopt a snapshot received from another context.

        Nothing is written or published; the sender already did both.
        """
        with self._lock:
            self._records = {student.id: student for student in students}
            logger.debug("Replaced collection with remote snapshot of %d students", len(self._records))
            return self.all()
    
    def count(self) -> int:
        with self._lock:
            return len(self._records)
    
    def _id_for_email(self, email: str) -> Optional[str]:
        for student in self._records.values():
            if student.email == email:
                return student.id
        return None
    
    def _write(self, records: Dict[str, Student]) -> None:
        self._store.save(StorageKey.STUDENTS.value, encode_students(list(records.values())))
    
    def _commit(self, records: Dict[str, Student]) -> None:
        self._write(records)
        self._records = records
    
    def _publish(self) -> None:
        if self._broadcaster is None:
            return
        with self._publish_lock:
            self._broadcaster.publish_collection_change(self.all())
