"""
Session service holding the currently authenticated student.
"""

import logging
from typing import Iterable, Optional

from ..core.entities import Student
from ..core.enums import StorageKey
from ..core.interfaces import PersistentStore
from ..persistence.codec import decode_student, encode_student

logger = logging.getLogger(__name__)


class SessionService:
    """Current-session pointer plus a denormalized copy of the record."""
    
    def __init__(self, store: PersistentStore):
        self._store = store
        self._current: Optional[Student] = None
    
    def load(self) -> Optional[Student]:
        """Restore the session saved under ``currentUser``, if any."""
        self._current = decode_student(self._store.load(StorageKey.CURRENT_USER.value))
        if self._current is not None:
            logger.info("Restored session for student %s", self._current.id)
        return self._current
    
    def current(self) -> Optional[Student]:
        return self._current
    
    def establish(self, student: Student) -> None:
        self._store.save(StorageKey.CURRENT_USER.value, encode_student(student))
        self._current = student
        logger.info("Session established for student %s", student.id)
    
    def clear(self) -> None:
        self._store.remove(StorageKey.CURRENT_USER.value)
        if self._current is not None:
            logger.info("Session cleared for student %s", self._current.id)
        self._current = None
    
    def reconcile(self, collection: Iterable[Student]) -> Optional[Student]:
        """Refresh the cached copy from an updated collection.

        If the session's id is missing from the collection the session is
        left untouched.
        """
        if self._current is None:
            return None
        
        session_id = self._current.id
        match = next((student for student in collection if student.id == session_id), None)
        if match is None:
            logger.debug("Session student %s not in collection; keeping cached copy", session_id)
            return self._current
        
        if match != self._current:
            self._store.save(StorageKey.CURRENT_USER.value, encode_student(match))
            self._current = match
            logger.debug("Session for student %s refreshed", session_id)
        return self._current
