"""
Persistent key/value stores backing the student collection and session.
"""

import logging
import os
import re
import sqlite3
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Optional

from ..core.enums import StoreType
from ..core.exceptions import ConfigurationError, PersistenceError, ValidationError
from ..core.interfaces import PersistentStore

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def _check_key(key: str) -> str:
    if not isinstance(key, str) or not _KEY_PATTERN.match(key) or key.startswith("."):
        raise ValidationError(f"Invalid storage key: {key!r}")
    return key


class InMemoryStore(PersistentStore):
    """Dict-backed store; one instance can be shared by several contexts."""
    
    def __init__(self):
        self._data: Dict[str, bytes] = {}
        self._lock = threading.RLock()
    
    def load(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(_check_key(key))
    
    def save(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[_check_key(key)] = bytes(value)
    
    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(_check_key(key), None)


class FileStore(PersistentStore):
    """One file per key under a base directory."""
    
    def __init__(self, base_path: str = "feeportal_data"):
        self._base_path = base_path
        self._lock = threading.RLock()
        self._ensure_directory_exists()
    
    def _ensure_directory_exists(self) -> None:
        """Ensure the storage directory exists."""
        try:
            os.makedirs(self._base_path, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create storage directory {self._base_path}: {str(e)}")
    
    def _get_key_path(self, key: str) -> str:
        """Get file path for a key."""
        return os.path.join(self._base_path, f"{_check_key(key)}.json")
    
    def load(self, key: str) -> Optional[bytes]:
        with self._lock:
            path = self._get_key_path(key)
            try:
                with open(path, "rb") as f:
                    return f.read()
            except FileNotFoundError:
                return None
            except OSError as e:
                raise PersistenceError(f"Failed to load {key}: {str(e)}")
    
    def save(self, key: str, value: bytes) -> None:
        with self._lock:
            path = self._get_key_path(key)
            fd, tmp_path = tempfile.mkstemp(dir=self._base_path, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(value)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, path)
            except OSError as e:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise PersistenceError(f"Failed to save {key}: {str(e)}")
    
    def remove(self, key: str) -> None:
        with self._lock:
            try:
                os.remove(self._get_key_path(key))
            except FileNotFoundError:
                pass
            except OSError as e:
                raise PersistenceError(f"Failed to remove {key}: {str(e)}")


class SQLiteStore(PersistentStore):
    """SQLite-backed store using a single key/value table."""
    
    def __init__(self, database_path: str = "feeportal.db"):
        self._database_path = database_path
        self._lock = threading.RLock()
        self._initialize_database()
    
    def _initialize_database(self) -> None:
        """Create the key/value table if needed."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()
    
    @contextmanager
    def _get_connection(self):
        """Get database connection with proper cleanup."""
        conn = None
        try:
            conn = sqlite3.connect(self._database_path, check_same_thread=False)
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            raise PersistenceError(f"Database error: {str(e)}")
        finally:
            if conn:
                conn.close()
    
    def load(self, key: str) -> Optional[bytes]:
        with self._lock, self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (_check_key(key),)
            ).fetchone()
            return bytes(row[0]) if row else None
    
    def save(self, key: str, value: bytes) -> None:
        with self._lock, self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                (_check_key(key), sqlite3.Binary(value), datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
    
    def remove(self, key: str) -> None:
        with self._lock, self._get_connection() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (_check_key(key),))
            conn.commit()


class StoreFactory:
    """Factory for creating persistent store instances."""
    
    @staticmethod
    def create_store(store_type: str, **kwargs) -> PersistentStore:
        """Create a store instance based on type."""
        try:
            kind = StoreType(str(store_type).lower())
        except ValueError:
            raise ConfigurationError(f"Unsupported store type: {store_type}")
        
        logger.debug("Creating %s store with %s", kind.value, kwargs)
        if kind == StoreType.MEMORY:
            return InMemoryStore(**kwargs)
        elif kind == StoreType.FILE:
            return FileStore(**kwargs)
        return SQLiteStore(**kwargs)
