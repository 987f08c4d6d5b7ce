"""
Channels carrying collection snapshots between execution contexts.

Handlers run with no channel state or log lock held, since a handler takes
the receiving repository lock and a committing repository publishes through
the same channel.
"""

import json
import logging
import os
import tempfile
import threading
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from ..core.entities import SyncMessage
from ..core.enums import SyncType
from ..core.exceptions import ConfigurationError, SyncError, ValidationError
from ..core.interfaces import MessageHandler, SyncChannel

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOG_BYTES = 1024 * 1024

# Device, inode and first complete line. Inode numbers can be reused, the
# first line of a compacted log cannot.
LogIdentity = Tuple[int, int, bytes]

# Channels in one process that share a log path share its lock.
_log_locks: Dict[str, threading.RLock] = {}
_log_locks_guard = threading.Lock()


def _lock_for_log(log_path: str) -> threading.RLock:
    key = os.path.abspath(log_path)
    with _log_locks_guard:
        return _log_locks.setdefault(key, threading.RLock())


class InMemorySyncChannel(SyncChannel):
    """Synchronous channel for contexts living in the same process."""
    
    def __init__(self, max_history: int = 1000):
        self._handlers: Dict[str, MessageHandler] = {}
        self._history: Deque[SyncMessage] = deque(maxlen=max_history)
        self._lock = threading.RLock()
        # Serializes deliveries so every context sees messages in publish order.
        self._delivery_lock = threading.RLock()
    
    def attach(self, context_id: str, handler: MessageHandler) -> None:
        with self._lock:
            if context_id in self._handlers:
                raise SyncError(f"Context already attached: {context_id}")
            self._handlers[context_id] = handler
            logger.debug("Context %s attached to in-memory channel", context_id)
    
    def detach(self, context_id: str) -> None:
        with self._lock:
            self._handlers.pop(context_id, None)
    
    def publish(self, message: SyncMessage) -> None:
        with self._delivery_lock:
            with self._lock:
                self._history.append(message)
                targets = [(cid, h) for cid, h in self._handlers.items() if cid != message.origin]
            for context_id, handler in targets:
                try:
                    handler(message)
                except Exception:
                    logger.exception("Error delivering %s to context %s", message.message_id, context_id)
    
    def get_history(self) -> List[SyncMessage]:
        """Messages published so far, oldest first."""
        with self._lock:
            return list(self._history)
    
    def get_context_count(self) -> int:
        with self._lock:
            return len(self._handlers)
    
    def close(self) -> None:
        with self._lock:
            self._handlers.clear()


class FileSyncChannel(SyncChannel):
    """Channel backed by a JSON-lines file.

    Any number of channels may open the same log. Each attached context keeps
    its own read position, starting at the end of the log when it attaches,
    and picks up other contexts' messages on ``poll()`` or from the polling
    thread.

    Every message carries a full snapshot, so only the newest one matters to
    a reader that has fallen behind. Once an append would take the log past
    ``max_log_bytes`` the log is replaced by a new file holding just that
    message; readers notice the new file and start again from its beginning.
    Appends from other processes racing a compaction can be lost.
    """
    
    def __init__(self, log_path: str = "feeportal_sync.jsonl", poll_interval: float = 0.5,
                 max_log_bytes: int = DEFAULT_MAX_LOG_BYTES):
        if max_log_bytes <= 0:
            raise ConfigurationError(f"max_log_bytes must be positive, got {max_log_bytes}")
        self._log_path = log_path
        self._poll_interval = poll_interval
        self._max_log_bytes = max_log_bytes
        self._handlers: Dict[str, MessageHandler] = {}
        # context id -> (file identity, byte offset)
        self._positions: Dict[str, Tuple[LogIdentity, int]] = {}
        self._lock = threading.RLock()
        self._log_lock = _lock_for_log(log_path)
        self._delivery_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self._ensure_log_exists()
    
    def _ensure_log_exists(self) -> None:
        try:
            directory = os.path.dirname(self._log_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self._log_path, "ab"):
                pass
        except OSError as e:
            raise SyncError(f"Cannot open sync log {self._log_path}: {str(e)}")
    
    @staticmethod
    def _identify(f) -> Tuple[LogIdentity, int]:
        """Return the identity and size of the open log f."""
        stat_result = os.fstat(f.fileno())
        f.seek(0)
        first_line = f.readline()
        if not first_line.endswith(b"\n"):
            first_line = b""
        return (stat_result.st_dev, stat_result.st_ino, first_line), stat_result.st_size
    
    def attach(self, context_id: str, handler: MessageHandler) -> None:
        with self._lock, self._log_lock:
            if context_id in self._handlers:
                raise SyncError(f"Context already attached: {context_id}")
            try:
                with open(self._log_path, "rb") as f:
                    identity, size = self._identify(f)
            except OSError as e:
                raise SyncError(f"Cannot open sync log {self._log_path}: {str(e)}")
            self._handlers[context_id] = handler
            self._positions[context_id] = (identity, size)
            logger.debug("Context %s attached to %s at offset %d", context_id, self._log_path, size)
    
    def detach(self, context_id: str) -> None:
        with self._lock:
            self._handlers.pop(context_id, None)
            self._positions.pop(context_id, None)
    
    def publish(self, message: SyncMessage) -> None:
        line = (json.dumps(message.to_dict()) + "\n").encode("utf-8")
        with self._log_lock:
            try:
                size = os.path.getsize(self._log_path) if os.path.exists(self._log_path) else 0
                if size and size + len(line) > self._max_log_bytes:
                    self._compact(line)
                else:
                    with open(self._log_path, "ab") as f:
                        f.write(line)
            except OSError as e:
                raise SyncError(f"Failed to append sync message: {str(e)}")
    
    def _compact(self, line: bytes) -> None:
        """Replace the log with a new file holding only line."""
        directory = os.path.dirname(os.path.abspath(self._log_path))
        fd, tmp_path = tempfile.mkstemp(prefix=".sync-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._log_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.info("Compacted sync log %s", self._log_path)
    
    def get_log_size(self) -> int:
        with self._log_lock:
            return os.path.getsize(self._log_path)
    
    def poll(self) -> int:
        """Deliver pending messages to every attached context.

        Returns the number of messages delivered.
        """
        with self._delivery_lock:
            with self._lock:
                pending = [
                    (context_id, handler, self._read_pending(context_id))
                    for context_id, handler in list(self._handlers.items())
                ]
            
            delivered = 0
            for context_id, handler, messages in pending:
                for message in messages:
                    try:
                        handler(message)
                        delivered += 1
                    except Exception:
                        logger.exception("Error delivering %s to context %s", message.message_id, context_id)
            return delivered
    
    def _read_pending(self, context_id: str) -> List[SyncMessage]:
        with self._log_lock:
            identity, offset = self._positions.get(context_id, (None, 0))
            try:
                with open(self._log_path, "rb") as f:
                    current, size = self._identify(f)
                    if offset and (current != identity or size < offset):
                        logger.debug("Sync log %s was compacted; %s rereads it", self._log_path, context_id)
                        offset = 0
                    f.seek(offset)
                    data = f.read()
            except OSError as e:
                raise SyncError(f"Failed to read sync log: {str(e)}")
        
        # Leave a half-written last line for the next poll.
        end = data.rfind(b"\n")
        if end < 0:
            self._positions[context_id] = (current, offset)
            return []
        self._positions[context_id] = (current, offset + end + 1)
        
        messages = []
        for line in data[:end + 1].splitlines():
            if not line.strip():
                continue
            try:
                raw = json.loads(line.decode("utf-8"))
                if not isinstance(raw, dict):
                    raise ValidationError("Sync message must be an object")
                message = SyncMessage.from_dict(raw)
            except (ValueError, KeyError, ValidationError) as e:
                logger.warning("Skipping malformed sync message in %s: %s", self._log_path, e)
                continue
            if message.origin != context_id:
                messages.append(message)
        return messages
    
    def start_polling(self) -> None:
        """Poll the log in a background thread until stopped."""
        with self._lock:
            if self._poll_thread and self._poll_thread.is_alive():
                return
            self._stop_event.clear()
            self._poll_thread = threading.Thread(target=self._poll_loop, daemon=True)
            self._poll_thread.start()
    
    def stop_polling(self) -> None:
        self._stop_event.set()
        thread = self._poll_thread
        if thread is not None:
            thread.join(timeout=max(self._poll_interval * 4, 1.0))
        self._poll_thread = None
    
    def _poll_loop(self) -> None:
        while not self._stop_event.wait(self._poll_interval):
            try:
                self.poll()
            except SyncError:
                logger.exception("Error polling sync log %s", self._log_path)
    
    def close(self) -> None:
        self.stop_polling()
        with self._lock:
            self._handlers.clear()
            self._positions.clear()


class SyncChannelFactory:
    """Factory for creating sync channel instances."""
    
    @staticmethod
    def create_channel(sync_type: str, **kwargs) -> SyncChannel:
        """Create a channel instance based on type."""
        kind = str(sync_type).lower()
        if kind == SyncType.MEMORY.value:
            return InMemorySyncChannel(**kwargs)
        elif kind == SyncType.FILE.value:
            return FileSyncChannel(**kwargs)
        else:
            raise ConfigurationError(f"Unsupported sync type: {sync_type}")
