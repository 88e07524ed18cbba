"""Per-session single-writer locks and request deadlines."""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Optional

from .exceptions import OperationTimeout

logger = logging.getLogger(__name__)


class Deadline:
    def __init__(self, timeout_seconds: Optional[float]):
        self.timeout_seconds = timeout_seconds
        self._expires_at = None if timeout_seconds is None else time.monotonic() + timeout_seconds

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self, operation: str = "operation") -> None:
        if self.expired():
            raise OperationTimeout(f"Timed out before {operation}", operation=operation)


class SessionLocks:
    """One lock per session key.

    The registry guard only protects the dict of locks; work on different
    sessions never waits on each other. An entry lives only while some
    caller holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    def active(self) -> int:
        """Number of session keys currently held or waited on."""
        with self._guard:
            return len(self._locks)

    def _checkout(self, session_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.Lock()
                self._users[session_id] = 0
            self._users[session_id] += 1
            return lock

    def _checkin(self, session_id: str) -> None:
        with self._guard:
            self._users[session_id] -= 1
            if not self._users[session_id]:
                del self._users[session_id]
                del self._locks[session_id]

    @contextmanager
    def hold(self, session_id: str, deadline: Deadline):
        lock = self._checkout(session_id)
        try:
            remaining = deadline.remaining()
            acquired = lock.acquire() if remaining is None else lock.acquire(timeout=remaining)
            if not acquired:
                logger.info("Session %s busy, lock wait timed out", session_id)
                raise OperationTimeout(f"Session {session_id} is busy, retry", session_id=session_id)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(session_id)
