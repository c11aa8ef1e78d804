"""
Concurrency management: exclusive locks scoped to a single resource key.

State transitions for one (student, item) or (student, course) pair hold the
lock for that pair only, so unrelated students and items proceed in parallel.
"""

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, List


logger = logging.getLogger(__name__)


@dataclass
class LockInfo:
    """Information about a held lock."""
    lock_id: str
    resource_id: str
    holder_id: str
    acquired_at: float


def resource_key(*parts) -> str:
    return ":".join(str(part) for part in parts)


def submission_key(student_id: str, kind, item_id: str) -> str:
    return resource_key("submission", student_id, getattr(kind, "value", kind), item_id)


def progress_key(student_id: str, course_id: str) -> str:
    return resource_key("progress", student_id, course_id)


def course_key(course_id: str) -> str:
    return resource_key("course", course_id)


def lesson_key(lesson_id: str) -> str:
    return resource_key("lesson", lesson_id)


def exam_key(exam_id: str) -> str:
    return resource_key("exam", exam_id)


class ConcurrencyManager:
    """Hands out per-resource exclusive locks and tracks who holds them."""

    def __init__(self):
        self._lock = threading.RLock()
        self._resource_locks: Dict[str, threading.RLock] = {}
        self._users: Dict[str, int] = {}
        self._lock_holders: Dict[str, LockInfo] = {}

    def acquire_lock(self, resource_id: str, holder_id: str) -> str:
        """Acquire the exclusive lock on a resource, waiting for the current holder."""
        with self._lock:
            resource_lock = self._resource_locks.setdefault(resource_id, threading.RLock())
            self._users[resource_id] = self._users.get(resource_id, 0) + 1

        resource_lock.acquire()

        lock_id = str(uuid.uuid4())
        with self._lock:
            self._lock_holders[lock_id] = LockInfo(
                lock_id=lock_id,
                resource_id=resource_id,
                holder_id=holder_id,
                acquired_at=time.time()
            )
        return lock_id

    def release_lock(self, lock_id: str) -> bool:
        """Release a lock."""
        with self._lock:
            lock_info = self._lock_holders.pop(lock_id, None)
            if lock_info is None:
                return False

            resource_id = lock_info.resource_id
            resource_lock = self._resource_locks[resource_id]
            self._users[resource_id] -= 1
            if self._users[resource_id] == 0:
                del self._users[resource_id]
                del self._resource_locks[resource_id]
            resource_lock.release()
            return True

    @contextmanager
    def lock(self, resource_id: str, holder_id: str = ""):
        """Context manager for acquiring and releasing a resource lock."""
        holder_id = holder_id or f"thread-{threading.get_ident()}"
        lock_id = self.acquire_lock(resource_id, holder_id)
        try:
            yield lock_id
        finally:
            self.release_lock(lock_id)

    def get_lock_info(self, resource_id: str) -> List[LockInfo]:
        """Get information about the locks currently held on a resource."""
        with self._lock:
            return [info for info in self._lock_holders.values() if info.resource_id == resource_id]

    def get_holder_locks(self, holder_id: str) -> List[LockInfo]:
        """Get all locks held by a specific holder."""
        with self._lock:
            return [info for info in self._lock_holders.values() if info.holder_id == holder_id]

    def is_locked(self, resource_id: str) -> bool:
        with self._lock:
            return any(info.resource_id == resource_id for info in self._lock_holders.values())
