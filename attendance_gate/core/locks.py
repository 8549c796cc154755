"""
Per-user mutual exclusion for check-then-act sequences.

Device binding changes, pending-request creation and attendance marks all read
state and then write based on it. Requests for the same employee may run
concurrently in the worker threadpool, so each of those sequences runs inside
``user_locks.hold(employee_id)``. The lock is process local; storage
constraints (row locks, unique indexes) cover multi-process deployments.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional


class KeyedLock:
    """A registry of reentrant locks keyed by an arbitrary hashable value.

    Entries are reference counted and dropped once no thread holds or waits
    on them, so the registry does not grow with the number of employees.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._refs: Dict[Hashable, int] = {}
        self._timeout = timeout

    def _acquire_entry(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
                self._refs[key] = 0
            self._refs[key] += 1
            return lock

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        Raises:
            TimeoutError: if a timeout is configured and the lock is not acquired in time
        """
        lock = self._acquire_entry(key)
        acquired = False
        try:
            if self._timeout is None:
                acquired = lock.acquire()
            else:
                acquired = lock.acquire(timeout=self._timeout)
            if not acquired:
                raise TimeoutError(f"Timed out waiting for lock on {key!r}")
            yield
        finally:
            if acquired:
                lock.release()
            self._release_entry(key)

    def active_keys(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)


user_locks = KeyedLock(timeout=30)
