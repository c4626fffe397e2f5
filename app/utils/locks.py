import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from app.core.exceptions import FormBusyError


class FormLockRegistry:
    """
    Process-local registry of one lock per form id.

    Saves of the same form run one at a time; saves of different forms
    don't wait on each other. A form's lock is dropped once no save holds
    or waits for it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # form id -> [lock, number of holders and waiters]
        self._locks: Dict[str, List] = {}

    def _checkout(self, form_id: str) -> threading.Lock:
        with self._lock:
            entry = self._locks.get(form_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[form_id] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, form_id: str) -> None:
        with self._lock:
            entry = self._locks[form_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[form_id]

    def tracked(self) -> int:
        """Number of forms currently holding or waiting for a lock"""
        with self._lock:
            return len(self._locks)

    @contextmanager
    def hold(self, form_id: str, timeout: Optional[float] = None) -> Iterator[None]:
        form_id = str(form_id)
        lock = self._checkout(form_id)
        try:
            acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
            if not acquired:
                raise FormBusyError(form_id)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(form_id)


# Global, process-local singleton
FORM_LOCKS = FormLockRegistry()
