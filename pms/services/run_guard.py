from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock


class JobAlreadyRunning(RuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Job {name!r} is already running')
        self.name = name


class RunGuard:
    """Refuses to start a job while another run of the same job is in flight."""

    def __init__(self) -> None:
        self._locks: dict[str, Lock] = {}
        self._registry_lock = Lock()

    def _lock_for(self, name: str) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(name)
            if lock is None:
                lock = Lock()
                self._locks[name] = lock
            return lock

    @contextmanager
    def hold(self, name: str) -> Iterator[None]:
        lock = self._lock_for(name)
        if not lock.acquire(blocking=False):
            raise JobAlreadyRunning(name)
        try:
            yield
        finally:
            lock.release()

    def is_running(self, name: str) -> bool:
        return self._lock_for(name).locked()
