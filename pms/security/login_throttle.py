from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Protocol


@dataclass
class LoginAttemptRecord:
    count: int
    first_attempt_at: datetime
    locked_until: datetime | None = None


@dataclass(frozen=True)
class ThrottleDecision:
    allowed: bool
    retry_after_seconds: int = 0
    attempts: int = 0

    @property
    def retry_after_minutes(self) -> int:
        return math.ceil(self.retry_after_seconds / 60)


class LoginAttemptStore(Protocol):
    def get(self, identifier: str) -> LoginAttemptRecord | None: ...

    def put(self, identifier: str, record: LoginAttemptRecord) -> None: ...

    def delete(self, identifier: str) -> None: ...


class InMemoryLoginAttemptStore:
    def __init__(self) -> None:
        self._records: dict[str, LoginAttemptRecord] = {}
        self._lock = Lock()

    def get(self, identifier: str) -> LoginAttemptRecord | None:
        with self._lock:
            return self._records.get(identifier)

    def put(self, identifier: str, record: LoginAttemptRecord) -> None:
        with self._lock:
            self._records[identifier] = record

    def delete(self, identifier: str) -> None:
        with self._lock:
            self._records.pop(identifier, None)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


class LoginThrottle:
    """Counts login attempts per identifier and locks it out once the limit is hit.

    The counting window and the lockout share one duration: attempts older than
    the window are forgotten, and a lockout lasts the same length of time.
    """

    def __init__(self, store: LoginAttemptStore, *, max_attempts: int = 5, lockout: timedelta = timedelta(minutes=15)):
        if max_attempts < 1:
            raise ValueError('max_attempts must be at least 1')
        self.store = store
        self.max_attempts = max_attempts
        self.lockout = lockout

    def register_attempt(self, identifier: str, *, now: datetime | None = None) -> ThrottleDecision:
        now = now or _now()
        key = identifier.strip().lower()
        record = self.store.get(key)

        if record and record.locked_until and now < record.locked_until:
            remaining = int((record.locked_until - now).total_seconds())
            return ThrottleDecision(allowed=False, retry_after_seconds=max(remaining, 1), attempts=record.count)

        if record is None or record.locked_until or now - record.first_attempt_at > self.lockout:
            record = LoginAttemptRecord(count=0, first_attempt_at=now)

        record.count += 1
        if record.count >= self.max_attempts:
            record.locked_until = now + self.lockout
            self.store.put(key, record)
            return ThrottleDecision(
                allowed=False,
                retry_after_seconds=int(self.lockout.total_seconds()),
                attempts=record.count,
            )

        self.store.put(key, record)
        return ThrottleDecision(allowed=True, attempts=record.count)

    def reset(self, identifier: str) -> None:
        self.store.delete(identifier.strip().lower())
