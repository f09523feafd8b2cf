"""
Per-user run-lock serializing import invocations.

Acquisition waits briefly (about a second) and then reports failure; it is
never queued or retried. Release is idempotent.
"""

from __future__ import annotations
import threading
from typing import Dict, Protocol

import redis
from redis.exceptions import LockError

from mailimport.logging import logger


def lock_name(work_address: str) -> str:
    return f"lock:import:{work_address.strip().lower()}"


class RunLock(Protocol):
    def acquire(self, timeout: float) -> bool: ...
    def release(self) -> None: ...


_LOCAL_LOCKS: Dict[str, threading.Lock] = {}
_LOCAL_LOCKS_GUARD = threading.Lock()


class LocalRunLock:
    """Process-wide lock; instances with the same name share one mutex."""

    def __init__(self, name: str) -> None:
        self.name = name
        with _LOCAL_LOCKS_GUARD:
            self._lock = _LOCAL_LOCKS.setdefault(name, threading.Lock())
        self._held = False

    def acquire(self, timeout: float) -> bool:
        self._held = self._lock.acquire(timeout=timeout)
        if not self._held:
            logger.info(f"Run-lock '{self.name}' is held by another invocation")
        return self._held

    def release(self) -> None:
        if self._held:
            self._held = False
            self._lock.release()


class RedisRunLock:
    """
    Lock shared by every process talking to the same Redis.

    `ttl_seconds` expires the lock server-side if its holder dies mid-batch.
    """

    def __init__(self, client: redis.Redis, name: str, ttl_seconds: float = 900.0) -> None:
        self.name = name
        self._lock = client.lock(name, timeout=ttl_seconds)
        self._held = False

    def acquire(self, timeout: float) -> bool:
        self._held = bool(self._lock.acquire(blocking=True, blocking_timeout=timeout))
        if not self._held:
            logger.info(f"Run-lock '{self.name}' is held by another invocation")
        return self._held

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            self._lock.release()
        except LockError as e:
            logger.warning(f"Run-lock '{self.name}' expired before release: {e}")
