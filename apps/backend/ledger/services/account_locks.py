from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from ..errors import StoreTimeoutError


class AccountLockRegistry:
    """One lock per account id.

    Operations on several accounts take their locks in ascending id order so
    two writers can never wait on each other. Disjoint account sets never
    contend.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def _lock_for(self, account_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    def discard(self, account_id: int) -> None:
        """Forget the lock of an account that no longer exists."""
        with self._guard:
            self._locks.pop(account_id, None)

    @contextmanager
    def hold(self, account_ids: Iterable[int], *, deadline: Optional[float] = None) -> Iterator[None]:
        """Acquire every lock in ``account_ids`` or raise ``StoreTimeoutError``.

        ``deadline`` is a ``time.monotonic()`` value; ``None`` waits forever.
        """
        acquired: list[threading.Lock] = []
        try:
            for account_id in sorted(set(account_ids)):
                lock = self._lock_for(account_id)
                if deadline is None:
                    lock.acquire()
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0 or not lock.acquire(timeout=remaining):
                        raise StoreTimeoutError(
                            f"Timed out waiting for account {account_id}", field="account_id"
                        )
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
