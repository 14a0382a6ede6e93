from __future__ import annotations

import contextlib
import hashlib
from threading import Lock
from typing import Iterator


def pair_lock_key(a: str, b: str) -> str:
    # Unordered: R->T and T->R mutate the same two account documents.
    lo, hi = sorted((str(a), str(b)))
    raw = f"tague:pair:{lo}|{hi}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:32]


class PairLocks:
    """Process-wide busy map for (requester, target) edge mutations.

    A second mutation for a pair that is already in flight is rejected rather
    than queued; callers surface that as a conflict.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._busy: set[str] = set()

    def try_acquire(self, a: str, b: str) -> bool:
        key = pair_lock_key(a, b)
        with self._lock:
            if key in self._busy:
                return False
            self._busy.add(key)
            return True

    def release(self, a: str, b: str) -> None:
        key = pair_lock_key(a, b)
        with self._lock:
            self._busy.discard(key)

    def is_busy(self, a: str, b: str) -> bool:
        with self._lock:
            return pair_lock_key(a, b) in self._busy

    @contextlib.contextmanager
    def hold(self, a: str, b: str) -> Iterator[bool]:
        acquired = self.try_acquire(a, b)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(a, b)


_PAIR_LOCKS = PairLocks()


def get_pair_locks() -> PairLocks:
    return _PAIR_LOCKS
