"""Per-slug mutual exclusion.

Upload, delete, restore and export each read-then-write a slug's directory
and registry row. Two of them interleaving on the same slug can leave a row
without a directory, so they all run under that slug's lock. Different slugs
never block each other.

Locks are plain threading locks because the operations run on worker
threads; the lock is held by the worker, not by the awaiting request.
Cancellation lets the awaiting request stop that worker when it times out.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .errors import OperationTimeout


class SlugLocks:
    """Refcounted registry of one lock per slug.

    An entry exists only while some thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, slug: str) -> Iterator[None]:
        """Hold the lock for a slug for the duration of the block."""
        with self._guard:
            lock = self._locks.setdefault(slug, threading.Lock())
            self._users[slug] = self._users.get(slug, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[slug] -= 1
                if self._users[slug] == 0:
                    del self._users[slug]
                    del self._locks[slug]

    def active_count(self) -> int:
        """Number of slugs currently locked or awaited."""
        with self._guard:
            return len(self._locks)


class Cancellation:
    """Cooperative cancellation shared by a request and its worker.

    The request calls cancel() when it stops waiting. The worker calls
    check() at safe points and commit() right before its first write that
    other requests can see. Exactly one of cancel() and commit() wins, so a
    caller told the operation timed out never finds it applied later.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._committed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        """Stop the worker at its next safe point.

        Returns:
            False if the worker already committed and will run to completion.
        """
        with self._lock:
            if self._committed:
                return False
            self._cancelled = True
            return True

    def check(self) -> None:
        """Raise OperationTimeout if the request has given up."""
        if self._cancelled:
            raise OperationTimeout()

    def commit(self) -> None:
        """Claim the right to finish.

        Raises:
            OperationTimeout: The request gave up first.
        """
        with self._lock:
            if self._cancelled:
                raise OperationTimeout()
            self._committed = True
