"""Reader-writer lock guarding the combiner state.

Readers share the lock; a writer holds it alone. Waiting writers block new
readers so a steady stream of reads cannot starve ``update``. The lock is not
reentrant and cannot be upgraded: a reader that needs to write releases first
and re-checks under the exclusive lock.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from ..domain.errors import ConcurrencyError


class ReadWriteLock:
    """Writer-preferring shared/exclusive lock with an optional acquisition timeout.

    Examples
    --------
    >>> lock = ReadWriteLock()
    >>> with lock.read():
    ...     lock.readers
    1
    >>> with lock.write():
    ...     lock.writing
    True
    """

    def __init__(self, *, timeout: float | None = None, name: str = "lock") -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: int | None = None
        self._waiting_writers = 0
        self._timeout = timeout
        self._name = name

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def writing(self) -> bool:
        return self._writer is not None

    def acquire_read(self) -> None:
        with self._cond:
            if self._writer == threading.get_ident():
                raise ConcurrencyError(f"{self._name}: read requested while holding the write lock")
            self._wait(lambda: self._writer is None and self._waiting_writers == 0, "read")
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise ConcurrencyError(f"{self._name}: read lock released but not held")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                raise ConcurrencyError(f"{self._name}: write lock is not reentrant")
            self._waiting_writers += 1
            try:
                self._wait(lambda: self._writer is None and self._readers == 0, "write")
            finally:
                self._waiting_writers -= 1
            self._writer = me

    def release_write(self) -> None:
        with self._cond:
            if self._writer != threading.get_ident():
                raise ConcurrencyError(f"{self._name}: write lock released by a thread that does not hold it")
            self._writer = None
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()

    def _wait(self, predicate, mode: str) -> None:
        if not self._cond.wait_for(predicate, timeout=self._timeout):
            self._cond.notify_all()
            raise ConcurrencyError(f"{self._name}: timed out after {self._timeout}s waiting for {mode} lock")
