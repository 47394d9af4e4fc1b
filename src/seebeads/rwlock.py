"""Reader/writer lock for the shared beads graph.

Any number of readers may hold the lock together; a writer holds it alone.
Waiting writers block new readers so a steady stream of queries cannot
starve a rebuild.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class ReadWriteLock:
    """Writer-preferring reader/writer lock.

    Example:
        >>> lock = ReadWriteLock()
        >>> with lock.read_lock():
        ...     # shared section
        ...     pass
        >>> with lock.write_lock():
        ...     # exclusive section
        ...     pass
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def acquire_read(self):
        """Acquire a shared hold, waiting while a writer holds or waits."""
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        """Release a shared hold.

        Raises:
            RuntimeError: If no shared hold is outstanding
        """
        with self._cond:
            if self._readers == 0:
                raise RuntimeError("release_read called without a read hold")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        """Acquire the exclusive hold."""
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True

    def release_write(self):
        """Release the exclusive hold.

        Raises:
            RuntimeError: If the exclusive hold is not held
        """
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write called without the write hold")
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_lock(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
