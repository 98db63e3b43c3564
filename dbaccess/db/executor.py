"""Serialized access to the shared database connection."""

import logging
import threading
from contextlib import contextmanager
from typing import Generator, Optional

logger = logging.getLogger(__name__)


class SerializedExecutor:
    """Exclusive, re-entrant section guarding the single connection.

    At most one thread holds the section at a time. A thread that already
    holds it may enter again, each entry is matched by one release. There is
    no timeout: callers block until the section is free.
    """

    def __init__(self, name: str = "database") -> None:
        self.name = name
        self._lock = threading.RLock()
        self._owner: Optional[int] = None
        self._depth = 0

    def enter(self) -> None:
        """Block until the section is held by the calling thread."""
        self._lock.acquire()
        self._owner = threading.get_ident()
        self._depth += 1
        if self._depth == 1:
            logger.debug(f"Thread {self._owner} entered {self.name} section")

    def leave(self) -> None:
        """Release one level of the section held by the calling thread.

        Raises:
            RuntimeError: If the calling thread does not hold the section.
        """
        if not self.is_held():
            raise RuntimeError(f"{self.name} section released by a thread that does not hold it")
        self._depth -= 1
        if self._depth == 0:
            logger.debug(f"Thread {self._owner} left {self.name} section")
            self._owner = None
        self._lock.release()

    @contextmanager
    def acquire(self) -> Generator["SerializedExecutor", None, None]:
        """Hold the section for the duration of the ``with`` block."""
        self.enter()
        try:
            yield self
        finally:
            self.leave()

    def is_held(self) -> bool:
        """Whether the calling thread holds the section."""
        return self._owner == threading.get_ident()

    @property
    def depth(self) -> int:
        """Re-entry count of the current owner, 0 when free."""
        return self._depth
