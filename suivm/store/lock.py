"""Advisory lock serializing writers of a version store."""

import logging
import os
import time
from pathlib import Path
from typing import Optional

from ..errors import StoreLocked

try:
    import fcntl
except ImportError:  # Windows: atomic renames alone guard the store
    fcntl = None

logger = logging.getLogger(__name__)


class StoreLock:
    """Exclusive ``flock`` on the store's lock file.

    Waits up to ``timeout`` seconds for a concurrent process, then raises
    ``StoreLocked``. Waiting blocks the calling thread, so async callers run
    locked store operations through ``asyncio.to_thread``. Not re-entrant: do
    not nest two locks on the same store within one process.
    """

    POLL_INTERVAL = 0.05

    def __init__(self, path: Path, timeout: float = 60.0):
        self.path = path
        self.timeout = timeout
        self._fh = None

    def acquire(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fh = self.path.open("a+")
        if fcntl is None:
            self._fh = fh
            return

        start = time.monotonic()
        warned = False
        while True:
            try:
                fcntl.flock(fh, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() - start >= self.timeout:
                    fh.close()
                    pid = holder_pid(self.path)
                    holder = f" (pid {pid})" if pid else ""
                    raise StoreLocked(f"Version store is locked by another process{holder}: {self.path}")
                if not warned:
                    logger.info("Waiting for another suivm process to release %s", self.path)
                    warned = True
                time.sleep(self.POLL_INTERVAL)

        fh.seek(0)
        fh.truncate()
        fh.write(f"pid={os.getpid()}\n")
        fh.flush()
        self._fh = fh

    def release(self):
        fh, self._fh = self._fh, None
        if fh is None:
            return
        try:
            if fcntl is not None:
                fcntl.flock(fh, fcntl.LOCK_UN)
        finally:
            fh.close()

    @property
    def held(self) -> bool:
        return self._fh is not None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()


def holder_pid(path: Path) -> Optional[int]:
    """PID written by the last process that took the lock, if readable."""
    try:
        text = path.read_text().strip()
    except OSError:
        return None
    if text.startswith("pid="):
        try:
            return int(text[4:])
        except ValueError:
            return None
    return None
