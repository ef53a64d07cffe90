"""
Single-instance run lock.

Uses an exclusive, non-blocking fcntl lock on a lock file so that two backup
runs never execute at the same time on one host. The kernel drops the lock
when the process dies, so a crashed run never blocks the next one.
"""

import fcntl
import logging
import os
import time
from pathlib import Path

from ..errors import LockError


logger = logging.getLogger(__name__)


class RunLock:
    """
    Process-wide lock backed by a file.

    Use as a context manager:

        with RunLock('/var/dockervolumebackup.lock'):
            ...
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._fd = None
        self.locked_seconds = 0.0

    @property
    def is_locked(self) -> bool:
        return self._fd is not None

    def acquire(self):
        """
        Acquire the lock.

        Raises:
            LockError: If the lock file cannot be opened or another run holds it
        """
        start = time.monotonic()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = open(self.path, 'w')
        except OSError as e:
            raise LockError(f"error opening lock file {self.path}: {e}") from e

        try:
            fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            fd.close()
            raise LockError(
                f"another backup run is already holding {self.path}"
            ) from e
        except OSError as e:
            fd.close()
            raise LockError(f"error locking {self.path}: {e}") from e

        fd.write(f"{os.getpid()}\n")
        fd.flush()
        self._fd = fd
        self.locked_seconds = time.monotonic() - start
        logger.debug(f"Acquired run lock: {self.path}")

    def release(self):
        """
        Release the lock and remove the lock file.

        Raises:
            LockError: If unlocking or removing the file fails
        """
        if self._fd is None:
            return

        fd, self._fd = self._fd, None
        try:
            # Remove while still holding the lock so no other run can grab
            # the old inode in between.
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            fd.close()
            raise LockError(f"error removing lock file {self.path}: {e}") from e

        try:
            fcntl.flock(fd.fileno(), fcntl.LOCK_UN)
            fd.close()
        except OSError as e:
            raise LockError(f"error releasing file lock {self.path}: {e}") from e

        logger.debug(f"Released run lock: {self.path}")

    def __enter__(self) -> 'RunLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()
        return False
