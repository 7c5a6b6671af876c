"""
Tidings Store Lock
------------------
Cross-process advisory file locking for the small on-disk state files
(sync cursors) that several processes may rewrite.
"""

import logging
import contextlib
from pathlib import Path

import portalocker

logger = logging.getLogger("Tidings.StoreLock")


class StoreLock:
    """
    Exclusive advisory lock backed by portalocker.
    Placed next to the file it guards (e.g. ``sync_state.json.lock``).
    """
    def __init__(self, lock_file_path: Path, timeout: float = 10.0):
        self.lock_file_path = Path(lock_file_path)
        self.timeout = timeout

    @contextlib.contextmanager
    def acquire(self):
        self.lock_file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with portalocker.Lock(
                str(self.lock_file_path),
                mode="a",
                timeout=self.timeout,
                flags=portalocker.LOCK_EX | portalocker.LOCK_NB,
                fail_when_locked=False,
            ) as lock:
                yield lock
        except portalocker.exceptions.LockException as e:
            logger.error("Failed to acquire lock on %s after %ss: %s", self.lock_file_path, self.timeout, e)
            raise RuntimeError(f"State file lock contention: {e}") from e


def lock_for(path: Path) -> StoreLock:
    """Standard sidecar lock for a state file."""
    path = Path(path)
    return StoreLock(path.with_name(path.name + ".lock"))
