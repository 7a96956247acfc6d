"""
Exclusive scoped file locks.

A lock is a sibling ``<name>.lock`` file created with O_CREAT|O_EXCL, so it
works across overlapping hook processes without platform-specific calls.
The lock is removed on every exit path; a lock left behind by a crashed
process is broken once it is older than ``stale_s``.
"""

import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from claude_enforcer.errors import LockTimeout

logger = logging.getLogger(__name__)


def lock_path_for(target: Path) -> Path:
    return target.with_name(target.name + ".lock")


@contextmanager
def file_lock(
    target: Path,
    timeout_s: float = 5.0,
    stale_s: float = 30.0,
    poll_s: float = 0.02,
) -> Iterator[Path]:
    """Hold an exclusive lock on target for the duration of the block."""
    lock_path = lock_path_for(target)
    deadline = time.monotonic() + timeout_s
    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            break
        except FileExistsError:
            try:
                age = time.time() - lock_path.stat().st_mtime
            except FileNotFoundError:
                continue
            if age > stale_s:
                logger.warning("Breaking stale lock %s (%.0fs old)", lock_path, age)
                lock_path.unlink(missing_ok=True)
                continue
            if time.monotonic() >= deadline:
                raise LockTimeout(str(target), timeout_s) from None
            time.sleep(poll_s)

    try:
        try:
            os.write(fd, str(os.getpid()).encode("ascii"))
        finally:
            os.close(fd)
        yield lock_path
    finally:
        lock_path.unlink(missing_ok=True)
