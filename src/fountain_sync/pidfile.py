import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .constants import APP_NAME
from .system import is_process_alive

logger = logging.getLogger(APP_NAME)


class DaemonAlreadyRunning(RuntimeError):
    """Raised when another live process owns the PID record."""

    def __init__(self, pid: int):
        super().__init__(f"Daemon already running (PID: {pid})")
        self.pid = pid


class PidGuard:
    """Single-instance guard backed by a PID file.

    The guard is advisory: the check for a live owner and the write of the new
    record are not atomic. Reads never modify the file; only `clear_stale`,
    `write`, `remove` and `acquire` do.

    Attributes:
        path (Path): Location of the PID record.
    """

    def __init__(self, path: Path):
        self.path = path

    def read(self) -> int | None:
        """Returns the recorded PID, or None if the record is missing or garbled."""
        try:
            return int(self.path.read_text().strip())
        except (OSError, ValueError):
            return None

    def running_pid(self) -> int | None:
        """Returns the recorded PID if that process is alive, without side effects."""
        pid = self.read()
        if pid is not None and is_process_alive(pid):
            return pid
        return None

    def clear_stale(self) -> bool:
        """Removes a record whose process is no longer alive.

        Returns:
            bool: True if a stale record was removed.
        """
        if not self.path.exists() or self.running_pid() is not None:
            return False
        logger.info(f"Removing stale PID record ({self.read()}).")
        self.path.unlink(missing_ok=True)
        return True

    def write(self, pid: int) -> None:
        """Persists a PID, creating the state directory if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(f"{pid}\n")

    def remove(self) -> None:
        """Deletes the record unconditionally."""
        self.path.unlink(missing_ok=True)

    @contextmanager
    def acquire(self) -> Iterator[int]:
        """Claims the record for the current process for the duration of a block.

        A record naming the current PID is adopted (the launcher writes the
        child's PID before the child starts). On exit the record is removed
        only if it still names this process.

        Yields:
            int: The current process ID.

        Raises:
            DaemonAlreadyRunning: If another live process owns the record.
        """
        me = os.getpid()
        owner = self.running_pid()
        if owner is not None and owner != me:
            raise DaemonAlreadyRunning(owner)

        self.write(me)
        try:
            yield me
        finally:
            if self.read() == me:
                self.remove()
