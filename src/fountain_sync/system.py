import logging
import os
import signal
import subprocess
import sys
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


def is_process_alive(pid: int) -> bool:
    """Checks whether a process exists, using the null signal.

    Args:
        pid (int): The process identifier.

    Returns:
        bool: True if the process exists (even if owned by another user).
    """
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def terminate(pid: int) -> bool:
    """Sends SIGTERM to a process.

    Returns:
        bool: True if the signal was delivered.
    """
    try:
        os.kill(pid, signal.SIGTERM)
        return True
    except OSError as e:
        logger.debug(f"SIGTERM to {pid} failed: {e}")
        return False


def kill(pid: int) -> bool:
    """Sends SIGKILL to a process.

    Returns:
        bool: True if the signal was delivered.
    """
    try:
        os.kill(pid, signal.SIGKILL)
        return True
    except OSError as e:
        logger.debug(f"SIGKILL to {pid} failed: {e}")
        return False


def spawn_detached(args: list[str], cwd: Path) -> int:
    """Starts a process in its own session, detached from the terminal.

    Args:
        args (list[str]): The command line to execute.
        cwd (Path): The working directory of the new process.

    Returns:
        int: The PID of the spawned process.
    """
    proc = subprocess.Popen(
        args,
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    return proc.pid


class SystemStrategy:
    """Base class defining the interface for desktop interactions."""

    def notify(self, title: str, message: str) -> None:
        """Sends a desktop notification.

        Args:
            title (str): The notification title.
            message (str): The notification body text.
        """
        pass


class MacOSStrategy(SystemStrategy):
    """System strategy implementation for macOS."""

    def notify(self, title: str, message: str) -> None:
        """Sends a notification using AppleScript."""
        # Sanitize quotes to prevent AppleScript syntax errors.
        clean_msg = message.replace('"', "'")
        script = f'display notification "{clean_msg}" with title "{title}"'
        try:
            subprocess.run(["osascript", "-e", script], stderr=subprocess.DEVNULL)
        except OSError:
            pass


class LinuxStrategy(SystemStrategy):
    """System strategy implementation for Linux."""

    def notify(self, title: str, message: str) -> None:
        """Sends a notification using `notify-send`."""
        try:
            subprocess.run(["notify-send", title, message], stderr=subprocess.DEVNULL)
        except FileNotFoundError:
            pass


def get_system() -> SystemStrategy:
    """Factory function to retrieve the platform-specific system strategy.

    Returns:
        SystemStrategy: An instance of MacOSStrategy, LinuxStrategy, or the base
        SystemStrategy depending on the operating system.
    """
    if sys.platform == "darwin":
        return MacOSStrategy()
    elif sys.platform.startswith("linux"):
        return LinuxStrategy()
    else:
        return SystemStrategy()
