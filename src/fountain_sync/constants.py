from pathlib import Path

"""Global constants and default values for fountain-sync.

This module defines application identifiers, the repository-relative state
layout (PID file and log file), the daemon's timing defaults, and the names of
the external tools the daemon drives.
"""

# --- Identity ---
APP_NAME = "fountain-sync"
"""str: The human-readable application name (also the logger name)."""

DAEMON_EXECUTABLE = "fountain-sync-daemon"
"""str: The console script that runs the detached sync loop."""

# --- Paths ---
STATE_DIR_NAME = ".fountain-sync"
"""str: Repository-relative directory holding the daemon's runtime state."""

PID_FILE_NAME = "daemon.pid"
"""str: File name of the PID record inside the state directory."""

LOG_FILE_NAME = "daemon.log"
"""str: File name of the append-only daemon log inside the state directory."""

CONFIG_DIR: Path = Path.home() / ".config/fountain-sync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "fountain-sync.toml"
"""str: The repository-local configuration file name."""

PYPROJECT_SECTION = "tool.fountain-sync"
"""str: The pyproject.toml table consulted when no local config file exists."""

# --- Daemon timing (seconds) ---
CHECK_INTERVAL = 30
"""int: Sleep between poll ticks."""

DAEMON_LIFETIME = 180
"""int: Maximum lifetime of a daemon before it stops on its own."""

ACTIONS_CHECK_INTERVAL = 30
"""int: Minimum spacing between CI status queries."""

STOP_TIMEOUT = 10
"""int: Grace period after SIGTERM before the daemon is force killed."""

RESTART_DELAY = 2
"""int: Pause between stop and start during a restart."""

STATUS_LOG_LINES = 5
"""int: Number of trailing log entries shown by `status`."""

# --- Git ---
DEFAULT_REMOTE = "origin"
"""str: The remote the daemon fetches from and pulls."""

PRIMARY_BRANCH = "main"
"""str: The default branch name tried first."""

FALLBACK_BRANCH = "master"
"""str: The conventional branch name tried when the primary one is missing."""

STASH_MESSAGE = "Auto-sync: temporary stash"
"""str: Prefix of the label given to stashes created before a pull."""

# --- Exports ---
ARTIFACT_EXTENSIONS = [".pdf", ".html"]
"""list[str]: Suffixes of generated artifacts."""

SOURCE_EXTENSION = ".fountain"
"""str: Suffix of screenplay source files."""

DEFAULT_CONVERTER = "fountainpub"
"""str: The external converter executable."""

DEFAULT_CONVERTER_FLAGS = ["-p", "-h"]
"""list[str]: Flags passed to the converter (PDF and HTML output)."""

DEFAULT_WORKFLOW = "fountain-export.yml"
"""str: The CI workflow whose in-progress runs are reported."""

# --- Hooks ---
HOOK_MARKER = "# managed by fountain-sync"
"""str: Marker line identifying hook scripts written by fountain-sync."""

HOOK_BACKUP_SUFFIX = ".pre-fountain-sync"
"""str: Suffix given to pre-existing hooks that get replaced."""

# --- Logging ---
LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
"""str: Line format shared by every log handler."""

LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
"""str: Timestamp format used in log lines."""
