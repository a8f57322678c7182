"""fountain-sync: keeps generated screenplay exports in step with the remote.

This package provides the command-line interface, the bounded-lifetime sync
daemon that pulls CI-generated PDF/HTML exports into a local clone, and the
staleness-driven export logic that decides which screenplays need converting.
"""

from . import (
    actions,
    cli,
    config,
    constants,
    daemon,
    export,
    git_wrapper,
    hooks,
    pidfile,
    sync,
    system,
)

__all__ = [
    "actions",
    "cli",
    "config",
    "constants",
    "daemon",
    "export",
    "git_wrapper",
    "hooks",
    "pidfile",
    "sync",
    "system",
]
