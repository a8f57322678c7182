"""Queries the CI provider (GitHub Actions, via the `gh` CLI) for export runs."""

import logging
import shutil
import subprocess
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


def gh_available() -> bool:
    """Reports whether the GitHub CLI is on the PATH."""
    return shutil.which("gh") is not None


def count_in_progress(repo_path: Path, workflow: str) -> int:
    """Counts the in-progress runs of a workflow.

    Any failure (missing `gh`, authentication problems, offline, unexpected
    output) is treated as "nothing running", because the count is advisory.

    Args:
        repo_path (Path): The repository whose remote `gh` should inspect.
        workflow (str): The workflow file name (e.g., 'fountain-export.yml').

    Returns:
        int: The number of runs currently in progress.
    """
    if not gh_available():
        return 0

    cmd = [
        "gh",
        "run",
        "list",
        f"--workflow={workflow}",
        "--status=in_progress",
        "--json",
        "status",
        "--jq",
        "length",
    ]
    try:
        res = subprocess.run(
            cmd, cwd=repo_path, capture_output=True, text=True, timeout=30
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"gh run list failed: {e}")
        return 0

    if res.returncode != 0:
        logger.debug(f"gh run list exited {res.returncode}: {res.stderr.strip()}")
        return 0

    try:
        return max(int(res.stdout.strip() or 0), 0)
    except ValueError:
        logger.debug(f"Unexpected gh output: {res.stdout!r}")
        return 0
