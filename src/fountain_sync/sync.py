"""The sync check: pulls the remote branch once generated artifacts land on it.

The check is forgiving. Fetch problems and a remote that has not
moved (or has moved without touching any artifact) are reported as `NOOP`;
only a failed pull is an `ERROR`. Stash handling is best-effort in both
directions and carries its result through a `StashResult` rather than a flag.
"""

import datetime
import logging
from enum import Enum
from pathlib import PurePosixPath
from typing import Iterable

from .config import Config
from .constants import APP_NAME, STASH_MESSAGE
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


class SyncOutcome(Enum):
    """Result of a single sync check."""

    NOOP = "noop"
    SYNCED = "synced"
    ERROR = "error"


class StashResult(Enum):
    """What the stash step did before a pull."""

    SKIPPED = "skipped"
    STASHED = "stashed"
    FAILED = "failed"


def filter_artifacts(paths: Iterable[str], extensions: Iterable[str]) -> list[str]:
    """Keeps the paths whose suffix is a generated-artifact extension.

    Args:
        paths (Iterable[str]): Repository-relative paths.
        extensions (Iterable[str]): Suffixes such as '.pdf'.

    Returns:
        list[str]: The matching paths, in their original order.
    """
    wanted = {ext.lower() for ext in extensions}
    return [p for p in paths if PurePosixPath(p).suffix.lower() in wanted]


def stash_changes(repo: GitRepo) -> StashResult:
    """Stashes uncommitted changes ahead of a pull.

    Args:
        repo (GitRepo): The repository.

    Returns:
        StashResult: SKIPPED on a clean tree, STASHED or FAILED otherwise.
    """
    try:
        if not repo.is_dirty():
            return StashResult.SKIPPED
    except Exception as e:
        logger.warning(f"Could not inspect working tree: {e}")
        return StashResult.SKIPPED

    logger.info("Working tree is dirty, stashing local changes...")
    timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    try:
        repo.stash_push(f"{STASH_MESSAGE} {timestamp}")
    except Exception as e:
        logger.warning(f"STASH FAILED: {e}")
        return StashResult.FAILED
    return StashResult.STASHED


def restore_changes(repo: GitRepo, stash: StashResult) -> None:
    """Pops the stash created by `stash_changes`, if there is one.

    A failed pop leaves the changes in the stash list and is only logged.
    """
    if stash is not StashResult.STASHED:
        return
    try:
        repo.stash_pop()
        logger.info("Restored local changes.")
    except Exception as e:
        logger.warning(f"Could not restore stashed changes (see 'git stash list'): {e}")


def _pull(repo: GitRepo, remote: str, branches: list[str]) -> bool:
    for branch in branches:
        try:
            repo.pull(remote, branch)
            return True
        except Exception as e:
            logger.debug(f"pull {remote} {branch} failed: {e}")
    return False


def sync_if_needed(repo: GitRepo, config: Config) -> SyncOutcome:
    """Pulls the remote branch if it carries new generated artifacts.

    Args:
        repo (GitRepo): The local repository.
        config (Config): Remote, branch and extension settings.

    Returns:
        SyncOutcome: NOOP when nothing relevant changed (or the remote could
                     not be reached), SYNCED after a successful pull, ERROR
                     when the pull failed.
    """
    remote = config.core.remote_name
    branches = [config.core.primary_branch, config.core.fallback_branch]

    # 1. Fetch.
    try:
        repo.fetch(remote)
    except Exception as e:
        logger.debug(f"Fetch from {remote} failed: {e}")
        return SyncOutcome.NOOP

    # 2. Compare HEAD with the remote branch.
    local_commit = repo.rev_parse("HEAD")
    resolved = repo.resolve_remote_branch(remote, branches)
    if not resolved or not local_commit:
        return SyncOutcome.NOOP

    branch, remote_commit = resolved
    if local_commit == remote_commit:
        return SyncOutcome.NOOP

    logger.info("New commits detected, checking for generated files...")

    # 3. Only artifact changes matter.
    remote_ref = f"{remote}/{branch}"
    try:
        changed = repo.diff_names("HEAD", remote_ref)
    except Exception as e:
        logger.warning(f"Could not diff HEAD against {remote_ref}: {e}")
        return SyncOutcome.NOOP

    artifacts = filter_artifacts(changed, config.export.extensions)
    if not artifacts:
        return SyncOutcome.NOOP

    logger.info(f"Found {len(artifacts)} generated files, syncing...")

    # 4. Stash, pull, restore.
    stash = stash_changes(repo)

    if _pull(repo, remote, branches):
        logger.info("SUCCESS: Synced generated files.")
        for path in artifacts:
            logger.info(f"  Updated: {path}")
        restore_changes(repo, stash)
        return SyncOutcome.SYNCED

    logger.error("Failed to pull changes.")
    restore_changes(repo, stash)
    return SyncOutcome.ERROR
