import logging
import stat
from pathlib import Path

from rich.console import Console

from .constants import APP_NAME, HOOK_BACKUP_SUFFIX, HOOK_MARKER

console = Console()
logger = logging.getLogger(APP_NAME)

HOOKS = {
    "post-commit": "fountain-sync export || true",
    "pre-push": "fountain-sync start >/dev/null 2>&1 || true",
}
"""dict[str, str]: Hook name to the command it runs."""


def get_hooks_dir(repo_path: Path) -> Path:
    """Resolves the hooks directory of a repository.

    Raises:
        ValueError: If the repository has no .git directory (e.g., a worktree
                    or submodule whose .git is a file).
    """
    git_dir = repo_path / ".git"
    if not git_dir.is_dir():
        raise ValueError(f"Cannot locate hooks directory for {repo_path}")
    return git_dir / "hooks"


def render_hook(command: str) -> str:
    """Returns the shell script body for a hook."""
    return f"#!/bin/sh\n{HOOK_MARKER}\n{command}\n"


def is_managed(hook_file: Path) -> bool:
    """Reports whether a hook script was written by fountain-sync."""
    try:
        return HOOK_MARKER in hook_file.read_text(errors="replace")
    except OSError:
        return False


def install(repo_path: Path) -> list[str]:
    """Installs the post-commit (export) and pre-push (daemon start) hooks.

    Pre-existing hooks that fountain-sync did not write are moved aside with a
    backup suffix so `uninstall` can put them back.

    Args:
        repo_path (Path): The repository root.

    Returns:
        list[str]: The names of the hooks written.
    """
    hooks_dir = get_hooks_dir(repo_path)
    hooks_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for name, command in HOOKS.items():
        hook_file = hooks_dir / name
        if hook_file.exists() and not is_managed(hook_file):
            backup = hook_file.with_name(name + HOOK_BACKUP_SUFFIX)
            hook_file.replace(backup)
            console.print(f"[dim]Backed up existing {name} hook to {backup.name}[/dim]")
            logger.info(f"Backed up {hook_file} to {backup}")

        hook_file.write_text(render_hook(command))
        mode = hook_file.stat().st_mode
        hook_file.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        written.append(name)

    console.print(
        "[bold green]SUCCESS:[/bold green] Hooks installed.\n"
        "   git commit  # exports stale screenplays\n"
        "   git push    # starts the auto-sync daemon"
    )
    return written


def uninstall(repo_path: Path) -> list[str]:
    """Removes the managed hooks and restores any backed-up originals.

    Args:
        repo_path (Path): The repository root.

    Returns:
        list[str]: The names of the hooks removed.
    """
    hooks_dir = get_hooks_dir(repo_path)

    removed = []
    for name in HOOKS:
        hook_file = hooks_dir / name
        if hook_file.exists() and is_managed(hook_file):
            hook_file.unlink()
            removed.append(name)

        backup = hooks_dir / (name + HOOK_BACKUP_SUFFIX)
        if backup.exists() and not hook_file.exists():
            backup.replace(hook_file)
            logger.info(f"Restored {hook_file} from {backup}")

    console.print("[bold green]SUCCESS:[/bold green] Hooks uninstalled.")
    return removed
