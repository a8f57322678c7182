"""Staleness checks and converter invocation for screenplay exports.

A generated artifact is stale when its source was last modified at or after
the artifact itself. "Modified" is either the last commit touching the file
(the default, which is what CI can see) or the filesystem mtime (useful for
local, uncommitted edits).
"""

import logging
import subprocess
from pathlib import Path

from .config import Config
from .constants import APP_NAME
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


def artifact_paths(source: Path, extensions: list[str]) -> list[Path]:
    """Returns the artifact paths generated from a source, one per extension."""
    return [source.with_suffix(ext) for ext in extensions]


def _relative(repo: GitRepo, path: Path) -> str:
    try:
        return path.resolve().relative_to(repo.path.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def is_stale_by_commit(repo: GitRepo, source: Path, artifact: Path) -> bool:
    """Compares the last commit times of a source and one of its artifacts.

    Args:
        repo (GitRepo): The repository both files live in.
        source (Path): The screenplay source.
        artifact (Path): A generated artifact.

    Returns:
        bool: True if the artifact is missing, was never committed, or was
              committed no later than the source. An uncommitted source is
              never stale (as long as the artifact exists).
    """
    if not artifact.exists():
        return True

    artifact_time = repo.last_commit_time(_relative(repo, artifact))
    if artifact_time is None:
        return True

    source_time = repo.last_commit_time(_relative(repo, source))
    if source_time is None:
        return False

    return source_time >= artifact_time


def is_stale_by_mtime(source: Path, artifact: Path) -> bool:
    """Compares filesystem modification times of a source and an artifact."""
    if not artifact.exists():
        return True
    try:
        return source.stat().st_mtime >= artifact.stat().st_mtime
    except OSError as e:
        logger.debug(f"Could not stat {source} or {artifact}: {e}")
        return True


def stale_reason(repo: GitRepo, source: Path, config: Config) -> str | None:
    """Explains why a source needs exporting.

    Returns:
        str | None: A short reason, or None if every artifact is up to date.
    """
    artifacts = artifact_paths(source, config.export.extensions)
    missing = [a.suffix.lstrip(".").upper() for a in artifacts if not a.exists()]
    if missing:
        return f"missing {', '.join(missing)}"

    outdated = []
    for artifact in artifacts:
        if config.export.staleness == "mtime":
            stale = is_stale_by_mtime(source, artifact)
        else:
            stale = is_stale_by_commit(repo, source, artifact)
        if stale:
            outdated.append(artifact.suffix.lstrip(".").upper())

    if outdated:
        return f"{', '.join(outdated)} outdated"
    return None


def find_stale_sources(
    repo: GitRepo, sources: list[Path], config: Config
) -> list[Path]:
    """Filters sources down to those with at least one stale artifact."""
    stale = []
    for source in sources:
        if reason := stale_reason(repo, source, config):
            logger.info(f"Needs processing: {_relative(repo, source)} ({reason})")
            stale.append(source)
        else:
            logger.debug(f"Up to date: {_relative(repo, source)}")
    return stale


def tracked_sources(repo: GitRepo, config: Config) -> list[Path]:
    """Lists every tracked screenplay source in the repository."""
    pattern = f"*{config.export.source_extension}"
    return [repo.path / p for p in repo.ls_files(pattern)]


def changed_sources(repo: GitRepo, rev_range: str, config: Config) -> list[Path]:
    """Lists the screenplay sources changed in a revision range.

    Args:
        repo (GitRepo): The repository.
        rev_range (str): A range in `A..B` form (e.g., the commits of a push).
        config (Config): Supplies the source extension.

    Returns:
        list[Path]: Changed sources that still exist in the working tree.

    Raises:
        ValueError: If the range is not in `A..B` form.
    """
    base, sep, target = rev_range.partition("..")
    if not sep or not base or not target:
        raise ValueError(f"Invalid revision range '{rev_range}' (expected A..B)")

    ext = config.export.source_extension
    paths = [repo.path / p for p in repo.diff_names(base, target) if p.endswith(ext)]
    return [p for p in paths if p.exists()]


def run_converter(source: Path, config: Config) -> bool:
    """Runs the external converter on one source.

    Args:
        source (Path): The screenplay source.
        config (Config): Supplies the converter and its flags.

    Returns:
        bool: True if the converter exited with status 0.
    """
    cmd = [config.export.converter, str(source), *config.export.flags]
    try:
        res = subprocess.run(cmd, cwd=source.parent, capture_output=True, text=True)
    except FileNotFoundError:
        logger.error(
            f"Converter '{config.export.converter}' not found. "
            "Install it (e.g., 'npm install -g fountainpub')."
        )
        return False

    if res.returncode != 0:
        detail = (res.stderr or res.stdout).strip()
        logger.error(f"EXPORT FAILED {source.name}: {detail or res.returncode}")
        return False

    logger.info(f"EXPORTED {source.name}")
    return True


def export_sources(
    repo: GitRepo, config: Config, sources: list[Path], force: bool = False
) -> tuple[list[Path], list[Path]]:
    """Converts the sources that need it.

    Args:
        repo (GitRepo): The repository.
        config (Config): Export settings.
        sources (list[Path]): Candidate sources.
        force (bool, optional): Convert every source, stale or not.

    Returns:
        tuple[list[Path], list[Path]]: The (exported, failed) sources.
    """
    targets = sources if force else find_stale_sources(repo, sources, config)

    exported: list[Path] = []
    failed: list[Path] = []
    for source in targets:
        if run_converter(source, config):
            exported.append(source)
        else:
            failed.append(source)
    return exported, failed
