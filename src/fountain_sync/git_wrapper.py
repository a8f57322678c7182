import logging
import subprocess
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


def _split_nul(output: str) -> list[str]:
    # -z output is NUL-terminated and never C-quoted, even for non-ASCII names.
    return [p for p in output.split("\0") if p]


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    Every operation the sync daemon and the exporter need from git goes through
    this class, so callers (and tests) see a single seam for the external
    version-control tool.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git entry.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(self, args: list[str], capture: bool = True) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional): Whether to capture and return stdout.
                                      Defaults to True.

        Returns:
            str: The stripped stdout of the command if capture is True,
                 otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"Git error: {e.stderr or e}") from e

    def fetch(self, remote: str) -> None:
        """Fetches refs and objects from a remote."""
        self._run(["fetch", remote])

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, relative ref) to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD', 'origin/main').

        Returns:
            Optional[str]: The full SHA-1 hash,
                           or None if the revision could not be resolved.
        """
        try:
            return self._run(["rev-parse", rev])
        except Exception as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def resolve_remote_branch(
        self, remote: str, branches: list[str]
    ) -> tuple[str, str] | None:
        """Finds the first remote-tracking branch that exists.

        Args:
            remote (str): The remote name (e.g., 'origin').
            branches (list[str]): Candidate branch names, in order of preference.

        Returns:
            tuple[str, str] | None: The (branch name, commit SHA) of the first
                                    resolvable `<remote>/<branch>`, or None.
        """
        for branch in branches:
            if sha := self.rev_parse(f"{remote}/{branch}"):
                return branch, sha
        return None

    def diff_names(self, base: str, target: str) -> list[str]:
        """Lists the paths that differ between two revisions.

        Args:
            base (str): The base revision.
            target (str): The revision compared against the base.

        Returns:
            list[str]: Repository-relative paths, unquoted.
        """
        output = self._run(["diff", "--name-only", "-z", f"{base}..{target}"])
        return _split_nul(output)

    def is_dirty(self) -> bool:
        """Reports whether tracked files have uncommitted changes.

        Returns:
            bool: True if `git diff-index --quiet HEAD --` reports differences.
        """
        res = subprocess.run(
            ["git", "diff-index", "--quiet", "HEAD", "--"],
            cwd=self.path,
            capture_output=True,
            text=True,
        )
        return res.returncode != 0

    def stash_push(self, message: str) -> None:
        """Stashes local modifications under a labeled message."""
        self._run(["stash", "push", "-m", message])

    def stash_pop(self) -> None:
        """Re-applies and drops the most recent stash entry."""
        self._run(["stash", "pop"])

    def pull(self, remote: str, branch: str) -> None:
        """Fetches and merges a remote branch into the current HEAD."""
        self._run(["pull", remote, branch])

    def last_commit_time(self, path: str) -> int | None:
        """Returns the commit timestamp of the last commit touching a path.

        Args:
            path (str): A repository-relative path.

        Returns:
            int | None: The Unix commit time, or None if the path was never
                        committed or git failed.
        """
        try:
            output = self._run(["log", "-n", "1", "--format=%ct", "--", path])
        except Exception as e:
            logger.debug(f"Failed to read commit time for {path}: {e}")
            return None
        if not output:
            return None
        try:
            return int(output.splitlines()[0])
        except ValueError:
            return None

    def ls_files(self, pattern: str) -> list[str]:
        """Lists tracked files matching a pathspec.

        Args:
            pattern (str): A git pathspec (e.g., '*.fountain').

        Returns:
            list[str]: Matching repository-relative paths.
        """
        try:
            return _split_nul(self._run(["ls-files", "-z", "--", pattern]))
        except Exception as e:
            logger.warning(f"Git error listing files for {pattern}: {e}")
            return []
