import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from fountain_sync.git_wrapper import GitRepo


@pytest.fixture
def repo(tmp_path: Path) -> GitRepo:
    (tmp_path / ".git").mkdir()
    return GitRepo(tmp_path)


def test_init_rejects_non_repository(tmp_path: Path) -> None:
    """Verifies that a directory without .git is refused."""
    with pytest.raises(ValueError, match="Not a git repository"):
        GitRepo(tmp_path)


def test_run_wraps_git_failures(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that non-zero git exits surface as RuntimeError."""
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(1, ["git"], stderr="fatal: boom"),
    )

    with pytest.raises(RuntimeError, match="Git error: fatal: boom"):
        repo.fetch("origin")


def test_rev_parse_returns_none_on_failure(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that unresolvable revisions yield None instead of raising."""
    mocker.patch.object(repo, "_run", side_effect=RuntimeError("unknown revision"))
    assert repo.rev_parse("origin/main") is None


def test_resolve_remote_branch_falls_back(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that the fallback branch is used when the primary is missing."""
    mocker.patch.object(
        repo,
        "rev_parse",
        side_effect=lambda rev: "sha-master" if rev == "origin/master" else None,
    )

    assert repo.resolve_remote_branch("origin", ["main", "master"]) == (
        "master",
        "sha-master",
    )


def test_resolve_remote_branch_none(mocker: MagicMock, repo: GitRepo) -> None:
    mocker.patch.object(repo, "rev_parse", return_value=None)
    assert repo.resolve_remote_branch("origin", ["main", "master"]) is None


def test_diff_names_uses_range(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies the diff command line and NUL-separated output splitting."""
    mock_run = mocker.patch.object(
        repo, "_run", return_value="script.fountain\0Scène 2.pdf\0"
    )

    assert repo.diff_names("HEAD", "origin/main") == [
        "script.fountain",
        "Scène 2.pdf",
    ]
    mock_run.assert_called_once_with(
        ["diff", "--name-only", "-z", "HEAD..origin/main"]
    )


def test_is_dirty_uses_diff_index_exit_code(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that a non-zero diff-index exit means a dirty tree."""
    mock_run = mocker.patch("subprocess.run")

    mock_run.return_value = MagicMock(returncode=1)
    assert repo.is_dirty() is True

    mock_run.return_value = MagicMock(returncode=0)
    assert repo.is_dirty() is False

    args = mock_run.call_args[0][0]
    assert args == ["git", "diff-index", "--quiet", "HEAD", "--"]


def test_last_commit_time(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies parsing of commit timestamps and the untracked case."""
    mock_run = mocker.patch.object(repo, "_run", return_value="1700000000")
    assert repo.last_commit_time("script.pdf") == 1700000000
    mock_run.assert_called_with(
        ["log", "-n", "1", "--format=%ct", "--", "script.pdf"]
    )

    mock_run.return_value = ""
    assert repo.last_commit_time("new.pdf") is None


def test_ls_files_logs_error_on_failure(
    mocker: MagicMock, caplog: pytest.LogCaptureFixture, repo: GitRepo
) -> None:
    """Verifies that git failures are logged instead of passing silently."""
    mocker.patch("subprocess.run", side_effect=RuntimeError("Git is broken"))

    assert repo.ls_files("*.fountain") == []
    assert "Git error listing files" in caplog.text
