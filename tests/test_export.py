"""Tests for staleness detection and converter invocation."""

import logging
import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from fountain_sync import export
from fountain_sync.config import Config


@pytest.fixture
def repo(tmp_path: Path) -> MagicMock:
    mock_repo = MagicMock()
    mock_repo.path = tmp_path
    return mock_repo


def _touch(path: Path, mtime: float) -> Path:
    path.write_text("x")
    os.utime(path, (mtime, mtime))
    return path


def test_artifact_paths(tmp_path: Path) -> None:
    source = tmp_path / "act1" / "ep.1.fountain"
    assert export.artifact_paths(source, [".pdf", ".html"]) == [
        tmp_path / "act1" / "ep.1.pdf",
        tmp_path / "act1" / "ep.1.html",
    ]


@pytest.mark.parametrize(
    ("source_ts", "artifact_ts", "expected"),
    [
        (200, 100, True),  # Source committed after the export
        (100, 100, True),  # Same commit: at-or-after counts as stale
        (100, 200, False),  # Export is newer
        (None, 200, False),  # Source never committed
        (100, None, True),  # Export never committed
    ],
)
def test_is_stale_by_commit(
    tmp_path: Path,
    repo: MagicMock,
    source_ts: int | None,
    artifact_ts: int | None,
    expected: bool,
) -> None:
    source = _touch(tmp_path / "script.fountain", 1)
    artifact = _touch(tmp_path / "script.pdf", 1)
    times = {"script.fountain": source_ts, "script.pdf": artifact_ts}
    repo.last_commit_time.side_effect = lambda p: times[p]

    assert export.is_stale_by_commit(repo, source, artifact) is expected


def test_missing_artifact_is_stale(tmp_path: Path, repo: MagicMock) -> None:
    source = _touch(tmp_path / "script.fountain", 1)

    assert export.is_stale_by_commit(repo, source, tmp_path / "script.pdf") is True
    assert export.is_stale_by_mtime(source, tmp_path / "script.pdf") is True
    repo.last_commit_time.assert_not_called()


def test_is_stale_by_mtime(tmp_path: Path) -> None:
    source = _touch(tmp_path / "script.fountain", 1000)
    older = _touch(tmp_path / "old.pdf", 500)
    same = _touch(tmp_path / "same.pdf", 1000)
    newer = _touch(tmp_path / "new.pdf", 2000)

    assert export.is_stale_by_mtime(source, older) is True
    assert export.is_stale_by_mtime(source, same) is True
    assert export.is_stale_by_mtime(source, newer) is False


def test_find_stale_sources_reports_reasons(
    tmp_path: Path, repo: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="fountain-sync")
    config = Config()
    config.export.staleness = "mtime"

    fresh = _touch(tmp_path / "fresh.fountain", 100)
    _touch(tmp_path / "fresh.pdf", 200)
    _touch(tmp_path / "fresh.html", 200)

    partial = _touch(tmp_path / "partial.fountain", 100)
    _touch(tmp_path / "partial.pdf", 200)

    edited = _touch(tmp_path / "edited.fountain", 300)
    _touch(tmp_path / "edited.pdf", 200)
    _touch(tmp_path / "edited.html", 400)

    stale = export.find_stale_sources(repo, [fresh, partial, edited], config)

    assert stale == [partial, edited]
    assert "partial.fountain (missing HTML)" in caplog.text
    assert "edited.fountain (PDF outdated)" in caplog.text


def test_changed_sources_filters_range(tmp_path: Path, repo: MagicMock) -> None:
    """Verifies the 'files in this push' selection."""
    _touch(tmp_path / "a.fountain", 1)
    repo.diff_names.return_value = ["a.fountain", "a.pdf", "deleted.fountain"]

    assert export.changed_sources(repo, "abc..def", Config()) == [
        tmp_path / "a.fountain"
    ]
    repo.diff_names.assert_called_once_with("abc", "def")


def test_changed_sources_rejects_bad_range(repo: MagicMock) -> None:
    with pytest.raises(ValueError, match="expected A..B"):
        export.changed_sources(repo, "HEAD", Config())


def test_tracked_sources(tmp_path: Path, repo: MagicMock) -> None:
    repo.ls_files.return_value = ["a.fountain", "drafts/b.fountain"]

    assert export.tracked_sources(repo, Config()) == [
        tmp_path / "a.fountain",
        tmp_path / "drafts" / "b.fountain",
    ]
    repo.ls_files.assert_called_once_with("*.fountain")


def test_run_converter_success(tmp_path: Path, mocker: MagicMock) -> None:
    source = _touch(tmp_path / "script.fountain", 1)
    mock_run = mocker.patch("subprocess.run")
    mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")

    assert export.run_converter(source, Config()) is True
    args, kwargs = mock_run.call_args
    assert args[0] == ["fountainpub", str(source), "-p", "-h"]
    assert kwargs["cwd"] == tmp_path


def test_run_converter_failure(
    tmp_path: Path, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    source = _touch(tmp_path / "script.fountain", 1)
    mocker.patch(
        "subprocess.run",
        return_value=MagicMock(returncode=2, stdout="", stderr="parse error"),
    )

    assert export.run_converter(source, Config()) is False
    assert "EXPORT FAILED script.fountain: parse error" in caplog.text


def test_run_converter_missing_binary(
    tmp_path: Path, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    source = _touch(tmp_path / "script.fountain", 1)
    mocker.patch("subprocess.run", side_effect=FileNotFoundError)

    assert export.run_converter(source, Config()) is False
    assert "Converter 'fountainpub' not found" in caplog.text


def test_export_sources(tmp_path: Path, repo: MagicMock, mocker: MagicMock) -> None:
    a = tmp_path / "a.fountain"
    b = tmp_path / "b.fountain"
    mocker.patch("fountain_sync.export.find_stale_sources", return_value=[a, b])
    mocker.patch("fountain_sync.export.run_converter", side_effect=[True, False])

    assert export.export_sources(repo, Config(), [a, b]) == ([a], [b])


def test_export_sources_force_skips_staleness(
    tmp_path: Path, repo: MagicMock, mocker: MagicMock
) -> None:
    a = tmp_path / "a.fountain"
    mock_find = mocker.patch("fountain_sync.export.find_stale_sources")
    mocker.patch("fountain_sync.export.run_converter", return_value=True)

    assert export.export_sources(repo, Config(), [a], force=True) == ([a], [])
    mock_find.assert_not_called()
