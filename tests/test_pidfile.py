"""Tests for the single-instance PID guard."""

import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from fountain_sync.pidfile import DaemonAlreadyRunning, PidGuard


@pytest.fixture
def guard(tmp_path: Path) -> PidGuard:
    return PidGuard(tmp_path / "state" / "daemon.pid")


def test_read_missing_and_garbled(guard: PidGuard) -> None:
    assert guard.read() is None

    guard.write(1234)
    assert guard.read() == 1234

    guard.path.write_text("not-a-pid")
    assert guard.read() is None


def test_running_pid_is_read_only(guard: PidGuard, mocker: MagicMock) -> None:
    """Verifies that liveness checks never remove a dead record."""
    mocker.patch("fountain_sync.pidfile.is_process_alive", return_value=False)
    guard.write(4242)

    assert guard.running_pid() is None
    assert guard.path.exists()


def test_clear_stale_removes_dead_record(guard: PidGuard, mocker: MagicMock) -> None:
    mocker.patch("fountain_sync.pidfile.is_process_alive", return_value=False)
    guard.write(4242)

    assert guard.clear_stale() is True
    assert not guard.path.exists()


def test_clear_stale_keeps_live_record(guard: PidGuard, mocker: MagicMock) -> None:
    mocker.patch("fountain_sync.pidfile.is_process_alive", return_value=True)
    guard.write(4242)

    assert guard.clear_stale() is False
    assert guard.read() == 4242


def test_acquire_writes_and_releases(guard: PidGuard) -> None:
    with guard.acquire() as pid:
        assert pid == os.getpid()
        assert guard.read() == os.getpid()

    assert not guard.path.exists()


def test_acquire_releases_on_error(guard: PidGuard) -> None:
    """Verifies that the record is removed when the guarded block raises."""
    with pytest.raises(SystemExit):
        with guard.acquire():
            raise SystemExit(0)

    assert not guard.path.exists()


def test_acquire_refuses_live_owner(guard: PidGuard, mocker: MagicMock) -> None:
    mocker.patch("fountain_sync.pidfile.is_process_alive", return_value=True)
    guard.write(os.getpid() + 1)

    with pytest.raises(DaemonAlreadyRunning) as exc:
        with guard.acquire():
            pytest.fail("should not enter the guarded block")

    assert exc.value.pid == os.getpid() + 1
    assert guard.read() == os.getpid() + 1


def test_acquire_adopts_record_written_by_launcher(guard: PidGuard) -> None:
    """Verifies that a record already naming this process is taken over."""
    guard.write(os.getpid())

    with guard.acquire():
        assert guard.read() == os.getpid()

    assert not guard.path.exists()


def test_acquire_leaves_foreign_record_alone(guard: PidGuard) -> None:
    """Verifies that a record rewritten by someone else is not deleted on exit."""
    with guard.acquire():
        guard.path.write_text("99999\n")

    assert guard.read() == 99999
