import argparse
import logging
import shutil
import signal
import sys
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import FrameType
from typing import Callable

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from . import actions, system
from .config import Config
from .constants import (
    APP_NAME,
    DAEMON_EXECUTABLE,
    LOG_DATE_FORMAT,
    LOG_FORMAT,
    STATUS_LOG_LINES,
)
from .git_wrapper import GitRepo
from .pidfile import DaemonAlreadyRunning, PidGuard
from .sync import SyncOutcome, sync_if_needed

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console()
err_console = Console(stderr=True)


class DaemonState(Enum):
    """Phases of the poll loop."""

    POLLING = "polling"
    CHECKING_ACTIONS = "checking_actions"
    SYNCING = "syncing"
    STOPPING = "stopping"


@dataclass
class SyncState:
    """Mutable state of a running daemon.

    Attributes:
        start_time (float): Clock reading when the loop started.
        last_action_check_time (float | None): Clock reading of the last CI
            query, or None before the first one.
        current_commit (str | None): The local HEAD after the latest tick.
    """

    start_time: float
    last_action_check_time: float | None = None
    current_commit: str | None = None


class SyncDaemon:
    """Bounded-lifetime poller that pulls generated artifacts from the remote.

    The loop is single-threaded and blocks on git, `gh` and sleep. Time is
    injected so the lifetime and CI throttling can be driven without waiting.

    Attributes:
        repo (GitRepo): The repository being watched.
        config (Config): Timing, remote and export settings.
        state (DaemonState): The current phase of the loop.
        sync_state (SyncState): Start time, last CI check and current commit.
    """

    def __init__(
        self,
        repo: GitRepo,
        config: Config,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repo = repo
        self.config = config
        self.clock = clock
        self.sleep = sleep
        self.state = DaemonState.POLLING
        self.sync_state = SyncState(start_time=clock())

    def _transition(self, state: DaemonState) -> None:
        if state is not self.state:
            logger.debug(f"STATE {self.state.value} -> {state.value}")
        self.state = state

    def _check_actions(self, now: float) -> None:
        last = self.sync_state.last_action_check_time
        interval = self.config.daemon.actions_check_interval
        if last is not None and now - last < interval:
            return

        self._transition(DaemonState.CHECKING_ACTIONS)
        running = actions.count_in_progress(
            self.repo.path, self.config.actions.workflow
        )
        if running > 0:
            logger.info(f"{running} GitHub Actions running...")
        self.sync_state.last_action_check_time = now

    def tick(self) -> SyncOutcome:
        """Runs one poll iteration: an advisory CI query, then a sync check.

        Returns:
            SyncOutcome: The result of the sync check.
        """
        if self.config.actions.enabled:
            self._check_actions(self.clock())

        self._transition(DaemonState.SYNCING)
        try:
            outcome = sync_if_needed(self.repo, self.config)
        except Exception:
            logger.exception("SYNC ERROR")
            outcome = SyncOutcome.ERROR

        self.sync_state.current_commit = self.repo.rev_parse("HEAD")

        if outcome is SyncOutcome.SYNCED and self.config.daemon.notify:
            system.get_system().notify(
                "Fountain Sync", f"Generated files synced in {self.repo.path.name}"
            )
        return outcome

    def run(self) -> SyncOutcome:
        """Polls until the artifacts are synced or the lifetime runs out.

        Returns:
            SyncOutcome: SYNCED if the loop ended early, NOOP on timeout.
        """
        lifetime = self.config.daemon.lifetime
        self.sync_state = SyncState(start_time=self.clock())

        try:
            while True:
                self._transition(DaemonState.POLLING)
                elapsed = self.clock() - self.sync_state.start_time
                if elapsed >= lifetime:
                    logger.info(f"{lifetime}s timer expired - daemon auto-stopping")
                    return SyncOutcome.NOOP

                outcome = self.tick()
                if outcome is SyncOutcome.SYNCED:
                    logger.info("Files successfully synced - exiting early")
                    return SyncOutcome.SYNCED
                if outcome is SyncOutcome.ERROR:
                    logger.warning("Sync check completed with issues")

                self._transition(DaemonState.POLLING)
                self.sleep(self.config.daemon.check_interval)
        finally:
            self._transition(DaemonState.STOPPING)


def setup_logging(
    log_file: Path | None, interactive: bool, stream: bool = True
) -> None:
    """Configures the application logger.

    Args:
        log_file (Path | None): The append-only daemon log. None disables file output.
        interactive (bool): If True, the stream handler writes to stdout,
                            otherwise to stderr.
        stream (bool, optional): Whether to attach a stream handler at all.
                                 Defaults to True.
    """
    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if stream:
        stream_handler = logging.StreamHandler(
            sys.stdout if interactive else sys.stderr
        )
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def ensure_state_dir(config: Config, repo_path: Path) -> Path:
    """Creates the state directory, keeping its contents out of git."""
    state_dir = config.state_dir(repo_path)
    state_dir.mkdir(parents=True, exist_ok=True)
    ignore = state_dir / ".gitignore"
    if not ignore.exists():
        ignore.write_text("*\n")
    return state_dir


def tail_log(log_file: Path, lines: int = STATUS_LOG_LINES) -> list[str]:
    """Returns the last lines of the daemon log without modifying it."""
    if not log_file.exists():
        return []
    try:
        with open(log_file, errors="replace") as f:
            return [line.rstrip("\n") for line in deque(f, maxlen=lines)]
    except OSError as e:
        logger.debug(f"Could not read {log_file}: {e}")
        return []


def _daemon_command(repo_path: Path) -> list[str]:
    exe = shutil.which(DAEMON_EXECUTABLE)
    if exe:
        return [exe, str(repo_path)]
    return [sys.executable, "-m", "fountain_sync.daemon", str(repo_path)]


def start_daemon(repo_path: Path, config: Config) -> int:
    """Launches the detached sync daemon for a repository.

    Args:
        repo_path (Path): The repository root.
        config (Config): The repository configuration.

    Returns:
        int: 0 if a daemon was started, 1 if one is already running.
    """
    guard = PidGuard(config.pid_file(repo_path))
    if (pid := guard.running_pid()) is not None:
        console.print(
            f"[yellow]Fountain auto-sync daemon is already running (PID: {pid})[/yellow]"
        )
        return 1
    guard.clear_stale()

    ensure_state_dir(config, repo_path)
    lifetime = config.daemon.lifetime
    logger.info(f"Starting fountain auto-sync daemon ({lifetime}s auto-stop)")

    if config.actions.enabled:
        if actions.gh_available():
            logger.info("GitHub CLI detected - will monitor Actions in real-time")
        else:
            logger.warning("GitHub CLI not found - using polling mode only")

    pid = system.spawn_detached(_daemon_command(repo_path), cwd=repo_path)
    guard.write(pid)

    console.print(
        f"[bold green]SUCCESS:[/bold green] Fountain auto-sync daemon started "
        f"with PID {pid} ({lifetime}s timer)"
    )
    logger.info(f"Daemon ready (PID {pid}) - monitoring for {lifetime}s")
    return 0


def stop_daemon(
    repo_path: Path,
    config: Config,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Stops a running daemon, escalating to SIGKILL after the grace period.

    Args:
        repo_path (Path): The repository root.
        config (Config): The repository configuration.
        sleep (Callable[[float], None], optional): Sleep function used while
                                                   waiting for the process to exit.

    Returns:
        int: 0 if the daemon was stopped, 1 if it was not running or could not
             be signalled.
    """
    guard = PidGuard(config.pid_file(repo_path))
    pid = guard.running_pid()
    if pid is None:
        guard.clear_stale()
        console.print("[yellow]Fountain auto-sync daemon is not running[/yellow]")
        return 1

    console.print(f"Stopping fountain auto-sync daemon (PID: {pid})...")
    logger.info("Stopping fountain auto-sync daemon")

    if not system.terminate(pid):
        err_console.print("[bold red]ERROR:[/bold red] Could not stop daemon")
        guard.remove()
        return 1

    waited = 0
    while system.is_process_alive(pid) and waited < config.daemon.stop_timeout:
        sleep(1)
        waited += 1

    if system.is_process_alive(pid):
        system.kill(pid)
        logger.warning("Force killed daemon process")

    guard.remove()
    console.print("[bold green]SUCCESS:[/bold green] Fountain auto-sync daemon stopped")
    logger.info("Daemon stopped successfully")
    return 0


def restart_daemon(
    repo_path: Path,
    config: Config,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Stops the daemon if it is running, then starts a fresh one."""
    console.print("Restarting fountain auto-sync daemon...")
    stop_daemon(repo_path, config, sleep=sleep)
    sleep(config.daemon.restart_delay)
    return start_daemon(repo_path, config)


def daemon_status(repo_path: Path, config: Config) -> int:
    """Prints whether the daemon runs, the CI queue and recent log activity.

    Only reads the PID record and the log.

    Returns:
        int: Always 0.
    """
    guard = PidGuard(config.pid_file(repo_path))
    pid = guard.running_pid()

    content = Text()
    content.append("Daemon: ", style="bold")
    if pid is None:
        content.append("Stopped\n", style="bold red")
        content.append("Start with: fountain-sync start", style="dim")
        console.print(Panel(content, title="Fountain Sync", expand=False))
        return 0

    content.append(f"Running (PID: {pid})\n", style="bold green")
    content.append("CI:     ", style="bold")
    if not config.actions.enabled:
        content.append("Monitoring disabled", style="dim")
    elif actions.gh_available():
        running = actions.count_in_progress(repo_path, config.actions.workflow)
        if running > 0:
            content.append(f"{running} GitHub Actions currently running", style="yellow")
        else:
            content.append("No GitHub Actions currently running", style="green")
    else:
        content.append("GitHub CLI not available - polling mode only", style="yellow")

    console.print(Panel(content, title="Fountain Sync", expand=False))

    recent = tail_log(config.log_file(repo_path))
    if recent:
        console.print(f"\n[bold]Recent activity (last {len(recent)} entries):[/bold]")
        for line in recent:
            console.print(f"  {line}", markup=False, highlight=False)
    return 0


def run_foreground(repo_path: Path, config: Config, interactive: bool = False) -> int:
    """Runs the poll loop in the current process while holding the PID record.

    SIGTERM is translated into SystemExit so the record is released on every
    exit path.

    Args:
        repo_path (Path): The repository root.
        config (Config): The repository configuration.
        interactive (bool, optional): Whether the loop was started from a terminal.

    Returns:
        int: 0 after a normal stop, 1 if the repository is invalid or another
             daemon owns the PID record.
    """
    try:
        repo = GitRepo(repo_path)
    except ValueError as e:
        logger.error(str(e))
        return 1

    def terminate_handler(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received signal {signum} - shutting down")
        raise SystemExit(0)

    signal.signal(signal.SIGTERM, terminate_handler)

    ensure_state_dir(config, repo_path)
    guard = PidGuard(config.pid_file(repo_path))
    try:
        with guard.acquire() as pid:
            logger.info(
                f"Daemon started with PID {pid}, monitoring repository "
                f"for {config.daemon.lifetime}s"
            )
            SyncDaemon(repo, config).run()
    except DaemonAlreadyRunning as e:
        if interactive:
            err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        logger.warning(str(e))
        return 1

    logger.info("Daemon auto-stopped")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point of the detached daemon process."""
    parser = argparse.ArgumentParser(prog=DAEMON_EXECUTABLE)
    parser.add_argument("repo", nargs="?", default=".", help="Repository root")
    args = parser.parse_args(argv)

    repo_path = Path(args.repo).resolve()
    config = Config.load(repo_path)
    setup_logging(config.log_file(repo_path), interactive=False)
    return run_foreground(repo_path, config)


if __name__ == "__main__":
    sys.exit(main())
