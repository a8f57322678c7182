import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import daemon, export, hooks
from .config import Config
from .constants import APP_NAME, CONFIG_FILE, LOCAL_CONFIG_NAME
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)
console = Console()


def _resolve_repo(path_str: str) -> Path:
    """Resolves and validates the repository root given on the command line.

    Raises:
        SystemExit: If the path is not a git repository.
    """
    repo_path = Path(path_str).resolve()
    if not (repo_path / ".git").exists():
        console.print(f"[bold red]ERROR:[/bold red] Not a git repository: {repo_path}")
        sys.exit(1)
    return repo_path


def run_export(
    repo_path: Path,
    config: Config,
    paths: list[str],
    rev_range: str | None = None,
    force: bool = False,
) -> int:
    """Exports stale screenplays and reports the result.

    Args:
        repo_path (Path): The repository root.
        config (Config): Export settings.
        paths (list[str]): Explicit sources. Empty means every tracked source,
                           or the sources changed in `rev_range` if given.
        rev_range (str | None, optional): An `A..B` revision range.
        force (bool, optional): Convert regardless of staleness.

    Returns:
        int: 0 if every conversion succeeded, 1 otherwise.
    """
    repo = GitRepo(repo_path)

    if paths:
        sources = [Path(p).resolve() for p in paths]
        missing = [p for p in sources if not p.exists()]
        if missing:
            for p in missing:
                console.print(f"[bold red]ERROR:[/bold red] No such file: {p}")
            return 1
    elif rev_range:
        try:
            sources = export.changed_sources(repo, rev_range, config)
        except (ValueError, RuntimeError) as e:
            console.print(f"[bold red]ERROR:[/bold red] {e}")
            return 1
    else:
        sources = export.tracked_sources(repo, config)

    if not sources:
        console.print(
            f"[dim]No {config.export.source_extension} files to process.[/dim]"
        )
        return 0

    exported, failed = export.export_sources(repo, config, sources, force=force)

    for source in exported:
        console.print(f"[green]✔ Exported:[/green] {source.name}")
    for source in failed:
        console.print(f"[bold red]✘ Failed:[/bold red] {source.name}")
    if not exported and not failed:
        console.print("[green]All exports are up to date.[/green]")

    return 1 if failed else 0


def open_config() -> None:
    """Opens the global configuration file in the user's editor."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(
                "# fountain-sync Configuration\n\n"
                "[daemon]\n"
                '# lifetime = "3m"\n'
                '# check_interval = "30s"\n'
            )

    editor = os.environ.get("EDITOR")
    if not editor:
        editor = "open" if sys.platform == "darwin" else "nano"

    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")
    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def tail_log(log_file: Path) -> None:
    """Follows the daemon log file in real-time."""
    if not log_file.exists():
        console.print(f"[red]No log file found yet at {log_file}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{log_file}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "100", "-f", str(log_file)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


class SyncHelpFormatter(argparse.HelpFormatter):
    """Help formatter that groups the subcommands under headers."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Daemon": ["start", "stop", "restart", "status", "run", "log"],
                "Exports": ["export"],
                "Setup": ["install-hooks", "uninstall-hooks", "config"],
                "General": ["help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="fountain-sync Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row("core", "remote_name", "str", '"origin"', "Remote to fetch and pull.")
    table.add_row("", "primary_branch", "str", '"main"', "Branch tried first.")
    table.add_row("", "fallback_branch", "str", '"master"', "Branch tried second.")
    table.add_row(
        "", "state_dir", "str", '".fountain-sync"', "Directory for the PID and log."
    )

    table.add_row(
        "daemon", "check_interval", "int | str", '"30s"', "Sleep between poll ticks."
    )
    table.add_row(
        "", "lifetime", "int | str", '"3m"', "Daemon stops on its own after this."
    )
    table.add_row(
        "",
        "actions_check_interval",
        "int | str",
        '"30s"',
        "Minimum spacing between CI status queries.",
    )
    table.add_row(
        "", "stop_timeout", "int | str", '"10s"', "Grace period before SIGKILL."
    )
    table.add_row(
        "", "restart_delay", "int | str", '"2s"', "Pause between stop and start."
    )
    table.add_row("", "notify", "bool", "false", "Desktop notification after a sync.")

    table.add_row(
        "actions",
        "workflow",
        "str",
        '"fountain-export.yml"',
        "Workflow whose in-progress runs are reported.",
    )
    table.add_row("", "enabled", "bool", "true", "Query GitHub Actions via 'gh'.")

    table.add_row("export", "converter", "str", '"fountainpub"', "Converter command.")
    table.add_row("", "flags", "list", '["-p", "-h"]', "Flags after the source path.")
    table.add_row(
        "", "extensions", "list", '[".pdf", ".html"]', "Generated artifact suffixes."
    )
    table.add_row(
        "", "source_extension", "str", '".fountain"', "Screenplay source suffix."
    )
    table.add_row(
        "",
        "staleness",
        "str",
        '"commit"',
        "'commit' compares commit times, 'mtime' file modification times.",
    )

    console.print(table)
    console.print(
        f"[dim]Global: {CONFIG_FILE}  Local: {LOCAL_CONFIG_NAME} "
        "or [tool.fountain-sync] in pyproject.toml[/dim]"
    )


def main() -> None:
    """Main entry point for the fountain-sync CLI."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        formatter_class=SyncHelpFormatter,
        description="Keep generated screenplay exports in sync with the remote.",
    )
    parser.add_argument(
        "--repo",
        default=".",
        help="Repository root (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("start", help="Start the auto-sync daemon")
    subparsers.add_parser("stop", help="Stop the auto-sync daemon")
    subparsers.add_parser("restart", help="Restart the auto-sync daemon")
    subparsers.add_parser("status", help="Show daemon status and recent activity")
    subparsers.add_parser("run", help="Run the sync loop in the foreground")
    subparsers.add_parser("log", help="Tail the daemon log file")

    export_parser = subparsers.add_parser(
        "export", help="Export stale screenplays to PDF/HTML"
    )
    export_parser.add_argument("paths", nargs="*", help="Screenplay files to export")
    export_parser.add_argument(
        "--range",
        dest="rev_range",
        help="Only sources changed in this revision range (A..B)",
    )
    export_parser.add_argument(
        "--force", "-f", action="store_true", help="Export even if up to date"
    )

    subparsers.add_parser("install-hooks", help="Install the git hooks")
    subparsers.add_parser("uninstall-hooks", help="Remove the git hooks")

    config_parser = subparsers.add_parser(
        "config", help="Open global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options",
    )

    subparsers.add_parser("help", help="Show this help message")

    args = parser.parse_args()

    if args.command is None:
        parser.print_usage()
        console.print(
            "[bold red]ERROR:[/bold red] Choose a command: "
            "start, stop, restart or status."
        )
        sys.exit(1)

    if args.command == "help":
        parser.print_help()
        return
    if args.command == "config":
        if args.list:
            show_config_reference()
        else:
            open_config()
        return

    repo_path = _resolve_repo(args.repo)
    config = Config.load(repo_path)
    log_file = config.log_file(repo_path)

    code = 0
    if args.command == "start":
        daemon.setup_logging(log_file, interactive=True, stream=False)
        code = daemon.start_daemon(repo_path, config)
    elif args.command == "stop":
        daemon.setup_logging(log_file, interactive=True, stream=False)
        code = daemon.stop_daemon(repo_path, config)
    elif args.command == "restart":
        daemon.setup_logging(log_file, interactive=True, stream=False)
        code = daemon.restart_daemon(repo_path, config)
    elif args.command == "status":
        daemon.setup_logging(None, interactive=True, stream=False)
        code = daemon.daemon_status(repo_path, config)
    elif args.command == "run":
        daemon.setup_logging(log_file, interactive=True)
        code = daemon.run_foreground(repo_path, config, interactive=True)
    elif args.command == "log":
        tail_log(log_file)
    elif args.command == "export":
        daemon.setup_logging(None, interactive=True)
        code = run_export(
            repo_path, config, args.paths, rev_range=args.rev_range, force=args.force
        )
    elif args.command == "install-hooks":
        hooks.install(repo_path)
    elif args.command == "uninstall-hooks":
        hooks.uninstall(repo_path)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
