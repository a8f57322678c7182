import copy
import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    ACTIONS_CHECK_INTERVAL,
    APP_NAME,
    ARTIFACT_EXTENSIONS,
    CHECK_INTERVAL,
    CONFIG_FILE,
    DAEMON_LIFETIME,
    DEFAULT_CONVERTER,
    DEFAULT_CONVERTER_FLAGS,
    DEFAULT_REMOTE,
    DEFAULT_WORKFLOW,
    FALLBACK_BRANCH,
    LOCAL_CONFIG_NAME,
    LOG_FILE_NAME,
    PID_FILE_NAME,
    PRIMARY_BRANCH,
    PYPROJECT_SECTION,
    RESTART_DELAY,
    SOURCE_EXTENSION,
    STATE_DIR_NAME,
    STOP_TIMEOUT,
)

logger = logging.getLogger(APP_NAME)

TIME_KEYS = {
    "check_interval": 1,
    "lifetime": 1,
    "actions_check_interval": 0,
    "stop_timeout": 0,
    "restart_delay": 0,
}
"""dict[str, int]: Time settings and the smallest number of seconds each accepts."""

STALENESS_MODES = ("commit", "mtime")


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '3m', '30s') to seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid time format '{value}'")
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


@dataclass
class CoreConfig:
    """Repository and remote settings.

    Attributes:
        remote_name (str): The git remote to fetch from and pull.
        primary_branch (str): The branch tried first when resolving the remote.
        fallback_branch (str): The branch tried when the primary one is missing.
        state_dir (str): Repository-relative directory for the PID and log files.
    """

    remote_name: str = DEFAULT_REMOTE
    primary_branch: str = PRIMARY_BRANCH
    fallback_branch: str = FALLBACK_BRANCH
    state_dir: str = STATE_DIR_NAME


@dataclass
class DaemonConfig:
    """Sync daemon timing settings.

    Attributes:
        check_interval (int): Seconds slept between poll ticks.
        lifetime (int): Seconds after which the daemon stops on its own.
        actions_check_interval (int): Minimum seconds between CI status queries.
        stop_timeout (int): Seconds to wait after SIGTERM before SIGKILL.
        restart_delay (int): Seconds paused between stop and start on restart.
        notify (bool): Whether to send a desktop notification after a sync.
    """

    check_interval: int = CHECK_INTERVAL
    lifetime: int = DAEMON_LIFETIME
    actions_check_interval: int = ACTIONS_CHECK_INTERVAL
    stop_timeout: int = STOP_TIMEOUT
    restart_delay: int = RESTART_DELAY
    notify: bool = False


@dataclass
class ActionsConfig:
    """CI status query settings.

    Attributes:
        workflow (str): Workflow file name whose in-progress runs are counted.
        enabled (bool): Whether to query the CI provider at all.
    """

    workflow: str = DEFAULT_WORKFLOW
    enabled: bool = True


@dataclass
class ExportConfig:
    """Converter and staleness settings.

    Attributes:
        converter (str): The converter executable.
        flags (list[str]): Flags appended after the source path.
        extensions (list[str]): Suffixes of generated artifacts.
        source_extension (str): Suffix of screenplay sources.
        staleness (str): 'commit' compares commit times, 'mtime' file times.
    """

    converter: str = DEFAULT_CONVERTER
    flags: list[str] = field(default_factory=lambda: list(DEFAULT_CONVERTER_FLAGS))
    extensions: list[str] = field(default_factory=lambda: list(ARTIFACT_EXTENSIONS))
    source_extension: str = SOURCE_EXTENSION
    staleness: str = "commit"


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Repository settings.
        daemon (DaemonConfig): Daemon timing settings.
        actions (ActionsConfig): CI query settings.
        export (ExportConfig): Export settings.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    actions: ActionsConfig = field(default_factory=ActionsConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The repository root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Nested sections are mutable, so hand out a deep copy of the cache.
        instance = copy.deepcopy(cls._global_cache)

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section=PYPROJECT_SECTION)

        return instance

    def state_dir(self, repo_path: Path) -> Path:
        """Returns the runtime state directory for a repository."""
        return repo_path / self.core.state_dir

    def pid_file(self, repo_path: Path) -> Path:
        """Returns the PID record path for a repository."""
        return self.state_dir(repo_path) / PID_FILE_NAME

    def log_file(self, repo_path: Path) -> Path:
        """Returns the daemon log path for a repository."""
        return self.state_dir(repo_path) / LOG_FILE_NAME

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path
                                  (e.g., 'tool.fountain-sync').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "daemon" in data:
                self.daemon = self._update_dataclass(
                    "daemon", self.daemon, data["daemon"]
                )
            if "actions" in data:
                self.actions = self._update_dataclass(
                    "actions", self.actions, data["actions"]
                )
            if "export" in data:
                self.export = self._update_dataclass(
                    "export", self.export, data["export"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k in TIME_KEYS:
                    seconds = parse_time(v)
                    if seconds < TIME_KEYS[k]:
                        raise ValueError(
                            f"'{v}' is below the minimum of {TIME_KEYS[k]}s"
                        )
                    filtered_updates[k] = seconds
                elif k == "extensions":
                    filtered_updates[k] = [_normalize_extension(e) for e in v]
                elif k == "source_extension":
                    filtered_updates[k] = _normalize_extension(v)
                elif k == "staleness":
                    if v not in STALENESS_MODES:
                        raise ValueError(
                            f"Invalid staleness mode '{v}' "
                            f"(expected one of {', '.join(STALENESS_MODES)})"
                        )
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = v
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
