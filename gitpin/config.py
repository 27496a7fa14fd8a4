"""Configuration for the git cache, worktrees and local overrides"""

import configparser
import logging
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

APP_NAME = "gitpin"

logger = logging.getLogger(__name__)

_home = os.path.expanduser("~")

xdg_config_home = os.environ.get("XDG_CONFIG_HOME") or os.path.join(_home, ".config")
xdg_cache_home = os.environ.get("XDG_CACHE_HOME") or os.path.join(_home, ".cache")
xdg_data_home = os.environ.get("XDG_DATA_HOME") or os.path.join(
    _home, ".local", "share"
)


default_cfg = {
    "dirs": {
        "git_cache": os.path.join(xdg_cache_home, APP_NAME, "git"),
        "worktrees": os.path.join(xdg_data_home, APP_NAME, "worktrees"),
    },
    "git": {
        "disable_local_branch_check": "false",
        "timeout": "",
        "max_workers": "4",
    },
}

if platform.system() == "Darwin":
    # macOS
    config_dir = Path(f"~/Library/Application Support/{APP_NAME}").expanduser()
else:
    # Linux or others
    config_dir = Path(os.path.join(xdg_config_home, APP_NAME))


def get_config_file() -> Path:
    env_path = os.environ.get("GITPIN_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return config_dir / f"{APP_NAME}.cfg"


class ConfigAccessor:
    """
    A dict-like accessor for configuration files.

    This class provides a way to access configuration options with a dictionary-like
    interface while handling missing sections or keys gracefully.

    Usage:
        config = ConfigAccessor()
        value = config.get('dirs', 'git_cache', default='~/.cache/gitpin/git')
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize a ConfigAccessor with an optional config file path.

        Args:
            config_path: Path to the configuration file. If None, uses the default path.
        """
        if config_path is None:
            self.config_path = get_config_file()
        else:
            self.config_path = config_path

        # Keys in [local] are repository URIs: case sensitive and containing ":"
        self.config = configparser.ConfigParser(interpolation=None, delimiters=("=",))
        self.config.optionxform = str  # type: ignore[assignment,method-assign]
        if self.config_path.exists():
            self.config.read(self.config_path)

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get a configuration value from the specified section and key.

        Args:
            section: The configuration section
            key: The configuration key
            default: Value to return if the section or key doesn't exist

        Returns:
            The configuration value if it exists, otherwise the default value
        """
        try:
            return self.config[section][key]
        except (KeyError, configparser.NoSectionError, configparser.NoOptionError):
            return default

    def getboolean(self, section: str, key: str, default: bool = False) -> bool:
        try:
            return self.config.getboolean(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return default
        except ValueError:
            logger.warning(
                f"Invalid boolean for [{section}] {key} in {self.config_path}, "
                f"using {default}"
            )
            return default

    def items(self, section: str) -> Dict[str, str]:
        if not self.config.has_section(section):
            return {}
        return {key: self.config[section][key] for key in self.config.options(section)}


def _get_dir(accessor: ConfigAccessor, key: str) -> Path:
    value = accessor.get("dirs", key, default_cfg["dirs"][key])
    path = Path(value).expanduser()
    # Never relative to the current working directory
    if not path.is_absolute():
        path = path.resolve()
    return path


def get_git_cache_dir(accessor: Optional[ConfigAccessor] = None) -> Path:
    """
    Get the configured directory holding the bare clones.

    Returns:
        Path to the git cache (defaults to ~/.cache/gitpin/git)
    """
    return _get_dir(accessor or ConfigAccessor(), "git_cache")


def get_worktree_dir(accessor: Optional[ConfigAccessor] = None) -> Path:
    """
    Get the configured directory holding materialized worktrees.

    Returns:
        Path to the worktree root (defaults to ~/.local/share/gitpin/worktrees)
    """
    return _get_dir(accessor or ConfigAccessor(), "worktrees")


@dataclass(frozen=True)
class Settings:
    """Snapshot of the configuration, read once per install or update run."""

    git_cache_dir: Path
    worktree_dir: Path
    overrides: Mapping[str, Path] = field(default_factory=dict)
    disable_local_branch_check: bool = False
    timeout: Optional[float] = None
    max_workers: int = 4

    def with_overrides(
        self,
        overrides: Optional[Mapping[str, Path]] = None,
        disable_local_branch_check: Optional[bool] = None,
    ) -> "Settings":
        merged = dict(self.overrides)
        merged.update(overrides or {})
        return Settings(
            git_cache_dir=self.git_cache_dir,
            worktree_dir=self.worktree_dir,
            overrides=merged,
            disable_local_branch_check=(
                self.disable_local_branch_check
                if disable_local_branch_check is None
                else disable_local_branch_check
            ),
            timeout=self.timeout,
            max_workers=self.max_workers,
        )


def load_settings(accessor: Optional[ConfigAccessor] = None) -> Settings:
    """Read the configuration file into an immutable :class:`Settings`."""
    accessor = accessor or ConfigAccessor()

    overrides = {
        uri: Path(path).expanduser() for uri, path in accessor.items("local").items()
    }

    timeout_value = accessor.get("git", "timeout", default_cfg["git"]["timeout"])
    timeout: Optional[float] = None
    if timeout_value:
        try:
            timeout = float(timeout_value)
        except ValueError:
            logger.warning(f"Ignoring invalid git timeout '{timeout_value}'")

    workers_value = accessor.get("git", "max_workers", default_cfg["git"]["max_workers"])
    try:
        max_workers = max(1, int(workers_value))
    except ValueError:
        logger.warning(f"Ignoring invalid max_workers '{workers_value}'")
        max_workers = int(default_cfg["git"]["max_workers"])

    return Settings(
        git_cache_dir=get_git_cache_dir(accessor),
        worktree_dir=get_worktree_dir(accessor),
        overrides=overrides,
        disable_local_branch_check=accessor.getboolean(
            "git", "disable_local_branch_check", False
        ),
        timeout=timeout,
        max_workers=max_workers,
    )
