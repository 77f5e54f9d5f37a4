import logging
import re
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, ClassVar

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_URL_PATTERN,
    LOCAL_CONFIG_NAME,
)

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        ignore_uncommitted (bool): Whether repositories with uncommitted or
                                   stashed changes may be deleted anyway.
    """

    ignore_uncommitted: bool = False


@dataclass
class ToolsConfig:
    """External tool locations.

    Attributes:
        git (str): The git binary, either a name looked up in PATH or a path.
    """

    git: str = "git"


@dataclass
class GitConfig:
    """Defaults for clone and pull operations.

    Attributes:
        url_pattern (str): Pattern for new remotes, formatted with the
                           organization and the git file.
        branch (str): Branch to clone or pull when none is given.
        shallow (bool): Whether clones use `--depth 1`.
        ignore_ts_on_clone (bool): Mark tracked .ts files assume-unchanged after
                                   cloning.
        revert_ts_on_pull (bool): Revert tracked .ts files before pulling.
        username (str): user.name set on fresh clones, empty to leave unset.
        email (str): user.email set on fresh clones, empty to leave unset.
        org (str): Organization of the developer's fork; when set, fresh clones
                   get their `origin` renamed to `upstream`.
        key (str): Key file stored for the new `origin` remote.
        no_push_upstream (bool): Make `upstream` refuse pushes.
        push_default_origin (bool): Make `origin` the default push remote.
    """

    url_pattern: str = DEFAULT_URL_PATTERN
    branch: str = "master"
    shallow: bool = False
    ignore_ts_on_clone: bool = False
    revert_ts_on_pull: bool = False
    username: str = ""
    email: str = ""
    org: str = ""
    key: str = ""
    no_push_upstream: bool = False
    push_default_origin: bool = False


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        tools (ToolsConfig): External tool locations.
        git (GitConfig): Clone and pull defaults.
        limits (LimitsConfig): Resource limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    git: GitConfig = field(default_factory=GitConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    # Cache for the base global configuration
    _global_cache: ClassVar["Config | None"] = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The project directory to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Start with a copy of the cached global config
        instance = cls._global_cache.copy()

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section="tool.treesync")

        return instance

    def copy(self) -> "Config":
        """Returns a copy whose sections can be modified independently."""
        return replace(
            self,
            core=replace(self.core),
            tools=replace(self.tools),
            git=replace(self.git),
            limits=replace(self.limits),
        )

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.treesync').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            for name in ("core", "tools", "git", "limits"):
                if name in data:
                    setattr(
                        self,
                        name,
                        self._update_dataclass(name, getattr(self, name), data[name]),
                    )

            unknown = set(data.keys()) - {"core", "tools", "git", "limits"}
            if unknown:
                logger.warning(
                    f"Unknown config sections in {path}: {', '.join(sorted(unknown))}. "
                    "Ignoring."
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and values."""
        defaults = {f.name: getattr(instance, f.name) for f in fields(instance)}
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(defaults.keys())
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in defaults:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif isinstance(defaults[k], bool) and not isinstance(v, bool):
                    raise ValueError(f"Expected true or false, got '{v}'")
                elif isinstance(defaults[k], str) and not isinstance(v, str):
                    raise ValueError(f"Expected a string, got '{v}'")
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
