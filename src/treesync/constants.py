import os
from pathlib import Path

"""Global constants and path definitions for treesync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the fixed values used when talking to git.
"""

# --- Identity ---
APP_NAME = "treesync"
"""str: The application name, also the root logger name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "treesync"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "treesync.log"
"""Path: The default file path for persistent logs."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/treesync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "treesync.toml"
"""str: The per-project configuration file name."""

# --- Git ---
GIT_ENV = {
    "GCM_INTERACTIVE": "never",  # credential manager UI
    "GIT_TERMINAL_PROMPT": "0",  # every other prompt
}
"""dict[str, str]: Environment overrides applied to every git invocation."""

DEFAULT_URL_PATTERN = "git@github.com:{}/{}"
"""str: Remote url pattern, formatted with the organization and the git file."""

NO_PUSH_URL = "nopushurl"
"""str: Push url given to `upstream` so that pushing to it always fails."""

TS_EXTENSION = ".ts"
"""str: Extension of the Qt translation files regenerated by every build."""
