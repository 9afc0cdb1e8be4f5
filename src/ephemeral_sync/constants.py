import os
from pathlib import Path

"""Global constants and filesystem layout for ephemeral-sync.

When ``EPHEMERAL_SYNC_WORKSPACE`` points at a persistent volume, every piece of
state (configuration, mirror, log, PID file) lives under it. Otherwise the
configuration follows ``~/.config`` and runtime state follows XDG_STATE_HOME.
"""

# --- Identity ---
APP_NAME = "ephemeral-sync"
"""str: The human-readable application name, also used as the logger name."""

# --- Paths ---
_WORKSPACE = os.environ.get("EPHEMERAL_SYNC_WORKSPACE")
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR: Path = Path(_WORKSPACE) if _WORKSPACE else _BASE_STATE / APP_NAME
"""Path: The directory for runtime state data (mirror, log, PID file)."""

CONFIG_DIR: Path = (
    Path(_WORKSPACE) if _WORKSPACE else Path.home() / ".config" / APP_NAME
)
"""Path: The directory holding the configuration file."""

CONFIG_FILE: Path = CONFIG_DIR / "config"
"""Path: The line-oriented configuration file."""

MIRROR_DIR: Path = STATE_DIR / "repo"
"""Path: The snapshot mirror (git working tree) of the watched files."""

LOG_FILE: Path = STATE_DIR / "sync.log"
"""Path: The activity log written by the daemon."""

PID_FILE: Path = STATE_DIR / "sync.pid"
"""Path: The file storing the running daemon's process ID."""

# --- Engine defaults ---
DEFAULT_COOLDOWN = 30
"""int: Seconds between reconciliation cycles."""

DEFAULT_BRANCH = "main"
"""str: The branch revisions are committed to and pushed."""

DEFAULT_REMOTE_NAME = "origin"
"""str: The git remote name used for publishing."""

DEFAULT_NETWORK_TIMEOUT = 120
"""int: Upper bound in seconds for a single clone, pull, push or download."""

DEFAULT_MAX_LOG_SIZE = 5 * 1024 * 1024
"""int: Bytes before the activity log is rotated."""

VCS_DIR_NAME = ".git"
"""str: The metadata directory preserved across mirror rebuilds."""

MIRROR_EXCLUDES = ["*.log", "*.pid"]
"""list[str]: Patterns written to the mirror's .git/info/exclude on creation."""

INITIAL_COMMIT_MESSAGE = "Initial repository setup"
"""str: Message of the empty commit that starts every mirror history."""

COMMIT_MESSAGE_PREFIX = "Ephemeral sync"
"""str: Prefix of the timestamped message on each published revision."""

DEFAULT_WATCH = [
    ".bashrc",
    ".zshrc",
    ".gitconfig",
    ".ssh/id_rsa",
    ".ssh/config",
    ".Claude/",
]
"""list[str]: Watch patterns written into a freshly generated config file."""

DEFAULT_IGNORE = [
    ".cache/*",
    ".npm/*",
    ".local/share/Trash/*",
]
"""list[str]: Ignore patterns written into a freshly generated config file."""
