import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .constants import (
    APP_NAME,
    DEFAULT_BRANCH,
    DEFAULT_COOLDOWN,
    DEFAULT_IGNORE,
    DEFAULT_MAX_LOG_SIZE,
    DEFAULT_NETWORK_TIMEOUT,
    DEFAULT_REMOTE_NAME,
    DEFAULT_WATCH,
)
from .errors import ConfigurationError

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    text = str(value).strip().lower()
    if text.isdigit():
        return int(text)
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", text)
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


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds.

    A bare number is read as seconds, so `cooldown 30` means thirty seconds.
    """
    if isinstance(value, int):
        return value
    text = str(value).strip().lower()
    if text.isdigit():
        return int(text)
    match = re.match(r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", text)
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


@dataclass
class SyncConfig:
    """Settings for one reconciliation process.

    Loaded once at process start and passed explicitly to the engine, which
    never mutates it.

    Attributes:
        watch (list[str]): Glob patterns, relative to the home directory.
        ignore (list[str]): Prefix patterns excluded from the watch set.
        remote (str | None): Git URL revisions are pushed to.
        restore_url (str | None): Git or archive URL used on first bootstrap.
        cooldown (int): Seconds between reconciliation cycles.
        branch (str): Branch revisions are committed to and pushed.
        remote_name (str): Name under which `remote` is registered in the mirror.
        timeout (int): Upper bound in seconds for each network operation.
        max_log_size (int): Bytes before the activity log rotates.
    """

    watch: list[str] = field(default_factory=list)
    ignore: list[str] = field(default_factory=list)
    remote: str | None = None
    restore_url: str | None = None
    cooldown: int = DEFAULT_COOLDOWN
    branch: str = DEFAULT_BRANCH
    remote_name: str = DEFAULT_REMOTE_NAME
    timeout: int = DEFAULT_NETWORK_TIMEOUT
    max_log_size: int = DEFAULT_MAX_LOG_SIZE

    @classmethod
    def load(cls, path: Path) -> "SyncConfig":
        """Reads and parses a configuration file.

        Args:
            path (Path): The configuration file.

        Returns:
            SyncConfig: The parsed configuration.

        Raises:
            ConfigurationError: If the file is missing, unreadable or malformed.
        """
        try:
            text = path.read_text()
        except FileNotFoundError as e:
            raise ConfigurationError(f"Config file not found at {path}") from e
        except OSError as e:
            raise ConfigurationError(f"Could not read config {path}: {e}") from e
        return cls.parse(text, source=str(path))

    @classmethod
    def parse(cls, text: str, source: str = "<config>") -> "SyncConfig":
        """Parses the line-oriented `<directive> <value>` format.

        Args:
            text (str): The file contents.
            source (str): A name for the source, used in messages.

        Returns:
            SyncConfig: The parsed configuration.

        Raises:
            ConfigurationError: If a directive lacks a value or a value is malformed.
        """
        instance = cls()

        for lineno, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            parts = line.split(maxsplit=1)
            directive = parts[0]
            value = parts[1].strip() if len(parts) > 1 else ""

            if directive not in _DIRECTIVES:
                logger.warning(
                    f"Unknown directive '{directive}' in {source}:{lineno}. Ignoring."
                )
                continue
            if not value:
                raise ConfigurationError(
                    f"Directive '{directive}' requires a value ({source}:{lineno})"
                )

            try:
                instance._apply(directive, value)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid '{directive}' in {source}:{lineno}: {e}"
                ) from e

        return instance

    def _apply(self, directive: str, value: str) -> None:
        if directive == "watch":
            self.watch.append(value)
        elif directive == "ignore":
            self.ignore.append(value)
        elif directive == "remote":
            self.remote = value
        elif directive == "restore_url":
            self.restore_url = value
        elif directive == "cooldown":
            self.cooldown = parse_time(value)
        elif directive == "timeout":
            self.timeout = parse_time(value)
        elif directive == "max_log_size":
            self.max_log_size = parse_size(value)
        elif directive == "branch":
            self.branch = value
        elif directive == "remote_name":
            self.remote_name = value


_DIRECTIVES = {
    "watch",
    "ignore",
    "remote",
    "restore_url",
    "cooldown",
    "timeout",
    "max_log_size",
    "branch",
    "remote_name",
}


def default_config_text(remote: str | None = None) -> str:
    """Renders the commented default configuration file.

    Args:
        remote (str | None): A remote URL to set. When omitted the `remote`
            line is left commented out.

    Returns:
        str: The file contents.
    """
    watch = "\n".join(f"watch {p}" for p in DEFAULT_WATCH)
    ignore = "\n".join(f"ignore {p}" for p in DEFAULT_IGNORE)
    remote_line = f"remote {remote}" if remote else (
        "# remote git@github.com:user/ephemeral-config.git"
    )
    return (
        "# ephemeral-sync configuration\n"
        "# Syntax: <directive> <value>\n"
        "# Directives: watch, ignore, remote, restore_url, cooldown,\n"
        "#             branch, remote_name, timeout, max_log_size\n"
        "# Patterns use shell wildcards (*, ?, [], **) and are relative to $HOME.\n"
        "\n"
        "# Files and directories to watch\n"
        f"{watch}\n"
        "\n"
        "# Path prefixes to ignore (e.g. large caches)\n"
        f"{ignore}\n"
        "\n"
        "# Git remote revisions are pushed to\n"
        f"{remote_line}\n"
        "\n"
        "# Restore source used on first run (a .git URL or a .zip/.tar.gz archive)\n"
        "# restore_url https://example.com/ephemeral-config-backup.zip\n"
        "\n"
        "# Seconds between sync cycles\n"
        f"# cooldown {DEFAULT_COOLDOWN}\n"
    )


def write_default_config(path: Path, remote: str | None = None) -> None:
    """Writes the default configuration file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(default_config_text(remote))
    logger.info(f"Created default config at {path}.")
