import logging
from pathlib import Path

from rich.console import Console

from . import bootstrap, daemon
from .config import SyncConfig, write_default_config
from .constants import APP_NAME, CONFIG_FILE, MIRROR_DIR, PID_FILE
from .errors import BootstrapError
from .loop import ReconciliationLoop
from .publish import PublishResult

console = Console()
logger = logging.getLogger(APP_NAME)


def run_once(
    config: SyncConfig, home: Path, mirror_dir: Path = MIRROR_DIR
) -> PublishResult | None:
    """Runs a single reconciliation cycle in the foreground.

    Args:
        config (SyncConfig): The loaded configuration.
        home (Path): The watch root.
        mirror_dir (Path): The mirror repository.

    Returns:
        PublishResult | None: The publish outcome, or None if the cycle failed.
    """
    loop = ReconciliationLoop(config, home, mirror_dir)
    loop.prepare()
    return loop.run_cycle()


def restore_files(
    config: SyncConfig, home: Path, mirror_dir: Path = MIRROR_DIR
) -> int:
    """Restores the home directory from the configured `restore_url`.

    Returns:
        int: The number of files written (0 when no restore_url is set).

    Raises:
        BootstrapError: If the source is unsupported or cannot be fetched.
    """
    if not config.restore_url:
        logger.info("No restore_url specified. Skipping restore.")
        return 0

    count = bootstrap.bootstrap(
        config.restore_url, mirror_dir, home, config.branch, config.timeout
    )
    logger.info("Restore complete.")
    return count


def deploy(
    url: str,
    home: Path,
    mirror_dir: Path = MIRROR_DIR,
    config_file: Path = CONFIG_FILE,
    pid_file: Path = PID_FILE,
    start: bool = True,
) -> int:
    """First-run setup on a fresh machine from a git remote.

    Clones (or fast-forwards) the remote into the mirror, restores it onto the
    home directory, writes a config pointing `remote` at `url` if none exists,
    and starts the daemon.

    Args:
        url (str): The git remote holding the snapshot.
        home (Path): The home directory to restore into.
        mirror_dir (Path): The mirror repository.
        config_file (Path): Where the configuration is written.
        pid_file (Path): The daemon PID file.
        start (bool): Whether to start the daemon afterwards.

    Returns:
        int: The number of files restored.

    Raises:
        BootstrapError: If `url` is not a git source or cannot be cloned.
    """
    if bootstrap.classify_source(url) is not bootstrap.SourceKind.GIT:
        raise BootstrapError(f"deploy requires a git remote, got: {url}")

    console.print(f"Starting ephemeral-sync deployment from: [cyan]{url}[/cyan]")
    existing = SyncConfig.load(config_file) if config_file.exists() else SyncConfig()

    with console.status("Fetching snapshot...", spinner="dots"):
        count = bootstrap.bootstrap(
            url, mirror_dir, home, existing.branch, existing.timeout
        )
    console.print(f"[bold green]✔[/bold green] Restored {count} files into {home}.")

    if config_file.exists():
        console.print(f"Keeping existing config at [cyan]{config_file}[/cyan].")
    else:
        write_default_config(config_file, remote=url)
        console.print(f"Created config at [cyan]{config_file}[/cyan].")

    if start:
        if (pid := daemon.check_instance(pid_file)) is not None:
            console.print(f"[yellow]Daemon already running (PID {pid}).[/yellow]")
        else:
            pid = daemon.spawn_daemon()
            console.print(f"[bold green]✔[/bold green] Daemon started (PID {pid}).")

    return count
