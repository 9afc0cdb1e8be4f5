import atexit
import logging
import os
import signal
import subprocess
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from rich.console import Console

from .config import SyncConfig
from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_MAX_LOG_SIZE,
    LOG_FILE,
    MIRROR_DIR,
    PID_FILE,
)
from .errors import SyncError
from .loop import ReconciliationLoop

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

err_console = Console(stderr=True)


def read_pid(pid_file: Path = PID_FILE) -> int | None:
    """Reads the PID file.

    Returns:
        int | None: The recorded PID, or None if the file is missing or corrupt.
    """
    try:
        return int(pid_file.read_text().strip())
    except (OSError, ValueError):
        return None


def is_process_alive(pid: int) -> bool:
    """Checks whether a process with `pid` exists (signal 0 probe)."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, but belongs to another user.
        return True
    return True


def check_instance(pid_file: Path = PID_FILE) -> int | None:
    """Returns the PID of the live daemon, discarding a stale PID file.

    Args:
        pid_file (Path): The PID file to inspect.

    Returns:
        int | None: The running daemon's PID, or None if none is alive.
    """
    if not pid_file.exists():
        return None

    pid = read_pid(pid_file)
    if pid is not None and is_process_alive(pid):
        return pid

    logger.info(f"Removing stale PID file {pid_file} (pid {pid}).")
    pid_file.unlink(missing_ok=True)
    return None


def write_pid(pid_file: Path = PID_FILE) -> None:
    """Records the current PID and removes it again at interpreter exit."""
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(os.getpid()))
    pid = os.getpid()

    def cleanup() -> None:
        if read_pid(pid_file) == pid:
            pid_file.unlink(missing_ok=True)

    atexit.register(cleanup)


def stop_daemon(pid_file: Path = PID_FILE) -> int | None:
    """Sends SIGTERM to the running daemon.

    The daemon finishes its current cycle before exiting.

    Returns:
        int | None: The PID that was signalled, or None if nothing was running.
    """
    pid = check_instance(pid_file)
    if pid is None:
        return None

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pass
    pid_file.unlink(missing_ok=True)
    logger.info(f"Daemon (PID: {pid}) stopped by user request.")
    return pid


def spawn_daemon(log_file: Path = LOG_FILE) -> int:
    """Starts the daemon as a detached background process.

    Returns:
        int: The PID of the new process.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    proc = subprocess.Popen(
        [sys.executable, "-m", "ephemeral_sync.daemon"],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    return proc.pid


def setup_logging(
    interactive: bool,
    max_log_size: int = DEFAULT_MAX_LOG_SIZE,
    log_file: Path = LOG_FILE,
) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to file/stderr
                            with rotation enabled.
        max_log_size (int): Bytes before the log file rotates.
        log_file (Path): The activity log.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def install_signal_handlers(loop: ReconciliationLoop) -> None:
    """Routes SIGTERM and SIGINT into a graceful loop stop."""

    def handle_stop(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received {signal.Signals(signum).name}. Stopping after cycle.")
        loop.stop()

    signal.signal(signal.SIGTERM, handle_stop)
    signal.signal(signal.SIGINT, handle_stop)


def main(
    config_file: Path = CONFIG_FILE,
    home: Path | None = None,
    mirror_dir: Path = MIRROR_DIR,
    pid_file: Path = PID_FILE,
    log_file: Path = LOG_FILE,
) -> int:
    """The daemon entry point: load config, claim the PID file, loop forever.

    Returns:
        int: The process exit code.
    """
    try:
        config = SyncConfig.load(config_file)
    except SyncError as e:
        setup_logging(False, log_file=log_file)
        logger.critical(f"FATAL: {e}")
        err_console.print(f"[bold red]FATAL:[/bold red] {e}")
        return 1

    setup_logging(False, config.max_log_size, log_file)

    if (running := check_instance(pid_file)) is not None:
        logger.error(f"Another instance is already running with PID {running}.")
        return 1

    write_pid(pid_file)
    logger.info(f"Daemon started with PID {os.getpid()}.")

    loop = ReconciliationLoop(config, home or Path.home(), mirror_dir)
    install_signal_handlers(loop)

    try:
        loop.run_forever()
    except SyncError as e:
        logger.critical(f"FATAL: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
