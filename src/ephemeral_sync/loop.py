import enum
import logging
import threading
from pathlib import Path

from . import bootstrap
from .config import SyncConfig
from .constants import APP_NAME, VCS_DIR_NAME
from .errors import BootstrapError, SyncError
from .git_wrapper import GitRepo
from .mirror import rebuild_mirror
from .publish import PublishResult, ensure_repository, publish
from .resolver import resolve

logger = logging.getLogger(APP_NAME)


class LoopState(enum.Enum):
    IDLE = "idle"
    CYCLING = "cycling"
    STOPPED = "stopped"


class ReconciliationLoop:
    """Drives resolve -> mirror -> publish on a fixed interval until stopped.

    Cycles run strictly one after another. `stop()` never interrupts a cycle in
    progress; it only prevents the next one and wakes the interval sleep.

    Attributes:
        config (SyncConfig): The configuration loaded at process start.
        home (Path): The watch root.
        mirror_dir (Path): The mirror repository owned by this loop.
        state (LoopState): IDLE until prepared, CYCLING, then STOPPED.
        cycles (int): Number of cycles run so far.
    """

    def __init__(
        self,
        config: SyncConfig,
        home: Path,
        mirror_dir: Path,
        stop_event: threading.Event | None = None,
    ):
        self.config = config
        self.home = home
        self.mirror_dir = mirror_dir
        self.state = LoopState.IDLE
        self.cycles = 0
        self._stop = stop_event or threading.Event()
        self._repo: GitRepo | None = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def prepare(self) -> None:
        """Performs first-run bootstrap and opens the mirror repository.

        A restore is attempted only when the mirror has no history yet and a
        `restore_url` is configured; a failed restore is logged and the loop
        starts from a fresh repository.

        Raises:
            PublishError: If the mirror repository cannot be initialized.
        """
        first_run = not (self.mirror_dir / VCS_DIR_NAME).exists()
        if first_run and self.config.restore_url:
            try:
                bootstrap.bootstrap(
                    self.config.restore_url,
                    self.mirror_dir,
                    self.home,
                    self.config.branch,
                    self.config.timeout,
                )
            except BootstrapError as e:
                logger.error(f"RESTORE ERROR: {e}")

        self._repo = ensure_repository(
            self.mirror_dir,
            self.config.remote,
            self.config.branch,
            self.config.remote_name,
        )
        if not self.config.remote:
            logger.warning("No 'remote' configured. Revisions will be kept locally.")
        self.state = LoopState.CYCLING

    def run_cycle(self) -> PublishResult | None:
        """Runs one resolve -> mirror -> publish pass.

        Returns:
            PublishResult | None: The publish outcome, or None if a step failed
                                  (the failure is logged and retried next cycle).
        """
        if self._stop.is_set():
            logger.debug("Stop requested. Cycle not started.")
            return None
        self.cycles += 1
        try:
            if self._repo is None:
                self.prepare()
            repo = self._repo
            entries = resolve(self.home, self.config.watch, self.config.ignore)
            rebuild_mirror(self.home, entries, self.mirror_dir)
            return publish(repo, self.config)
        except (SyncError, OSError, RuntimeError) as e:
            logger.error(f"CYCLE ERROR: {e}")
            return None

    def run_forever(self) -> None:
        """Cycles until `stop()` is called, sleeping `cooldown` seconds between.

        Preparation happens inside the first cycle, so a repository that cannot
        be opened yet is retried on the next interval like any other failure.
        """
        logger.info(f"Sync loop running every {self.config.cooldown}s.")
        while not self._stop.is_set():
            self.run_cycle()
            logger.debug(f"Sleeping for {self.config.cooldown} seconds.")
            if self._stop.wait(self.config.cooldown):
                break

        self.state = LoopState.STOPPED
        logger.info("Sync loop stopped.")

    def stop(self) -> None:
        """Requests a stop; the current cycle, if any, finishes first."""
        self._stop.set()
        self.state = LoopState.STOPPED
