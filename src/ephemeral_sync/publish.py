import datetime
import logging
import socket
from dataclasses import dataclass, field
from pathlib import Path

from .config import SyncConfig
from .constants import (
    APP_NAME,
    COMMIT_MESSAGE_PREFIX,
    INITIAL_COMMIT_MESSAGE,
    MIRROR_EXCLUDES,
    VCS_DIR_NAME,
)
from .errors import PublishError
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


@dataclass
class PublishResult:
    """Outcome of one publish attempt.

    Attributes:
        committed (bool): Whether a new revision was recorded.
        changes (list[str]): `name-status` lines of the recorded revision.
        pushed (bool): Whether the local history reached the remote.
        push_error (str | None): Why a push failed or was skipped, if it was.
    """

    committed: bool = False
    changes: list[str] = field(default_factory=list)
    pushed: bool = False
    push_error: str | None = None


def ensure_repository(
    mirror_dir: Path,
    remote: str | None,
    branch: str,
    remote_name: str = "origin",
) -> GitRepo:
    """Opens the mirror repository, creating it on first run.

    A new repository gets an empty initial commit so that the history always has
    a revision to diff against. A mirror found on another branch (a clone of a
    remote whose default branch differs) is moved onto `branch`. When `remote`
    is set it is registered as `remote_name`, or the existing remote is
    repointed if its URL differs.

    Args:
        mirror_dir (Path): The mirror working tree.
        remote (str | None): The publish URL.
        branch (str): The branch to commit to.
        remote_name (str): The remote name to register `remote` under.

    Returns:
        GitRepo: The mirror repository.

    Raises:
        PublishError: If git fails to initialize or configure the repository.
    """
    try:
        if not (mirror_dir / VCS_DIR_NAME).exists():
            logger.info(f"Initializing new Git repository in {mirror_dir}.")
            repo = GitRepo.init(mirror_dir, branch)
            exclude = mirror_dir / VCS_DIR_NAME / "info" / "exclude"
            exclude.parent.mkdir(parents=True, exist_ok=True)
            exclude.write_text("\n".join(MIRROR_EXCLUDES) + "\n")
        else:
            repo = GitRepo(mirror_dir)

        repo.ensure_identity()
        if repo.current_branch() != branch:
            logger.info(f"Switching mirror to branch '{branch}'.")
            repo.checkout_branch(branch)
        if repo.rev_parse("HEAD") is None:
            repo.commit(INITIAL_COMMIT_MESSAGE, allow_empty=True)

        if remote:
            current = repo.remote_url(remote_name)
            if current is None:
                logger.info(f"Setting remote {remote_name} to {remote}.")
                repo.add_remote(remote_name, remote)
            elif current != remote:
                logger.info(f"Repointing remote {remote_name}: {current} -> {remote}.")
                repo.set_remote_url(remote_name, remote)
    except RuntimeError as e:
        raise PublishError(f"Could not prepare repository {mirror_dir}: {e}") from e

    return repo


def get_remote_host(url: str) -> str | None:
    """Extracts the hostname from a git remote URL.

    Supports both SSH (git@host:path) and URL (scheme://host/path) formats.

    Args:
        url (str): The remote URL.

    Returns:
        str | None: The hostname (e.g., 'github.com') or None for local paths.
    """
    if "://" in url:
        netloc = url.split("://", 1)[1].split("/", 1)[0]
        host = netloc.rsplit("@", 1)[-1].split(":", 1)[0]
        return host or None
    # scp-like syntax: [user@]host:path
    if ":" in url and not url.startswith("/"):
        host = url.split(":", 1)[0].rsplit("@", 1)[-1]
        return host or None
    return None


def is_remote_reachable(host: str, timeout: float = 3) -> bool:
    """Performs a quick TCP connectivity check on the remote host.

    Args:
        host (str): The hostname to check.
        timeout (float): Seconds to wait per port.

    Returns:
        bool: True if the host accepts connections on port 443 or 22, False otherwise.
    """
    if not host:
        return False

    for port in [443, 22]:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            continue
    return False


def _attempt_push(repo: GitRepo, config: SyncConfig, result: PublishResult) -> None:
    """Pushes any unpushed local history to the configured remote.

    Failures are logged and recorded on `result`; the local history is kept and
    the next cycle retries.
    """
    try:
        pending = repo.unpushed_count(config.remote_name, config.branch)
    except RuntimeError as e:
        result.push_error = str(e)
        logger.error(f"PUSH ERROR: could not inspect local history: {e}")
        return

    if pending == 0:
        logger.debug("Remote is up to date. Push skipped.")
        return

    host = get_remote_host(config.remote or "")
    if host and not is_remote_reachable(host):
        result.push_error = f"{host} unreachable"
        logger.info(f"OFFLINE: {host} unreachable. {pending} revision(s) queued.")
        return

    logger.info(f"Pushing {pending} revision(s) to {config.remote_name}...")
    try:
        repo.push(config.remote_name, config.branch, timeout=config.timeout)
        result.pushed = True
        logger.info("PUSHED: Push successful.")
    except RuntimeError as e:
        result.push_error = str(e)
        logger.error(f"PUSH ERROR: {e}")


def publish(repo: GitRepo, config: SyncConfig) -> PublishResult:
    """Records the mirror's current content as a revision and pushes it.

    No revision is created when the content did not change. Without a
    configured remote the revision is only kept locally.

    Args:
        repo (GitRepo): The mirror repository.
        config (SyncConfig): Supplies the remote, branch and network timeout.

    Returns:
        PublishResult: What was committed and pushed.

    Raises:
        PublishError: If staging or committing fails.
    """
    result = PublishResult()

    try:
        repo.add_all()
        changes = repo.staged_changes()
        if changes:
            timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            message = f"{COMMIT_MESSAGE_PREFIX}: {timestamp}"
            repo.commit(message)
            result.committed = True
            result.changes = changes
            logger.info(f"COMMITTED: {message} ({len(changes)} files changed)")
        else:
            logger.info("NO CHANGES: Skipping commit.")
    except RuntimeError as e:
        raise PublishError(f"Could not record revision: {e}") from e

    if not config.remote:
        if result.committed:
            logger.warning("No remote configured. Revision kept locally.")
        return result

    _attempt_push(repo, config, result)
    return result
