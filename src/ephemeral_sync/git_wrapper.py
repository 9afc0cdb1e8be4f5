import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME, VCS_DIR_NAME

logger = logging.getLogger(APP_NAME)


def _git(
    args: list[str],
    cwd: Path | None = None,
    capture: bool = True,
    env: dict | None = None,
    timeout: float | None = None,
) -> str:
    """Executes a git command and returns its stripped stdout.

    Raises:
        RuntimeError: If git exits non-zero or exceeds `timeout`.
    """
    try:
        res = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=capture,
            text=True,
            check=True,
            env=env,
            timeout=timeout,
        )
        return res.stdout.strip() if capture else ""
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"Git error: {(e.stderr or '').strip() or e}") from e
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(f"Git timed out after {timeout}s: git {args[0]}") from e


def noninteractive_env() -> dict[str, str]:
    """Returns an environment in which git never waits on a prompt."""
    env = os.environ.copy()
    env["GIT_SSH_COMMAND"] = "ssh -o BatchMode=yes"
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env


class GitRepo:
    """A wrapper around the Git command-line interface for the mirror repository.

    Each method maps to one operation the reconciliation engine needs from its
    version control backend: init, remotes, staging, change detection, commit,
    push, clone and fast-forward pull.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        if not (self.path / VCS_DIR_NAME).exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @classmethod
    def init(cls, path: Path, branch: str) -> "GitRepo":
        """Creates a new repository whose HEAD points at `branch`.

        `symbolic-ref` is used instead of `init -b` so older git releases work.

        Args:
            path (Path): The directory to initialize (created if missing).
            branch (str): The initial branch name.

        Returns:
            GitRepo: The new repository.
        """
        path.mkdir(parents=True, exist_ok=True)
        _git(["init", "--quiet"], cwd=path)
        _git(["symbolic-ref", "HEAD", f"refs/heads/{branch}"], cwd=path)
        return cls(path)

    @classmethod
    def clone(cls, url: str, path: Path, timeout: float | None = None) -> "GitRepo":
        """Clones `url` into `path`.

        Args:
            url (str): The source repository URL.
            path (Path): The target directory (must be missing or empty).
            timeout (float | None): Seconds before the clone is aborted.

        Returns:
            GitRepo: The cloned repository.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        _git(
            ["clone", "--quiet", url, str(path)],
            env=noninteractive_env(),
            timeout=timeout,
        )
        return cls(path)

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        env: dict | None = None,
        timeout: float | None = None,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Defaults to None.
            timeout (float | None, optional): Seconds before the command is
                                              killed. Defaults to None.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        return _git(args, cwd=self.path, capture=capture, env=env, timeout=timeout)

    def ensure_identity(self) -> None:
        """Sets a repository-local commit identity when none is configured.

        Fresh instances often lack a global `user.name`/`user.email`, which would
        make every commit fail.
        """
        for key, fallback in (
            ("user.name", APP_NAME),
            ("user.email", f"{APP_NAME}@localhost"),
        ):
            try:
                self._run(["config", "--get", key])
            except RuntimeError:
                logger.debug(f"No git {key} configured; using '{fallback}'.")
                self._run(["config", key, fallback])

    def remote_url(self, name: str) -> str | None:
        """Returns the URL of a remote, or None if it is not defined."""
        try:
            return self._run(["remote", "get-url", name]) or None
        except RuntimeError:
            return None

    def add_remote(self, name: str, url: str) -> None:
        """Registers a new remote."""
        self._run(["remote", "add", name, url])

    def set_remote_url(self, name: str, url: str) -> None:
        """Points an existing remote at a new URL."""
        self._run(["remote", "set-url", name, url])

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "-A"], capture=False)

    def staged_changes(self) -> list[str]:
        """Lists staged changes relative to HEAD.

        Returns:
            list[str]: `git diff --cached --name-status` lines, e.g. 'D\\tfoo'.
                       Empty when the index matches HEAD.
        """
        output = self._run(["diff", "--cached", "--name-status"])
        return output.splitlines() if output else []

    def commit(self, message: str, allow_empty: bool = False) -> None:
        """Creates a new commit with the provided message.

        Hooks are bypassed; the mirror is not a developer checkout.

        Args:
            message (str): The commit message.
            allow_empty (bool, optional): Whether to commit with no changes.
                                          Defaults to False.
        """
        cmd = ["commit", "--quiet", "--no-verify", "-m", message]
        if allow_empty:
            cmd.append("--allow-empty")
        self._run(cmd)

    def push(self, remote: str, branch: str, timeout: float | None = None) -> None:
        """Pushes `branch` to `remote`, never prompting for credentials."""
        self._run(
            ["push", "--quiet", remote, branch],
            env=noninteractive_env(),
            timeout=timeout,
        )

    def pull(self, source: str, branch: str, timeout: float | None = None) -> None:
        """Fast-forwards the current branch from `source` (a remote name or URL).

        Raises:
            RuntimeError: If histories diverged or the source is unreachable.
        """
        self._run(
            ["pull", "--quiet", "--ff-only", source, branch],
            env=noninteractive_env(),
            timeout=timeout,
        )

    def current_branch(self) -> str | None:
        """Returns the branch HEAD points at, or None when HEAD is detached."""
        try:
            return self._run(["symbolic-ref", "--short", "--quiet", "HEAD"]) or None
        except RuntimeError:
            return None

    def checkout_branch(self, branch: str, start: str | None = None) -> None:
        """Switches to `branch`, (re)creating it at `start` or the current HEAD.

        On an unborn HEAD only the symbolic ref is moved.
        """
        if self.rev_parse("HEAD") is None:
            self._run(["symbolic-ref", "HEAD", f"refs/heads/{branch}"])
            return
        cmd = ["checkout", "--quiet", "-B", branch]
        if start:
            cmd.append(start)
        self._run(cmd)

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, relative ref) to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD', 'main').

        Returns:
            Optional[str]:  The full SHA-1 hash,
                            or None if the revision could not be resolved.
        """
        try:
            return self._run(["rev-parse", "--verify", "--quiet", rev])
        except Exception as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

    def revision_count(self, rev: str = "HEAD") -> int:
        """Counts the commits reachable from `rev` (0 for an unborn branch)."""
        if self.rev_parse(rev) is None:
            return 0
        return int(self._run(["rev-list", "--count", rev]))

    def unpushed_count(self, remote: str, branch: str) -> int:
        """Counts local commits on `branch` missing from its remote-tracking ref.

        Every local commit counts as unpushed when the remote-tracking ref does
        not exist yet (nothing has been pushed).

        Raises:
            RuntimeError: If `branch` does not exist locally.
        """
        if self.rev_parse(f"refs/heads/{branch}") is None:
            raise RuntimeError(f"Local branch '{branch}' does not exist")
        tracking = f"refs/remotes/{remote}/{branch}"
        if self.rev_parse(tracking) is None:
            return self.revision_count(branch)
        return int(self._run(["rev-list", "--count", f"{tracking}..{branch}"]))

    def get_last_commit_time(self, rev: str = "HEAD") -> str:
        """Gets the relative time since the last commit (e.g. '2 hours ago').

        Raises:
            RuntimeError: If the revision does not exist.
        """
        return self._run(["log", "-1", "--format=%cr", rev])
