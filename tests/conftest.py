"""Shared fixtures: isolated git configuration and throwaway repositories."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Iterator

import pytest

from ephemeral_sync.constants import APP_NAME

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git executable not available"
)


def git(*args: str, cwd: Path | None = None) -> str:
    """Runs a git command for test setup and returns its stdout."""
    res = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return res.stdout.strip()


def write(root: Path, rel: str, text: str = "content") -> Path:
    """Creates `root/rel` (and its parents) with `text`."""
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


@pytest.fixture(autouse=True)
def isolated_git(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keeps the developer's git config out of the tests."""
    global_config = tmp_path_factory.mktemp("gitconfig") / "config"
    global_config.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for var in ("AUTHOR", "COMMITTER"):
        monkeypatch.setenv(f"GIT_{var}_NAME", "Test User")
        monkeypatch.setenv(f"GIT_{var}_EMAIL", "test@example.com")


@pytest.fixture(autouse=True)
def reset_logger() -> Iterator[None]:
    """Removes handlers the daemon's setup_logging attaches during a test."""
    logger = logging.getLogger(APP_NAME)
    before = list(logger.handlers)
    yield
    for handler in list(logger.handlers):
        if handler not in before:
            logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """An empty stand-in for the user's home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def mirror_dir(tmp_path: Path) -> Path:
    """Location of the mirror repository (not created)."""
    return tmp_path / "mirror"


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """A bare repository whose HEAD points at 'main'."""
    path = tmp_path / "remote.git"
    git("init", "--bare", "--quiet", str(path))
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=path)
    return path
