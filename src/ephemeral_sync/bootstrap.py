"""Reconstruction of a home directory from a remote snapshot.

A restore source is either a git repository (cloned, or fast-forwarded when the
mirror already has history) or a packaged archive (downloaded and extracted
into the mirror). Either way the mirror is then overlaid onto the home
directory without deleting anything already there.
"""

import enum
import logging
import os
import shutil
import tarfile
import tempfile
import urllib.error
import urllib.parse
import urllib.request
import zipfile
from pathlib import Path, PurePosixPath

from .constants import APP_NAME, VCS_DIR_NAME
from .errors import BootstrapError
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)

ARCHIVE_SUFFIXES = (".zip", ".tar", ".tar.gz", ".tgz")
GIT_SCHEMES = ("git", "ssh", "git+ssh")


class SourceKind(enum.Enum):
    """The two supported restore source forms."""

    GIT = "git"
    ARCHIVE = "archive"


def _url_path(url: str) -> str:
    parsed = urllib.parse.urlsplit(url)
    path = parsed.path if parsed.scheme else url.split("?", 1)[0].split("#", 1)[0]
    return path.rstrip("/")


def classify_source(url: str) -> SourceKind:
    """Decides whether a restore URL names a git repository or an archive.

    Args:
        url (str): The restore source.

    Returns:
        SourceKind: GIT for `.git` paths, git/ssh schemes or scp-like
                    `user@host:path.git`; ARCHIVE for .zip/.tar/.tar.gz/.tgz.

    Raises:
        BootstrapError: If the URL matches neither form.
    """
    scheme = urllib.parse.urlsplit(url).scheme.lower()
    # urlsplit reads 'git@host:repo.git' as scheme 'git@host'; only real schemes count.
    if "@" in scheme or len(scheme) == 1:
        scheme = ""
    path = _url_path(url).lower()

    if path.endswith(ARCHIVE_SUFFIXES):
        return SourceKind.ARCHIVE
    if path.endswith(".git") or scheme in GIT_SCHEMES:
        return SourceKind.GIT
    raise BootstrapError(
        f"Unsupported restore_url format: {url}. "
        "Must be a Git URL (.git) or an archive (.zip, .tar, .tar.gz, .tgz)."
    )


def fetch_archive(url: str, dest: Path, timeout: float) -> None:
    """Downloads `url` to `dest`.

    Raises:
        BootstrapError: On any network or HTTP failure.
    """
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp, open(
            dest, "wb"
        ) as f:
            shutil.copyfileobj(resp, f)
    except (urllib.error.URLError, OSError, ValueError) as e:
        raise BootstrapError(f"Failed to download archive from {url}: {e}") from e
    logger.info(f"Downloaded archive from {url} ({dest.stat().st_size} bytes).")


def _check_member(name: str) -> None:
    member = PurePosixPath(name)
    if member.is_absolute() or ".." in member.parts:
        raise BootstrapError(f"Refusing unsafe archive member: {name}")


def _extract_zip(archive: Path, target: Path) -> None:
    with zipfile.ZipFile(archive) as zf:
        infos = zf.infolist()
        for info in infos:
            _check_member(info.filename)
        for info in infos:
            extracted = Path(zf.extract(info, target))
            mode = (info.external_attr >> 16) & 0o7777
            if mode and not info.is_dir():
                os.chmod(extracted, mode)


def _extract_tar(archive: Path, target: Path) -> None:
    with tarfile.open(archive) as tf:
        for member in tf.getmembers():
            _check_member(member.name)
        tf.extractall(target, filter="data")


def extract_archive(archive: Path, target: Path) -> None:
    """Extracts a zip or tar archive into `target`, overwriting existing files.

    Raises:
        BootstrapError: If the archive is corrupt or holds unsafe paths.
    """
    target.mkdir(parents=True, exist_ok=True)
    try:
        if zipfile.is_zipfile(archive):
            _extract_zip(archive, target)
        elif tarfile.is_tarfile(archive):
            _extract_tar(archive, target)
        else:
            raise BootstrapError(f"Not a zip or tar archive: {archive}")
    except (zipfile.BadZipFile, tarfile.TarError, OSError) as e:
        raise BootstrapError(f"Failed to extract {archive}: {e}") from e
    logger.info(f"Extracted archive into {target}.")


def materialize(url: str, mirror_dir: Path, branch: str, timeout: float) -> SourceKind:
    """Populates the mirror directory from a restore source.

    Args:
        url (str): The restore source.
        mirror_dir (Path): The mirror to populate.
        branch (str): The branch pulled when the mirror already has history.
        timeout (float): Seconds allowed for the network operation.

    Returns:
        SourceKind: The form the source was handled as.

    Raises:
        BootstrapError: If the URL is unsupported or the fetch fails.
    """
    kind = classify_source(url)

    if kind is SourceKind.GIT:
        try:
            if (mirror_dir / VCS_DIR_NAME).exists():
                logger.info(f"Existing mirror found. Pulling latest from {url}.")
                GitRepo(mirror_dir).pull(url, branch, timeout=timeout)
            else:
                if mirror_dir.exists() and any(mirror_dir.iterdir()):
                    raise BootstrapError(
                        f"{mirror_dir} is not empty and has no history to pull into"
                    )
                logger.info(f"Cloning {url} into {mirror_dir}.")
                repo = GitRepo.clone(url, mirror_dir, timeout=timeout)
                tracking = f"origin/{branch}"
                if repo.rev_parse(f"refs/remotes/{tracking}") is not None:
                    repo.checkout_branch(branch, tracking)
                elif repo.current_branch() != branch:
                    logger.info(f"{url} has no '{branch}' branch. Creating it locally.")
                    repo.checkout_branch(branch)
        except RuntimeError as e:
            raise BootstrapError(f"Failed to fetch {url}: {e}") from e
        return kind

    with tempfile.TemporaryDirectory() as tmp:
        archive = Path(tmp) / "restore-archive"
        fetch_archive(url, archive, timeout)
        extract_archive(archive, mirror_dir)
    return kind


def overlay(mirror_dir: Path, home: Path) -> int:
    """Copies the mirror's content onto `home`, excluding its .git directory.

    Nothing in `home` is deleted: unrelated files stay, same-path files are
    overwritten. An item that cannot be written (a file in `home` where the
    snapshot has a directory, a permission error) is logged and skipped, along
    with everything beneath it.

    Args:
        mirror_dir (Path): The populated mirror.
        home (Path): The directory to restore into.

    Returns:
        int: The number of files written.
    """
    copied = 0

    for dirpath, dirnames, filenames in os.walk(mirror_dir):
        current = Path(dirpath)
        rel = current.relative_to(mirror_dir)
        if current == mirror_dir and VCS_DIR_NAME in dirnames:
            dirnames.remove(VCS_DIR_NAME)

        for name in list(dirnames):
            if (current / name).is_symlink():
                dirnames.remove(name)
                filenames.append(name)

        target_dir = home / rel
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"SKIPPED {rel}/: cannot create directory in {home} ({e}).")
            dirnames.clear()
            continue

        for name in filenames:
            src, dst = current / name, target_dir / name
            if dst.is_dir() and not dst.is_symlink():
                logger.warning(f"SKIPPED {rel / name}: a directory exists in {home}.")
                continue

            try:
                if dst.is_symlink() or dst.exists():
                    dst.unlink()
                if src.is_symlink():
                    os.symlink(os.readlink(src), dst)
                else:
                    shutil.copy2(src, dst)
            except OSError as e:
                logger.warning(f"SKIPPED {rel / name}: {e}")
                continue
            copied += 1

    logger.info(f"RESTORED: {copied} files from {mirror_dir} to {home}.")
    return copied


def bootstrap(
    url: str, mirror_dir: Path, home: Path, branch: str, timeout: float
) -> int:
    """Materializes the mirror from `url` and overlays it onto `home`.

    Running it twice with an unchanged source leaves `home` identical.

    Returns:
        int: The number of files written into `home`.

    Raises:
        BootstrapError: If the source is unsupported or cannot be fetched.
    """
    logger.info(f"Attempting to restore from {url}.")
    materialize(url, mirror_dir, branch, timeout)
    return overlay(mirror_dir, home)
