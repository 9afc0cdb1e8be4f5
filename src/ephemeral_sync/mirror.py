import logging
import os
import shutil
from pathlib import Path

from .constants import APP_NAME, VCS_DIR_NAME

logger = logging.getLogger(APP_NAME)


def clear_mirror(mirror_dir: Path) -> None:
    """Deletes every top-level entry of the mirror except its .git directory.

    Args:
        mirror_dir (Path): The mirror working tree.
    """
    if not mirror_dir.exists():
        return

    for entry in mirror_dir.iterdir():
        if entry.name == VCS_DIR_NAME:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def _copy_entry(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    if src.is_symlink():
        os.symlink(os.readlink(src), dst)
    else:
        shutil.copy2(src, dst)


def rebuild_mirror(root: Path, entries: list[Path], mirror_dir: Path) -> int:
    """Makes the mirror's content exactly equal to the resolved watch set.

    The mirror is cleared and every entry recopied, so files that left the watch
    set disappear from the mirror and git sees them as deletions. Only the
    mirror's .git directory survives.

    Args:
        root (Path): The directory the entries are relative to.
        entries (list[Path]): Root-relative paths from `resolver.resolve`.
        mirror_dir (Path): The mirror working tree.

    Returns:
        int: The number of entries copied.
    """
    mirror_dir.mkdir(parents=True, exist_ok=True)
    clear_mirror(mirror_dir)

    copied = 0
    for rel in entries:
        try:
            _copy_entry(root / rel, mirror_dir / rel)
            copied += 1
        except FileNotFoundError:
            logger.debug(f"SKIPPED {rel}: vanished before copy.")
        except PermissionError as e:
            logger.warning(f"PERMISSION DENIED {rel}: excluded from mirror ({e}).")

    logger.info(f"Mirrored {copied} of {len(entries)} items into {mirror_dir}.")
    return copied
