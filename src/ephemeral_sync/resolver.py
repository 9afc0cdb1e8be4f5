"""Expansion of watch/ignore patterns into the concrete watch set.

Watch patterns are shell globs relative to the root, with hidden entries
matched explicitly. Ignore patterns are literal prefixes tested against each
candidate's root-relative POSIX path:

- a pattern without wildcards is used as-is, so `b/cache` also hides
  `b/cache2` (prefixes are not directory-boundary aware);
- a pattern whose last segment is `*` or `**` (e.g. `.cache/*`) hides
  everything under that directory;
- any other wildcard pattern is expanded against the root first and each
  match becomes a prefix.

There is no gitignore-style negation.
"""

import glob
import logging
import os
import re
from collections.abc import Iterator
from pathlib import Path, PurePosixPath

from .constants import APP_NAME, VCS_DIR_NAME
from .errors import ResolutionError

logger = logging.getLogger(APP_NAME)

_MAGIC = re.compile(r"[*?[]")


def _has_magic(pattern: str) -> bool:
    return _MAGIC.search(pattern) is not None


def _glob(root: Path, pattern: str) -> list[str]:
    return sorted(
        glob.glob(pattern, root_dir=root, recursive=True, include_hidden=True)
    )


def _normalize(match: str) -> str:
    """Turns a glob result such as 'b/' or './a.txt' into 'b' or 'a.txt'."""
    return PurePosixPath(match).as_posix()


def _is_safe_pattern(pattern: str) -> bool:
    path = PurePosixPath(pattern)
    return not path.is_absolute() and ".." not in path.parts


def ignore_prefixes(root: Path, ignore: list[str]) -> list[str]:
    """Converts ignore patterns into the literal prefixes they exclude.

    Args:
        root (Path): The directory wildcard patterns are expanded against.
        ignore (list[str]): The ignore patterns, in configuration order.

    Returns:
        list[str]: Deduplicated prefixes, in pattern order.
    """
    prefixes: dict[str, None] = {}

    for pattern in ignore:
        if not _has_magic(pattern):
            prefixes[pattern] = None
            continue

        head, _, tail = pattern.rstrip("/").rpartition("/")
        if tail in ("*", "**") and not _has_magic(head):
            prefixes[f"{head}/" if head else ""] = None
            continue

        for match in _glob(root, pattern):
            rel = _normalize(match)
            prefixes[f"{rel}/" if (root / rel).is_dir() else rel] = None

    return list(prefixes)


def is_ignored(rel: str, prefixes: list[str]) -> bool:
    """Checks whether a root-relative POSIX path starts with any ignore prefix."""
    return any(rel.startswith(prefix) for prefix in prefixes)


def _readable(path: Path, rel: str) -> bool:
    if path.is_symlink():
        return True
    if not path.is_file():
        logger.debug(f"SKIPPED {rel}: not a regular file.")
        return False
    if not os.access(path, os.R_OK):
        logger.warning(f"PERMISSION DENIED {rel}: excluded from mirror.")
        return False
    return True


def _expand(root: Path, rel: str) -> Iterator[str]:
    """Yields `rel` itself, or every file beneath it when it is a directory.

    Symlinks (including symlinked directories) are yielded as single entries and
    never followed.
    """
    path = root / rel
    if path.is_symlink() or not path.is_dir():
        if _readable(path, rel):
            yield rel
        return

    def on_error(err: OSError) -> None:
        logger.warning(f"UNREADABLE {err.filename}: excluded from mirror ({err}).")

    for dirpath, dirnames, filenames in os.walk(path, onerror=on_error):
        current = Path(dirpath)
        base = current.relative_to(root)

        for name in list(dirnames):
            if (current / name).is_symlink():
                dirnames.remove(name)
                filenames.append(name)
        dirnames.sort()

        for name in sorted(filenames):
            file_rel = (base / name).as_posix()
            if _readable(current / name, file_rel):
                yield file_rel


def resolve(root: Path, watch: list[str], ignore: list[str]) -> list[Path]:
    """Resolves the watch set: every file matched by `watch` minus `ignore`.

    Args:
        root (Path): The directory patterns are relative to (the home directory).
        watch (list[str]): Watch glob patterns, in configuration order.
        ignore (list[str]): Ignore patterns, in configuration order.

    Returns:
        list[Path]: Root-relative paths of files and symlinks to mirror,
                    deduplicated, in pattern order then sorted walk order.

    Raises:
        ResolutionError: If the root is missing or unreadable.
    """
    if not root.is_dir():
        raise ResolutionError(f"Watch root is not a directory: {root}")
    if not os.access(root, os.R_OK | os.X_OK):
        raise ResolutionError(f"Watch root is not readable: {root}")

    prefixes = ignore_prefixes(root, ignore)
    selected: dict[str, None] = {}

    for pattern in watch:
        if not _is_safe_pattern(pattern):
            logger.warning(f"Watch pattern '{pattern}' escapes {root}. Skipping.")
            continue

        matches = _glob(root, pattern)
        if not matches:
            logger.debug(f"No match for watch pattern '{pattern}'.")
            continue

        for match in matches:
            for rel in _expand(root, _normalize(match)):
                if rel.split("/", 1)[0] == VCS_DIR_NAME:
                    logger.debug(f"SKIPPED {rel}: reserved for mirror history.")
                    continue
                if is_ignored(rel, prefixes):
                    logger.debug(f"IGNORED {rel}")
                    continue
                selected.setdefault(rel)

    return [Path(rel) for rel in selected]
