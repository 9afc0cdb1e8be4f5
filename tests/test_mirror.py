"""Tests for rebuilding the mirror from a resolved watch set."""

import os
from pathlib import Path

from conftest import write
from ephemeral_sync.mirror import clear_mirror, rebuild_mirror


def _tree(root: Path) -> dict[str, str]:
    """Maps every file under root (except .git) to its content."""
    out = {}
    for path in root.rglob("*"):
        rel = path.relative_to(root)
        if rel.parts[0] == ".git" or path.is_dir():
            continue
        out[rel.as_posix()] = path.read_text()
    return out


def test_rebuild_copies_entries(home: Path, mirror_dir: Path) -> None:
    """Verifies each entry lands at the same relative path with the same bytes."""
    write(home, "a.txt", "alpha")
    write(home, "b/keep.txt", "keep")

    count = rebuild_mirror(home, [Path("a.txt"), Path("b/keep.txt")], mirror_dir)

    assert count == 2
    assert _tree(mirror_dir) == {"a.txt": "alpha", "b/keep.txt": "keep"}


def test_rebuild_preserves_mode(home: Path, mirror_dir: Path) -> None:
    """Verifies permission bits are carried into the mirror."""
    key = write(home, ".ssh/id_rsa", "secret")
    key.chmod(0o600)

    rebuild_mirror(home, [Path(".ssh/id_rsa")], mirror_dir)

    assert (mirror_dir / ".ssh/id_rsa").stat().st_mode & 0o777 == 0o600


def test_rebuild_drops_entries_that_left_the_set(
    home: Path, mirror_dir: Path
) -> None:
    """Verifies the mirror equals the watch set, not an accumulation of it."""
    write(home, "a.txt")
    write(home, "b.txt")
    rebuild_mirror(home, [Path("a.txt"), Path("b.txt")], mirror_dir)

    rebuild_mirror(home, [Path("a.txt")], mirror_dir)

    assert set(_tree(mirror_dir)) == {"a.txt"}


def test_rebuild_keeps_vcs_directory(home: Path, mirror_dir: Path) -> None:
    """Verifies the mirror's history survives the clear."""
    write(mirror_dir, ".git/HEAD", "ref: refs/heads/main\n")
    write(mirror_dir, "stale.txt")
    write(home, "a.txt")

    rebuild_mirror(home, [Path("a.txt")], mirror_dir)

    assert (mirror_dir / ".git/HEAD").read_text() == "ref: refs/heads/main\n"
    assert not (mirror_dir / "stale.txt").exists()


def test_rebuild_recreates_symlinks(home: Path, mirror_dir: Path) -> None:
    """Verifies links are copied as links rather than followed."""
    write(home, "real.txt")
    (home / "link").symlink_to("real.txt")

    rebuild_mirror(home, [Path("link")], mirror_dir)

    assert (mirror_dir / "link").is_symlink()
    assert os.readlink(mirror_dir / "link") == "real.txt"


def test_vanished_entry_is_skipped(home: Path, mirror_dir: Path) -> None:
    """Verifies a file deleted between resolve and copy is not fatal."""
    write(home, "a.txt")

    count = rebuild_mirror(home, [Path("gone.txt"), Path("a.txt")], mirror_dir)

    assert count == 1
    assert set(_tree(mirror_dir)) == {"a.txt"}


def test_clear_mirror_on_missing_directory(mirror_dir: Path) -> None:
    """Verifies clearing a mirror that does not exist is a no-op."""
    clear_mirror(mirror_dir)
    assert not mirror_dir.exists()
