import tempfile
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from ephemeral_sync.mirror import rebuild_mirror
from ephemeral_sync.resolver import is_ignored, resolve

# Strategy: short relative paths built from a small alphabet so that
# generated trees overlap and share prefixes.
segment = st.text(alphabet="abc.", min_size=1, max_size=3).filter(
    lambda s: s not in (".", "..")
)
rel_paths = st.lists(segment, min_size=1, max_size=3).map("/".join)
trees = st.lists(rel_paths, min_size=1, max_size=8, unique=True)


def _materialize(root: Path, paths: list[str]) -> list[str]:
    """Creates the files it can; a path colliding with an existing file is skipped."""
    created = []
    for rel in paths:
        path = root / rel
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(rel)
        except (FileExistsError, NotADirectoryError, IsADirectoryError):
            continue
        created.append(rel)
    return created


@settings(max_examples=50, deadline=None)
@given(paths=trees, ignore=st.lists(rel_paths, max_size=3))
def test_ignored_paths_never_resolve(paths: list[str], ignore: list[str]) -> None:
    """
    Property: No resolved entry starts with a literal ignore prefix, and every
    created file outside the ignore prefixes is resolved.
    """
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        created = _materialize(root, paths)
        existing = {
            p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()
        }

        resolved = {p.as_posix() for p in resolve(root, ["*"], ignore)}

        assert not any(is_ignored(rel, ignore) for rel in resolved)
        assert resolved == {rel for rel in existing if not is_ignored(rel, ignore)}
        assert set(created) <= existing


@settings(max_examples=30, deadline=None)
@given(paths=trees)
def test_mirror_is_deterministic(paths: list[str]) -> None:
    """
    Property: Rebuilding the mirror twice from the same watch set yields the same
    tree, and that tree equals the watch set.
    """
    with tempfile.TemporaryDirectory() as tmp:
        root, mirror = Path(tmp) / "home", Path(tmp) / "mirror"
        root.mkdir()
        _materialize(root, paths)
        entries = resolve(root, ["*"], [])

        def snapshot() -> dict[str, str]:
            return {
                p.relative_to(mirror).as_posix(): p.read_text()
                for p in mirror.rglob("*")
                if p.is_file()
            }

        rebuild_mirror(root, entries, mirror)
        first = snapshot()
        rebuild_mirror(root, entries, mirror)

        assert snapshot() == first
        assert set(first) == {p.as_posix() for p in entries}
