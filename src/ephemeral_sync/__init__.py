"""ephemeral-sync: keep selected home-directory files mirrored into git.

This package provides the reconciliation engine (pattern resolution, snapshot
mirroring, publishing, bootstrap restore), the background daemon that drives
it, and the command-line interface.

Submodules are not imported here: the daemon runs as
``python -m ephemeral_sync.daemon`` and must not be loaded by the package first.
"""

__all__ = [
    "bootstrap",
    "cli",
    "config",
    "constants",
    "daemon",
    "errors",
    "git_wrapper",
    "loop",
    "mirror",
    "ops",
    "publish",
    "resolver",
]
