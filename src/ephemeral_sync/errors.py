"""Error taxonomy for the reconciliation engine.

Per-cycle errors are caught by the reconciliation loop and logged; only a
configuration error at first load is fatal to the process.
"""


class SyncError(Exception):
    """Base class for all ephemeral-sync errors."""


class ConfigurationError(SyncError):
    """Raised when the configuration file is missing or malformed."""


class ResolutionError(SyncError):
    """Raised when the watch root cannot be read."""


class PublishError(SyncError):
    """Raised when the mirror cannot be staged or committed."""


class BootstrapError(SyncError):
    """Raised when a restore source is unsupported or cannot be materialized."""
