"""Error taxonomy shared by the snapshot, restore and repair operations.

Low-level failures (OSError, dulwich errors) are caught at the coordinating
operation and re-raised as one of these classes with a single actionable
message. The original exception is always chained via ``raise ... from``.
"""

from __future__ import annotations


class WorkTrailError(Exception):
    """Base class for all errors raised by WorkTrail."""


class ValidationError(WorkTrailError):
    """Invalid input: no workspace, unknown snapshot, rejected prompt."""


class OperationCancelled(ValidationError):
    """The user declined a confirmation or cancelled input."""


class IntegrityError(WorkTrailError):
    """Store metadata is missing or inaccessible.

    Recoverable through the Integrity Guardian's repair path, so callers
    should offer repair instead of failing silently.
    """

    repair_available = True


class CopyError(WorkTrailError):
    """A filesystem failure interrupted mirroring.

    Raised before anything is staged, so no partial snapshot is recorded.
    """

    def __init__(self, message: str, failures: list[tuple[str, str]] | None = None):
        super().__init__(message)
        self.failures = failures or []


class CommitError(WorkTrailError):
    """The store backend failed to record a commit (other than a no-op)."""


class RestoreError(WorkTrailError):
    """Restore failed before the workspace replacement completed."""


class StoreError(WorkTrailError):
    """Any other failure reported by the history store backend."""
