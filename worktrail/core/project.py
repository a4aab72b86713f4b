"""Per-project context shared by every engine operation.

A ProjectContext bundles the workspace, its identity, the location of its
private history store and the ignore policy. It replaces process-wide
singletons so several projects can be driven from one process.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from worktrail.config.settings import settings
from worktrail.core.identity import ProjectIdentity, project_identity
from worktrail.errors import ValidationError
from worktrail.services.ignore import IgnorePolicy
from worktrail.store.dulwich_store import DulwichHistoryStore
from worktrail.utils.logger import get_logger

logger = get_logger("project")


@dataclass
class ProjectContext:
    """Everything an operation needs to act on one project.

    Attributes:
        identity: Stable identity derived from the workspace path.
        workspace: Absolute path to the live working directory.
        store_root: Absolute path to the project's history store.
        ignore_policy: Rule set applied to every mirror traversal.
        verify_snapshots: Re-read the log after each capture.
    """

    identity: ProjectIdentity
    workspace: Path
    store_root: Path
    ignore_policy: IgnorePolicy
    verify_snapshots: bool = True
    store: DulwichHistoryStore = field(init=False)

    def __post_init__(self) -> None:
        self.store = DulwichHistoryStore(self.store_root)

    @property
    def excluded_paths(self) -> tuple[Path, ...]:
        """The WorkTrail home and store root, when they live inside the workspace."""
        workspace = self.workspace.resolve()
        store_root = self.store_root.resolve()
        return tuple(
            path
            for path in (store_root.parent, store_root)
            if path != workspace and path.is_relative_to(workspace)
        )

    @classmethod
    def open(
        cls,
        workspace: str | Path | None,
        home: Path | None = None,
        ignore_patterns: Iterable[str] | None = None,
        *,
        verify_snapshots: bool | None = None,
    ) -> ProjectContext:
        """Build the context for ``workspace``.

        Raises:
            ValidationError: no workspace given, or it is not a directory.
        """
        if workspace is None or str(workspace).strip() == "":
            raise ValidationError("No workspace folder is open")

        identity = project_identity(workspace)
        if not identity.path.is_dir():
            raise ValidationError(f"Workspace directory not found: {identity.path}")

        home_dir = Path(home) if home is not None else settings.home
        patterns = (
            tuple(ignore_patterns)
            if ignore_patterns is not None
            else settings.ignore_patterns
        )
        context = cls(
            identity=identity,
            workspace=identity.path,
            store_root=identity.store_path(home_dir),
            ignore_policy=IgnorePolicy(patterns),
            verify_snapshots=(
                settings.verify_snapshots
                if verify_snapshots is None
                else verify_snapshots
            ),
        )
        logger.debug(
            "Project context opened",
            project=identity.key,
            workspace=str(identity.path),
            store=str(context.store_root),
        )
        return context
