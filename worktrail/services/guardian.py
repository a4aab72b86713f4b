"""Health check and repair of a project's history store.

The guardian runs before every mutating operation. ``check`` only reads;
``repair`` may reinitialize store metadata and, as a last resort, discard it,
but it never touches the workspace.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from worktrail.errors import IntegrityError, OperationCancelled, StoreError
from worktrail.store.adapter import HistoryStore
from worktrail.utils.logger import get_logger

logger = get_logger("guardian")

ConfirmCallback = Callable[[str], bool]


class HealthState(str, Enum):
    """Store health states."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"  # Problem found, repair is expected to fix it
    REPAIRED = "repaired"  # Usable again, prior history was discarded
    UNRECOVERABLE = "unrecoverable"  # Blocks every mutating operation


@dataclass
class HealthReport:
    state: HealthState
    reason: str | None = None
    actions: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def usable(self) -> bool:
        return self.state in (HealthState.HEALTHY, HealthState.REPAIRED)

    @property
    def history_forfeited(self) -> bool:
        return self.state == HealthState.REPAIRED


class IntegrityGuardian:
    def __init__(self, store: HistoryStore):
        self.store = store

    def check(self) -> HealthReport:
        """Read-only health check."""
        root = self.store.root

        if root.exists() and not root.is_dir():
            return HealthReport(
                HealthState.UNRECOVERABLE,
                f"History store path {root} is not a directory",
            )
        if not root.exists():
            return HealthReport(
                HealthState.DEGRADED, "History store has not been created yet"
            )
        if not os.access(root, os.R_OK | os.W_OK | os.X_OK):
            return HealthReport(
                HealthState.UNRECOVERABLE,
                f"History store at {root} is not accessible",
            )
        if not self.store.metadata_dir.is_dir():
            return HealthReport(HealthState.DEGRADED, "History store metadata is missing")

        try:
            self.store.status()
            self.store.log(max_count=1)
        except StoreError as exc:
            return HealthReport(
                HealthState.DEGRADED, f"History store is unreadable: {exc}"
            )

        if not self.store.is_valid_store():
            return HealthReport(HealthState.DEGRADED, "History store failed validation")

        return HealthReport(HealthState.HEALTHY)

    def repair(self) -> HealthReport:
        """Bring the store back to a usable state.

        Safe to call repeatedly. Steps:
        1. Missing store root: create it and initialize.
        2. Missing metadata: initialize in place, mirrored files untouched.
        3. Unreadable status: reinitialize missing scaffolding.
        4. With at least one snapshot: reset to HEAD and remove untracked
           files, tolerating failures as warnings.
        5. Verify; on failure discard the metadata and start a fresh history.
        """
        report = HealthReport(HealthState.HEALTHY)
        root = self.store.root

        if root.exists() and not root.is_dir():
            report.state = HealthState.UNRECOVERABLE
            report.reason = f"History store path {root} is not a directory"
            logger.error("History store cannot be repaired", store=str(root))
            return report

        try:
            if not root.exists():
                self.store.init()
                report.actions.append("Created history store")
            elif not self.store.metadata_dir.is_dir():
                self.store.init()
                report.actions.append("Reinitialized missing store metadata")
            else:
                self._repair_existing(report)
        except StoreError as exc:
            report.warnings.append(str(exc))
            logger.warning("Store repair step failed", store=str(root), error=str(exc))

        if self._verify():
            if report.actions:
                logger.info(
                    "History store repaired", store=str(root), actions=report.actions
                )
            return report

        return self._last_resort(report)

    def _repair_existing(self, report: HealthReport) -> None:
        try:
            self.store.status()
        except StoreError as exc:
            logger.warning(
                "Store status failed, reinitializing",
                store=str(self.store.root),
                error=str(exc),
            )
            report.reason = str(exc)
            self.store.init()
            report.actions.append("Reinitialized store metadata")

        try:
            has_snapshots = bool(self.store.log(max_count=1))
        except StoreError as exc:
            report.warnings.append(f"Could not read history: {exc}")
            return

        if not has_snapshots:
            return

        try:
            self.store.hard_reset_to_head()
            report.actions.append("Reset store to latest snapshot")
        except StoreError as exc:
            report.warnings.append(f"Reset to latest snapshot failed: {exc}")
            logger.warning(
                "Store reset failed", store=str(self.store.root), error=str(exc)
            )

        try:
            removed = self.store.clean_untracked()
            if removed:
                report.actions.append(f"Removed {len(removed)} untracked file(s)")
        except StoreError as exc:
            report.warnings.append(f"Removing untracked files failed: {exc}")
            logger.warning(
                "Store clean failed", store=str(self.store.root), error=str(exc)
            )

    def _verify(self) -> bool:
        if not self.store.is_valid_store():
            return False
        try:
            self.store.status()
        except StoreError:
            return False
        return True

    def _last_resort(self, report: HealthReport) -> HealthReport:
        metadata_dir = self.store.metadata_dir
        logger.warning(
            "Store verification failed, discarding history metadata",
            store=str(self.store.root),
        )
        try:
            if metadata_dir.is_dir() and not metadata_dir.is_symlink():
                shutil.rmtree(metadata_dir)
            elif metadata_dir.exists() or metadata_dir.is_symlink():
                metadata_dir.unlink()
            self.store.init()
        except (OSError, StoreError) as exc:
            report.state = HealthState.UNRECOVERABLE
            report.reason = f"History store could not be rebuilt: {exc}"
            logger.error(
                "History store is unrecoverable",
                store=str(self.store.root),
                error=str(exc),
            )
            return report

        if not self._verify():
            report.state = HealthState.UNRECOVERABLE
            report.reason = "History store is still invalid after rebuild"
            logger.error("History store is unrecoverable", store=str(self.store.root))
            return report

        report.state = HealthState.REPAIRED
        report.actions.append("Discarded store metadata and started a new history")
        report.warnings.append(
            "Previous snapshot history could not be recovered and was discarded"
        )
        return report

    def ensure_ready(self, confirm: ConfirmCallback | None = None) -> HealthReport:
        """Gate a mutating operation on store health.

        A store that does not exist yet is created without asking. Any other
        problem is described to ``confirm``; declining (or passing no
        callback) cancels the operation.

        Raises:
            OperationCancelled: the user declined to proceed.
            IntegrityError: the store cannot be made usable.
        """
        report = self.check()
        if report.state == HealthState.HEALTHY:
            return report
        if report.state == HealthState.UNRECOVERABLE:
            raise IntegrityError(report.reason or "History store is unrecoverable")

        if self.store.root.exists():
            warning = (
                f"{report.reason}. Repair the history store and continue? "
                "Your workspace files will not be modified."
            )
            if confirm is None or not confirm(warning):
                raise OperationCancelled(
                    f"{report.reason}; operation cancelled. Run repair to fix the store."
                )

        repaired = self.repair()
        if not repaired.usable:
            raise IntegrityError(repaired.reason or "History store is unrecoverable")
        return repaired
