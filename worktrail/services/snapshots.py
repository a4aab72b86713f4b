"""Snapshot capture: mirror the workspace into the store and commit it."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from worktrail.config.constants import SHORT_HASH_LENGTH
from worktrail.core.project import ProjectContext
from worktrail.errors import CommitError, StoreError, ValidationError
from worktrail.services.guardian import ConfirmCallback, IntegrityGuardian
from worktrail.services.messages import SnapshotMessage
from worktrail.services.mirror import MirrorReport, mirror
from worktrail.store.adapter import CommitResult, CommitStatus, HistoryStore, LogEntry
from worktrail.utils.logger import get_logger

logger = get_logger("snapshots")


@dataclass(frozen=True)
class SnapshotDescriptor:
    hash: str
    short_hash: str
    message: str
    prompt: str
    timestamp: str | None
    date: datetime

    @classmethod
    def from_log(cls, entry: LogEntry) -> SnapshotDescriptor:
        parsed = SnapshotMessage.parse(entry.message)
        return cls(
            hash=entry.hash,
            short_hash=entry.hash[:SHORT_HASH_LENGTH],
            message=entry.message,
            prompt=parsed.prompt,
            timestamp=parsed.timestamp,
            date=parsed.moment or entry.date,
        )


@dataclass
class CaptureResult:
    """Outcome of a capture.

    ``status`` is ``no_op`` when nothing changed since the last snapshot; in
    that case ``snapshot`` is None and nothing was appended to the history.
    """

    status: CommitStatus
    snapshot: SnapshotDescriptor | None
    message: str
    verified: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def committed(self) -> bool:
        return self.status == "committed"


def resolve_snapshot(store: HistoryStore, ref: str) -> LogEntry:
    """Find a snapshot by full hash or unique hash prefix.

    Raises:
        ValidationError: empty, unknown or ambiguous reference.
    """
    needle = (ref or "").strip().lower()
    if not needle:
        raise ValidationError("No snapshot selected")

    matches = [entry for entry in store.log() if entry.hash.startswith(needle)]
    if not matches:
        raise ValidationError(f"Snapshot {ref} not found")
    if len(matches) > 1 and not any(entry.hash == needle for entry in matches):
        raise ValidationError(f"Snapshot reference {ref} is ambiguous")
    return next((entry for entry in matches if entry.hash == needle), matches[0])


class SnapshotCoordinator:
    def __init__(
        self, context: ProjectContext, guardian: IntegrityGuardian | None = None
    ):
        self.context = context
        self.store = context.store
        self.guardian = guardian or IntegrityGuardian(context.store)

    def record(self, message: SnapshotMessage) -> tuple[CommitResult, MirrorReport]:
        """Mirror the workspace into the store, stage and commit.

        A mirror failure propagates before anything is staged, so no partial
        snapshot is ever recorded.

        Raises:
            IntegrityError: store metadata disappeared.
            CopyError: the workspace could not be copied.
            CommitError: staging or committing failed.
        """
        report = mirror(
            self.context.workspace,
            self.store.root,
            self.context.ignore_policy,
            exclude=self.context.excluded_paths,
        )
        try:
            self.store.stage(".")
        except StoreError as exc:
            raise CommitError(f"Could not stage snapshot: {exc}") from exc
        result = self.store.commit(message.format())
        return result, report

    def capture(
        self, prompt: str | None = None, confirm: ConfirmCallback | None = None
    ) -> CaptureResult:
        """Take a snapshot of the workspace.

        Args:
            prompt: Optional free text stored with the snapshot.
            confirm: Asked whether to proceed when the store needs repair.
        """
        message = SnapshotMessage.create(prompt)
        health = self.guardian.ensure_ready(confirm)
        warnings = list(health.warnings)

        result, report = self.record(message)
        warnings.extend(report.warnings)
        text = message.format()

        if not result.committed:
            logger.info(
                "No changes since last snapshot", project=self.context.identity.key
            )
            return CaptureResult(
                status="no_op", snapshot=None, message=text, warnings=warnings
            )

        commit_id = result.commit_id or ""
        snapshot, verified = self._describe(commit_id, text, warnings)
        logger.info(
            "Snapshot captured",
            project=self.context.identity.key,
            commit_id=commit_id[:SHORT_HASH_LENGTH],
            files=report.copied_files,
            verified=verified,
        )
        return CaptureResult(
            status="committed",
            snapshot=snapshot,
            message=text,
            verified=verified,
            warnings=warnings,
        )

    def _describe(
        self, commit_id: str, text: str, warnings: list[str]
    ) -> tuple[SnapshotDescriptor, bool]:
        """Build the descriptor, re-reading the log when verification is on."""
        fallback = SnapshotDescriptor.from_log(
            LogEntry(hash=commit_id, message=text, date=datetime.now(UTC))
        )
        if not self.context.verify_snapshots:
            return fallback, False

        try:
            latest = self.store.log(max_count=1)
        except StoreError as exc:
            logger.warning("Snapshot verification failed", error=str(exc))
            warnings.append(f"Could not verify snapshot: {exc}")
            return fallback, False

        if not latest or latest[0].hash != commit_id or latest[0].message != text:
            logger.warning(
                "Snapshot verification mismatch",
                expected=commit_id[:SHORT_HASH_LENGTH],
                found=latest[0].hash[:SHORT_HASH_LENGTH] if latest else None,
            )
            warnings.append("Latest snapshot does not match the one just recorded")
            return fallback, False

        return SnapshotDescriptor.from_log(latest[0]), True
