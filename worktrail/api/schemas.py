"""API request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from worktrail.services.analysis import ChangeStats, FileChangeRecord
from worktrail.services.guardian import HealthReport
from worktrail.services.restore import RestoreResult
from worktrail.services.snapshots import CaptureResult, SnapshotDescriptor
from worktrail.services.timeline import TimelineEntry


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "worktrail"
    version: str | None = None
    pid: int | None = None
    workspace: str | None = None
    store: str | None = None
    store_state: str | None = None  # healthy | degraded | repaired | unrecoverable
    store_reason: str | None = None


class ErrorResponse(BaseModel):
    detail: str
    repair_available: bool = False


class SnapshotModel(BaseModel):
    hash: str
    short_hash: str
    message: str
    prompt: str = ""
    timestamp: str | None = None
    date: datetime

    @classmethod
    def from_descriptor(cls, descriptor: SnapshotDescriptor) -> SnapshotModel:
        return cls(
            hash=descriptor.hash,
            short_hash=descriptor.short_hash,
            message=descriptor.message,
            prompt=descriptor.prompt,
            timestamp=descriptor.timestamp,
            date=descriptor.date,
        )


class FileChangeModel(BaseModel):
    filename: str
    lines_added: int
    lines_removed: int
    status: str = Field(..., description="added | modified | deleted")
    description: str = Field(..., description="Added | Deleted | Modified | Changed")
    binary: bool = False

    @classmethod
    def from_record(cls, record: FileChangeRecord) -> FileChangeModel:
        return cls(
            filename=record.filename,
            lines_added=record.lines_added,
            lines_removed=record.lines_removed,
            status=record.status.value,
            description=record.description,
            binary=record.binary,
        )


class ChangeStatsModel(BaseModel):
    files_changed: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    file_details: list[FileChangeModel] = Field(default_factory=list)

    @classmethod
    def from_stats(cls, stats: ChangeStats) -> ChangeStatsModel:
        return cls(
            files_changed=stats.files_changed,
            lines_added=stats.lines_added,
            lines_removed=stats.lines_removed,
            file_details=[FileChangeModel.from_record(r) for r in stats.file_details],
        )


class TimelineEntryModel(BaseModel):
    snapshot: SnapshotModel
    previous_hash: str | None = None
    stats: ChangeStatsModel
    summary: str

    @classmethod
    def from_entry(cls, entry: TimelineEntry) -> TimelineEntryModel:
        return cls(
            snapshot=SnapshotModel.from_descriptor(entry.snapshot),
            previous_hash=entry.previous_hash,
            stats=ChangeStatsModel.from_stats(entry.stats),
            summary=entry.summary,
        )


class TimelineResponse(BaseModel):
    project: str
    snapshots: list[TimelineEntryModel]


class CaptureRequest(BaseModel):
    prompt: str | None = Field(None, description="Optional note stored with the snapshot")
    proceed_if_degraded: bool = Field(
        False, description="Repair an unhealthy store and continue instead of failing"
    )


class CaptureResponse(BaseModel):
    status: str = Field(..., description="committed | no_op")
    snapshot: SnapshotModel | None = None
    message: str
    verified: bool = False
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: CaptureResult) -> CaptureResponse:
        return cls(
            status=result.status,
            snapshot=(
                SnapshotModel.from_descriptor(result.snapshot)
                if result.snapshot
                else None
            ),
            message=result.message,
            verified=result.verified,
            warnings=result.warnings,
        )


class DiffResponse(BaseModel):
    older: str
    newer: str
    stats: ChangeStatsModel
    summary: str
    diff: str | None = Field(None, description="Unified diff text when requested")


class RestoreRequest(BaseModel):
    snapshot: str = Field(..., description="Snapshot hash or unique prefix")
    confirm: bool = Field(
        False, description="Must be true: files not in the snapshot are deleted"
    )


class RestoreResponse(BaseModel):
    restored_to: str
    resync_status: str = Field(..., description="committed | no_op | failed")
    new_snapshot: str | None = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: RestoreResult) -> RestoreResponse:
        return cls(
            restored_to=result.restored_to,
            resync_status=result.resync_status,
            new_snapshot=result.new_snapshot,
            warnings=result.warnings,
        )


class HealthReportModel(BaseModel):
    state: str
    reason: str | None = None
    actions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: HealthReport) -> HealthReportModel:
        return cls(
            state=report.state.value,
            reason=report.reason,
            actions=report.actions,
            warnings=report.warnings,
        )


class SummaryRequest(BaseModel):
    older: str
    newer: str


class SummaryResponse(BaseModel):
    summary: str
    risk: str
