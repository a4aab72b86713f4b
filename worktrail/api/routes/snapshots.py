"""Snapshot, diff, restore and repair endpoints for the served workspace."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from worktrail.api.deps import get_project_engine
from worktrail.api.schemas import (
    CaptureRequest,
    CaptureResponse,
    ChangeStatsModel,
    DiffResponse,
    HealthReportModel,
    RestoreRequest,
    RestoreResponse,
    SummaryRequest,
    SummaryResponse,
    TimelineEntryModel,
    TimelineResponse,
)
from worktrail.errors import ValidationError
from worktrail.services.analysis import summarize_changes
from worktrail.services.engine import ProjectEngine
from worktrail.utils.logger import api_logger

router = APIRouter(prefix="/api")


@router.get("/snapshots", response_model=TimelineResponse)
async def list_snapshots(
    limit: int | None = Query(None, ge=1, description="Newest snapshots to return"),
    engine: ProjectEngine = Depends(get_project_engine),  # noqa: B008
):
    """List snapshots newest first with change stats against each predecessor."""
    entries = await engine.timeline(max_count=limit)
    return TimelineResponse(
        project=engine.context.identity.name,
        snapshots=[TimelineEntryModel.from_entry(e) for e in entries],
    )


@router.post("/snapshots", response_model=CaptureResponse)
async def create_snapshot(
    payload: CaptureRequest,
    engine: ProjectEngine = Depends(get_project_engine),  # noqa: B008
):
    """Capture the current workspace state.

    An unchanged workspace returns ``status="no_op"`` without a new snapshot.
    """
    result = await engine.capture(
        payload.prompt, confirm=lambda _question: payload.proceed_if_degraded
    )
    api_logger.info(
        "Snapshot request handled",
        status=result.status,
        snapshot=result.snapshot.short_hash if result.snapshot else None,
    )
    return CaptureResponse.from_result(result)


@router.get("/snapshots/{snapshot}/files/{path:path}")
async def get_file(
    snapshot: str,
    path: str,
    engine: ProjectEngine = Depends(get_project_engine),  # noqa: B008
):
    """Raw file content at a snapshot; empty body when the file is absent."""
    content = await engine.file_at(snapshot, path)
    return Response(content=content, media_type="application/octet-stream")


@router.get("/diff", response_model=DiffResponse)
async def diff(
    older: str = Query(..., description="Older snapshot hash or prefix"),
    newer: str = Query(..., description="Newer snapshot hash or prefix"),
    file: str | None = Query(None, description="Limit the diff text to one file"),
    include_text: bool = Query(False, description="Include unified diff text"),
    engine: ProjectEngine = Depends(get_project_engine),  # noqa: B008
):
    stats = await engine.diff_stats(older, newer)
    text = None
    if file:
        text = await engine.file_diff(older, newer, file)
    elif include_text:
        text = await engine.diff_text(older, newer)
    return DiffResponse(
        older=older,
        newer=newer,
        stats=ChangeStatsModel.from_stats(stats),
        summary=summarize_changes(stats),
        diff=text,
    )


@router.post("/restore", response_model=RestoreResponse)
async def restore(
    payload: RestoreRequest,
    engine: ProjectEngine = Depends(get_project_engine),  # noqa: B008
):
    """Replace the workspace with a snapshot and record it as a new snapshot.

    ``confirm`` must be true. It also accepts repairing an unhealthy store
    before the restore runs.
    """
    if not payload.confirm:
        raise ValidationError(
            "Restore deletes files that are not in the snapshot; "
            "send confirm=true to proceed"
        )
    result = await engine.restore(payload.snapshot, confirm=lambda _question: True)
    return RestoreResponse.from_result(result)


@router.post("/repair", response_model=HealthReportModel)
async def repair(engine: ProjectEngine = Depends(get_project_engine)):  # noqa: B008
    report = await engine.repair()
    return HealthReportModel.from_report(report)


@router.post("/summary", response_model=SummaryResponse)
async def summary(
    payload: SummaryRequest,
    engine: ProjectEngine = Depends(get_project_engine),  # noqa: B008
):
    """Natural-language summary and risk note for the diff between two snapshots."""
    result = await engine.summarize(payload.older, payload.newer)
    return SummaryResponse(summary=result.summary, risk=result.risk)
