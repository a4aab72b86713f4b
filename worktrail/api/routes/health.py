from __future__ import annotations

import os

from fastapi import APIRouter, Request

from worktrail import __version__
from worktrail.api.schemas import HealthResponse
from worktrail.errors import WorkTrailError
from worktrail.services.engine import get_engine
from worktrail.utils.logger import api_logger

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    response = HealthResponse(version=__version__, pid=os.getpid())
    workspace = getattr(request.app.state, "workspace", None)
    if workspace is None:
        return response

    response.workspace = str(workspace)
    try:
        engine = get_engine(workspace, home=getattr(request.app.state, "home", None))
        report = await engine.check_health()
    except WorkTrailError as e:
        api_logger.warning("Health check could not inspect store", error=str(e))
        response.status = "error"
        response.store_reason = str(e)
        return response

    response.store = str(engine.store.root)
    response.store_state = report.state.value
    response.store_reason = report.reason
    if not report.usable and engine.store.root.exists():
        response.status = "degraded"
    return response
