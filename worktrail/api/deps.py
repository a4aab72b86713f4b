from __future__ import annotations

from pathlib import Path

from fastapi import Request

from worktrail.errors import ValidationError
from worktrail.services.engine import ProjectEngine, get_engine


def get_workspace(request: Request) -> Path:
    workspace = getattr(request.app.state, "workspace", None)
    if workspace is None:
        raise ValidationError("Server was started without a workspace")
    return Path(workspace)


def get_project_engine(request: Request) -> ProjectEngine:
    home = getattr(request.app.state, "home", None)
    return get_engine(get_workspace(request), home=home)
