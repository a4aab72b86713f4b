"""ASGI entrypoint for WorkTrail.

The workspace is taken from WORKTRAIL_WORKSPACE so that
``uvicorn worktrail.api.server:app`` works without the CLI.
"""

import os

from worktrail.api.app import create_app

app = create_app(workspace=os.getenv("WORKTRAIL_WORKSPACE") or None)
