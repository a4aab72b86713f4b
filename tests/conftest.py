"""Shared pytest fixtures for all tests."""

from pathlib import Path

import pytest

from worktrail.config import settings
from worktrail.core.project import ProjectContext
from worktrail.services.engine import reset_engines


@pytest.fixture(autouse=True)
def worktrail_home(monkeypatch, tmp_path_factory):
    """Use a temporary WorkTrail home for config and stores during tests."""
    home = Path(tmp_path_factory.mktemp("worktrail_home"))
    monkeypatch.setenv("WORKTRAIL_HOME", str(home))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    yield home
    # Engines and the attached config manager are process-wide
    reset_engines()
    settings._config_manager = None


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def write_files():
    """Write a {relative path: content} mapping below a root directory."""

    def _write(root: Path, files: dict[str, str | bytes]) -> None:
        for rel, content in files.items():
            target = root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                target.write_bytes(content)
            else:
                target.write_text(content)

    return _write


@pytest.fixture
def context(workspace: Path, worktrail_home: Path) -> ProjectContext:
    return ProjectContext.open(workspace, home=worktrail_home)
