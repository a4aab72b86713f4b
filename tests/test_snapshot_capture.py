"""Tests for snapshot capture and snapshot lookup."""

import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from worktrail.core.project import ProjectContext
from worktrail.errors import CopyError, ValidationError
from worktrail.services.snapshots import SnapshotCoordinator, resolve_snapshot


@pytest.fixture
def coordinator(context) -> SnapshotCoordinator:
    return SnapshotCoordinator(context)


def test_first_capture_creates_store_and_snapshot(context, coordinator, write_files):
    write_files(context.workspace, {"a.txt": "1", "src/app.py": "x = 1\n"})

    result = coordinator.capture("add login")

    assert result.committed
    assert result.verified
    assert result.snapshot.prompt == "add login"
    assert result.snapshot.short_hash == result.snapshot.hash[:8]
    assert result.message.startswith("add login | Snapshot @ ")
    log = context.store.log()
    assert [entry.hash for entry in log] == [result.snapshot.hash]
    assert context.store.read_blob(log[0].hash, "src/app.py") == b"x = 1\n"


def test_capture_without_changes_is_no_op(context, coordinator, write_files):
    write_files(context.workspace, {"a.txt": "1"})
    coordinator.capture()

    result = coordinator.capture("nothing new")

    assert result.status == "no_op"
    assert result.snapshot is None
    assert len(context.store.log()) == 1


def test_capture_of_empty_workspace_is_no_op(context, coordinator):
    result = coordinator.capture()

    assert not result.committed
    assert context.store.log() == []


def test_capture_records_deletions(context, coordinator, write_files):
    write_files(context.workspace, {"a.txt": "1", "b.txt": "2"})
    first = coordinator.capture()
    (context.workspace / "b.txt").unlink()

    second = coordinator.capture()

    assert second.committed
    assert context.store.read_blob(first.snapshot.hash, "b.txt") == b"2"
    assert context.store.read_blob(second.snapshot.hash, "b.txt") is None


def test_ignored_entries_are_never_captured(context, coordinator, write_files):
    write_files(
        context.workspace,
        {
            "a.txt": "1",
            "node_modules/dep/index.js": "x",
            ".git/HEAD": "ref: refs/heads/main",
            ".env": "SECRET=1",
        },
    )

    result = coordinator.capture()
    head = result.snapshot.hash

    assert context.store.read_blob(head, "node_modules/dep/index.js") is None
    assert context.store.read_blob(head, ".env") is None
    # The workspace's own git metadata is untouched
    assert (context.workspace / ".git" / "HEAD").read_text() == "ref: refs/heads/main"


def test_ignored_changes_alone_are_no_op(context, coordinator, write_files):
    write_files(context.workspace, {"a.txt": "1"})
    coordinator.capture()
    write_files(context.workspace, {"node_modules/new.js": "x"})

    assert coordinator.capture().status == "no_op"


def test_capture_does_not_modify_workspace(context, coordinator, write_files):
    write_files(context.workspace, {"a.txt": "1", "dir/b.txt": "2"})
    before = sorted(p.relative_to(context.workspace) for p in context.workspace.rglob("*"))

    coordinator.capture()

    after = sorted(p.relative_to(context.workspace) for p in context.workspace.rglob("*"))
    assert before == after


def test_prompt_with_delimiter_is_rejected_before_anything_happens(context, coordinator):
    with pytest.raises(ValidationError):
        coordinator.capture("x | Snapshot @ 2020-01-01T00:00:00.000Z")

    assert not context.store_root.exists()


def test_copy_failure_records_nothing(context, coordinator, write_files):
    write_files(context.workspace, {"a.txt": "1"})
    coordinator.capture()
    write_files(context.workspace, {"a.txt": "2", "b.txt": "new"})
    original_copy2 = shutil.copy2

    def failing_copy2(src, dst, *args, **kwargs):
        if Path(src).name == "b.txt":
            raise PermissionError("Permission denied")
        return original_copy2(src, dst, *args, **kwargs)

    with patch.object(shutil, "copy2", failing_copy2):
        with pytest.raises(CopyError):
            coordinator.capture("partial")

    assert len(context.store.log()) == 1


def test_verification_can_be_disabled(workspace, worktrail_home, write_files):
    context = ProjectContext.open(
        workspace, home=worktrail_home, verify_snapshots=False
    )
    write_files(workspace, {"a.txt": "1"})

    result = SnapshotCoordinator(context).capture()

    assert result.committed
    assert not result.verified


def test_resolve_snapshot_by_prefix(context, coordinator, write_files):
    write_files(context.workspace, {"a.txt": "1"})
    first = coordinator.capture()
    write_files(context.workspace, {"a.txt": "2"})
    second = coordinator.capture()

    full = resolve_snapshot(context.store, first.snapshot.hash)
    assert full.hash == first.snapshot.hash
    assert (
        resolve_snapshot(context.store, second.snapshot.hash[:10]).hash
        == second.snapshot.hash
    )


@pytest.mark.parametrize("ref", ["", "   ", "deadbeef"])
def test_resolve_snapshot_rejects_unknown(context, coordinator, write_files, ref):
    write_files(context.workspace, {"a.txt": "1"})
    coordinator.capture()

    with pytest.raises(ValidationError):
        resolve_snapshot(context.store, ref)


def test_capture_includes_directories_named_like_ignore_rules(
    context, coordinator, write_files
):
    write_files(
        context.workspace,
        {
            "src/routes/index.ts": "export {}\n",
            "src/layouts/main.ts": "export {}\n",
            "environments/prod.py": "DEBUG = False\n",
        },
    )

    result = coordinator.capture("x")

    assert result.committed
    for path in ("src/routes/index.ts", "src/layouts/main.ts", "environments/prod.py"):
        assert context.store.read_blob(result.snapshot.hash, path) is not None, path


def test_capture_with_home_inside_workspace(workspace, write_files):
    home = workspace / "wt_home"
    context = ProjectContext.open(workspace, home=home)
    write_files(workspace, {"a.txt": "1"})

    result = SnapshotCoordinator(context).capture()

    assert result.committed
    assert context.store.read_blob(result.snapshot.hash, "a.txt") == b"1"
    assert not (context.store_root / "wt_home").exists()
