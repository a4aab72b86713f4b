"""Tests for ignore-filtered tree mirroring."""

import os
import shutil
from pathlib import Path
from unittest.mock import patch

import pytest

from worktrail.errors import CopyError, IntegrityError
from worktrail.services.ignore import IgnorePolicy
from worktrail.services.mirror import clean_tree, copy_tree, mirror


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    root = tmp_path / "store"
    (root / ".git").mkdir(parents=True)
    (root / ".git" / "HEAD").write_text("ref: refs/heads/master\n")
    return root


def test_mirror_copies_non_ignored_files(workspace, store_dir, write_files):
    write_files(
        workspace,
        {
            "a.txt": "alpha",
            "src/main.py": "print('hi')\n",
            "node_modules/pkg/index.js": "x",
            ".git/config": "[core]",
        },
    )

    report = mirror(workspace, store_dir, IgnorePolicy())

    assert report.copied_files == 2
    assert (store_dir / "a.txt").read_text() == "alpha"
    assert (store_dir / "src" / "main.py").read_text() == "print('hi')\n"
    assert not (store_dir / "node_modules").exists()
    # Store metadata is untouched and the workspace .git was not copied over it
    assert (store_dir / ".git" / "HEAD").read_text() == "ref: refs/heads/master\n"
    assert not (store_dir / ".git" / "config").exists()


def test_mirror_removes_entries_missing_from_source(workspace, store_dir, write_files):
    write_files(store_dir, {"stale.txt": "old", "olddir/file.txt": "old"})
    write_files(workspace, {"a.txt": "alpha"})

    report = mirror(workspace, store_dir, IgnorePolicy())

    assert report.removed_entries == 2
    assert sorted(p.name for p in store_dir.iterdir()) == [".git", "a.txt"]


def test_mirror_without_metadata_deletes_nothing(workspace, tmp_path, write_files):
    destination = tmp_path / "store"
    write_files(destination, {"keep.txt": "still here"})
    write_files(workspace, {"a.txt": "alpha"})

    with pytest.raises(IntegrityError) as exc_info:
        mirror(workspace, destination, IgnorePolicy())

    assert exc_info.value.repair_available
    assert (destination / "keep.txt").read_text() == "still here"
    assert not (destination / "a.txt").exists()


def test_mirror_preserves_bytes_and_mtime(workspace, store_dir):
    payload = bytes(range(256)) * 4
    source = workspace / "image.bin"
    source.write_bytes(payload)
    os.utime(source, (1_600_000_000, 1_600_000_000))

    mirror(workspace, store_dir, IgnorePolicy())

    copied = store_dir / "image.bin"
    assert copied.read_bytes() == payload
    assert copied.stat().st_mtime == pytest.approx(1_600_000_000)


def test_mirror_skips_symlinked_directories(workspace, store_dir, tmp_path, write_files):
    external = tmp_path / "external"
    write_files(external, {"secret.txt": "s"})
    write_files(workspace, {"a.txt": "alpha"})
    (workspace / "linked").symlink_to(external, target_is_directory=True)
    (workspace / "dangling.txt").symlink_to(tmp_path / "missing.txt")

    report = mirror(workspace, store_dir, IgnorePolicy())

    assert report.copied_files == 1
    assert not (store_dir / "linked").exists()
    assert not (store_dir / "dangling.txt").exists()


def test_mirror_reports_every_copy_failure(workspace, store_dir, write_files):
    write_files(workspace, {f"file{i}.txt": str(i) for i in range(8)})
    original_copy2 = shutil.copy2

    def failing_copy2(src, dst, *args, **kwargs):
        if Path(src).name in {"file1.txt", "file3.txt"}:
            raise PermissionError(f"Permission denied: {src}")
        return original_copy2(src, dst, *args, **kwargs)

    with patch.object(shutil, "copy2", failing_copy2):
        with pytest.raises(CopyError) as exc_info:
            mirror(workspace, store_dir, IgnorePolicy())

    error = exc_info.value
    assert len(error.failures) == 2
    assert "Failed to copy 2 entries" in str(error)
    assert "file1.txt" in str(error)
    assert "Permission denied" in str(error)


def test_copy_error_message_caps_samples(workspace, tmp_path, write_files):
    write_files(workspace, {f"file{i}.txt": str(i) for i in range(9)})

    def failing_copy2(src, dst, *args, **kwargs):
        raise OSError("disk full")

    with patch.object(shutil, "copy2", failing_copy2):
        with pytest.raises(CopyError) as exc_info:
            copy_tree(workspace, tmp_path / "out_dir")

    assert len(exc_info.value.failures) == 9
    assert "... and 4 more" in str(exc_info.value)


def test_copy_tree_skips_top_level_names_only(tmp_path, write_files):
    source = tmp_path / "src_tree"
    write_files(source, {".git/HEAD": "x", "pkg/.git/HEAD": "y", "a.txt": "a"})

    copied = copy_tree(source, tmp_path / "dst_tree", skip=(".git",))

    assert copied == 2
    assert (tmp_path / "dst_tree" / "pkg" / ".git" / "HEAD").exists()
    assert not (tmp_path / "dst_tree" / ".git").exists()


def test_clean_tree_keeps_ignored_entries(workspace, write_files):
    write_files(
        workspace,
        {
            "a.txt": "a",
            "src/main.py": "m",
            "src/node_modules/dep.js": "d",
            "node_modules/pkg/index.js": "x",
            ".env": "SECRET=1",
        },
    )

    failures = clean_tree(workspace, IgnorePolicy())

    assert failures == []
    assert not (workspace / "a.txt").exists()
    assert not (workspace / "src" / "main.py").exists()
    # Directory survives because it still holds an ignored entry
    assert (workspace / "src" / "node_modules" / "dep.js").exists()
    assert (workspace / "node_modules" / "pkg" / "index.js").exists()
    assert (workspace / ".env").exists()


def test_clean_tree_removes_emptied_directories(workspace, write_files):
    write_files(workspace, {"docs/guide/intro.md": "hello"})

    clean_tree(workspace, IgnorePolicy())

    assert list(workspace.iterdir()) == []


def test_clean_tree_collects_failures(workspace, write_files):
    write_files(workspace, {"a.txt": "a", "b.txt": "b"})
    original_unlink = Path.unlink

    def failing_unlink(self, *args, **kwargs):
        if self.name == "a.txt":
            raise PermissionError("locked")
        return original_unlink(self, *args, **kwargs)

    with patch.object(Path, "unlink", failing_unlink):
        failures = clean_tree(workspace, IgnorePolicy())

    assert len(failures) == 1
    assert failures[0].path.endswith("a.txt")
    assert "locked" in str(failures[0])
    assert not (workspace / "b.txt").exists()


def test_mirror_keeps_directories_whose_name_contains_a_rule(
    workspace, store_dir, write_files
):
    write_files(
        workspace,
        {
            "src/routes/index.ts": "r",
            "src/layouts/main.ts": "l",
            "environments/prod.py": "p",
            "out/bundle.js": "b",
            "logs/stdout.log": "s",
        },
    )

    mirror(workspace, store_dir, IgnorePolicy())

    assert (store_dir / "src" / "routes" / "index.ts").read_text() == "r"
    assert (store_dir / "src" / "layouts" / "main.ts").read_text() == "l"
    assert (store_dir / "environments" / "prod.py").read_text() == "p"
    assert not (store_dir / "out").exists()
    # Files are still matched by substring
    assert not (store_dir / "logs" / "stdout.log").exists()


def test_copy_tree_prunes_excluded_directories(workspace, tmp_path, write_files):
    write_files(workspace, {"a.txt": "a", "home/store/a.txt": "a"})

    copied = copy_tree(
        workspace, tmp_path / "dst_tree", exclude=(workspace / "home",)
    )

    assert copied == 1
    assert not (tmp_path / "dst_tree" / "home").exists()


def test_clean_tree_leaves_excluded_directories(workspace, write_files):
    write_files(workspace, {"a.txt": "a", "home/config.json": "{}"})

    clean_tree(workspace, IgnorePolicy(), exclude=(workspace / "home",))

    assert not (workspace / "a.txt").exists()
    assert (workspace / "home" / "config.json").read_text() == "{}"


def test_clean_tree_removes_directories_whose_name_contains_a_rule(
    workspace, write_files
):
    write_files(workspace, {"src/routes/old.ts": "o", "out/bundle.js": "b"})

    clean_tree(workspace, IgnorePolicy())

    assert not (workspace / "src").exists()
    assert (workspace / "out" / "bundle.js").exists()
