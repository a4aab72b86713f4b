"""Tests for the async per-project engine."""

import asyncio

import pytest

from worktrail.errors import IntegrityError, ValidationError
from worktrail.services.engine import get_engine, reset_engines
from worktrail.services.summarizer import ChangeSummary


class RecordingSummarizer:
    def __init__(self):
        self.diffs = []

    async def summarize(self, diff_text):
        self.diffs.append(diff_text)
        return ChangeSummary(summary="Changed a.txt", risk="Low")


def test_get_engine_is_cached_per_project(workspace, worktrail_home):
    first = get_engine(workspace, home=worktrail_home)

    assert get_engine(str(workspace), home=worktrail_home) is first
    reset_engines()
    assert get_engine(workspace, home=worktrail_home) is not first


def test_get_engine_requires_workspace():
    with pytest.raises(ValidationError):
        get_engine("")


@pytest.mark.asyncio
async def test_capture_and_timeline(workspace, worktrail_home, write_files):
    engine = get_engine(workspace, home=worktrail_home)
    assert await engine.timeline() == []

    write_files(workspace, {"a.txt": "1"})
    result = await engine.capture("first")
    timeline = await engine.timeline()

    assert result.committed
    assert [entry.snapshot.hash for entry in timeline] == [result.snapshot.hash]
    assert not engine.busy


@pytest.mark.asyncio
async def test_concurrent_captures_are_serialized(workspace, worktrail_home, write_files):
    engine = get_engine(workspace, home=worktrail_home)
    write_files(workspace, {"a.txt": "1"})

    results = await asyncio.gather(engine.capture("one"), engine.capture("two"))

    assert sorted(r.status for r in results) == ["committed", "no_op"]
    assert len(engine.store.log()) == 1


@pytest.mark.asyncio
async def test_reads_without_store_are_rejected(workspace, worktrail_home):
    engine = get_engine(workspace, home=worktrail_home)

    with pytest.raises(ValidationError):
        await engine.diff_stats("abc", "def")


@pytest.mark.asyncio
async def test_unreadable_store_reports_integrity_error(
    workspace, worktrail_home, write_files
):
    engine = get_engine(workspace, home=worktrail_home)
    write_files(workspace, {"a.txt": "1"})
    await engine.capture()
    (engine.store.metadata_dir / "HEAD").write_text("f" * 40 + "\n")

    with pytest.raises(IntegrityError):
        await engine.timeline()

    report = await engine.repair()
    assert report.usable
    assert await engine.timeline() == []


@pytest.mark.asyncio
async def test_diff_and_file_reads(workspace, worktrail_home, write_files):
    engine = get_engine(workspace, home=worktrail_home)
    write_files(workspace, {"a.txt": "1\n"})
    first = (await engine.capture()).snapshot.hash
    write_files(workspace, {"a.txt": "2\n"})
    second = (await engine.capture()).snapshot.hash

    stats = await engine.diff_stats(first[:8], second[:8])
    text = await engine.diff_text(first, second)

    assert stats.files_changed == 1
    assert "+2" in text
    assert await engine.file_at(first, "a.txt") == b"1\n"
    assert "-1" in await engine.file_diff(first, second, "a.txt")


@pytest.mark.asyncio
async def test_summarize_uses_factory_only_for_real_changes(
    workspace, worktrail_home, write_files
):
    engine = get_engine(workspace, home=worktrail_home)
    summarizer = RecordingSummarizer()
    engine._summarizer_factory = lambda: summarizer
    write_files(workspace, {"a.txt": "1\n"})
    first = (await engine.capture()).snapshot.hash
    write_files(workspace, {"a.txt": "2\n"})
    second = (await engine.capture()).snapshot.hash

    same = await engine.summarize(first, first)
    changed = await engine.summarize(first, second)

    assert same.summary == "No changes detected"
    assert changed.summary == "Changed a.txt"
    assert len(summarizer.diffs) == 1


@pytest.mark.asyncio
async def test_summarize_without_api_key(workspace, worktrail_home, write_files):
    engine = get_engine(workspace, home=worktrail_home)
    write_files(workspace, {"a.txt": "1\n"})
    first = (await engine.capture()).snapshot.hash
    write_files(workspace, {"a.txt": "2\n"})
    second = (await engine.capture()).snapshot.hash

    with pytest.raises(ValidationError):
        await engine.summarize(first, second)
