"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from worktrail.api.app import create_app
from worktrail.services.engine import get_engine


@pytest.fixture
def client(workspace, worktrail_home):
    app = create_app(workspace=workspace, home=worktrail_home)
    return TestClient(app)


def capture(client, prompt=None):
    response = client.post("/api/snapshots", json={"prompt": prompt})
    assert response.status_code == 200, response.text
    return response.json()


def test_health_without_workspace():
    client = TestClient(create_app())

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "worktrail"
    assert data["workspace"] is None


def test_health_reports_store_state(client, workspace, write_files):
    write_files(workspace, {"a.txt": "1"})
    capture(client)

    data = client.get("/health").json()

    assert data["status"] == "ok"
    assert data["store_state"] == "healthy"
    assert data["workspace"] == str(workspace)


def test_capture_and_list_snapshots(client, workspace, write_files):
    write_files(workspace, {"a.txt": "1"})
    first = capture(client, "add login")
    write_files(workspace, {"a.txt": "2"})
    capture(client, "fix login")

    data = client.get("/api/snapshots").json()

    assert first["status"] == "committed"
    assert first["snapshot"]["prompt"] == "add login"
    assert data["project"] == "project"
    assert [s["snapshot"]["prompt"] for s in data["snapshots"]] == [
        "fix login",
        "add login",
    ]
    newest = data["snapshots"][0]
    assert newest["stats"]["files_changed"] == 1
    assert newest["stats"]["file_details"][0]["status"] == "modified"
    assert client.get("/api/snapshots", params={"limit": 1}).json()["snapshots"][0][
        "snapshot"
    ]["prompt"] == "fix login"


def test_capture_without_changes(client, workspace, write_files):
    write_files(workspace, {"a.txt": "1"})
    capture(client)

    data = capture(client)

    assert data["status"] == "no_op"
    assert data["snapshot"] is None


def test_invalid_prompt_is_bad_request(client):
    response = client.post(
        "/api/snapshots", json={"prompt": "x | Snapshot @ 2020-01-01T00:00:00.000Z"}
    )

    assert response.status_code == 400
    assert "reserved" in response.json()["detail"]


def test_degraded_store_needs_explicit_consent(client, workspace, write_files):
    write_files(workspace, {"a.txt": "1"})
    capture(client)
    store = get_engine(workspace).store
    (store.metadata_dir / "HEAD").write_text("f" * 40 + "\n")
    write_files(workspace, {"a.txt": "2"})

    refused = client.post("/api/snapshots", json={})
    accepted = client.post("/api/snapshots", json={"proceed_if_degraded": True})

    assert refused.status_code == 409
    assert accepted.status_code == 200
    assert any("discarded" in w for w in accepted.json()["warnings"])


def test_unreadable_store_offers_repair(client, workspace, write_files):
    write_files(workspace, {"a.txt": "1"})
    capture(client)
    store = get_engine(workspace).store
    (store.metadata_dir / "HEAD").write_text("f" * 40 + "\n")

    listing = client.get("/api/snapshots")
    repaired = client.post("/api/repair")

    assert listing.status_code == 409
    assert listing.json()["repair_available"] is True
    assert repaired.status_code == 200
    assert repaired.json()["state"] == "repaired"


def test_diff_and_file_endpoints(client, workspace, write_files):
    write_files(workspace, {"a.txt": "one\n"})
    first = capture(client)["snapshot"]["hash"]
    write_files(workspace, {"a.txt": "two\n"})
    second = capture(client)["snapshot"]["hash"]

    diff = client.get(
        "/api/diff", params={"older": first, "newer": second, "include_text": True}
    ).json()
    single = client.get(
        "/api/diff", params={"older": first, "newer": second, "file": "a.txt"}
    ).json()
    content = client.get(f"/api/snapshots/{first[:8]}/files/a.txt")
    missing = client.get(f"/api/snapshots/{first}/files/nope/none.txt")

    assert diff["stats"]["files_changed"] == 1
    assert diff["summary"] == "Modified 1 file"
    assert "+two" in diff["diff"]
    assert "-one" in single["diff"]
    assert content.content == b"one\n"
    assert missing.status_code == 200
    assert missing.content == b""


def test_unknown_snapshot_is_bad_request(client, workspace, write_files):
    write_files(workspace, {"a.txt": "1"})
    capture(client)

    response = client.get("/api/snapshots/0000000/files/a.txt")

    assert response.status_code == 400


def test_restore_requires_confirmation(client, workspace, write_files):
    write_files(workspace, {"a.txt": "1"})
    first = capture(client)["snapshot"]["hash"]
    write_files(workspace, {"a.txt": "2", "b.txt": "b"})
    capture(client)

    refused = client.post("/api/restore", json={"snapshot": first})
    restored = client.post("/api/restore", json={"snapshot": first, "confirm": True})

    assert refused.status_code == 400
    assert restored.status_code == 200
    data = restored.json()
    assert data["restored_to"] == first
    assert data["resync_status"] == "committed"
    assert (workspace / "a.txt").read_text() == "1"
    assert not (workspace / "b.txt").exists()
    assert len(client.get("/api/snapshots").json()["snapshots"]) == 3


def test_summary_endpoint_without_changes(client, workspace, write_files):
    write_files(workspace, {"a.txt": "1"})
    snap = capture(client)["snapshot"]["hash"]

    response = client.post("/api/summary", json={"older": snap, "newer": snap})

    assert response.status_code == 200
    assert response.json()["summary"] == "No changes detected"


def test_summary_endpoint_without_api_key(client, workspace, write_files):
    write_files(workspace, {"a.txt": "1"})
    first = capture(client)["snapshot"]["hash"]
    write_files(workspace, {"a.txt": "2"})
    second = capture(client)["snapshot"]["hash"]

    response = client.post("/api/summary", json={"older": first, "newer": second})

    assert response.status_code == 400
    assert "OPENAI_API_KEY" in response.json()["detail"]
