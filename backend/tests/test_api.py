from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

from veostudio.agent.service import ChatTurn
from veostudio.api import create_app


IDS = {"projectId": "p1", "userId": "u1"}


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime=runtime)) as test_client:
        yield test_client


def test_health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_action_catalog(client: TestClient):
    body = client.get("/api/agent/action").json()

    assert body["success"] is True
    assert body["count"] == 14
    assert len(body["actions"]) == 14


def test_action_requires_name_and_known_action(client: TestClient):
    missing = client.post("/api/agent/action", json={**IDS, "params": {}})
    unknown = client.post("/api/agent/action", json={**IDS, "actionName": "explode"})

    assert missing.status_code == 400
    assert missing.json()["error"] == "actionName is required"
    assert unknown.status_code == 404
    assert unknown.json()["error"] == "UNKNOWN_ACTION"


def test_action_runs_and_wraps_result(client: TestClient):
    response = client.post(
        "/api/agent/action",
        json={**IDS, "actionName": "generate-imagen-image", "params": {"prompt": "sunset"}},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["actionName"] == "generate-imagen-image"
    assert body["projectId"] == "p1" and body["userId"] == "u1"
    assert body["result"]["count"] == 1

    image = client.get(body["result"]["images"][0]["url"])
    assert image.status_code == 200
    assert image.content == b"png-0"


def test_failed_action_keeps_http_200(client: TestClient):
    response = client.post(
        "/api/agent/action",
        json={**IDS, "actionName": "clear-project", "params": {"confirm": False}},
    )

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["result"]["error"] == "CONFIRMATION_REQUIRED"


def test_memory_read_and_patch(client: TestClient):
    everything = client.get("/api/agent/memory", params=IDS).json()
    assert set(everything["contexts"]) == {"project", "analytics", "preferences", "mediaLibrary"}

    analytics = client.get("/api/agent/memory", params={**IDS, "context": "analytics"}).json()
    assert set(analytics["contexts"]) == {"project", "analytics"}

    patched = client.patch(
        "/api/agent/memory",
        json={**IDS, "contextType": "project", "updates": {"projectName": "Launch"}},
    )
    assert patched.status_code == 200
    assert patched.json()["memory"]["projectName"] == "Launch"
    assert patched.json()["message"] == "Memory updated successfully"

    invalid = client.patch("/api/agent/memory", json={**IDS, "updates": {"bogus": 1}})
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "INVALID_PARAMS"

    missing_ids = client.patch("/api/agent/memory", json={"updates": {}})
    assert missing_ids.status_code == 400


def test_memory_delete(client: TestClient, runtime):
    client.post("/api/agent/action", json={**IDS, "actionName": "generate-imagen-image", "params": {"prompt": "a"}})

    invalid = client.delete("/api/agent/memory", params={**IDS, "context": "project"})
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "Invalid context type for deletion"

    analytics = client.delete("/api/agent/memory", params={**IDS, "context": "analytics"})
    assert analytics.json()["success"] is True
    assert runtime.state.analytics.store.snapshot("p1").costs.total_images == 0

    runtime.agent_service._get_session("u1-p1")
    cleared = client.delete("/api/agent/memory", params=IDS)
    assert cleared.json() == {"success": True, "message": "All project data cleared"}
    assert "u1-p1" not in runtime.agent_service._sessions
    _, images = runtime.state.media_library.list_media("p1")
    assert images == []


def test_workflow_routes(client: TestClient):
    missing = client.post("/api/agent/workflow", json={**IDS, "workflow": {"name": "w"}})
    assert missing.status_code == 400

    started = client.post(
        "/api/agent/workflow",
        json={**IDS, "workflow": {"name": "teaser", "steps": [{"type": "wait", "params": {"duration": 2000}}]}},
    ).json()
    assert started["success"] is True
    assert started["projectId"] == "p1"

    saved = client.put(
        "/api/agent/workflow",
        json={**IDS, "template": {"name": "tpl", "steps": [{"type": "wait", "params": {}}]}},
    ).json()
    assert saved["message"] == 'Template "tpl" saved successfully'

    listing = client.get("/api/agent/workflow", params=IDS).json()
    assert [workflow["name"] for workflow in listing["activeWorkflows"]] == ["teaser"]
    assert [template["name"] for template in listing["templates"]] == ["tpl"]


def test_imagen_passthrough(client: TestClient):
    missing = client.post("/api/imagen/generate", json={"prompt": " "})
    assert missing.status_code == 400

    body = client.post("/api/imagen/generate", json={"prompt": "cat", "numberOfImages": 2}).json()
    assert len(body["images"]) == 2
    assert base64.b64decode(body["image"]["imageBytes"]) == b"png-0"
    assert body["image"]["mimeType"] == "image/png"


def test_veo_passthrough(client: TestClient, fake_sdk):
    rejected = client.post(
        "/api/veo/generate",
        data={"prompt": "fox", "model": "veo-3.0-generate-preview", "aspectRatio": "9:16"},
    )
    assert rejected.status_code == 400
    assert rejected.json()["error"] == "INVALID_ASPECT_RATIO"

    started = client.post("/api/veo/generate", data={"prompt": "fox"})
    assert started.status_code == 200
    name = started.json()["name"]

    assert client.post("/api/veo/operation", json={}).status_code == 400
    fake_sdk.operations.done = True
    operation = client.post("/api/veo/operation", json={"name": name}).json()
    assert operation["done"] is True
    uri = operation["response"]["generatedVideos"][0]["video"]["uri"]

    download = client.post("/api/veo/download", json={"uri": uri})
    assert download.headers["content-type"] == "video/mp4"
    assert download.content == b"mp4-bytes"


def test_chat_requires_message(client: TestClient):
    response = client.post("/api/agent/chat", json={**IDS, "message": "   "})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Message is required"}


def test_chat_returns_turn(client: TestClient, runtime, monkeypatch: pytest.MonkeyPatch):
    calls = []

    def fake_run_turn(user_id, project_id, message):
        calls.append((user_id, project_id, message))
        return ChatTurn(message="Hi there")

    monkeypatch.setattr(runtime.agent_service, "run_turn", fake_run_turn)

    body = client.post("/api/agent/chat", json={**IDS, "message": "hello"}).json()

    assert calls == [("u1", "p1", "hello")]
    assert body["message"] == "Hi there"
    assert body["metadata"] == {"hasVideo": False, "hasImage": False, "videos": [], "images": []}
