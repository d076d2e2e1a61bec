from __future__ import annotations

import base64

import pytest
from pydantic import BaseModel

from veostudio.agent.actions import ActionRegistry, ActionSpec, build_registry


USER_ID = "u1"
PROJECT_ID = "p1"


def _run(runtime, name: str, params: dict | None = None) -> dict:
    return runtime.dispatch(USER_ID, PROJECT_ID, name, params)


def test_registry_exposes_every_action():
    registry = build_registry()

    assert set(registry.names()) == {
        "generate-veo-video",
        "check-video-status",
        "generate-imagen-image",
        "list-media",
        "clear-project",
        "start-workflow",
        "track-generation",
        "update-video-preferences",
        "update-image-preferences",
        "save-workflow-template",
        "add-video",
        "update-video-status",
        "add-image",
        "create-collection",
    }
    catalog = {item["name"]: item for item in registry.list_actions()}
    assert catalog["track-generation"]["idempotent"] is False
    assert catalog["update-video-preferences"]["idempotent"] is False
    assert catalog["update-image-preferences"]["idempotent"] is False
    assert catalog["check-video-status"]["idempotent"] is True
    assert "numberOfImages" in catalog["generate-imagen-image"]["schema"]["properties"]


def test_generate_images_for_sunset_prompt(runtime, studio_config):
    result = _run(runtime, "generate-imagen-image", {"prompt": "sunset", "numberOfImages": 2, "aspectRatio": "1:1"})

    assert result["success"] is True
    assert result["count"] == 2
    urls = [image["url"] for image in result["images"]]
    assert len(set(urls)) == 2 and all(urls)
    assert result["message"] == "Generated 2 images successfully"
    for image_id in result["imageIds"]:
        assert (studio_config.image_dir / f"{image_id}.png").exists()

    analytics = runtime.state.analytics.store.snapshot(PROJECT_ID)
    assert analytics.costs.total_images == 2
    assert analytics.costs.estimated_cost == 20


def test_failed_image_generation_is_tracked(runtime, fake_sdk):
    fake_sdk.models.images_to_return = 0

    result = _run(runtime, "generate-imagen-image", {"prompt": "sunset"})

    assert result["success"] is False
    assert result["error"] == "NO_IMAGES_RETURNED"
    performance = runtime.state.analytics.store.snapshot(PROJECT_ID).performance
    assert performance.failure_rate == 1.0


def test_unknown_action_is_reported():
    registry = build_registry()

    assert registry.dispatch("explode", {}, None)["error"] == "UNKNOWN_ACTION"


def test_params_are_validated(runtime):
    missing = _run(runtime, "generate-imagen-image", {})
    too_many = _run(runtime, "generate-imagen-image", {"prompt": "x", "numberOfImages": 5})
    unknown_key = _run(runtime, "list-media", {"kind": "videos"})

    for result in (missing, too_many, unknown_key):
        assert result["success"] is False
        assert result["error"] == "INVALID_PARAMS"
        assert result["issues"]


def test_unexpected_errors_become_internal_error(runtime):
    class NoParams(BaseModel):
        pass

    def boom(_params, _ctx):
        raise RuntimeError("kaboom")

    registry = ActionRegistry()
    registry.register(ActionSpec(name="boom", description="", schema=NoParams, handler=boom))

    result = registry.dispatch("boom", {}, runtime.action_context(USER_ID, PROJECT_ID))

    assert result == {"success": False, "error": "INTERNAL_ERROR", "message": "boom failed: kaboom"}


def test_generate_video_records_job_and_uses_preferences(runtime, fake_sdk):
    _run(runtime, "update-video-preferences", {"model": "veo-2.0-generate-001", "aspectRatio": "9:16"})

    result = _run(runtime, "generate-veo-video", {"prompt": "rain on glass"})

    assert result["success"] is True
    assert result["message"] == f"Video generation started. Operation: {result['operationName']}"
    call = fake_sdk.models.video_calls[0]
    assert call["model"] == "veo-2.0-generate-001"
    assert call["config"].aspect_ratio == "9:16"
    videos, _ = runtime.state.media_library.list_media(PROJECT_ID)
    assert videos[0].id == result["videoId"]
    assert videos[0].status.value == "generating"

    events = runtime.state.analytics.store.snapshot(PROJECT_ID).events
    assert [event.type.value for event in events] == ["preference_changed"]


def test_square_preference_falls_back_to_landscape_for_video(runtime, fake_sdk):
    _run(runtime, "update-video-preferences", {"aspectRatio": "1:1"})

    result = _run(runtime, "generate-veo-video", {"prompt": "rain"})

    assert result["success"] is True
    assert fake_sdk.models.video_calls[0]["config"].aspect_ratio == "16:9"


def test_generate_video_rejects_invalid_combination_without_provider_call(runtime, fake_sdk):
    result = _run(runtime, "generate-veo-video", {"prompt": "x", "aspectRatio": "9:16"})

    assert result["success"] is False
    assert result["error"] == "INVALID_ASPECT_RATIO"
    assert fake_sdk.models.video_calls == []
    assert runtime.state.media_library.list_media(PROJECT_ID) == ([], [])


def test_generate_video_from_stored_image(runtime, fake_sdk):
    images = _run(runtime, "generate-imagen-image", {"prompt": "portrait"})

    by_id = _run(runtime, "generate-veo-video", {"prompt": "animate", "useImageId": images["imageIds"][0]})
    latest = _run(
        runtime,
        "generate-veo-video",
        {"prompt": "animate", "useLatestImage": True, "personGeneration": "allow_adult"},
    )

    assert by_id["success"] is True and latest["success"] is True
    assert fake_sdk.models.video_calls[0]["image"].image_bytes == b"png-0"
    assert fake_sdk.models.video_calls[1]["image"].image_bytes == b"png-0"


def test_generate_video_from_uploaded_file(runtime, fake_sdk):
    encoded = base64.b64encode(b"upload").decode("ascii")

    result = _run(runtime, "generate-veo-video", {"prompt": "x", "imageFile": f"data:image/jpeg;base64,{encoded}"})

    assert result["success"] is True
    image = fake_sdk.models.video_calls[0]["image"]
    assert image.image_bytes == b"upload"
    assert image.mime_type == "image/jpeg"


def test_unknown_image_id_is_reported(runtime, fake_sdk):
    result = _run(runtime, "generate-veo-video", {"prompt": "x", "useImageId": "missing"})

    assert result["error"] == "IMAGE_NOT_FOUND"
    assert fake_sdk.models.video_calls == []


def test_check_video_status_tracks_completion_once(runtime, fake_sdk, studio_config):
    started = _run(runtime, "generate-veo-video", {"prompt": "fox"})
    operation_name = started["operationName"]

    processing = _run(runtime, "check-video-status", {"operationName": operation_name})
    assert processing["status"] == "processing"
    assert processing["progress"] == 40

    fake_sdk.operations.done = True
    ready = _run(runtime, "check-video-status", {"operationName": operation_name})
    again = _run(runtime, "check-video-status", {"operationName": operation_name})

    assert ready["status"] == "ready"
    assert ready["message"] == "Video is ready!"
    assert ready["url"] == f"/generated-videos/{started['videoId']}.mp4"
    assert again["url"] == ready["url"]
    assert len(fake_sdk.files.downloads) == 1
    assert (studio_config.video_dir / f"{started['videoId']}.mp4").exists()

    analytics = runtime.state.analytics.store.snapshot(PROJECT_ID)
    assert analytics.costs.total_videos == 1
    assert analytics.costs.estimated_cost == 50


def test_check_video_status_failure(runtime, fake_sdk):
    started = _run(runtime, "generate-veo-video", {"prompt": "fox"})
    fake_sdk.operations.done = True
    fake_sdk.operations.error = {"message": "quota"}

    result = _run(runtime, "check-video-status", {"operationName": started["operationName"]})

    assert result["success"] is False
    assert result["status"] == "failed"
    videos, _ = runtime.state.media_library.list_media(PROJECT_ID)
    assert videos[0].status.value == "failed"
    performance = runtime.state.analytics.store.snapshot(PROJECT_ID).performance
    assert performance.failed_generations == 1


def test_failed_video_stays_failed_on_later_polls(runtime, fake_sdk, studio_config):
    started = _run(runtime, "generate-veo-video", {"prompt": "fox"})
    fake_sdk.operations.done = True
    fake_sdk.files.payload = b""

    first = _run(runtime, "check-video-status", {"operationName": started["operationName"]})
    fake_sdk.files.payload = b"mp4-bytes"
    second = _run(runtime, "check-video-status", {"operationName": started["operationName"]})

    assert first["status"] == "failed"
    assert second["success"] is False
    assert second["status"] == "failed"
    assert second["error"] == "VIDEO_GENERATION_FAILED"
    assert second["message"] == first["message"]
    assert len(fake_sdk.files.downloads) == 1
    assert not (studio_config.video_dir / f"{started['videoId']}.mp4").exists()
    videos, _ = runtime.state.media_library.list_media(PROJECT_ID)
    assert videos[0].status.value == "failed"
    assert videos[0].url is None
    assert runtime.state.analytics.store.snapshot(PROJECT_ID).performance.failed_generations == 1


def test_polling_unknown_operation_is_not_found(runtime, fake_sdk, studio_config):
    fake_sdk.operations.done = True

    result = _run(runtime, "check-video-status", {"operationName": "models/veo/operations/elsewhere"})

    assert result["success"] is False
    assert result["error"] == "VIDEO_NOT_FOUND"
    assert fake_sdk.operations.requested == []
    assert fake_sdk.files.downloads == []
    assert not studio_config.video_dir.exists() or list(studio_config.video_dir.iterdir()) == []


def test_video_preferences_reject_unknown_model(runtime, fake_sdk):
    rejected = _run(runtime, "update-video-preferences", {"model": "veo-9"})
    started = _run(runtime, "generate-veo-video", {"prompt": "rain"})

    assert rejected["error"] == "INVALID_PARAMS"
    assert runtime.state.preferences.video_settings(USER_ID).model == "veo-3.0-generate-preview"
    assert started["success"] is True
    assert fake_sdk.models.video_calls[0]["model"] == "veo-3.0-generate-preview"


def test_clear_project_removes_downloaded_videos(runtime, fake_sdk, studio_config):
    started = _run(runtime, "generate-veo-video", {"prompt": "fox"})
    fake_sdk.operations.done = True
    _run(runtime, "check-video-status", {"operationName": started["operationName"]})
    video_file = studio_config.video_dir / f"{started['videoId']}.mp4"
    assert video_file.exists()

    result = _run(runtime, "clear-project", {"confirm": True})

    assert result["success"] is True
    assert result["clearedVideos"] == 1
    assert not video_file.exists()
    assert runtime.state.media_library.list_media(PROJECT_ID) == ([], [])


def test_clear_project_removes_files_and_records(runtime, studio_config):
    images = _run(runtime, "generate-imagen-image", {"prompt": "sunset", "numberOfImages": 2})
    _run(runtime, "start-workflow", {"name": "w", "steps": [{"type": "wait", "params": {}}]})

    refused = _run(runtime, "clear-project", {"confirm": False})
    assert refused["error"] == "CONFIRMATION_REQUIRED"

    result = _run(runtime, "clear-project", {"confirm": True})

    assert result["success"] is True
    assert result["message"] == "Project cleared successfully"
    assert result["clearedImages"] == 2
    assert result["clearedWorkflows"] == 1
    for image_id in images["imageIds"]:
        assert not (studio_config.image_dir / f"{image_id}.png").exists()
    memory = runtime.state.media_library.store.snapshot(PROJECT_ID)
    assert memory.videos == [] and memory.images == [] and memory.collections == []


def test_clear_project_keeps_memory_when_files_cannot_be_deleted(runtime, monkeypatch: pytest.MonkeyPatch):
    images = _run(runtime, "generate-imagen-image", {"prompt": "sunset"})
    monkeypatch.setattr(runtime.image_store, "clear_all", lambda ids: list(ids))

    result = _run(runtime, "clear-project", {"confirm": True})

    assert result["success"] is False
    assert result["error"] == "STORAGE_ERROR"
    assert result["failedIds"] == images["imageIds"]
    _, kept = runtime.state.media_library.list_media(PROJECT_ID)
    assert len(kept) == 1


def test_start_workflow_records_pending_steps(runtime):
    result = _run(
        runtime,
        "start-workflow",
        {
            "name": "Launch",
            "steps": [
                {"type": "generate-image", "params": {"prompt": "logo", "numberOfImages": 2}},
                {"type": "generate-video", "params": {"prompt": "logo reveal"}},
                {"type": "transform", "params": {"transformType": "enhance"}},
            ],
        },
    )

    assert result["message"] == (
        'Workflow "Launch" created with 3 steps. Execute steps individually or use the workflow builder.'
    )
    workflows = runtime.state.scope(USER_ID, PROJECT_ID).snapshot("project")["memory"]["activeWorkflows"]
    assert [step["status"] for step in workflows[0]["steps"]] == ["pending"] * 3


def test_start_workflow_rejects_unknown_step_type(runtime):
    result = _run(runtime, "start-workflow", {"name": "w", "steps": [{"type": "teleport", "params": {}}]})

    assert result["error"] == "INVALID_PARAMS"


def test_library_actions(runtime):
    video = _run(runtime, "add-video", {"prompt": "p", "operationName": "op-x"})
    image = _run(runtime, "add-image", {"prompt": "p", "url": "/generated-images/a.png"})
    updated = _run(runtime, "update-video-status", {"videoId": video["videoId"], "status": "ready", "url": "/v.mp4"})
    collection = _run(
        runtime,
        "create-collection",
        {"name": "best", "videoIds": [video["videoId"]], "imageIds": [image["imageId"]]},
    )
    listing = _run(runtime, "list-media", {"type": "all", "status": "ready"})

    assert updated["video"]["status"] == "ready"
    assert collection["collection"]["videoIds"] == [video["videoId"]]
    assert listing["summary"] == "Found 1 videos and 1 images"
    assert runtime.state.analytics.store.snapshot(PROJECT_ID).costs.total_videos == 1

    backwards = _run(runtime, "update-video-status", {"videoId": video["videoId"], "status": "generating"})
    assert backwards["error"] == "INVALID_STATUS_TRANSITION"


def test_track_generation_and_templates(runtime):
    tracked = _run(runtime, "track-generation", {"type": "video", "success": True, "duration": 90})
    saved = _run(runtime, "save-workflow-template", {"name": "t", "steps": [{"type": "wait", "params": {"duration": 1000}}]})
    image_prefs = _run(runtime, "update-image-preferences", {"defaultStyle": "watercolor"})

    assert tracked == {"success": True, "tracked": True}
    assert saved == {"success": True, "saved": True, "templateCount": 1}
    assert image_prefs["preferences"]["defaultStyle"] == "watercolor"
    assert runtime.state.analytics.store.snapshot(PROJECT_ID).performance.average_video_time == 90
