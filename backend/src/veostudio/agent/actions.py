"""
Action registry for the studio agent.

Every action validates its params against a pydantic schema and returns a
JSON-serializable dict. ``ActionRegistry.dispatch`` never raises: failures
come back as ``{"success": False, "error": <code>, "message": ...}``.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Type

from pydantic import BaseModel, ValidationError

from veostudio.agent.schemas import (
    AddImageParams,
    AddVideoParams,
    CheckVideoStatusParams,
    ClearProjectParams,
    CreateCollectionParams,
    GenerateImageParams,
    GenerateVideoParams,
    ListMediaParams,
    SaveWorkflowTemplateParams,
    StartWorkflowParams,
    TrackGenerationParams,
    UpdateImagePreferencesParams,
    UpdateVideoPreferencesParams,
    UpdateVideoStatusParams,
)
from veostudio.agent.state import AgentState
from veostudio.errors import (
    ActionError,
    MediaStorageError,
    NotFoundError,
    ProviderError,
    StorageError,
    ValidationFailure,
)
from veostudio.gateway import VIDEO_ASPECT_RATIOS, MediaGateway, StartingImage, VideoRequest
from veostudio.media_store import decode_payload, split_data_url
from veostudio.models import AnalyticsEventType, MediaKind, VideoRecord, VideoStatus, describe_step


logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    """Everything a handler may touch for one ``(userId, projectId)`` pair."""
    user_id: str
    project_id: str
    state: AgentState
    gateway: MediaGateway


Handler = Callable[[Any, ActionContext], dict]


@dataclass
class ActionSpec:
    name: str
    description: str
    schema: Type[BaseModel]
    handler: Handler
    idempotent: bool = False

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "idempotent": self.idempotent,
            "schema": self.schema.model_json_schema(by_alias=True),
        }


@dataclass
class ActionRegistry:
    specs: dict[str, ActionSpec] = field(default_factory=dict)

    def register(self, spec: ActionSpec) -> None:
        if spec.name in self.specs:
            raise ValueError(f"Action '{spec.name}' is already registered.")
        self.specs[spec.name] = spec

    def get(self, name: str) -> Optional[ActionSpec]:
        return self.specs.get(name)

    def names(self) -> list[str]:
        return list(self.specs)

    def list_actions(self) -> list[dict[str, Any]]:
        return [spec.describe() for spec in self.specs.values()]

    def execute(self, name: str, params: Optional[dict[str, Any]], context: ActionContext) -> dict[str, Any]:
        """Validate and run an action. Raises ``ActionError`` on any expected failure."""
        spec = self.specs.get(name)
        if spec is None:
            raise NotFoundError(f"Unknown action '{name}'.", code="UNKNOWN_ACTION")

        try:
            parsed = spec.schema.model_validate(params or {})
        except ValidationError as exc:
            issues = exc.errors(include_url=False, include_context=False, include_input=False)
            logger.info("[execute] Invalid params for %s: %s", name, issues)
            raise ValidationFailure(f"Invalid parameters for {name}.", details={"issues": issues}) from exc

        result: dict[str, Any] = {"success": True}
        result.update(spec.handler(parsed, context))
        return result

    def dispatch(self, name: str, params: Optional[dict[str, Any]], context: ActionContext) -> dict[str, Any]:
        """Like :meth:`execute`, but every failure comes back as a result dict."""
        try:
            return self.execute(name, params, context)
        except ActionError as exc:
            logger.warning("[dispatch] %s failed with %s: %s", name, exc.code, exc.message)
            return exc.to_result()
        except Exception as exc:
            logger.exception("[dispatch] Unexpected error in %s", name)
            return ActionError(f"{name} failed: {exc}", code="INTERNAL_ERROR").to_result()


_ACTIONS: list[ActionSpec] = []


def action(name: str, schema: Type[BaseModel], description: str, idempotent: bool = False):
    def decorator(fn: Handler) -> Handler:
        _ACTIONS.append(
            ActionSpec(name=name, description=description, schema=schema, handler=fn, idempotent=idempotent)
        )
        return fn
    return decorator


def build_registry() -> ActionRegistry:
    registry = ActionRegistry()
    for spec in _ACTIONS:
        registry.register(spec)
    return registry


# ============================================================================
# Veo video actions
# ============================================================================

def _resolve_starting_image(params: GenerateVideoParams, ctx: ActionContext) -> Optional[StartingImage]:
    """The first of imageFile, useImageId, useLatestImage that is set wins."""
    if params.image_file:
        _, mime_type = split_data_url(params.image_file)
        try:
            data = decode_payload(params.image_file)
        except MediaStorageError as exc:
            raise ValidationFailure("imageFile is not valid base64 image data.", code="INVALID_IMAGE_FILE") from exc
        return StartingImage(data=data, mime_type=mime_type or "image/png")

    library = ctx.state.media_library
    image_id = None
    if params.use_image_id:
        record = library.find_image(ctx.project_id, params.use_image_id)
        if record is None:
            raise NotFoundError(f"Image {params.use_image_id} not found.", code="IMAGE_NOT_FOUND")
        image_id = record.id
    elif params.use_latest_image:
        record = library.latest_image(ctx.project_id)
        if record is None:
            raise NotFoundError("No generated images available to use as a starting frame.", code="IMAGE_NOT_FOUND")
        image_id = record.id

    if image_id is None:
        return None
    image_store = ctx.gateway.image_store
    data = image_store.read_bytes(image_id)
    if data is None:
        raise NotFoundError(f"Image file for {image_id} is missing.", code="IMAGE_NOT_FOUND")
    return StartingImage(data=data, mime_type=image_store.mime_type)


@action(
    "generate-veo-video",
    GenerateVideoParams,
    "Generate a video using Google's Veo models (Veo 3, Veo 3 Fast, or Veo 2).",
)
def generate_veo_video(params: GenerateVideoParams, ctx: ActionContext) -> dict:
    settings = ctx.state.preferences.video_settings(ctx.user_id)
    aspect_ratio = params.aspect_ratio
    if aspect_ratio is None:
        aspect_ratio = settings.aspect_ratio if settings.aspect_ratio in VIDEO_ASPECT_RATIOS else "16:9"

    request = VideoRequest(
        prompt=params.prompt,
        model=params.model or settings.model,
        aspect_ratio=aspect_ratio,
        negative_prompt=params.negative_prompt or settings.default_negative_prompt,
        person_generation=params.person_generation,
        number_of_videos=params.number_of_videos,
        image=_resolve_starting_image(params, ctx),
    )
    job = ctx.gateway.generate_video(request)
    video = ctx.state.media_library.add_video(
        ctx.project_id,
        prompt=params.prompt,
        operation_name=job.operation_name,
        model=job.model,
    )
    return {
        "operationName": job.operation_name,
        "videoId": video.id,
        "model": job.model,
        "message": f"Video generation started. Operation: {job.operation_name}",
    }


def _terminal_status(record: VideoRecord, operation_name: str) -> dict:
    """Answer a poll from the stored record once the video has finished."""
    if record.status == VideoStatus.FAILED:
        raise ProviderError(
            record.error or "Video generation failed.",
            code="VIDEO_GENERATION_FAILED",
            details={"status": "failed", "operationName": operation_name},
        )
    return {
        "status": "ready",
        "progress": 100,
        "url": record.url,
        "videoId": record.id,
        "message": "Video is ready!",
    }


@action(
    "check-video-status",
    CheckVideoStatusParams,
    "Check the status of a video generation operation.",
    idempotent=True,
)
def check_video_status(params: CheckVideoStatusParams, ctx: ActionContext) -> dict:
    library = ctx.state.media_library
    record = library.find_video_by_operation(ctx.project_id, params.operation_name)
    if record is None:
        raise NotFoundError(
            f"No video in this project for operation {params.operation_name}.",
            code="VIDEO_NOT_FOUND",
        )
    if record.status.is_terminal:
        return _terminal_status(record, params.operation_name)

    result = ctx.gateway.check_video_status(params.operation_name, video_id=record.id)
    if result.status == "processing":
        return {"status": "processing", "progress": result.progress, "message": result.message}

    status = VideoStatus.READY if result.status == "ready" else VideoStatus.FAILED
    completed = library.complete_video(
        ctx.project_id,
        params.operation_name,
        status,
        url=result.url,
        error=result.message if status == VideoStatus.FAILED else None,
    )
    if completed is None:
        # Another poll finished the video first; report what it recorded.
        return _terminal_status(library.get_video(ctx.project_id, record.id), params.operation_name)
    ctx.state.analytics.track_generation(
        ctx.project_id,
        MediaKind.VIDEO,
        success=status == VideoStatus.READY,
        duration=completed.generation_seconds,
    )

    if status == VideoStatus.FAILED:
        raise ProviderError(
            result.message,
            code="VIDEO_GENERATION_FAILED",
            details={"status": "failed", "operationName": params.operation_name},
        )
    return {
        "status": "ready",
        "progress": 100,
        "url": result.url,
        "videoId": record.id,
        "message": result.message,
    }


# ============================================================================
# Imagen image actions
# ============================================================================

@action(
    "generate-imagen-image",
    GenerateImageParams,
    "Generate images using Google's Imagen 4.0 model.",
)
def generate_imagen_image(params: GenerateImageParams, ctx: ActionContext) -> dict:
    image_settings = ctx.state.preferences.store.snapshot(ctx.user_id).image_settings
    started = time.monotonic()
    try:
        stored = ctx.gateway.generate_images(
            prompt=params.prompt,
            number_of_images=params.number_of_images,
            aspect_ratio=params.aspect_ratio,
            model=image_settings.preferred_model,
        )
    except ProviderError:
        ctx.state.analytics.track_generation(ctx.project_id, MediaKind.IMAGE, success=False)
        raise
    duration = time.monotonic() - started

    images = []
    for item in stored:
        record = ctx.state.media_library.add_image(ctx.project_id, prompt=params.prompt, url=item.url, image_id=item.id)
        ctx.state.analytics.track_generation(ctx.project_id, MediaKind.IMAGE, success=True, duration=duration)
        images.append(record.to_wire())

    count = len(images)
    return {
        "imageIds": [image["id"] for image in images],
        "images": images,
        "count": count,
        "message": f"Generated {count} image{'s' if count > 1 else ''} successfully",
    }


# ============================================================================
# Media library actions
# ============================================================================

@action("list-media", ListMediaParams, "List all media in the current project.", idempotent=True)
def list_media(params: ListMediaParams, ctx: ActionContext) -> dict:
    videos, images = ctx.state.media_library.list_media(ctx.project_id, params.type, params.status)
    result: dict[str, Any] = {}
    if params.type in ("all", "videos"):
        result["videos"] = [
            {
                "id": video.id,
                "prompt": video.prompt,
                "status": video.status.value,
                "model": video.model,
                "createdAt": video.created_at.isoformat(),
                "url": video.url,
            }
            for video in videos
        ]
    if params.type in ("all", "images"):
        result["images"] = [
            {
                "id": image.id,
                "prompt": image.prompt,
                "url": image.url,
                "createdAt": image.created_at.isoformat(),
            }
            for image in images
        ]
    result["summary"] = f"Found {len(videos)} videos and {len(images)} images"
    return result


@action("add-video", AddVideoParams, "Add a video to the library.")
def add_video(params: AddVideoParams, ctx: ActionContext) -> dict:
    video = ctx.state.media_library.add_video(ctx.project_id, params.prompt, params.operation_name)
    return {"videoId": video.id}


@action("update-video-status", UpdateVideoStatusParams, "Update the status of a video.")
def update_video_status(params: UpdateVideoStatusParams, ctx: ActionContext) -> dict:
    video, transitioned = ctx.state.media_library.update_video_status(
        ctx.project_id, params.video_id, params.status, url=params.url
    )
    if transitioned:
        ctx.state.analytics.track_generation(
            ctx.project_id,
            MediaKind.VIDEO,
            success=video.status == VideoStatus.READY,
            duration=video.generation_seconds,
        )
    return {"updated": True, "video": video.to_wire()}


@action("add-image", AddImageParams, "Add an image to the library.")
def add_image(params: AddImageParams, ctx: ActionContext) -> dict:
    image = ctx.state.media_library.add_image(ctx.project_id, params.prompt, params.url)
    return {"imageId": image.id}


@action("create-collection", CreateCollectionParams, "Group existing videos and images into a named collection.")
def create_collection(params: CreateCollectionParams, ctx: ActionContext) -> dict:
    collection = ctx.state.media_library.create_collection(
        ctx.project_id, params.name, params.video_ids, params.image_ids
    )
    return {"collection": collection.to_wire()}


@action("clear-project", ClearProjectParams, "Clear all media from the current project.")
def clear_project(params: ClearProjectParams, ctx: ActionContext) -> dict:
    if not params.confirm:
        raise ValidationFailure("Please confirm to clear the project", code="CONFIRMATION_REQUIRED")

    library = ctx.state.media_library
    video_ids, image_ids = library.media_ids(ctx.project_id)
    failed = ctx.gateway.image_store.clear_all(image_ids)
    failed += ctx.gateway.video_store.clear_all(video_ids)
    if failed:
        raise StorageError(
            f"Could not delete {len(failed)} media file(s); the project was not cleared.",
            details={"failedIds": failed},
        )

    cleared_videos, cleared_images = library.clear(ctx.project_id)
    cleared_workflows = ctx.state.projects.clear_workflows(ctx.user_id, ctx.project_id)
    logger.info(
        "[clear_project] Cleared %d videos, %d images, %d workflows for %s",
        cleared_videos,
        cleared_images,
        cleared_workflows,
        ctx.project_id,
    )
    return {
        "clearedVideos": cleared_videos,
        "clearedImages": cleared_images,
        "clearedWorkflows": cleared_workflows,
        "message": "Project cleared successfully",
    }


# ============================================================================
# Project, analytics and preference actions
# ============================================================================

@action("start-workflow", StartWorkflowParams, "Start a new video generation workflow.")
def start_workflow(params: StartWorkflowParams, ctx: ActionContext) -> dict:
    workflow = ctx.state.projects.start_workflow(ctx.user_id, ctx.project_id, params.name, params.steps)
    return {
        "workflowId": workflow.id,
        "steps": [describe_step(step) for step in workflow.steps],
        "message": (
            f'Workflow "{workflow.name}" created with {len(workflow.steps)} steps. '
            "Execute steps individually or use the workflow builder."
        ),
    }


@action("track-generation", TrackGenerationParams, "Track a generation event.")
def track_generation(params: TrackGenerationParams, ctx: ActionContext) -> dict:
    return ctx.state.analytics.track_generation(
        ctx.project_id, params.type, success=params.success, duration=params.duration
    )


@action(
    "update-video-preferences",
    UpdateVideoPreferencesParams,
    "Update video generation preferences.",
)
def update_video_preferences(params: UpdateVideoPreferencesParams, ctx: ActionContext) -> dict:
    settings = ctx.state.preferences.update_video_settings(
        ctx.user_id,
        aspect_ratio=params.aspect_ratio,
        model=params.model,
        default_negative_prompt=params.negative_prompt,
        preferred_style=params.style,
    )
    ctx.state.analytics.record_event(
        ctx.project_id,
        AnalyticsEventType.PREFERENCE_CHANGED,
        {"scope": "video", "changes": params.model_dump(by_alias=True, exclude_none=True)},
    )
    return {"updated": True, "preferences": settings.to_wire()}


@action(
    "update-image-preferences",
    UpdateImagePreferencesParams,
    "Update image generation preferences.",
)
def update_image_preferences(params: UpdateImagePreferencesParams, ctx: ActionContext) -> dict:
    settings = ctx.state.preferences.update_image_settings(
        ctx.user_id,
        preferred_model=params.preferred_model,
        default_style=params.default_style,
    )
    ctx.state.analytics.record_event(
        ctx.project_id,
        AnalyticsEventType.PREFERENCE_CHANGED,
        {"scope": "image", "changes": params.model_dump(by_alias=True, exclude_none=True)},
    )
    return {"updated": True, "preferences": settings.to_wire()}


@action("save-workflow-template", SaveWorkflowTemplateParams, "Save a workflow as a reusable template.")
def save_workflow_template(params: SaveWorkflowTemplateParams, ctx: ActionContext) -> dict:
    count = ctx.state.preferences.save_template(ctx.user_id, params.name, params.steps)
    return {"saved": True, "templateCount": count}
