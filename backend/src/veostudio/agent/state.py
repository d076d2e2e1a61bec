"""
In-memory state containers for the studio agent.

Each container owns one keyed ``ContainerStore``. Mutations run inside a
per-key critical section so they appear atomically to later reads in the
same process. Nothing spans containers: clearing media and resetting
analytics are independent operations.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock, RLock
from typing import Any, Callable, Generic, Iterator, Literal, Optional, TypeVar

from pydantic import ValidationError

from veostudio.config import Config
from veostudio.errors import NotFoundError, ValidationFailure
from veostudio.models import (
    AnalyticsEvent,
    AnalyticsEventType,
    AnalyticsMemory,
    Collection,
    ImageRecord,
    ImageSettings,
    MediaKind,
    MediaLibraryMemory,
    PreferencesMemory,
    ProjectMemory,
    StudioModel,
    VideoRecord,
    VideoSettings,
    VideoStatus,
    Workflow,
    WorkflowStep,
    WorkflowTemplate,
    describe_step,
    utc_now,
)

M = TypeVar("M", bound=StudioModel)


@dataclass
class ContainerStore(Generic[M]):
    """Keyed memory store with one re-entrant lock per key."""
    context_type: str
    factory: Callable[[], M]
    # Called with (current, updated) before a patch is stored; raises to reject it.
    check_patch: Optional[Callable[[M, M], None]] = None
    _memories: dict[str, M] = field(default_factory=dict)
    _locks: dict[str, RLock] = field(default_factory=dict)
    _guard: Lock = field(default_factory=Lock)

    def _lock_for(self, key: str) -> RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def mutate(self, key: str) -> Iterator[M]:
        with self._lock_for(key):
            memory = self._memories.get(key)
            if memory is None:
                memory = self.factory()
                self._memories[key] = memory
            yield memory

    def snapshot(self, key: str) -> M:
        with self.mutate(key) as memory:
            return memory.model_copy(deep=True)

    def exists(self, key: str) -> bool:
        with self._guard:
            return key in self._memories

    def reset(self, key: str) -> M:
        with self._lock_for(key):
            memory = self.factory()
            self._memories[key] = memory
            return memory.model_copy(deep=True)

    def patch(self, key: str, updates: dict[str, Any]) -> M:
        """Apply a validated partial update; unknown fields are rejected."""
        with self.mutate(key) as memory:
            merged = memory.model_dump(by_alias=True)
            fields = type(memory).model_fields
            for name, value in updates.items():
                merged[fields[name].alias or name if name in fields else name] = value
            try:
                updated = type(memory).model_validate(merged)
            except ValidationError as exc:
                raise ValidationFailure(
                    f"Invalid update for {self.context_type}: {exc.errors(include_url=False)}",
                ) from exc
            if self.check_patch is not None:
                self.check_patch(memory, updated)
            self._memories[key] = updated
            return updated.model_copy(deep=True)

    def keys(self) -> list[str]:
        with self._guard:
            return list(self._memories)


# ============================================================================
# Analytics
# ============================================================================

class AnalyticsContainer:
    context_type = "veo-analytics"

    def __init__(self, config: Config):
        self.config = config
        self.store: ContainerStore[AnalyticsMemory] = ContainerStore(self.context_type, AnalyticsMemory)

    def track_generation(
        self,
        project_id: str,
        kind: MediaKind,
        success: bool,
        duration: Optional[float] = None,
    ) -> dict:
        """Append an event and fold it into the running aggregates (not idempotent)."""
        event_type = (
            AnalyticsEventType.VIDEO_GENERATED if kind == MediaKind.VIDEO else AnalyticsEventType.IMAGE_GENERATED
        )
        with self.store.mutate(project_id) as memory:
            memory.events.append(
                AnalyticsEvent(type=event_type, data={"success": success, "duration": duration})
            )
            perf = memory.performance
            perf.tracked_generations += 1
            if not success:
                perf.failed_generations += 1
            perf.failure_rate = perf.failed_generations / perf.tracked_generations

            if success:
                costs = memory.costs
                if kind == MediaKind.VIDEO:
                    costs.total_videos += 1
                    costs.estimated_cost += self.config.video_cost_cents
                    if duration is not None:
                        perf.timed_videos += 1
                        perf.average_video_time = _running_mean(
                            perf.average_video_time, perf.timed_videos, duration
                        )
                else:
                    costs.total_images += 1
                    costs.estimated_cost += self.config.image_cost_cents
                    if duration is not None:
                        perf.timed_images += 1
                        perf.average_image_time = _running_mean(
                            perf.average_image_time, perf.timed_images, duration
                        )
        return {"tracked": True}

    def record_event(self, project_id: str, event_type: AnalyticsEventType, data: Optional[dict] = None) -> None:
        with self.store.mutate(project_id) as memory:
            memory.events.append(AnalyticsEvent(type=event_type, data=data or {}))

    def render(self, project_id: str) -> str:
        memory = self.store.snapshot(project_id)
        recent = ", ".join(event.type.value for event in memory.events[-3:])
        return "\n".join([
            f"Analytics for project: {project_id}",
            f"Total Videos: {memory.costs.total_videos}",
            f"Total Images: {memory.costs.total_images}",
            f"Estimated Cost: ${memory.costs.estimated_cost / 100:.2f}",
            f"Recent Events: {recent}",
        ])


def _running_mean(previous: float, count: int, value: float) -> float:
    return (previous * (count - 1) + value) / count


# ============================================================================
# Preferences
# ============================================================================

class PreferencesContainer:
    context_type = "veo-preferences"

    def __init__(self, config: Config):
        self.config = config
        self.store: ContainerStore[PreferencesMemory] = ContainerStore(self.context_type, self._create)

    def _create(self) -> PreferencesMemory:
        return PreferencesMemory(video_settings=VideoSettings(model=self.config.default_veo_model))

    def video_settings(self, user_id: str) -> VideoSettings:
        return self.store.snapshot(user_id).video_settings

    def update_video_settings(self, user_id: str, **changes: Any) -> VideoSettings:
        updates = {key: value for key, value in changes.items() if value is not None}
        with self.store.mutate(user_id) as memory:
            merged = memory.video_settings.model_dump()
            merged.update(updates)
            memory.video_settings = VideoSettings.model_validate(merged)
            return memory.video_settings.model_copy()

    def update_image_settings(self, user_id: str, **changes: Any) -> ImageSettings:
        updates = {key: value for key, value in changes.items() if value is not None}
        with self.store.mutate(user_id) as memory:
            merged = memory.image_settings.model_dump()
            merged.update(updates)
            memory.image_settings = ImageSettings.model_validate(merged)
            return memory.image_settings.model_copy()

    def save_template(self, user_id: str, name: str, steps: list[WorkflowStep]) -> int:
        with self.store.mutate(user_id) as memory:
            memory.workflow_templates.append(WorkflowTemplate(name=name, steps=steps))
            return len(memory.workflow_templates)

    def render(self, user_id: str) -> str:
        memory = self.store.snapshot(user_id)
        video = memory.video_settings
        lines = [
            f"User Preferences: {user_id}",
            f"Video: {video.aspect_ratio} @ {video.model}",
        ]
        if video.preferred_style:
            lines.append(f"Style: {video.preferred_style}")
        lines.append(f"Templates: {len(memory.workflow_templates)} saved")
        return "\n".join(lines)


# ============================================================================
# Media library
# ============================================================================

MediaTypeFilter = Literal["all", "videos", "images"]
StatusFilter = Literal["all", "ready", "generating", "failed"]


def _check_media_patch(current: MediaLibraryMemory, updated: MediaLibraryMemory) -> None:
    """Reject patches that duplicate media ids or move a finished video out of its terminal status."""
    for kind, records in (("video", updated.videos), ("image", updated.images)):
        ids = [record.id for record in records]
        duplicates = sorted({media_id for media_id in ids if ids.count(media_id) > 1})
        if duplicates:
            raise ValidationFailure(
                f"Duplicate {kind} id(s): {', '.join(duplicates)}",
                code=f"DUPLICATE_{kind.upper()}_ID",
            )

    finished = {video.id: video.status for video in current.videos if video.status.is_terminal}
    for video in updated.videos:
        previous = finished.get(video.id)
        if previous is not None and video.status != previous:
            raise ValidationFailure(
                f"Video {video.id} is already {previous.value}.",
                code="INVALID_STATUS_TRANSITION",
            )


class MediaLibraryContainer:
    """Single owner of every video and image record of a project."""
    context_type = "media-library"

    def __init__(self, config: Config):
        self.config = config
        self.store: ContainerStore[MediaLibraryMemory] = ContainerStore(
            self.context_type, MediaLibraryMemory, check_patch=_check_media_patch
        )

    def add_video(
        self,
        project_id: str,
        prompt: str,
        operation_name: str,
        model: Optional[str] = None,
    ) -> VideoRecord:
        video = VideoRecord(prompt=prompt, operation_name=operation_name, model=model)
        with self.store.mutate(project_id) as memory:
            memory.videos.append(video)
        return video.model_copy()

    def get_video(self, project_id: str, video_id: str) -> Optional[VideoRecord]:
        with self.store.mutate(project_id) as memory:
            for video in memory.videos:
                if video.id == video_id:
                    return video.model_copy()
        return None

    def find_video_by_operation(self, project_id: str, operation_name: str) -> Optional[VideoRecord]:
        with self.store.mutate(project_id) as memory:
            for video in memory.videos:
                if video.operation_name == operation_name:
                    return video.model_copy()
        return None

    def complete_video(
        self,
        project_id: str,
        operation_name: str,
        status: VideoStatus,
        url: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Optional[VideoRecord]:
        """
        Move the video for ``operation_name`` from generating to a terminal status.

        Returns the updated record only when this call performed the
        transition, so callers can react to it exactly once.
        """
        if not status.is_terminal:
            raise ValidationFailure("A completed video needs a terminal status.", code="INVALID_STATUS_TRANSITION")
        with self.store.mutate(project_id) as memory:
            for video in memory.videos:
                if video.operation_name != operation_name:
                    continue
                if video.status.is_terminal:
                    return None
                video.status = status
                video.completed_at = utc_now()
                if url:
                    video.url = url
                if error:
                    video.error = error
                return video.model_copy()
        return None

    def update_video_status(
        self,
        project_id: str,
        video_id: str,
        status: VideoStatus,
        url: Optional[str] = None,
    ) -> tuple[VideoRecord, bool]:
        """Set a video status by id. The flag is True when this call reached a terminal status."""
        with self.store.mutate(project_id) as memory:
            for video in memory.videos:
                if video.id != video_id:
                    continue
                if video.status.is_terminal and status != video.status:
                    raise ValidationFailure(
                        f"Video {video_id} is already {video.status.value}.",
                        code="INVALID_STATUS_TRANSITION",
                    )
                transitioned = status.is_terminal and not video.status.is_terminal
                if transitioned:
                    video.completed_at = utc_now()
                video.status = status
                if url:
                    video.url = url
                return video.model_copy(), transitioned
        raise NotFoundError(f"Video {video_id} not found.", code="VIDEO_NOT_FOUND")

    def add_image(self, project_id: str, prompt: str, url: str, image_id: Optional[str] = None) -> ImageRecord:
        image = ImageRecord(prompt=prompt, url=url) if image_id is None else ImageRecord(
            id=image_id, prompt=prompt, url=url
        )
        with self.store.mutate(project_id) as memory:
            if any(existing.id == image.id for existing in memory.images):
                raise ValidationFailure(f"Image {image.id} already exists.", code="DUPLICATE_IMAGE_ID")
            memory.images.append(image)
        return image.model_copy()

    def find_image(self, project_id: str, image_id: str) -> Optional[ImageRecord]:
        with self.store.mutate(project_id) as memory:
            for image in memory.images:
                if image.id == image_id:
                    return image.model_copy()
        return None

    def latest_image(self, project_id: str) -> Optional[ImageRecord]:
        with self.store.mutate(project_id) as memory:
            return memory.images[-1].model_copy() if memory.images else None

    def list_media(
        self,
        project_id: str,
        media_type: MediaTypeFilter = "all",
        status: StatusFilter = "all",
    ) -> tuple[list[VideoRecord], list[ImageRecord]]:
        memory = self.store.snapshot(project_id)
        videos = memory.videos if media_type in ("all", "videos") else []
        if status != "all":
            videos = [video for video in videos if video.status.value == status]
        images = memory.images if media_type in ("all", "images") else []
        return videos, images

    def create_collection(
        self,
        project_id: str,
        name: str,
        video_ids: list[str],
        image_ids: list[str],
    ) -> Collection:
        with self.store.mutate(project_id) as memory:
            known_videos = {video.id for video in memory.videos}
            known_images = {image.id for image in memory.images}
            missing = [vid for vid in video_ids if vid not in known_videos]
            missing += [iid for iid in image_ids if iid not in known_images]
            if missing:
                raise NotFoundError(f"Unknown media id(s): {', '.join(missing)}", code="MEDIA_NOT_FOUND")
            if any(existing.name == name for existing in memory.collections):
                raise ValidationFailure(f"Collection '{name}' already exists.", code="DUPLICATE_COLLECTION")
            collection = Collection(name=name, video_ids=list(video_ids), image_ids=list(image_ids))
            memory.collections.append(collection)
            return collection.model_copy()

    def media_ids(self, project_id: str) -> tuple[list[str], list[str]]:
        memory = self.store.snapshot(project_id)
        return [video.id for video in memory.videos], [image.id for image in memory.images]

    def clear(self, project_id: str) -> tuple[int, int]:
        with self.store.mutate(project_id) as memory:
            counts = (len(memory.videos), len(memory.images))
            memory.videos = []
            memory.images = []
            memory.collections = []
        return counts

    def render(self, project_id: str) -> str:
        memory = self.store.snapshot(project_id)
        ready = sum(1 for video in memory.videos if video.status == VideoStatus.READY)
        return "\n".join([
            f"Media Library: {project_id}",
            f"Videos: {len(memory.videos)} ({ready} ready)",
            f"Images: {len(memory.images)}",
            f"Collections: {len(memory.collections)}",
        ])


# ============================================================================
# Project
# ============================================================================

def project_key(user_id: str, project_id: str) -> str:
    return f"{user_id}-{project_id}"


class ProjectContainer:
    context_type = "video-project"

    def __init__(self, config: Config):
        self.config = config
        self.store: ContainerStore[ProjectMemory] = ContainerStore(self.context_type, ProjectMemory)

    def begin_session(self, user_id: str, project_id: str) -> int:
        with self.store.mutate(project_key(user_id, project_id)) as memory:
            memory.session_count += 1
            return memory.session_count

    def start_workflow(self, user_id: str, project_id: str, name: str, steps: list[WorkflowStep]) -> Workflow:
        """Record a workflow. Steps stay pending; nothing executes them."""
        workflow = Workflow(name=name, steps=steps)
        with self.store.mutate(project_key(user_id, project_id)) as memory:
            memory.active_workflows.append(workflow)
        return workflow.model_copy(deep=True)

    def clear_workflows(self, user_id: str, project_id: str) -> int:
        with self.store.mutate(project_key(user_id, project_id)) as memory:
            count = len(memory.active_workflows)
            memory.active_workflows = []
            return count

    def render(self, user_id: str, project_id: str) -> str:
        memory = self.store.snapshot(project_key(user_id, project_id))
        lines = [
            f"Video Project: {memory.project_name} ({project_id})",
            f"User: {user_id}",
            f"Sessions: {memory.session_count}",
            f"Active Workflows: {len(memory.active_workflows)}",
        ]
        for workflow in memory.active_workflows[-3:]:
            steps = "; ".join(describe_step(step) for step in workflow.steps)
            lines.append(f"- {workflow.name}: {steps}")
        return "\n".join(lines)


# ============================================================================
# Composition
# ============================================================================

ContextName = Literal["project", "analytics", "preferences", "media"]

CONTEXT_ALIASES: dict[str, ContextName] = {
    "project": "project",
    "video-project": "project",
    "analytics": "analytics",
    "veo-analytics": "analytics",
    "preferences": "preferences",
    "veo-preferences": "preferences",
    "media": "media",
    "media-library": "media",
    "mediaLibrary": "media",
}


def resolve_context_name(value: Optional[str]) -> ContextName:
    if not value:
        return "project"
    name = CONTEXT_ALIASES.get(value)
    if name is None:
        raise NotFoundError(f"Unknown context type '{value}'.", code="UNKNOWN_CONTEXT")
    return name


class AgentState:
    """The four containers plus the keying rules that compose them."""

    def __init__(self, config: Config):
        self.config = config
        self.analytics = AnalyticsContainer(config)
        self.preferences = PreferencesContainer(config)
        self.media_library = MediaLibraryContainer(config)
        self.projects = ProjectContainer(config)

    def scope(self, user_id: str, project_id: str) -> "ProjectScope":
        return ProjectScope(state=self, user_id=user_id, project_id=project_id)


@dataclass
class ProjectScope:
    """A ``(userId, projectId)`` view over the composed containers."""
    state: AgentState
    user_id: str
    project_id: str

    @property
    def project_key(self) -> str:
        return project_key(self.user_id, self.project_id)

    def _store_and_key(self, name: ContextName) -> tuple[ContainerStore, str]:
        if name == "project":
            return self.state.projects.store, self.project_key
        if name == "analytics":
            return self.state.analytics.store, self.project_id
        if name == "preferences":
            return self.state.preferences.store, self.user_id
        if name == "media":
            return self.state.media_library.store, self.project_id
        raise NotFoundError(f"Unknown context type '{name}'.", code="UNKNOWN_CONTEXT")

    def args(self, name: ContextName) -> dict[str, str]:
        if name == "project":
            return {"projectId": self.project_id, "userId": self.user_id}
        if name == "preferences":
            return {"userId": self.user_id}
        return {"projectId": self.project_id}

    def snapshot(self, name: ContextName) -> dict[str, Any]:
        store, key = self._store_and_key(name)
        payload: dict[str, Any] = {
            "type": store.context_type,
            "id": key,
            "args": self.args(name),
            "memory": store.snapshot(key).to_wire(),
        }
        return payload

    def snapshots(self) -> dict[str, dict[str, Any]]:
        return {
            "project": self.snapshot("project"),
            "analytics": self.snapshot("analytics"),
            "preferences": self.snapshot("preferences"),
            "mediaLibrary": self.snapshot("media"),
        }

    def patch(self, name: ContextName, updates: dict[str, Any]) -> dict[str, Any]:
        store, key = self._store_and_key(name)
        return store.patch(key, updates).to_wire()

    def reset(self, name: ContextName) -> dict[str, Any]:
        store, key = self._store_and_key(name)
        return store.reset(key).to_wire()

    def render(self) -> str:
        state = self.state
        return "\n\n".join([
            state.projects.render(self.user_id, self.project_id),
            state.analytics.render(self.project_id),
            state.preferences.render(self.user_id),
            state.media_library.render(self.project_id),
        ])
