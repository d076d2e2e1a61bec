"""
Data models for the Veo Studio agent.

Every model uses camelCase aliases on the wire (``createdAt``,
``operationName``) while Python code uses snake_case attributes.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class StudioModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class VideoStatus(str, Enum):
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not VideoStatus.GENERATING


class StepStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class MediaKind(str, Enum):
    VIDEO = "video"
    IMAGE = "image"


# ============================================================================
# Media records
# ============================================================================

class VideoRecord(StudioModel):
    """A video generation job and its eventual result."""
    id: str = Field(default_factory=new_id)
    prompt: str
    operation_name: str
    model: Optional[str] = None
    status: VideoStatus = VideoStatus.GENERATING
    url: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def generation_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.created_at).total_seconds()


class ImageRecord(StudioModel):
    id: str = Field(default_factory=new_id)
    prompt: str
    url: str
    created_at: datetime = Field(default_factory=utc_now)


class Collection(StudioModel):
    name: str
    video_ids: list[str] = Field(default_factory=list)
    image_ids: list[str] = Field(default_factory=list)


# ============================================================================
# Workflow steps
# ============================================================================

class StepParams(StudioModel):
    # Builder UIs attach arbitrary extra keys; keep them.
    model_config = ConfigDict(extra="allow")


class ImageStepParams(StepParams):
    prompt: Optional[str] = None
    number_of_images: int = Field(default=1, ge=1, le=4)
    aspect_ratio: Optional[str] = None


class VideoStepParams(StepParams):
    prompt: Optional[str] = None
    negative_prompt: Optional[str] = None
    aspect_ratio: Optional[str] = None
    model: Optional[str] = None


class WaitStepParams(StepParams):
    duration: int = Field(default=5000, ge=0, description="Wait time in milliseconds.")


class TransformStepParams(StepParams):
    transform_type: Literal["enhance", "resize", "filter"] = "enhance"


class GenerateImageStep(StudioModel):
    type: Literal["generate-image"] = "generate-image"
    params: ImageStepParams = Field(default_factory=ImageStepParams)
    status: StepStatus = StepStatus.PENDING


class GenerateVideoStep(StudioModel):
    type: Literal["generate-video"] = "generate-video"
    params: VideoStepParams = Field(default_factory=VideoStepParams)
    status: StepStatus = StepStatus.PENDING


class WaitStep(StudioModel):
    type: Literal["wait"] = "wait"
    params: WaitStepParams = Field(default_factory=WaitStepParams)
    status: StepStatus = StepStatus.PENDING


class TransformStep(StudioModel):
    type: Literal["transform"] = "transform"
    params: TransformStepParams = Field(default_factory=TransformStepParams)
    status: StepStatus = StepStatus.PENDING


WorkflowStep = Annotated[
    Union[GenerateImageStep, GenerateVideoStep, WaitStep, TransformStep],
    Field(discriminator="type"),
]


def describe_step(step: WorkflowStep) -> str:
    """Human readable one-liner for a workflow step."""
    if isinstance(step, GenerateImageStep):
        prompt = step.params.prompt or "(no prompt)"
        return f"Generate {step.params.number_of_images} image(s): {prompt}"
    if isinstance(step, GenerateVideoStep):
        prompt = step.params.prompt or "(no prompt)"
        return f"Generate video: {prompt}"
    if isinstance(step, WaitStep):
        return f"Wait {step.params.duration / 1000:g}s"
    if isinstance(step, TransformStep):
        return f"Transform ({step.params.transform_type})"
    raise TypeError(f"Unhandled workflow step type: {type(step).__name__}")


class Workflow(StudioModel):
    id: str = Field(default_factory=new_id)
    name: str
    steps: list[WorkflowStep] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)


class WorkflowTemplate(StudioModel):
    name: str
    steps: list[WorkflowStep] = Field(default_factory=list)


# ============================================================================
# Container memories
# ============================================================================

class AnalyticsEventType(str, Enum):
    VIDEO_GENERATED = "video_generated"
    IMAGE_GENERATED = "image_generated"
    WORKFLOW_COMPLETED = "workflow_completed"
    PREFERENCE_CHANGED = "preference_changed"


class AnalyticsEvent(StudioModel):
    type: AnalyticsEventType
    timestamp: datetime = Field(default_factory=utc_now)
    data: dict[str, Any] = Field(default_factory=dict)


class CostTotals(StudioModel):
    total_videos: int = 0
    total_images: int = 0
    estimated_cost: int = 0  # in cents


class PerformanceStats(StudioModel):
    average_video_time: float = 0.0  # in seconds
    average_image_time: float = 0.0
    failure_rate: float = 0.0
    # Counters backing the running means; never recomputed from events.
    timed_videos: int = 0
    timed_images: int = 0
    tracked_generations: int = 0
    failed_generations: int = 0


class AnalyticsMemory(StudioModel):
    model_config = ConfigDict(extra="forbid")
    events: list[AnalyticsEvent] = Field(default_factory=list)
    costs: CostTotals = Field(default_factory=CostTotals)
    performance: PerformanceStats = Field(default_factory=PerformanceStats)


VideoAspectRatio = Literal["16:9", "9:16", "1:1"]
VeoModelName = Literal["veo-3.0-generate-preview", "veo-3.0-fast-generate-preview", "veo-2.0-generate-001"]


class VideoSettings(StudioModel):
    aspect_ratio: VideoAspectRatio = "16:9"
    model: VeoModelName = "veo-3.0-generate-preview"
    default_negative_prompt: Optional[str] = None
    preferred_style: Optional[str] = None


class ImageSettings(StudioModel):
    preferred_model: Optional[str] = None
    default_style: Optional[str] = None


class PreferencesMemory(StudioModel):
    model_config = ConfigDict(extra="forbid")
    video_settings: VideoSettings = Field(default_factory=VideoSettings)
    image_settings: ImageSettings = Field(default_factory=ImageSettings)
    workflow_templates: list[WorkflowTemplate] = Field(default_factory=list)


class MediaLibraryMemory(StudioModel):
    model_config = ConfigDict(extra="forbid")
    videos: list[VideoRecord] = Field(default_factory=list)
    images: list[ImageRecord] = Field(default_factory=list)
    collections: list[Collection] = Field(default_factory=list)


class ProjectMemory(StudioModel):
    model_config = ConfigDict(extra="forbid")
    project_name: str = "Untitled Project"
    description: Optional[str] = None
    session_count: int = 0
    active_workflows: list[Workflow] = Field(default_factory=list)
