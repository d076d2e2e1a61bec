"""
Pydantic schemas for the studio agent actions.
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from veostudio.models import MediaKind, VeoModelName, VideoAspectRatio, VideoStatus, WorkflowStep


class ActionParams(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class GenerateVideoParams(ActionParams):
    prompt: str = Field(min_length=1, description="The video generation prompt. Veo 3/Fast support audio cues.")
    model: Optional[VeoModelName] = Field(
        default=None,
        description="Which Veo model to use. Defaults to the user's preferred model.",
    )
    negative_prompt: Optional[str] = Field(
        default=None,
        description="Text describing what not to include in the video.",
    )
    aspect_ratio: Optional[Literal["16:9", "9:16"]] = Field(
        default=None,
        description="Video aspect ratio. Veo 2 supports both, Veo 3 only 16:9.",
    )
    person_generation: Optional[Literal["allow_all", "allow_adult", "dont_allow"]] = Field(
        default=None,
        description="Controls generation of people. Veo 3 text-to-video only supports allow_all.",
    )
    number_of_videos: int = Field(
        default=1,
        ge=1,
        le=2,
        description="Number of videos to generate (Veo 2 only, max 2).",
    )
    use_image_id: Optional[str] = Field(
        default=None,
        description="ID of a previously generated image to use as starting frame.",
    )
    use_latest_image: bool = Field(
        default=False,
        description="Use the most recently generated image as starting frame.",
    )
    image_file: Optional[str] = Field(
        default=None,
        description="Base64 image data from user upload (handled by the system).",
    )


class CheckVideoStatusParams(ActionParams):
    operation_name: str = Field(min_length=1, description="The operation name from generate-veo-video.")


class GenerateImageParams(ActionParams):
    prompt: str = Field(min_length=1, description="The image generation prompt.")
    number_of_images: int = Field(default=1, ge=1, le=4, description="Number of images to generate (1-4).")
    aspect_ratio: Literal["1:1", "3:4", "4:3", "9:16", "16:9"] = Field(
        default="1:1",
        description="Aspect ratio of the generated images.",
    )


class ListMediaParams(ActionParams):
    type: Literal["all", "videos", "images"] = "all"
    status: Literal["all", "ready", "generating", "failed"] = "all"


class ClearProjectParams(ActionParams):
    confirm: bool = Field(description="Confirm clearing all media.")


class StartWorkflowParams(ActionParams):
    name: str = Field(min_length=1)
    steps: list[WorkflowStep]


class TrackGenerationParams(ActionParams):
    type: MediaKind
    success: bool
    duration: Optional[float] = Field(default=None, ge=0, description="Generation time in seconds.")


class UpdateVideoPreferencesParams(ActionParams):
    aspect_ratio: Optional[VideoAspectRatio] = None
    model: Optional[VeoModelName] = None
    negative_prompt: Optional[str] = None
    style: Optional[str] = None


class UpdateImagePreferencesParams(ActionParams):
    preferred_model: Optional[str] = None
    default_style: Optional[str] = None


class SaveWorkflowTemplateParams(ActionParams):
    name: str = Field(min_length=1)
    steps: list[WorkflowStep]


class AddVideoParams(ActionParams):
    prompt: str
    operation_name: str = Field(min_length=1)


class UpdateVideoStatusParams(ActionParams):
    video_id: str = Field(min_length=1)
    status: VideoStatus
    url: Optional[str] = None


class AddImageParams(ActionParams):
    prompt: str
    url: str = Field(min_length=1)


class CreateCollectionParams(ActionParams):
    name: str = Field(min_length=1)
    video_ids: list[str] = Field(default_factory=list)
    image_ids: list[str] = Field(default_factory=list)
