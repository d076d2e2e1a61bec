"""
Provider gateway: model-aware request validation plus the generate/poll/download
flows for Veo videos and Imagen images.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional

from veostudio.errors import MediaStorageError, ProviderError, ValidationFailure
from veostudio.gemini import GeminiClient
from veostudio.media_store import MediaStore
from veostudio.models import new_id


logger = logging.getLogger(__name__)

PersonGeneration = Literal["allow_all", "allow_adult", "dont_allow"]
ImageAspectRatio = Literal["1:1", "3:4", "4:3", "9:16", "16:9"]


@dataclass(frozen=True)
class VeoModelSpec:
    name: str
    label: str
    aspect_ratios: tuple[str, ...]
    max_videos: int
    text_person_generation: tuple[str, ...]
    has_audio: bool


VEO_MODELS: dict[str, VeoModelSpec] = {
    "veo-3.0-generate-preview": VeoModelSpec(
        name="veo-3.0-generate-preview",
        label="Veo 3",
        aspect_ratios=("16:9",),
        max_videos=1,
        text_person_generation=("allow_all",),
        has_audio=True,
    ),
    "veo-3.0-fast-generate-preview": VeoModelSpec(
        name="veo-3.0-fast-generate-preview",
        label="Veo 3 Fast",
        aspect_ratios=("16:9",),
        max_videos=1,
        text_person_generation=("allow_all",),
        has_audio=True,
    ),
    "veo-2.0-generate-001": VeoModelSpec(
        name="veo-2.0-generate-001",
        label="Veo 2",
        aspect_ratios=("16:9", "9:16"),
        max_videos=2,
        text_person_generation=("allow_all", "allow_adult", "dont_allow"),
        has_audio=False,
    ),
}

VIDEO_ASPECT_RATIOS = ("16:9", "9:16")


@dataclass
class StartingImage:
    data: bytes
    mime_type: str = "image/png"


@dataclass
class VideoRequest:
    prompt: str
    model: str = "veo-3.0-generate-preview"
    aspect_ratio: str = "16:9"
    negative_prompt: Optional[str] = None
    person_generation: Optional[str] = None
    number_of_videos: int = 1
    image: Optional[StartingImage] = None


@dataclass
class VideoJob:
    operation_name: str
    model: str


@dataclass
class VideoStatusResult:
    status: Literal["processing", "ready", "failed"]
    progress: int = 0
    url: Optional[str] = None
    message: str = ""


@dataclass
class StoredImage:
    id: str
    url: str


def validate_video_request(request: VideoRequest) -> VeoModelSpec:
    """Check model-specific constraints; raises ``ValidationFailure`` without any network call."""
    if not request.prompt or not request.prompt.strip():
        raise ValidationFailure("A prompt is required to generate a video.", code="MISSING_PROMPT")

    spec = VEO_MODELS.get(request.model)
    if spec is None:
        raise ValidationFailure(
            f"Unknown Veo model '{request.model}'. Choose one of: {', '.join(VEO_MODELS)}.",
            code="INVALID_MODEL",
        )

    if request.aspect_ratio not in spec.aspect_ratios:
        raise ValidationFailure(
            f"{spec.label} only supports {', '.join(spec.aspect_ratios)} aspect ratio. "
            "Use Veo 2 for 9:16.",
            code="INVALID_ASPECT_RATIO",
        )

    if (
        request.image is None
        and request.person_generation
        and request.person_generation not in spec.text_person_generation
    ):
        raise ValidationFailure(
            f'{spec.label} text-to-video only supports "allow_all" for person generation. '
            'Use "allow_adult" only with image input.',
            code="INVALID_PERSON_GENERATION",
        )

    if request.number_of_videos < 1 or request.number_of_videos > spec.max_videos:
        if spec.max_videos == 1:
            message = (
                "Only Veo 2 supports generating multiple videos. "
                f"{spec.label} generates one video at a time."
            )
        else:
            message = f"{spec.label} can generate at most {spec.max_videos} videos per request."
        raise ValidationFailure(message, code="INVALID_NUMBER_OF_VIDEOS")
    return spec


class MediaGateway:
    """Talks to the provider and persists results through the media stores."""

    def __init__(self, client: GeminiClient, image_store: MediaStore, video_store: MediaStore):
        self.client = client
        self.image_store = image_store
        self.video_store = video_store

    def generate_video(self, request: VideoRequest) -> VideoJob:
        spec = validate_video_request(request)
        operation_name = self.client.start_video_generation(
            model=spec.name,
            prompt=request.prompt,
            negative_prompt=request.negative_prompt or None,
            aspect_ratio=request.aspect_ratio,
            person_generation=request.person_generation,
            number_of_videos=request.number_of_videos if spec.max_videos > 1 else None,
            image_bytes=request.image.data if request.image else None,
            image_mime_type=request.image.mime_type if request.image else "image/png",
        )
        logger.info("[generate_video] Started operation %s", operation_name)
        return VideoJob(operation_name=operation_name, model=spec.name)

    def check_video_status(self, operation_name: str, video_id: Optional[str] = None) -> VideoStatusResult:
        """
        Poll a video operation once.

        When the job is done the first generated video is downloaded into the
        video store and exposed through its public URL.
        """
        operation = self.client.get_video_operation(operation_name)
        if not operation.done:
            progress = operation.progress_percent or 0
            return VideoStatusResult(
                status="processing",
                progress=progress,
                message=f"Video is still processing... {progress}% complete",
            )

        if operation.error:
            return VideoStatusResult(status="failed", message=f"Video generation failed: {operation.error}")
        if not operation.video_uris:
            return VideoStatusResult(status="failed", message="Video generation failed: no video was returned.")

        artifact_id = video_id or new_id()
        try:
            data = self.client.download_video(operation.video_uris[0])
            url = self.video_store.save(artifact_id, data)
        except (ProviderError, MediaStorageError) as exc:
            logger.error("[check_video_status] Could not retrieve artifact for %s: %s", operation_name, exc)
            return VideoStatusResult(status="failed", message=f"Video generation failed: {exc.message}")

        return VideoStatusResult(status="ready", progress=100, url=url, message="Video is ready!")

    def generate_images(
        self,
        prompt: str,
        number_of_images: int = 1,
        aspect_ratio: str = "1:1",
        model: Optional[str] = None,
    ) -> list[StoredImage]:
        if not prompt or not prompt.strip():
            raise ValidationFailure("A prompt is required to generate images.", code="MISSING_PROMPT")
        if not 1 <= number_of_images <= 4:
            raise ValidationFailure("numberOfImages must be between 1 and 4.", code="INVALID_NUMBER_OF_IMAGES")

        payloads = self.client.generate_images(
            prompt=prompt,
            number_of_images=number_of_images,
            aspect_ratio=aspect_ratio,
            model=model,
        )
        if not payloads:
            raise ProviderError("No image data in response.", code="NO_IMAGES_RETURNED")

        stored: list[StoredImage] = []
        for payload in payloads:
            image_id = new_id()
            url = self.image_store.save(image_id, payload.image_bytes)
            stored.append(StoredImage(id=image_id, url=url))
        return stored
