"""
Gemini Client - Shared client for the Veo and Imagen endpoints.

Wraps ``google.genai`` so the rest of the code only sees plain models
(:class:`ProviderOperation`, :class:`GeneratedImagePayload`) and the error
taxonomy in :mod:`veostudio.errors`.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, TypeVar

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel, Field
from tenacity import RetryError, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from veostudio.config import Config
from veostudio.errors import ActionError, NotFoundError, ProviderError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_retryable_rate_limit_error(exc: BaseException) -> bool:
    if getattr(exc, "status_code", None) == 429 or getattr(exc, "code", None) == 429:
        return True
    message = str(exc).lower()
    return "429" in message and ("resource_exhausted" in message or "too many requests" in message)


class ProviderOperation(BaseModel):
    """Snapshot of a long-running video generation operation."""
    name: str
    done: bool = False
    progress_percent: Optional[int] = None
    video_uris: list[str] = Field(default_factory=list)
    error: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "done": self.done,
            "metadata": {"progressPercent": self.progress_percent or 0},
        }
        if self.done and not self.error:
            payload["response"] = {
                "generatedVideos": [{"video": {"uri": uri}} for uri in self.video_uris]
            }
        if self.error:
            payload["error"] = {"message": self.error}
        return payload


class GeneratedImagePayload(BaseModel):
    image_bytes: bytes
    mime_type: str = "image/png"


class GeminiClient:
    """
    Shared Gemini client for video and image generation.

    Uses the google.genai SDK with API key auth only. A prebuilt client may be
    passed in, which is how tests substitute a fake SDK.
    """

    def __init__(self, config: Optional[Config] = None, client: Any = None):
        self.config = config or Config()
        self._client = client

    def _create_client(self):
        return genai.Client(api_key=self.config.require_api_key())

    @property
    def client(self):
        """Get the underlying genai client."""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _run_with_retry(self, operation: Callable[[], T], operation_name: str) -> T:
        attempts = max(1, int(self.config.provider_max_attempts))
        try:
            for attempt in Retrying(
                retry=retry_if_exception(_is_retryable_rate_limit_error),
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=1, min=1, max=8),
                sleep=lambda seconds: time.sleep(seconds),
            ):
                with attempt:
                    return operation()
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            logger.warning("[%s] Rate limited after %d attempts: %s", operation_name, attempts, last_error)
            raise ProviderError(
                f"{operation_name} failed after {attempts} attempts.",
                code="RATE_LIMITED",
            ) from last_error
        except ActionError:
            raise
        except genai_errors.APIError as exc:
            if exc.code == 404:
                raise NotFoundError(f"{operation_name}: resource not found.") from exc
            logger.error("[%s] Provider returned an error: %s", operation_name, exc)
            raise ProviderError(f"{operation_name} failed: {exc.message or exc}") from exc
        except Exception as exc:
            logger.error("[%s] Provider call failed: %s", operation_name, exc)
            raise ProviderError(f"{operation_name} failed: {exc}") from exc
        raise ProviderError(f"{operation_name} did not run.")  # pragma: no cover

    # ------------------------------------------------------------------
    # Veo
    # ------------------------------------------------------------------

    def start_video_generation(
        self,
        model: str,
        prompt: str,
        negative_prompt: Optional[str] = None,
        aspect_ratio: Optional[str] = None,
        person_generation: Optional[str] = None,
        number_of_videos: Optional[int] = None,
        image_bytes: Optional[bytes] = None,
        image_mime_type: str = "image/png",
    ) -> str:
        """Start a Veo job and return the provider operation name."""
        gen_config = types.GenerateVideosConfig(
            aspect_ratio=aspect_ratio,
            negative_prompt=negative_prompt,
            person_generation=person_generation,
            number_of_videos=number_of_videos,
        )
        image = types.Image(image_bytes=image_bytes, mime_type=image_mime_type) if image_bytes else None

        logger.info("[start_video_generation] model=%s prompt=%s", model, prompt[:100])
        operation = self._run_with_retry(
            lambda: self.client.models.generate_videos(
                model=model,
                prompt=prompt,
                image=image,
                config=gen_config,
            ),
            operation_name="generate_videos",
        )
        name = getattr(operation, "name", None)
        if not name:
            raise ProviderError("Provider response is missing the operation name.")
        return name

    def get_video_operation(self, operation_name: str) -> ProviderOperation:
        operation = self._run_with_retry(
            lambda: self.client.operations.get(types.GenerateVideosOperation(name=operation_name)),
            operation_name="get_operation",
        )
        metadata = getattr(operation, "metadata", None) or {}
        progress = metadata.get("progressPercent") if isinstance(metadata, dict) else None

        error = getattr(operation, "error", None)
        error_message = None
        if error:
            error_message = error.get("message") if isinstance(error, dict) else str(error)
            error_message = error_message or "Video generation failed."

        uris: list[str] = []
        response = getattr(operation, "response", None)
        for generated in getattr(response, "generated_videos", None) or []:
            video = getattr(generated, "video", None)
            uri = getattr(video, "uri", None)
            if uri:
                uris.append(uri)

        return ProviderOperation(
            name=getattr(operation, "name", None) or operation_name,
            done=bool(getattr(operation, "done", False)),
            progress_percent=int(progress) if progress is not None else None,
            video_uris=uris,
            error=error_message,
        )

    def download_video(self, uri: str) -> bytes:
        data = self._run_with_retry(
            lambda: self.client.files.download(file=types.Video(uri=uri)),
            operation_name="download_video",
        )
        if not data:
            raise ProviderError(f"Provider returned an empty artifact for {uri}.")
        return data

    # ------------------------------------------------------------------
    # Imagen
    # ------------------------------------------------------------------

    def generate_images(
        self,
        prompt: str,
        number_of_images: int = 1,
        aspect_ratio: str = "1:1",
        model: Optional[str] = None,
    ) -> list[GeneratedImagePayload]:
        model_name = model or self.config.imagen_model
        logger.info("[generate_images] model=%s count=%d prompt=%s", model_name, number_of_images, prompt[:100])
        response = self._run_with_retry(
            lambda: self.client.models.generate_images(
                model=model_name,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=number_of_images,
                    aspect_ratio=aspect_ratio,
                ),
            ),
            operation_name="generate_images",
        )
        payloads: list[GeneratedImagePayload] = []
        for generated in getattr(response, "generated_images", None) or []:
            image = getattr(generated, "image", None)
            image_bytes = getattr(image, "image_bytes", None)
            if not image_bytes:
                continue
            payloads.append(
                GeneratedImagePayload(
                    image_bytes=image_bytes,
                    mime_type=getattr(image, "mime_type", None) or "image/png",
                )
            )
        return payloads
