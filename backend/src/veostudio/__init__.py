"""
Veo Studio - agent-driven video and image generation.

Lets a chat agent (or a UI) drive Google's generative media models by:
1. Starting Veo video jobs and polling them to completion
2. Generating Imagen stills and keeping them on disk
3. Tracking media, workflows, preferences and usage per project
"""

from veostudio.config import Config, configure_logging
from veostudio.errors import (
    ActionError,
    MediaStorageError,
    NotFoundError,
    ProviderError,
    StorageError,
    ValidationFailure,
)
from veostudio.gateway import MediaGateway, VideoRequest, validate_video_request
from veostudio.gemini import GeminiClient
from veostudio.media_store import MediaStore
from veostudio.runtime import StudioRuntime

__version__ = "0.1.0"

__all__ = [
    "Config",
    "configure_logging",
    "ActionError",
    "MediaStorageError",
    "NotFoundError",
    "ProviderError",
    "StorageError",
    "ValidationFailure",
    "MediaGateway",
    "VideoRequest",
    "validate_video_request",
    "GeminiClient",
    "MediaStore",
    "StudioRuntime",
]
