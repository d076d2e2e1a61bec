from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

import pytest


BACKEND_ROOT = Path(__file__).resolve().parents[1]
BACKEND_SRC = BACKEND_ROOT / "src"

if str(BACKEND_SRC) not in sys.path:
    sys.path.insert(0, str(BACKEND_SRC))

from veostudio.config import Config  # noqa: E402
from veostudio.gemini import GeminiClient  # noqa: E402
from veostudio.runtime import StudioRuntime  # noqa: E402


class FakeModels:
    def __init__(self) -> None:
        self.video_calls: list[dict] = []
        self.image_calls: list[dict] = []
        self.images_to_return: Optional[int] = None

    def generate_videos(self, model, prompt, image=None, config=None):
        self.video_calls.append({"model": model, "prompt": prompt, "image": image, "config": config})
        return SimpleNamespace(name=f"models/{model}/operations/op-{len(self.video_calls)}")

    def generate_images(self, model, prompt, config=None):
        self.image_calls.append({"model": model, "prompt": prompt, "config": config})
        count = self.images_to_return if self.images_to_return is not None else config.number_of_images
        return SimpleNamespace(
            generated_images=[
                SimpleNamespace(image=SimpleNamespace(image_bytes=f"png-{index}".encode(), mime_type="image/png"))
                for index in range(count)
            ]
        )


class FakeOperations:
    def __init__(self) -> None:
        self.done = False
        self.progress = 40
        self.error: Optional[dict] = None
        self.uri = "https://files.example/video-1"
        self.requested: list[str] = []

    def get(self, operation):
        self.requested.append(operation.name)
        response = None
        if self.done and not self.error:
            response = SimpleNamespace(generated_videos=[SimpleNamespace(video=SimpleNamespace(uri=self.uri))])
        return SimpleNamespace(
            name=operation.name,
            done=self.done,
            metadata={"progressPercent": self.progress},
            error=self.error,
            response=response,
        )


class FakeFiles:
    def __init__(self) -> None:
        self.payload = b"mp4-bytes"
        self.downloads: list[str] = []

    def download(self, file):
        self.downloads.append(file.uri)
        return self.payload


@pytest.fixture
def fake_sdk() -> SimpleNamespace:
    return SimpleNamespace(models=FakeModels(), operations=FakeOperations(), files=FakeFiles())


@pytest.fixture
def studio_config(tmp_path: Path) -> Config:
    return Config(gemini_api_key="test-key", media_root=tmp_path / "public")


@pytest.fixture
def runtime(studio_config: Config, fake_sdk: SimpleNamespace):
    studio = StudioRuntime(studio_config, client=GeminiClient(studio_config, client=fake_sdk))
    studio.start()
    yield studio
    studio.close()
