"""
Raw provider passthrough routes for Veo and Imagen.
"""
from __future__ import annotations

import base64
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from veostudio.errors import ActionError, ProviderError, ValidationFailure
from veostudio.gateway import StartingImage, VideoRequest
from veostudio.media_store import decode_payload
from veostudio.runtime import StudioRuntime


logger = logging.getLogger(__name__)

router = APIRouter(tags=["provider"])


def get_runtime(request: Request) -> StudioRuntime:
    return request.app.state.runtime


def error_response(exc: Exception) -> JSONResponse:
    if isinstance(exc, ActionError):
        return JSONResponse(status_code=exc.http_status, content=exc.to_result())
    logger.exception("[error_response] Unexpected error")
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc) or "Internal error"})


class OperationRequest(BaseModel):
    name: str = ""


class DownloadRequest(BaseModel):
    uri: str = ""


class ImagenRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
    prompt: str = ""
    model: Optional[str] = None
    number_of_images: int = Field(default=1, ge=1, le=4)
    aspect_ratio: str = "1:1"


@router.post("/api/veo/generate")
def veo_generate(
    prompt: str = Form(""),
    model: str = Form("veo-3.0-generate-preview"),
    negativePrompt: Optional[str] = Form(None),
    aspectRatio: str = Form("16:9"),
    personGeneration: Optional[str] = Form(None),
    numberOfVideos: int = Form(1),
    imageBase64: Optional[str] = Form(None),
    imageMimeType: str = Form("image/png"),
    runtime: StudioRuntime = Depends(get_runtime),
):
    try:
        image = None
        if imageBase64:
            try:
                image = StartingImage(data=decode_payload(imageBase64), mime_type=imageMimeType)
            except ActionError as exc:
                raise ValidationFailure("imageBase64 is not valid base64.", code="INVALID_IMAGE_FILE") from exc
        job = runtime.gateway.generate_video(
            VideoRequest(
                prompt=prompt,
                model=model,
                aspect_ratio=aspectRatio,
                negative_prompt=negativePrompt,
                person_generation=personGeneration,
                number_of_videos=numberOfVideos,
                image=image,
            )
        )
        return {"name": job.operation_name}
    except Exception as exc:
        return error_response(exc)


@router.post("/api/veo/operation")
def veo_operation(request: OperationRequest, runtime: StudioRuntime = Depends(get_runtime)):
    if not request.name:
        return JSONResponse(status_code=400, content={"success": False, "error": "Missing operation name"})
    try:
        return runtime.client.get_video_operation(request.name).to_wire()
    except Exception as exc:
        return error_response(exc)


@router.post("/api/veo/download")
def veo_download(request: DownloadRequest, runtime: StudioRuntime = Depends(get_runtime)):
    if not request.uri:
        return JSONResponse(status_code=400, content={"success": False, "error": "Missing uri"})
    try:
        data = runtime.client.download_video(request.uri)
    except Exception as exc:
        return error_response(exc)
    return Response(content=data, media_type="video/mp4")


@router.post("/api/imagen/generate")
def imagen_generate(request: ImagenRequest, runtime: StudioRuntime = Depends(get_runtime)):
    if not request.prompt.strip():
        return JSONResponse(status_code=400, content={"success": False, "error": "Missing prompt"})
    try:
        payloads = runtime.client.generate_images(
            prompt=request.prompt,
            number_of_images=request.number_of_images,
            aspect_ratio=request.aspect_ratio,
            model=request.model,
        )
        if not payloads:
            raise ProviderError("No images returned", code="NO_IMAGES_RETURNED")
    except Exception as exc:
        return error_response(exc)

    images = [
        {
            "imageBytes": base64.b64encode(payload.image_bytes).decode("ascii"),
            "mimeType": payload.mime_type,
        }
        for payload in payloads
    ]
    return {"images": images, "image": images[0]}
