"""
Error taxonomy shared by actions, the provider gateway and the HTTP layer.
"""
from __future__ import annotations

from typing import Any, Optional


class ActionError(Exception):
    """Base error that converts into the structured failure shape."""

    code = "ACTION_FAILED"
    http_status = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_result(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.details)
        payload.update(success=False, error=self.code, message=self.message)
        return payload


class ValidationFailure(ActionError):
    code = "INVALID_PARAMS"
    http_status = 400


class ProviderError(ActionError):
    code = "PROVIDER_ERROR"
    http_status = 502


class StorageError(ActionError):
    code = "STORAGE_ERROR"


class MediaStorageError(StorageError):
    """Raised on file I/O failures in the media store (never for a missing file)."""


class NotFoundError(ActionError):
    code = "NOT_FOUND"
    http_status = 404
