"""Local disk storage for generated media, served from a public directory."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from pathlib import Path
from typing import Iterable, Optional, Union

from veostudio.errors import MediaStorageError


logger = logging.getLogger(__name__)

_MEDIA_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[^,]*)?;base64,", re.IGNORECASE)

Payload = Union[str, bytes]


def split_data_url(value: str) -> tuple[str, Optional[str]]:
    """Return ``(base64_text, mime_type)`` for a data URL or bare base64 string."""
    match = _DATA_URL_RE.match(value)
    if not match:
        return value.strip(), None
    return value[match.end():].strip(), match.group("mime")


def decode_payload(payload: Payload) -> bytes:
    if isinstance(payload, bytes):
        return payload
    b64_text, _ = split_data_url(payload)
    try:
        return base64.b64decode(b64_text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MediaStorageError("Media payload is not valid base64.", code="INVALID_MEDIA_PAYLOAD") from exc


class MediaStore:
    """File-per-id media store under a public directory."""

    def __init__(
        self,
        base_dir: Path,
        url_prefix: str,
        extension: str = ".png",
        mime_type: str = "image/png",
    ):
        self.base_dir = Path(base_dir)
        self.url_prefix = "/" + url_prefix.strip("/")
        self.extension = extension if extension.startswith(".") else f".{extension}"
        self.mime_type = mime_type

    def ensure_dir(self) -> None:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("[ensure_dir] Error creating media directory %s: %s", self.base_dir, exc)
            raise MediaStorageError(f"Could not create media directory {self.base_dir}.") from exc

    def _path_for(self, media_id: str) -> Path:
        raw = (media_id or "").strip()
        if not raw or not _MEDIA_ID_RE.match(raw):
            raise MediaStorageError(f"Invalid media id: {media_id!r}", code="INVALID_MEDIA_ID")
        return self.base_dir / f"{raw}{self.extension}"

    def filename(self, media_id: str) -> str:
        return self._path_for(media_id).name

    def public_url(self, media_id: str) -> str:
        return f"{self.url_prefix}/{self.filename(media_id)}"

    def exists(self, media_id: str) -> bool:
        return self._path_for(media_id).exists()

    def save(self, media_id: str, payload: Payload) -> str:
        """Write the payload for ``media_id`` and return its public URL."""
        path = self._path_for(media_id)
        data = decode_payload(payload)
        self.ensure_dir()
        try:
            path.write_bytes(data)
        except OSError as exc:
            logger.error("[save] Error writing media %s: %s", media_id, exc)
            raise MediaStorageError(f"Could not write media {media_id}.") from exc
        return self.public_url(media_id)

    def read_bytes(self, media_id: str) -> Optional[bytes]:
        path = self._path_for(media_id)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.error("[read_bytes] Error loading media %s: %s", media_id, exc)
            raise MediaStorageError(f"Could not read media {media_id}.") from exc

    def load(self, media_id: str) -> Optional[str]:
        """Load media as a data URL, or ``None`` when nothing is stored under the id."""
        data = self.read_bytes(media_id)
        if data is None:
            return None
        encoded = base64.b64encode(data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    def delete(self, media_id: str) -> bool:
        """Remove the file for ``media_id``; ``False`` when it was already absent."""
        path = self._path_for(media_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error("[delete] Error deleting media %s: %s", media_id, exc)
            raise MediaStorageError(f"Could not delete media {media_id}.") from exc
        return True

    def clear_all(self, media_ids: Iterable[str]) -> list[str]:
        """Delete every id and return the ones that failed with an I/O error."""
        failed: list[str] = []
        for media_id in media_ids:
            try:
                self.delete(media_id)
            except MediaStorageError:
                failed.append(media_id)
        return failed
