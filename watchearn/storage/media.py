"""User and admin uploads (avatars, deposit proofs, videos) on top of a StorageBackend."""

import mimetypes
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Literal

from watchearn.core.exceptions import StorageFailure, ValidationError
from watchearn.core.logging import get_logger
from watchearn.models.base import new_id
from watchearn.storage.base import StorageBackend

log = get_logger(__name__)

MediaKind = Literal["image", "video"]

ALLOWED_TYPES: dict[str, set[str]] = {
    "image": {"image/jpeg", "image/png", "image/webp", "image/gif"},
    "video": {"video/mp4", "video/webm", "video/quicktime", "video/x-matroska"},
}

# Images never need the full video allowance
MAX_IMAGE_BYTES = 10 * 1024 * 1024


@dataclass
class StoredMedia:
    url: str
    key: str


class MediaStore:
    def __init__(self, backend: StorageBackend, max_upload_bytes: int) -> None:
        self.backend = backend
        self.max_upload_bytes = max_upload_bytes

    def _content_type(self, filename: str, content_type: str | None) -> str:
        if content_type and content_type != "application/octet-stream":
            return content_type.split(";")[0].strip().lower()
        guessed, _ = mimetypes.guess_type(filename)
        return guessed or "application/octet-stream"

    def _key(self, folder: str, filename: str) -> str:
        suffix = PurePosixPath(filename).suffix.lower()[:10]
        stamp = datetime.now(timezone.utc).strftime("%Y/%m")
        return f"{folder.strip('/')}/{stamp}/{new_id()}{suffix}"

    async def store(
        self,
        data: bytes,
        folder: str,
        kind: MediaKind,
        filename: str,
        content_type: str | None = None,
    ) -> StoredMedia:
        if not data:
            raise ValidationError("Empty file")
        limit = MAX_IMAGE_BYTES if kind == "image" else self.max_upload_bytes
        if len(data) > limit:
            raise ValidationError("File too large", details={"max_bytes": limit})
        ctype = self._content_type(filename or "", content_type)
        if ctype not in ALLOWED_TYPES[kind]:
            raise ValidationError(
                f"Unsupported {kind} type",
                details={"content_type": ctype, "allowed": sorted(ALLOWED_TYPES[kind])},
            )

        key = self._key(folder, filename or "")
        try:
            url = await self.backend.put(key, data, content_type=ctype)
        except Exception as e:
            log.error("storage_put_failed", key=key, error=str(e))
            raise StorageFailure() from e
        log.info("media_stored", key=key, kind=kind, size=len(data))
        return StoredMedia(url=url, key=key)

    async def remove(self, key: str) -> None:
        """Best-effort cleanup of an orphaned upload."""
        try:
            await self.backend.delete(key)
        except Exception as e:
            log.warning("storage_delete_failed", key=key, error=str(e))
