import asyncio
from pathlib import Path
from typing import BinaryIO

from watchearn.core.config import Settings
from watchearn.storage.base import StorageBackend


class LocalStorage(StorageBackend):
    """Files under `storage_local_path`, served by the app at `storage_public_base_url`."""

    def __init__(self, settings: Settings) -> None:
        self.root = Path(settings.storage_local_path)
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = settings.storage_public_base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    async def put(self, key: str, body: BinaryIO | bytes, content_type: str | None = None) -> str:
        path = self._path(key)
        data = body if isinstance(body, bytes) else body.read()

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        return self.public_url(key)

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise FileNotFoundError(key)
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"
