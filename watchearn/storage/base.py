from abc import ABC, abstractmethod
from typing import BinaryIO

from watchearn.core.config import Settings


class StorageBackend(ABC):
    @abstractmethod
    async def put(self, key: str, body: BinaryIO | bytes, content_type: str | None = None) -> str:
        """Store file; return the public URL."""
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Retrieve file bytes."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete file."""
        ...

    @abstractmethod
    def public_url(self, key: str) -> str:
        ...


def get_storage(settings: Settings) -> StorageBackend:
    if settings.storage_backend == "gcs":
        from watchearn.storage.gcs import GCSStorage
        return GCSStorage(settings)
    from watchearn.storage.local import LocalStorage
    return LocalStorage(settings)
