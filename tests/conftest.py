import os
import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# In-process datastore and throwaway media dir; set before watchearn.main is imported
os.environ.setdefault("DATASTORE_BACKEND", "memory")
os.environ.setdefault("STORAGE_LOCAL_PATH", tempfile.mkdtemp(prefix="watchearn-media-"))
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")

from watchearn.container import Container, build_container  # noqa: E402
from watchearn.core.config import Settings  # noqa: E402
from watchearn.core.exceptions import NotifyFailure  # noqa: E402
from watchearn.db.memory import MemoryDatastore  # noqa: E402
from watchearn.models import Account, PlanDefinition, Video  # noqa: E402
from watchearn.services.commands import PlanCommand, VideoCommand  # noqa: E402
from watchearn.services.notifier import Notifier  # noqa: E402
from watchearn.storage.local import LocalStorage  # noqa: E402
from watchearn.storage.media import MediaStore  # noqa: E402
from helpers import ADMIN_EMAIL, ADMIN_PASSWORD  # noqa: E402


class FakeClock:
    """Controllable clock; starts at noon in Maputo."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 3, 10, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict]] = []
        self.fail = False
        self.error: Exception | None = None

    async def send(self, to: str, template: str, params: dict[str, Any]) -> None:
        if self.fail:
            raise NotifyFailure("smtp down")
        if self.error is not None:
            raise self.error
        self.sent.append((to, template, params))

    def templates(self) -> list[str]:
        return [t for _, t, _ in self.sent]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        datastore_backend="memory",
        storage_backend="local",
        storage_local_path=str(tmp_path / "media"),
        secret_key="test-secret-key-min-32-characters-long",
        admin_email=ADMIN_EMAIL,
        admin_username="admin",
        admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture
def container(settings: Settings, clock: FakeClock, notifier: RecordingNotifier) -> Container:
    media = MediaStore(LocalStorage(settings), settings.max_upload_bytes)
    return build_container(settings, datastore=MemoryDatastore(), media=media, notifier=notifier, clock=clock)


@pytest_asyncio.fixture
async def admin(container: Container) -> Account:
    return await container.accounts.ensure_bootstrap_admin()


@pytest_asyncio.fixture
async def plan(container: Container, admin: Account) -> PlanDefinition:
    return await container.catalog.create_plan(
        admin,
        PlanCommand(
            name="Bronze",
            cost=Decimal("100.00"),
            daily_video_limit=3,
            duration_days=30,
            reward_per_video=Decimal("5.00"),
        ),
    )


@pytest_asyncio.fixture
async def videos(container: Container, admin: Account) -> list[Video]:
    out = []
    for i in range(5):
        out.append(
            await container.catalog.add_video(
                admin,
                VideoCommand(title=f"Video {i}", url=f"https://cdn.example.com/v{i}.mp4", duration_seconds=30),
            )
        )
    return out


@pytest_asyncio.fixture
async def client(container: Container) -> AsyncGenerator[AsyncClient, None]:
    from watchearn.main import create_app

    app = create_app(container=container)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
