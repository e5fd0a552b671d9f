"""Admin catalog: plans, videos, payment methods and media uploads."""

from decimal import Decimal

import pytest

from helpers import register
from watchearn.core.exceptions import ConflictError, ForbiddenError, StorageFailure, ValidationError
from watchearn.models import ChannelDirection
from watchearn.services.commands import (
    PaymentMethodCommand,
    PaymentMethodUpdateCommand,
    PlanCommand,
    PlanUpdateCommand,
    VideoCommand,
)
from watchearn.storage.base import StorageBackend
from watchearn.storage.media import MediaStore

pytestmark = pytest.mark.asyncio

MP4 = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 128


async def test_plan_total_reward_follows_edits(container, admin, plan):
    assert plan.total_reward == Decimal("450.00")
    updated = await container.catalog.update_plan(admin, plan.id, PlanUpdateCommand(daily_video_limit=4))
    assert updated.total_reward == Decimal("600.00")
    with pytest.raises(ValidationError):
        await container.catalog.update_plan(admin, plan.id, PlanUpdateCommand())


async def test_plan_names_are_unique(container, admin, plan):
    with pytest.raises(ConflictError):
        await container.catalog.create_plan(
            admin,
            PlanCommand(
                name="Bronze",
                cost=Decimal("1.00"),
                daily_video_limit=1,
                duration_days=1,
                reward_per_video=Decimal("0.10"),
            ),
        )


async def test_public_plan_list_hides_inactive(container, admin, plan):
    await container.catalog.update_plan(admin, plan.id, PlanUpdateCommand(is_active=False))
    assert await container.catalog.list_plans() == []
    assert len(await container.catalog.list_plans(include_inactive=True)) == 1


async def test_catalog_is_admin_only(container):
    user = await register(container, "alice")
    with pytest.raises(ForbiddenError):
        await container.catalog.add_video(user, VideoCommand(title="x", url="https://x", duration_seconds=5))


async def test_video_upload_goes_to_media_store(container, admin):
    video = await container.catalog.add_video(
        admin, VideoCommand(title="Clip", duration_seconds=12), MP4, "clip.mp4", "video/mp4"
    )
    assert video.storage_key.startswith("videos/")
    assert video.url == f"/media/{video.storage_key}"
    assert await container.media.backend.get(video.storage_key) == MP4


async def test_video_needs_url_or_file(container, admin):
    with pytest.raises(ValidationError):
        await container.catalog.add_video(admin, VideoCommand(title="Empty", duration_seconds=12))


async def test_deactivated_videos_stay_listed_for_admins(container, admin, videos):
    await container.catalog.deactivate_video(admin, videos[0].id)
    items, total = await container.catalog.list_videos()
    assert total == 5
    active, active_total = await container.catalog.list_videos(include_inactive=False)
    assert active_total == 4


async def test_payment_methods_by_direction(container, admin):
    mpesa = await container.catalog.create_payment_method(
        admin, PaymentMethodCommand(name="M-Pesa", details="841234567", direction=ChannelDirection.BOTH)
    )
    await container.catalog.create_payment_method(
        admin, PaymentMethodCommand(name="e-Mola", details="861234567", direction=ChannelDirection.DEPOSIT)
    )
    withdraw = await container.catalog.list_payment_methods(ChannelDirection.WITHDRAWAL)
    assert [m.name for m in withdraw] == ["M-Pesa"]

    await container.catalog.update_payment_method(admin, mpesa.id, PaymentMethodUpdateCommand(is_active=False))
    assert await container.catalog.list_payment_methods(ChannelDirection.WITHDRAWAL) == []
    assert len(await container.catalog.list_payment_methods(include_inactive=True)) == 2


class _BrokenBackend(StorageBackend):
    async def put(self, key, body, content_type=None):
        raise OSError("bucket unreachable")

    async def get(self, key):
        raise FileNotFoundError(key)

    async def delete(self, key):
        pass

    def public_url(self, key):
        return key


async def test_media_failures_surface_as_storage_failure():
    media = MediaStore(_BrokenBackend(), max_upload_bytes=1024)
    with pytest.raises(StorageFailure):
        await media.store(b"\x89PNG", "avatars", "image", "a.png", "image/png")
    with pytest.raises(ValidationError):
        await media.store(b"\x00" * 2048, "videos", "video", "big.mp4", "video/mp4")
