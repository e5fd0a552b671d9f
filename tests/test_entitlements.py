"""Plan purchase, daily quota, lazy reset at the business-day boundary."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from helpers import assert_balance_matches_ledger, entries, fund, register, reload
from watchearn.core.exceptions import (
    AlreadyCredited,
    ForbiddenError,
    InsufficientFunds,
    NoActivePlan,
    NotFoundError,
    PlanAlreadyActive,
    QuotaExhausted,
)
from watchearn.models import EntryKind
from watchearn.services.commands import PlanUpdateCommand
from watchearn.services.entitlements import PlanState

pytestmark = pytest.mark.asyncio


async def _subscriber(container, admin, plan, username="viewer"):
    user = await register(container, username)
    await fund(container, admin, user.id, "50.00")
    await container.entitlements.buy_plan(user.id, plan.id)
    return user


async def test_buy_plan_debits_and_snapshots(container, admin, plan):
    user = await register(container, "alice")
    with pytest.raises(InsufficientFunds):
        await container.entitlements.buy_plan(user.id, plan.id)

    await fund(container, admin, user.id, "60.00")
    result = await container.entitlements.buy_plan(user.id, plan.id)
    assert result.entry.kind == EntryKind.PLAN_PURCHASE
    assert result.entry.amount == Decimal("-100.00")

    account = await reload(container, user.id)
    assert account.balance == Decimal("10.00")
    assert account.active_plan.plan_id == plan.id
    assert account.active_plan.activated_at == container.clock()
    assert (account.active_plan.expires_at - account.active_plan.activated_at).days == 30
    assert container.entitlements.plan_status(account) == PlanState.ACTIVE
    await assert_balance_matches_ledger(container, user.id)


async def test_second_purchase_while_active_is_refused(container, admin, plan):
    user = await _subscriber(container, admin, plan)
    await fund(container, admin, user.id, "100.00")
    with pytest.raises(PlanAlreadyActive):
        await container.entitlements.buy_plan(user.id, plan.id)
    assert (await reload(container, user.id)).balance == Decimal("100.00")


async def test_plan_can_be_bought_again_after_expiry(container, admin, plan, clock):
    user = await _subscriber(container, admin, plan)
    clock.advance(days=30, seconds=1)
    account = await reload(container, user.id)
    assert container.entitlements.plan_status(account) == PlanState.EXPIRED

    await fund(container, admin, user.id, "100.00")
    await container.entitlements.buy_plan(user.id, plan.id)
    assert len(await entries(container, account_id=user.id, kind=EntryKind.PLAN_PURCHASE)) == 2


async def test_inactive_plan_cannot_be_bought(container, admin, plan):
    await container.catalog.update_plan(admin, plan.id, PlanUpdateCommand(is_active=False))
    user = await register(container, "bob")
    await fund(container, admin, user.id, "100.00")
    with pytest.raises(NotFoundError):
        await container.entitlements.buy_plan(user.id, plan.id)


async def test_daily_videos_without_plan(container, videos):
    user = await register(container, "carol")
    offer = await container.entitlements.get_daily_videos(user.id)
    assert offer.has_plan is False
    assert offer.videos == []
    with pytest.raises(NoActivePlan):
        await container.entitlements.mark_watched(user.id, videos[0].id)


async def test_daily_offer_respects_quota_and_excludes_watched(container, admin, plan, videos):
    user = await _subscriber(container, admin, plan)
    offer = await container.entitlements.get_daily_videos(user.id)
    assert offer.has_plan
    assert len(offer.videos) == 3
    assert offer.remaining_today == 3

    watched = offer.videos[0].id
    await container.entitlements.mark_watched(user.id, watched)
    offer = await container.entitlements.get_daily_videos(user.id)
    assert offer.watched_today == 1
    assert len(offer.videos) == 2
    assert watched not in {v.id for v in offer.videos}


async def test_quota_boundary(container, admin, plan, videos):
    user = await _subscriber(container, admin, plan)
    for i, video in enumerate(videos[:3], start=1):
        result = await container.entitlements.mark_watched(user.id, video.id)
        assert result.watched_today == i
        assert result.entry.amount == Decimal("5.00")
    assert result.remaining_today == 0
    assert result.balance == Decimal("15.00")

    with pytest.raises(QuotaExhausted):
        await container.entitlements.mark_watched(user.id, videos[3].id)
    offer = await container.entitlements.get_daily_videos(user.id)
    assert offer.videos == [] and offer.remaining_today == 0
    assert (await reload(container, user.id)).balance == Decimal("15.00")
    await assert_balance_matches_ledger(container, user.id)


async def test_same_video_never_credited_twice_a_day(container, admin, plan, videos):
    user = await _subscriber(container, admin, plan)
    await container.entitlements.mark_watched(user.id, videos[0].id)
    with pytest.raises(AlreadyCredited):
        await container.entitlements.mark_watched(user.id, videos[0].id)
    rewards = await entries(container, account_id=user.id, kind=EntryKind.DAILY_REWARD)
    assert len(rewards) == 1


async def test_already_credited_wins_over_exhausted_quota(container, admin, plan, videos):
    user = await _subscriber(container, admin, plan)
    for video in videos[:3]:
        await container.entitlements.mark_watched(user.id, video.id)
    with pytest.raises(AlreadyCredited):
        await container.entitlements.mark_watched(user.id, videos[0].id)


async def test_quota_resets_at_business_midnight_not_utc(container, admin, plan, videos, clock):
    # 23:00 in Maputo (UTC+2) on the 10th
    clock.now = datetime(2026, 3, 10, 21, 0, tzinfo=timezone.utc)
    user = await _subscriber(container, admin, plan)
    for video in videos[:3]:
        await container.entitlements.mark_watched(user.id, video.id)

    # 00:30 local on the 11th, still the 10th in UTC
    clock.now = datetime(2026, 3, 10, 22, 30, tzinfo=timezone.utc)
    result = await container.entitlements.mark_watched(user.id, videos[0].id)
    assert result.watched_today == 1
    assert result.remaining_today == 2

    account = await reload(container, user.id)
    assert account.daily_watch_set == [videos[0].id]
    assert set(account.full_watch_history) == {v.id for v in videos[:3]}


async def test_no_reset_within_same_business_day(container, admin, plan, videos, clock):
    clock.now = datetime(2026, 3, 10, 0, 30, tzinfo=timezone.utc)  # 02:30 local
    user = await _subscriber(container, admin, plan)
    for video in videos[:3]:
        await container.entitlements.mark_watched(user.id, video.id)
    clock.now = datetime(2026, 3, 10, 21, 59, tzinfo=timezone.utc)  # 23:59 local
    with pytest.raises(QuotaExhausted):
        await container.entitlements.mark_watched(user.id, videos[4].id)


async def test_reward_uses_snapshot_not_current_catalog(container, admin, plan, videos):
    user = await _subscriber(container, admin, plan)
    await container.catalog.update_plan(
        admin, plan.id, PlanUpdateCommand(reward_per_video=Decimal("50.00"), daily_video_limit=10)
    )
    result = await container.entitlements.mark_watched(user.id, videos[0].id)
    assert result.entry.amount == Decimal("5.00")
    assert result.remaining_today == 2


async def test_expired_plan_earns_nothing(container, admin, plan, videos, clock):
    user = await _subscriber(container, admin, plan)
    clock.advance(days=31)
    with pytest.raises(NoActivePlan):
        await container.entitlements.mark_watched(user.id, videos[0].id)
    offer = await container.entitlements.get_daily_videos(user.id)
    assert offer.has_plan is False


async def test_inactive_or_unknown_video(container, admin, plan, videos):
    user = await _subscriber(container, admin, plan)
    await container.catalog.deactivate_video(admin, videos[0].id)
    with pytest.raises(NotFoundError):
        await container.entitlements.mark_watched(user.id, videos[0].id)
    with pytest.raises(NotFoundError):
        await container.entitlements.mark_watched(user.id, "missing")
    offer = await container.entitlements.get_daily_videos(user.id)
    assert videos[0].id not in {v.id for v in offer.videos}


async def test_blocked_account_cannot_watch(container, admin, plan, videos):
    user = await _subscriber(container, admin, plan)
    await container.accounts.set_blocked(admin, user.id, True)
    with pytest.raises(ForbiddenError):
        await container.entitlements.mark_watched(user.id, videos[0].id)


async def test_offer_backfills_from_history_when_catalog_is_small(container, admin, plan, videos, clock):
    user = await _subscriber(container, admin, plan)
    for video in videos[:3]:
        await container.entitlements.mark_watched(user.id, video.id)
    clock.advance(days=1)
    offer = await container.entitlements.get_daily_videos(user.id)
    # only two never-seen videos remain; one earlier video fills the third slot
    assert len(offer.videos) == 3
    assert {v.id for v in videos[3:]} <= {v.id for v in offer.videos}
