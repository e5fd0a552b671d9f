"""Referral bonuses land on the referrer's ledger."""

from decimal import Decimal

import pytest

from helpers import assert_balance_matches_ledger, entries, fund, register, reload
from watchearn.core.exceptions import ValidationError
from watchearn.models import EntryKind
from watchearn.services.commands import PlanCommand

pytestmark = pytest.mark.asyncio


async def test_plan_and_daily_bonuses(container, admin, plan, videos):
    referrer = await register(container, "rita")
    referee = await register(container, "eddy", referral_code=referrer.referral_code.lower())
    assert referee.referred_by == referrer.id

    await fund(container, admin, referee.id, "50.00")
    result = await container.entitlements.buy_plan(referee.id, plan.id)
    assert result.referral_entry is not None
    assert (await reload(container, referrer.id)).balance == Decimal("60.00")

    watch = await container.entitlements.mark_watched(referee.id, videos[0].id)
    assert watch.referral_entry.amount == Decimal("0.25")
    assert (await reload(container, referrer.id)).balance == Decimal("60.25")

    plan_bonus = await entries(container, account_id=referrer.id, kind=EntryKind.REFERRAL_PLAN_BONUS)
    daily_bonus = await entries(container, account_id=referrer.id, kind=EntryKind.REFERRAL_DAILY_BONUS)
    assert [e.amount for e in plan_bonus] == [Decimal("10.00")]
    assert [e.amount for e in daily_bonus] == [Decimal("0.25")]
    assert plan_bonus[0].reference_id == referee.id
    await assert_balance_matches_ledger(container, referrer.id)
    await assert_balance_matches_ledger(container, referee.id)


async def test_unreferred_account_pays_no_bonus(container, admin, plan, videos):
    user = await register(container, "solo")
    await fund(container, admin, user.id, "50.00")
    result = await container.entitlements.buy_plan(user.id, plan.id)
    assert result.referral_entry is None
    for kind in (EntryKind.REFERRAL_PLAN_BONUS, EntryKind.REFERRAL_DAILY_BONUS):
        assert await entries(container, kind=kind) == []


async def test_unknown_code_rejects_registration(container):
    with pytest.raises(ValidationError):
        await register(container, "ghost", referral_code="NOPE1234")

    async def _count(uow):
        return await uow.accounts.count(username="ghost")

    assert await container.datastore.run(_count) == 0


async def test_bonus_rounding_to_zero_is_skipped(container, admin, videos):
    cheap = await container.catalog.create_plan(
        admin,
        PlanCommand(
            name="Penny",
            cost=Decimal("1.00"),
            daily_video_limit=2,
            duration_days=7,
            reward_per_video=Decimal("0.10"),
        ),
    )
    referrer = await register(container, "rita")
    referee = await register(container, "eddy", referral_code=referrer.referral_code)
    await container.entitlements.buy_plan(referee.id, cheap.id)
    result = await container.entitlements.mark_watched(referee.id, videos[0].id)
    assert result.referral_entry is None
    # 10% of 1.00 still pays
    assert (await reload(container, referrer.id)).balance == Decimal("50.10")


async def test_stats_and_listing(container, admin, plan, videos):
    referrer = await register(container, "rita")
    first = await register(container, "eddy", referral_code=referrer.referral_code)
    await register(container, "flo", referral_code=referrer.referral_code)
    await fund(container, admin, first.id, "50.00")
    await container.entitlements.buy_plan(first.id, plan.id)
    await container.entitlements.mark_watched(first.id, videos[0].id)
    await container.entitlements.mark_watched(first.id, videos[1].id)

    stats = await container.referrals.referral_stats(referrer.id)
    assert stats == {
        "referral_code": referrer.referral_code,
        "referred_count": 2,
        "plan_bonus_total": "10.00",
        "daily_bonus_total": "0.50",
        "total": "10.50",
    }
    listed = await container.referrals.list_referrals(referrer.id)
    assert {r["username"] for r in listed} == {"eddy", "flo"}
    assert {r["plan"] for r in listed} == {"Bronze", None}
