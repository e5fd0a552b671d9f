"""Ledger core: balance moves only through entries, never below zero."""

from decimal import Decimal

import pytest

from helpers import assert_balance_matches_ledger, entries, fund, register, reload
from watchearn.core.exceptions import ForbiddenError, InsufficientFunds, ValidationError
from watchearn.models import EntryKind, EntryStatus

pytestmark = pytest.mark.asyncio


async def test_completed_entry_moves_balance(container, admin):
    user = await register(container, "alice")

    async def _post(uow):
        account = await uow.accounts.get(user.id)
        return await container.ledger.post_entry(uow, account, Decimal("12.50"), EntryKind.ADMIN_CREDIT, "bonus")

    entry = await container.datastore.run(_post)
    assert entry.status == EntryStatus.COMPLETED
    assert entry.balance_after == Decimal("62.50")
    assert (await reload(container, user.id)).balance == Decimal("62.50")
    await assert_balance_matches_ledger(container, user.id)


async def test_debit_past_zero_rolls_back(container, admin):
    user = await register(container, "bob")

    async def _overdraw(uow):
        account = await uow.accounts.get(user.id)
        await container.ledger.post_entry(uow, account, Decimal("10.00"), EntryKind.ADMIN_CREDIT, "first")
        await container.ledger.post_entry(uow, account, Decimal("-100.00"), EntryKind.ADMIN_DEBIT, "too much")

    with pytest.raises(InsufficientFunds):
        await container.datastore.run(_overdraw)

    # the earlier credit in the same unit of work is gone too
    assert (await reload(container, user.id)).balance == Decimal("50.00")
    assert len(await entries(container, account_id=user.id)) == 1


async def test_failure_mid_transaction_leaves_no_trace(container):
    user = await register(container, "carol")

    async def _boom(uow):
        account = await uow.accounts.get(user.id)
        await container.ledger.post_entry(uow, account, Decimal("5.00"), EntryKind.ADMIN_CREDIT, "x")
        raise RuntimeError("crash after posting")

    with pytest.raises(RuntimeError):
        await container.datastore.run(_boom)
    assert (await reload(container, user.id)).balance == Decimal("50.00")
    await assert_balance_matches_ledger(container, user.id)


@pytest.mark.parametrize(
    "amount,kind",
    [
        (Decimal("0"), EntryKind.ADMIN_CREDIT),
        (Decimal("10"), EntryKind.PLAN_PURCHASE),
        (Decimal("-10"), EntryKind.DAILY_REWARD),
    ],
)
async def test_sign_and_amount_rules(container, amount, kind):
    user = await register(container, "dave")

    async def _post(uow):
        account = await uow.accounts.get(user.id)
        await container.ledger.post_entry(uow, account, amount, kind, "bad")

    with pytest.raises(ValidationError):
        await container.datastore.run(_post)


async def test_only_requests_can_be_pending(container):
    user = await register(container, "erin")

    async def _post(uow):
        account = await uow.accounts.get(user.id)
        await container.ledger.post_entry(
            uow, account, Decimal("5"), EntryKind.DAILY_REWARD, "x", status=EntryStatus.PENDING
        )

    with pytest.raises(ValidationError):
        await container.datastore.run(_post)


async def test_pending_entry_settles_once(container):
    user = await register(container, "frank")

    async def _pending(uow):
        account = await uow.accounts.get(user.id)
        return await container.ledger.post_entry(
            uow, account, Decimal("20"), EntryKind.DEPOSIT, "deposit", status=EntryStatus.PENDING
        )

    entry = await container.datastore.run(_pending)
    assert entry.balance_after is None
    assert (await reload(container, user.id)).balance == Decimal("50.00")

    async def _settle(uow):
        account = await uow.accounts.get(user.id)
        stored = await uow.ledger.get(entry.id)
        return await container.ledger.settle_entry(uow, stored, account)

    settled = await container.datastore.run(_settle)
    assert settled.status == EntryStatus.COMPLETED
    assert (await reload(container, user.id)).balance == Decimal("70.00")

    with pytest.raises(ValidationError):
        await container.datastore.run(_settle)
    assert (await reload(container, user.id)).balance == Decimal("70.00")


async def test_reconcile_reports_pending_separately(container):
    user = await register(container, "gina")

    async def _pending(uow):
        account = await uow.accounts.get(user.id)
        await container.ledger.post_entry(
            uow, account, Decimal("-20"), EntryKind.WITHDRAWAL, "payout", status=EntryStatus.PENDING
        )

    await container.datastore.run(_pending)
    result = await container.ledger.reconcile(user.id)
    assert result.matches
    assert result.ledger_total == Decimal("50.00")
    assert result.pending_total == Decimal("-20.00")


async def test_admin_adjust(container, admin):
    user = await register(container, "hank")
    await fund(container, admin, user.id, "25.00")
    entry = await container.ledger.admin_adjust(admin, user.id, Decimal("30.00"), "remove", "chargeback")
    assert entry.kind == EntryKind.ADMIN_DEBIT
    assert entry.amount == Decimal("-30.00")
    assert (await reload(container, user.id)).balance == Decimal("45.00")

    with pytest.raises(InsufficientFunds):
        await container.ledger.admin_adjust(admin, user.id, Decimal("45.01"), "remove")

    async def _audit(uow):
        return await uow.audit_logs.find(event_type="balance_adjusted", entity_id=user.id)

    assert len(await container.datastore.run(_audit)) == 2
    await assert_balance_matches_ledger(container, user.id)


async def test_admin_adjust_requires_admin(container):
    user = await register(container, "ivan")
    with pytest.raises(ForbiddenError):
        await container.ledger.admin_adjust(user, user.id, Decimal("10"), "add")


async def test_history_newest_first_and_filtered(container, admin):
    user = await register(container, "judy")
    await fund(container, admin, user.id, "1.00")
    await fund(container, admin, user.id, "2.00")

    history = await container.ledger.history(user.id)
    assert [e.kind for e in history][-1] == EntryKind.SIGNUP_BONUS
    credits = await container.ledger.history(user.id, kind=EntryKind.ADMIN_CREDIT)
    assert len(credits) == 2


async def test_entries_are_stamped_by_the_service_clock(container, admin, clock):
    user = await register(container, "kurt")
    signed_up = clock()
    funded = clock.advance(hours=3)
    await fund(container, admin, user.id, "4.00")

    history = await container.ledger.history(user.id)
    assert [(e.kind, e.created_at) for e in history] == [
        (EntryKind.ADMIN_CREDIT, funded),
        (EntryKind.SIGNUP_BONUS, signed_up),
    ]
    assert (await reload(container, user.id)).created_at == signed_up


async def test_lost_version_race_is_retried(container):
    user = await register(container, "kate")
    attempts = []

    async def _racy(uow):
        attempts.append(1)
        first = await uow.accounts.get(user.id)
        stale = await uow.accounts.get(user.id)
        if len(attempts) == 1:
            await container.ledger.post_entry(uow, first, Decimal("1"), EntryKind.ADMIN_CREDIT, "winner")
            # stale copy still carries the old version
            await container.ledger.post_entry(uow, stale, Decimal("1"), EntryKind.ADMIN_CREDIT, "loser")
        else:
            await container.ledger.post_entry(uow, first, Decimal("1"), EntryKind.ADMIN_CREDIT, "retry")

    await container.datastore.run(_racy)
    assert len(attempts) == 2
    assert (await reload(container, user.id)).balance == Decimal("51.00")
    await assert_balance_matches_ledger(container, user.id)
