"""Shortcuts shared by the service and API tests."""

from decimal import Decimal
from typing import Any

from watchearn.container import Container
from watchearn.models import Account, EntryStatus
from watchearn.services.commands import RegisterCommand

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password"


async def register(container: Container, username: str, referral_code: str | None = None) -> Account:
    session = await container.accounts.register(
        RegisterCommand(
            username=username,
            email=f"{username}@example.com",
            password="secret-pass",
            referral_code=referral_code,
        )
    )
    return session.account


async def fund(container: Container, admin: Account, account_id: str, amount: str) -> None:
    await container.ledger.admin_adjust(admin, account_id, Decimal(amount), "add", "test funding")


async def reload(container: Container, account_id: str) -> Account:
    async def _read(uow):
        return await uow.accounts.get(account_id)

    return await container.datastore.run(_read)


async def entries(container: Container, **eq: Any) -> list:
    async def _read(uow):
        return await uow.ledger.find(sort="created_at", **eq)

    return await container.datastore.run(_read)


async def assert_balance_matches_ledger(container: Container, account_id: str) -> None:
    account = await reload(container, account_id)
    completed = await entries(container, account_id=account_id, status=EntryStatus.COMPLETED)
    assert account.balance == sum((e.amount for e in completed), Decimal("0.00"))
    assert account.balance >= 0
