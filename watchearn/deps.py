"""Shared FastAPI dependencies."""

from fastapi import Depends, Request

from watchearn.container import Container
from watchearn.core.exceptions import ForbiddenError
from watchearn.core.logging import bind_account
from watchearn.models import Account


def get_container(request: Request) -> Container:
    return request.app.state.container


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_account(request: Request, container: Container = Depends(get_container)) -> Account:
    """Dependency: resolve the bearer token to a live, unblocked account."""
    account = await container.accounts.identity_from_token(_bearer_token(request))
    bind_account(account.id)
    return account


async def require_admin(
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
) -> Account:
    """Dependency: require the current account to be an admin."""
    if not container.accounts.authorize(account):
        raise ForbiddenError("Admin only")
    return account
