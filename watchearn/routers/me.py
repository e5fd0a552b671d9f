from fastapi import APIRouter, Depends, File, UploadFile

from watchearn.container import Container
from watchearn.core.pagination import PageParams, page_params, to_page
from watchearn.deps import get_container, get_current_account
from watchearn.models import Account, EntryKind
from watchearn.services.commands import ProfileUpdateCommand

router = APIRouter()


@router.get("")
async def profile(account: Account = Depends(get_current_account), container: Container = Depends(get_container)):
    view = await container.accounts.account_view(account.id)
    return view.as_dict()


@router.put("")
async def update_profile(
    body: ProfileUpdateCommand,
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    """Returns a fresh token; a password change invalidates the old ones."""
    session = await container.accounts.update_profile(account.id, body)
    return session.as_dict()


@router.post("/avatar")
async def upload_avatar(
    file: UploadFile = File(...),
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    data = await file.read()
    url = await container.accounts.upload_avatar(account.id, data, file.filename or "", file.content_type)
    return {"avatar_url": url}


@router.get("/ledger")
async def ledger(
    kind: EntryKind | None = None,
    params: PageParams = Depends(page_params),
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    """Ledger entries for the current account, newest first."""
    entries = await container.ledger.history(account.id, kind=kind, limit=params.limit, offset=params.offset)
    return to_page(entries, params)


@router.get("/reconcile")
async def reconcile(account: Account = Depends(get_current_account), container: Container = Depends(get_container)):
    result = await container.ledger.reconcile(account.id)
    return result.as_dict()
