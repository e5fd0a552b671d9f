from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from watchearn.container import Container
from watchearn.core.pagination import PageParams, page_params, to_page
from watchearn.deps import get_container, get_current_account
from watchearn.models import Account, ChannelDirection, RequestStatus
from watchearn.services.commands import DepositCommand, WithdrawalCommand

router = APIRouter()


@router.get("/balance")
async def balance(account: Account = Depends(get_current_account), container: Container = Depends(get_container)):
    value = await container.ledger.balance(account.id)
    return {"balance": str(value), "currency": container.settings.currency}


@router.get("/payment-methods")
async def payment_methods(
    direction: ChannelDirection | None = None,
    container: Container = Depends(get_container),
):
    """Active channels and the numbers to send money to."""
    methods = await container.catalog.list_payment_methods(direction=direction)
    return {"payment_methods": [m.model_dump(mode="json", exclude={"version"}) for m in methods]}


@router.post("/deposits", status_code=status.HTTP_201_CREATED)
async def request_deposit(
    body: DepositCommand,
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    deposit = await container.reconciliation.request_deposit(account.id, body)
    return deposit.model_dump(mode="json")


@router.post("/deposits/proof")
async def upload_deposit_proof(
    file: UploadFile = File(...),
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    """Upload a payment screenshot; pass the returned URL as `proof_image_url`."""
    data = await file.read()
    stored = await container.media.store(data, f"proofs/{account.id}", "image", file.filename or "", file.content_type)
    return {"proof_url": stored.url}


@router.get("/deposits")
async def deposit_history(
    request_status: RequestStatus | None = Query(None, alias="status"),
    params: PageParams = Depends(page_params),
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    items = await container.reconciliation.list_deposits(account.id, request_status, params.limit, params.offset)
    return to_page(items, params)


@router.post("/withdrawals", status_code=status.HTTP_201_CREATED)
async def request_withdrawal(
    body: WithdrawalCommand,
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    withdrawal = await container.reconciliation.request_withdrawal(account.id, body)
    return withdrawal.model_dump(mode="json")


@router.get("/withdrawals")
async def withdrawal_history(
    request_status: RequestStatus | None = Query(None, alias="status"),
    params: PageParams = Depends(page_params),
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    items = await container.reconciliation.list_withdrawals(account.id, request_status, params.limit, params.offset)
    return to_page(items, params)
