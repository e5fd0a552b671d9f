from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from watchearn.container import Container
from watchearn.core.pagination import PageParams, page_params, to_page
from watchearn.deps import get_container, require_admin
from watchearn.models import Account, ChannelDirection, EntryKind, EntryStatus, RequestStatus
from watchearn.services.commands import (
    BalanceAdjustCommand,
    BlockCommand,
    PaymentMethodCommand,
    PaymentMethodUpdateCommand,
    PlanCommand,
    PlanUpdateCommand,
    ResolveCommand,
    VideoCommand,
)

router = APIRouter()


# Accounts


@router.get("/accounts")
async def list_accounts(
    is_blocked: bool | None = None,
    params: PageParams = Depends(page_params),
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    items, total = await container.accounts.list_accounts(is_blocked, params.limit, params.offset)
    return to_page([a.public() for a in items], params, total)


@router.get("/accounts/{account_id}")
async def get_account(
    account_id: str,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    view = await container.accounts.account_view(account_id)
    return view.as_dict()


@router.put("/accounts/{account_id}/block")
async def block_account(
    account_id: str,
    body: BlockCommand,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    """Block or unblock; blocked accounts cannot log in or use their token."""
    account = await container.accounts.set_blocked(admin, account_id, body.is_blocked)
    return account.public()


@router.put("/accounts/{account_id}/balance")
async def adjust_balance(
    account_id: str,
    body: BalanceAdjustCommand,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    entry = await container.ledger.admin_adjust(admin, account_id, body.amount, body.direction, body.note)
    return entry.model_dump(mode="json")


@router.get("/accounts/{account_id}/transactions")
async def account_transactions(
    account_id: str,
    kind: EntryKind | None = None,
    params: PageParams = Depends(page_params),
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    entries = await container.ledger.history(account_id, kind=kind, limit=params.limit, offset=params.offset)
    return to_page(entries, params)


@router.get("/accounts/{account_id}/reconcile")
async def account_reconcile(
    account_id: str,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    result = await container.ledger.reconcile(account_id)
    return result.as_dict()


@router.get("/transactions")
async def transactions(
    kind: EntryKind | None = None,
    entry_status: EntryStatus | None = Query(None, alias="status"),
    params: PageParams = Depends(page_params),
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    """All ledger entries, newest first."""
    entries = await container.ledger.all_entries(kind, entry_status, params.limit, params.offset)
    return to_page(entries, params)


# Plans


@router.get("/plans")
async def list_plans(admin: Account = Depends(require_admin), container: Container = Depends(get_container)):
    plans = await container.catalog.list_plans(include_inactive=True)
    return {"plans": [p.model_dump(mode="json") for p in plans]}


@router.post("/plans", status_code=status.HTTP_201_CREATED)
async def create_plan(
    body: PlanCommand,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    plan = await container.catalog.create_plan(admin, body)
    return plan.model_dump(mode="json")


@router.put("/plans/{plan_id}")
async def update_plan(
    plan_id: str,
    body: PlanUpdateCommand,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    plan = await container.catalog.update_plan(admin, plan_id, body)
    return plan.model_dump(mode="json")


# Videos


@router.get("/videos")
async def list_videos(
    params: PageParams = Depends(page_params),
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    items, total = await container.catalog.list_videos(limit=params.limit, offset=params.offset)
    return to_page(items, params, total)


@router.post("/videos", status_code=status.HTTP_201_CREATED)
async def add_video(
    body: VideoCommand,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    """Register a hosted video by URL."""
    video = await container.catalog.add_video(admin, body)
    return video.model_dump(mode="json")


@router.post("/videos/upload", status_code=status.HTTP_201_CREATED)
async def upload_video(
    title: str = Form(..., min_length=1, max_length=200),
    duration_seconds: int = Form(..., gt=0),
    description: str = Form("", max_length=2000),
    file: UploadFile = File(...),
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    """Upload a video file to media storage."""
    cmd = VideoCommand(title=title, description=description, duration_seconds=duration_seconds)
    data = await file.read()
    video = await container.catalog.add_video(admin, cmd, data, file.filename, file.content_type)
    return video.model_dump(mode="json")


@router.delete("/videos/{video_id}")
async def deactivate_video(
    video_id: str,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    video = await container.catalog.deactivate_video(admin, video_id)
    return {"id": video.id, "is_active": video.is_active}


# Payment methods


@router.get("/payment-methods")
async def list_payment_methods(
    direction: ChannelDirection | None = None,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    methods = await container.catalog.list_payment_methods(direction=direction, include_inactive=True)
    return {"payment_methods": [m.model_dump(mode="json") for m in methods]}


@router.post("/payment-methods", status_code=status.HTTP_201_CREATED)
async def create_payment_method(
    body: PaymentMethodCommand,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    method = await container.catalog.create_payment_method(admin, body)
    return method.model_dump(mode="json")


@router.put("/payment-methods/{method_id}")
async def update_payment_method(
    method_id: str,
    body: PaymentMethodUpdateCommand,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    method = await container.catalog.update_payment_method(admin, method_id, body)
    return method.model_dump(mode="json")


# Deposits and withdrawals


@router.get("/deposits")
async def list_deposits(
    request_status: RequestStatus | None = Query(None, alias="status"),
    account_id: str | None = None,
    params: PageParams = Depends(page_params),
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    items = await container.reconciliation.list_deposits(account_id, request_status, params.limit, params.offset)
    return to_page(items, params)


@router.put("/deposits/{deposit_id}/approve")
async def approve_deposit(
    deposit_id: str,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    deposit = await container.reconciliation.approve_deposit(admin, deposit_id)
    return deposit.model_dump(mode="json")


@router.put("/deposits/{deposit_id}/reject")
async def reject_deposit(
    deposit_id: str,
    body: ResolveCommand | None = None,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    deposit = await container.reconciliation.reject_deposit(admin, deposit_id, body.reason if body else None)
    return deposit.model_dump(mode="json")


@router.get("/withdrawals")
async def list_withdrawals(
    request_status: RequestStatus | None = Query(None, alias="status"),
    account_id: str | None = None,
    params: PageParams = Depends(page_params),
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    items = await container.reconciliation.list_withdrawals(account_id, request_status, params.limit, params.offset)
    return to_page(items, params)


@router.put("/withdrawals/{withdrawal_id}/approve")
async def approve_withdrawal(
    withdrawal_id: str,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    """May come back `rejected` with reason `insufficient_balance`."""
    withdrawal = await container.reconciliation.approve_withdrawal(admin, withdrawal_id)
    return withdrawal.model_dump(mode="json")


@router.put("/withdrawals/{withdrawal_id}/reject")
async def reject_withdrawal(
    withdrawal_id: str,
    body: ResolveCommand | None = None,
    admin: Account = Depends(require_admin),
    container: Container = Depends(get_container),
):
    withdrawal = await container.reconciliation.reject_withdrawal(admin, withdrawal_id, body.reason if body else None)
    return withdrawal.model_dump(mode="json")
