from fastapi import APIRouter, Depends

from watchearn.container import Container
from watchearn.core.pagination import PageParams, page_params
from watchearn.deps import get_container, get_current_account
from watchearn.models import Account

router = APIRouter()


@router.get("/me")
async def my_referrals(
    params: PageParams = Depends(page_params),
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    """Own referral code and the accounts that signed up with it."""
    referred = await container.referrals.list_referrals(account.id, limit=params.limit, offset=params.offset)
    return {"referral_code": account.referral_code, "referrals": referred}


@router.get("/stats")
async def referral_stats(account: Account = Depends(get_current_account), container: Container = Depends(get_container)):
    return await container.referrals.referral_stats(account.id)
