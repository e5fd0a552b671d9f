from fastapi import APIRouter, Depends

from watchearn.container import Container
from watchearn.deps import get_container, get_current_account
from watchearn.models import Account

router = APIRouter()


@router.get("")
async def list_plans(container: Container = Depends(get_container)):
    """Active plans, cheapest first. Public."""
    plans = await container.catalog.list_plans()
    return {"plans": [p.model_dump(mode="json", exclude={"version"}) for p in plans]}


@router.get("/{plan_id}")
async def get_plan(plan_id: str, container: Container = Depends(get_container)):
    plan = await container.catalog.get_plan(plan_id)
    return plan.model_dump(mode="json", exclude={"version"})


@router.post("/buy/{plan_id}")
async def buy_plan(
    plan_id: str,
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    result = await container.entitlements.buy_plan(account.id, plan_id)
    return result.as_dict()
