from fastapi import APIRouter, Depends

from watchearn.container import Container
from watchearn.deps import get_container, get_current_account
from watchearn.models import Account

router = APIRouter()


@router.get("/daily")
async def daily_videos(account: Account = Depends(get_current_account), container: Container = Depends(get_container)):
    """Today's videos; `has_plan` is false when there is nothing to offer."""
    offer = await container.entitlements.get_daily_videos(account.id)
    return offer.as_dict()


@router.post("/watch/{video_id}")
async def watch_video(
    video_id: str,
    account: Account = Depends(get_current_account),
    container: Container = Depends(get_container),
):
    result = await container.entitlements.mark_watched(account.id, video_id)
    return result.as_dict()
