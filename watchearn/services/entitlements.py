"""Plan lifecycle and the daily video quota."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from watchearn.core.clock import Clock, business_day_start, next_business_day_start
from watchearn.core.config import Settings
from watchearn.core.exceptions import (
    AlreadyCredited,
    ForbiddenError,
    InsufficientFunds,
    NoActivePlan,
    NotFoundError,
    PlanAlreadyActive,
    QuotaExhausted,
    ValidationError,
)
from watchearn.core.logging import get_logger
from watchearn.db.base import Datastore, UnitOfWork
from watchearn.models import Account, EntryKind, LedgerEntry, PlanDefinition, PlanSnapshot, Video
from watchearn.services.ledger import LedgerService
from watchearn.services.referrals import ReferralService

log = get_logger(__name__)


class PlanState(str, Enum):
    NO_PLAN = "no_plan"
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass
class PurchaseResult:
    account: Account
    entry: LedgerEntry
    referral_entry: LedgerEntry | None = None

    def as_dict(self) -> dict:
        return {
            "plan": self.account.active_plan.model_dump(mode="json") if self.account.active_plan else None,
            "balance": str(self.account.balance),
            "entry_id": self.entry.id,
            "referral_bonus_posted": self.referral_entry is not None,
        }


@dataclass
class DailyVideos:
    has_plan: bool
    videos: list[Video] = field(default_factory=list)
    plan: PlanSnapshot | None = None
    watched_today: int = 0
    remaining_today: int = 0
    resets_at: datetime | None = None

    def as_dict(self) -> dict:
        return {
            "has_plan": self.has_plan,
            "videos": [v.model_dump(mode="json", exclude={"version", "storage_key"}) for v in self.videos],
            "plan": self.plan.model_dump(mode="json") if self.plan else None,
            "watched_today": self.watched_today,
            "remaining_today": self.remaining_today,
            "resets_at": self.resets_at.isoformat() if self.resets_at else None,
        }


@dataclass
class RewardResult:
    entry: LedgerEntry
    balance: Decimal
    watched_today: int
    remaining_today: int
    referral_entry: LedgerEntry | None = None

    def as_dict(self) -> dict:
        return {
            "reward": str(self.entry.amount),
            "balance": str(self.balance),
            "watched_today": self.watched_today,
            "remaining_today": self.remaining_today,
            "entry_id": self.entry.id,
            "referral_bonus_posted": self.referral_entry is not None,
        }


def plan_state(account: Account, now: datetime) -> PlanState:
    """Expiry is evaluated lazily; there is no transition event."""
    if account.active_plan is None:
        return PlanState.NO_PLAN
    if account.active_plan.is_active_at(now):
        return PlanState.ACTIVE
    return PlanState.EXPIRED


def snapshot_plan(plan: PlanDefinition, now: datetime) -> PlanSnapshot:
    return PlanSnapshot(
        plan_id=plan.id,
        name=plan.name,
        cost=plan.cost,
        daily_video_limit=plan.daily_video_limit,
        duration_days=plan.duration_days,
        reward_per_video=plan.reward_per_video,
        activated_at=now,
        expires_at=now + timedelta(days=plan.duration_days),
    )


class EntitlementService:
    def __init__(
        self,
        datastore: Datastore,
        ledger: LedgerService,
        referrals: ReferralService,
        settings: Settings,
        clock: Clock,
    ) -> None:
        self.datastore = datastore
        self.ledger = ledger
        self.referrals = referrals
        self.tz_name = settings.business_timezone
        self.clock = clock

    async def _load_account(self, uow: UnitOfWork, account_id: str) -> Account:
        account = await uow.accounts.get(account_id)
        if not account:
            raise NotFoundError("Account not found")
        if account.is_blocked:
            raise ForbiddenError("Account is blocked")
        return account

    def reset_if_new_day(self, account: Account, now: datetime) -> bool:
        """
        Clear today's watch set once per business day. Returns True when it did.

        The caller saves the account; the version check on that save makes two
        concurrent resets collapse into one.
        """
        boundary = business_day_start(now, self.tz_name)
        if account.last_quota_reset_at is not None and account.last_quota_reset_at >= boundary:
            return False
        account.daily_watch_set = []
        account.last_quota_reset_at = now
        return True

    def plan_status(self, account: Account) -> PlanState:
        return plan_state(account, self.clock())

    async def buy_plan(self, account_id: str, plan_id: str) -> PurchaseResult:
        async def _buy(uow: UnitOfWork) -> PurchaseResult:
            now = self.clock()
            account = await self._load_account(uow, account_id)
            plan = await uow.plans.get(plan_id)
            if not plan or not plan.is_active:
                raise NotFoundError("Plan not found")
            if account.has_active_plan(now):
                raise PlanAlreadyActive(
                    details={"plan": account.active_plan.name, "expires_at": account.active_plan.expires_at.isoformat()}
                )
            if account.balance < plan.cost:
                raise InsufficientFunds(
                    "Insufficient balance to buy this plan",
                    details={"balance": str(account.balance), "required": str(plan.cost)},
                )

            snapshot = snapshot_plan(plan, now)
            account.active_plan = snapshot
            account.daily_watch_set = []
            account.last_quota_reset_at = now
            entry = await self.ledger.post_entry(
                uow,
                account,
                -plan.cost,
                EntryKind.PLAN_PURCHASE,
                f"Plan purchase: {plan.name}",
                reference_id=plan.id,
            )
            referral_entry = await self.referrals.post_plan_bonus(uow, account, snapshot)
            return PurchaseResult(account=account, entry=entry, referral_entry=referral_entry)

        result = await self.datastore.run(_buy)
        log.info(
            "plan_purchased",
            account_id=account_id,
            plan_id=plan_id,
            expires_at=result.account.active_plan.expires_at.isoformat(),
        )
        return result

    async def get_daily_videos(self, account_id: str) -> DailyVideos:
        """Today's offer. No plan is an answer, not an error, so clients can upsell."""

        async def _offer(uow: UnitOfWork) -> DailyVideos:
            now = self.clock()
            account = await self._load_account(uow, account_id)
            if self.reset_if_new_day(account, now):
                await uow.accounts.save(account)
            if not account.has_active_plan(now):
                return DailyVideos(has_plan=False)

            plan = account.active_plan
            watched = len(account.daily_watch_set)
            remaining = max(plan.daily_video_limit - watched, 0)
            resets_at = next_business_day_start(now, self.tz_name)
            if remaining == 0:
                return DailyVideos(True, [], plan, watched, 0, resets_at)

            today = set(account.daily_watch_set)
            novel = await uow.videos.sample(
                remaining,
                exclude_ids=today | set(account.full_watch_history),
                is_active=True,
            )
            videos = list(novel)
            if len(videos) < remaining:
                # Not enough unseen videos: repeat ones from earlier days, never today's
                backfill = await uow.videos.sample(
                    remaining - len(videos),
                    exclude_ids=today | {v.id for v in videos},
                    is_active=True,
                )
                videos.extend(backfill)
            return DailyVideos(True, videos, plan, watched, remaining, resets_at)

        return await self.datastore.run(_offer)

    async def mark_watched(self, account_id: str, video_id: str) -> RewardResult:
        if not video_id:
            raise ValidationError("video_id is required")

        async def _watch(uow: UnitOfWork) -> RewardResult:
            now = self.clock()
            account = await self._load_account(uow, account_id)
            self.reset_if_new_day(account, now)
            if not account.has_active_plan(now):
                raise NoActivePlan()
            plan = account.active_plan

            video = await uow.videos.get(video_id)
            if not video or not video.is_active:
                raise NotFoundError("Video not found")
            if video.id in account.daily_watch_set:
                raise AlreadyCredited()
            if len(account.daily_watch_set) >= plan.daily_video_limit:
                raise QuotaExhausted(details={"limit": plan.daily_video_limit})

            account.daily_watch_set.append(video.id)
            if video.id not in account.full_watch_history:
                account.full_watch_history.append(video.id)
            entry = await self.ledger.post_entry(
                uow,
                account,
                plan.reward_per_video,
                EntryKind.DAILY_REWARD,
                f"Video reward: {video.title}",
                reference_id=video.id,
            )
            referral_entry = await self.referrals.post_daily_bonus(uow, account, plan)
            watched = len(account.daily_watch_set)
            return RewardResult(
                entry=entry,
                balance=account.balance,
                watched_today=watched,
                remaining_today=plan.daily_video_limit - watched,
                referral_entry=referral_entry,
            )

        result = await self.datastore.run(_watch)
        log.info(
            "video_rewarded",
            account_id=account_id,
            video_id=video_id,
            amount=str(result.entry.amount),
            watched_today=result.watched_today,
        )
        return result
