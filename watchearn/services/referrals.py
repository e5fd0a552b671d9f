"""Referral codes and secondary bonuses paid to the referring account."""

from decimal import Decimal

from watchearn.core.config import Settings
from watchearn.core.exceptions import NotFoundError, ValidationError
from watchearn.core.logging import get_logger
from watchearn.core.pagination import paginate
from watchearn.db.base import Datastore, UnitOfWork
from watchearn.models import Account, EntryKind, LedgerEntry, PlanSnapshot
from watchearn.models.base import quantize_money
from watchearn.services.ledger import LedgerService

log = get_logger(__name__)


class ReferralService:
    def __init__(self, datastore: Datastore, ledger: LedgerService, settings: Settings) -> None:
        self.datastore = datastore
        self.ledger = ledger
        self.plan_rate = settings.referral_plan_rate
        self.daily_rate = settings.referral_daily_rate

    async def resolve_referrer(self, uow: UnitOfWork, code: str | None) -> Account | None:
        """Referrer for a registration code; None when no code was given."""
        code = (code or "").strip().upper()
        if not code:
            return None
        referrer = await uow.accounts.find_one(referral_code=code)
        if not referrer:
            raise ValidationError("Invalid referral code", details={"field": "referral_code"})
        return referrer

    async def _referrer_of(self, uow: UnitOfWork, referee: Account) -> Account | None:
        if not referee.referred_by:
            return None
        referrer = await uow.accounts.get(referee.referred_by)
        if referrer is None:
            log.warning("referral_bonus_skipped", referee_id=referee.id, reason="referrer_missing")
        return referrer

    async def _post_bonus(
        self,
        uow: UnitOfWork,
        referee: Account,
        base: Decimal,
        rate: Decimal,
        kind: EntryKind,
        description: str,
    ) -> LedgerEntry | None:
        referrer = await self._referrer_of(uow, referee)
        if referrer is None:
            return None
        bonus = quantize_money(base * rate)
        if bonus <= 0:
            log.info("referral_bonus_skipped", referee_id=referee.id, reason="rounds_to_zero")
            return None
        entry = await self.ledger.post_entry(uow, referrer, bonus, kind, description, reference_id=referee.id)
        log.info(
            "referral_bonus_posted",
            referrer_id=referrer.id,
            referee_id=referee.id,
            kind=kind.value,
            amount=str(bonus),
        )
        return entry

    async def post_plan_bonus(self, uow: UnitOfWork, referee: Account, snapshot: PlanSnapshot) -> LedgerEntry | None:
        """Referrer earns a share of the plan cost paid, as frozen in the snapshot."""
        return await self._post_bonus(
            uow,
            referee,
            snapshot.cost,
            self.plan_rate,
            EntryKind.REFERRAL_PLAN_BONUS,
            f"Referral bonus: {referee.username} bought plan {snapshot.name}",
        )

    async def post_daily_bonus(self, uow: UnitOfWork, referee: Account, snapshot: PlanSnapshot) -> LedgerEntry | None:
        """Referrer earns a share of each video reward the referee collects."""
        return await self._post_bonus(
            uow,
            referee,
            snapshot.reward_per_video,
            self.daily_rate,
            EntryKind.REFERRAL_DAILY_BONUS,
            f"Referral bonus: {referee.username} watched a video",
        )

    async def referral_stats(self, account_id: str) -> dict:
        """Referred count and bonus totals by kind."""

        async def _read(uow: UnitOfWork) -> dict:
            account = await uow.accounts.get(account_id)
            if not account:
                raise NotFoundError("Account not found")
            referred_count = await uow.accounts.count(referred_by=account_id)
            plan_entries = await uow.ledger.find(account_id=account_id, kind=EntryKind.REFERRAL_PLAN_BONUS)
            daily_entries = await uow.ledger.find(account_id=account_id, kind=EntryKind.REFERRAL_DAILY_BONUS)
            plan_total = sum((e.amount for e in plan_entries), Decimal("0.00"))
            daily_total = sum((e.amount for e in daily_entries), Decimal("0.00"))
            return {
                "referral_code": account.referral_code,
                "referred_count": referred_count,
                "plan_bonus_total": str(plan_total),
                "daily_bonus_total": str(daily_total),
                "total": str(plan_total + daily_total),
            }

        return await self.datastore.run(_read)

    async def list_referrals(self, account_id: str, limit: int = 50, offset: int = 0) -> list[dict]:
        limit, offset = paginate(limit, offset)

        async def _read(uow: UnitOfWork) -> list[dict]:
            referred = await uow.accounts.find(
                sort="-created_at", limit=limit, offset=offset, referred_by=account_id
            )
            return [
                {
                    "username": a.username,
                    "joined_at": a.created_at.isoformat(),
                    "plan": a.active_plan.name if a.active_plan else None,
                }
                for a in referred
            ]

        return await self.datastore.run(_read)
