"""
Deposit and withdrawal requests reconciled by an admin against mobile-money
transactions reported outside the system.

Withdrawals use deferred deduction: creating a request only checks funds and
records a pending ledger entry; the balance moves when an admin approves,
after re-checking that the funds are still there. Approval with insufficient
funds rejects the request with reason ``insufficient_balance``.
"""

from decimal import Decimal
from typing import Awaitable, Callable, TypeVar

from watchearn.core.audit import log_event
from watchearn.core.clock import Clock
from watchearn.core.config import Settings
from watchearn.core.exceptions import AlreadyProcessed, ForbiddenError, InsufficientFunds, NotFoundError, ValidationError
from watchearn.core.logging import get_logger
from watchearn.core.pagination import paginate
from watchearn.core.security import ensure_admin
from watchearn.db.base import Datastore, Repository, UnitOfWork
from watchearn.models import (
    Account,
    ChannelDirection,
    EntryKind,
    EntryStatus,
    FundingRequest,
    PayoutRequest,
    RequestStatus,
)
from watchearn.services.commands import DepositCommand, WithdrawalCommand
from watchearn.services.ledger import LedgerService
from watchearn.services.notifier import Notifier, notify_safely

log = get_logger(__name__)

INSUFFICIENT_BALANCE_REASON = "insufficient_balance"

Req = TypeVar("Req", FundingRequest, PayoutRequest)


class ReconciliationService:
    def __init__(
        self,
        datastore: Datastore,
        ledger: LedgerService,
        notifier: Notifier,
        settings: Settings,
        clock: Clock,
    ) -> None:
        self.datastore = datastore
        self.ledger = ledger
        self.notifier = notifier
        self.clock = clock
        self.min_deposit = settings.min_deposit
        self.min_withdrawal = settings.min_withdrawal
        self.currency = settings.currency

    async def _account(self, uow: UnitOfWork, account_id: str) -> Account:
        account = await uow.accounts.get(account_id)
        if not account:
            raise NotFoundError("Account not found")
        if account.is_blocked:
            raise ForbiddenError("Account is blocked")
        return account

    async def _check_channel(self, uow: UnitOfWork, channel: str, direction: ChannelDirection) -> str:
        """With channels configured, only an active one for this direction is accepted."""
        channel = channel.strip()
        methods = await uow.payment_methods.find()
        if not methods:
            return channel
        for method in methods:
            if method.name.lower() == channel.lower() and method.accepts(direction):
                return method.name
        raise ValidationError(
            "Unsupported payment channel",
            details={"channel": channel, "direction": direction.value},
        )

    async def _pending_withdrawals(self, uow: UnitOfWork, account_id: str) -> Decimal:
        pending = await uow.withdrawals.find(account_id=account_id, status=RequestStatus.PENDING)
        return sum((w.amount for w in pending), Decimal("0.00"))

    # -- user side --

    async def request_deposit(self, account_id: str, cmd: DepositCommand) -> FundingRequest:
        if cmd.amount < self.min_deposit:
            raise ValidationError(f"Minimum deposit is {self.min_deposit} {self.currency}")

        async def _create(uow: UnitOfWork) -> FundingRequest:
            account = await self._account(uow, account_id)
            channel = await self._check_channel(uow, cmd.channel, ChannelDirection.DEPOSIT)
            request = FundingRequest(
                account_id=account.id,
                amount=cmd.amount,
                channel=channel,
                proof_text=cmd.proof_text,
                proof_image_url=cmd.proof_image_url,
                external_reference=cmd.external_reference,
                created_at=self.clock(),
            )
            entry = await self.ledger.post_entry(
                uow,
                account,
                cmd.amount,
                EntryKind.DEPOSIT,
                f"Deposit via {channel} (ref {request.id})",
                reference_id=request.id,
                status=EntryStatus.PENDING,
            )
            request.ledger_entry_id = entry.id
            await uow.deposits.insert(request)
            return request

        request = await self.datastore.run(_create)
        log.info("deposit_requested", account_id=account_id, deposit_id=request.id, amount=str(request.amount))
        return request

    async def request_withdrawal(self, account_id: str, cmd: WithdrawalCommand) -> PayoutRequest:
        if cmd.amount < self.min_withdrawal:
            raise ValidationError(f"Minimum withdrawal is {self.min_withdrawal} {self.currency}")

        async def _create(uow: UnitOfWork) -> PayoutRequest:
            account = await self._account(uow, account_id)
            available = account.balance - await self._pending_withdrawals(uow, account.id)
            if available < cmd.amount:
                raise InsufficientFunds(
                    "Insufficient balance for this withdrawal",
                    details={"available": str(available), "requested": str(cmd.amount)},
                )
            channel = await self._check_channel(uow, cmd.channel, ChannelDirection.WITHDRAWAL)
            request = PayoutRequest(
                account_id=account.id,
                amount=cmd.amount,
                channel=channel,
                phone_number=cmd.phone_number,
                created_at=self.clock(),
            )
            entry = await self.ledger.post_entry(
                uow,
                account,
                -cmd.amount,
                EntryKind.WITHDRAWAL,
                f"Withdrawal via {channel} to {cmd.phone_number} (ref {request.id})",
                reference_id=request.id,
                status=EntryStatus.PENDING,
            )
            request.ledger_entry_id = entry.id
            await uow.withdrawals.insert(request)
            return request

        request = await self.datastore.run(_create)
        log.info("withdrawal_requested", account_id=account_id, withdrawal_id=request.id, amount=str(request.amount))
        return request

    # -- admin side --

    async def _resolve(
        self,
        admin: Account,
        repo_name: str,
        request_id: str,
        decide: Callable[[UnitOfWork, Req, Account], Awaitable[None]],
    ) -> tuple[Req, Account]:
        ensure_admin(admin)

        async def _tx(uow: UnitOfWork) -> tuple[Req, Account]:
            repo: Repository = getattr(uow, repo_name)
            request = await repo.get(request_id)
            if not request:
                raise NotFoundError("Request not found")
            if request.is_resolved:
                raise AlreadyProcessed(
                    f"Request already {request.status.value}",
                    details={"status": request.status.value},
                )
            account = await uow.accounts.get(request.account_id)
            if not account:
                raise NotFoundError("Account not found")
            request.resolved_by = admin.id
            request.resolved_at = self.clock()
            await decide(uow, request, account)
            # version check: a concurrent resolution of the same request loses here
            await repo.save(request)
            await log_event(
                uow,
                admin.id,
                f"{repo_name[:-1]}_{request.status.value}",
                repo_name[:-1],
                request.id,
                {"amount": str(request.amount), "reason": request.reason},
            )
            return request, account

        return await self.datastore.run(_tx)

    async def _entry_for(self, uow: UnitOfWork, request: FundingRequest | PayoutRequest):
        entry = await uow.ledger.get(request.ledger_entry_id) if request.ledger_entry_id else None
        if entry is None:
            raise NotFoundError("Ledger entry for request not found")
        return entry

    async def approve_deposit(self, admin: Account, deposit_id: str) -> FundingRequest:
        async def _approve(uow: UnitOfWork, request: FundingRequest, account: Account) -> None:
            entry = await self._entry_for(uow, request)
            await self.ledger.settle_entry(uow, entry, account)
            request.status = RequestStatus.APPROVED

        request, account = await self._resolve(admin, "deposits", deposit_id, _approve)
        log.info("deposit_approved", deposit_id=request.id, account_id=account.id, amount=str(request.amount))
        await notify_safely(
            self.notifier,
            account.email,
            "deposit_approved",
            {"username": account.username, "amount": str(request.amount), "currency": self.currency},
        )
        return request

    async def reject_deposit(self, admin: Account, deposit_id: str, reason: str | None = None) -> FundingRequest:
        async def _reject(uow: UnitOfWork, request: FundingRequest, account: Account) -> None:
            entry = await self._entry_for(uow, request)
            await self.ledger.fail_entry(uow, entry)
            request.status = RequestStatus.REJECTED
            request.reason = reason

        request, account = await self._resolve(admin, "deposits", deposit_id, _reject)
        log.info("deposit_rejected", deposit_id=request.id, account_id=account.id, reason=reason)
        await notify_safely(
            self.notifier,
            account.email,
            "deposit_rejected",
            {
                "username": account.username,
                "amount": str(request.amount),
                "currency": self.currency,
                "reason": reason or "-",
            },
        )
        return request

    async def approve_withdrawal(self, admin: Account, withdrawal_id: str) -> PayoutRequest:
        """
        Deduct now. If the balance no longer covers the amount, the request is
        rejected instead of approved; the caller sees status and reason.
        """

        async def _approve(uow: UnitOfWork, request: PayoutRequest, account: Account) -> None:
            entry = await self._entry_for(uow, request)
            if account.balance < request.amount:
                await self.ledger.fail_entry(uow, entry)
                request.status = RequestStatus.REJECTED
                request.reason = INSUFFICIENT_BALANCE_REASON
                return
            await self.ledger.settle_entry(uow, entry, account)
            request.status = RequestStatus.APPROVED

        request, account = await self._resolve(admin, "withdrawals", withdrawal_id, _approve)
        if request.status == RequestStatus.REJECTED:
            log.warning(
                "withdrawal_auto_rejected",
                withdrawal_id=request.id,
                account_id=account.id,
                balance=str(account.balance),
                amount=str(request.amount),
            )
            template = "withdrawal_rejected"
        else:
            log.info("withdrawal_approved", withdrawal_id=request.id, account_id=account.id, amount=str(request.amount))
            template = "withdrawal_approved"
        await notify_safely(
            self.notifier,
            account.email,
            template,
            {
                "username": account.username,
                "amount": str(request.amount),
                "currency": self.currency,
                "reason": request.reason or "-",
            },
        )
        return request

    async def reject_withdrawal(self, admin: Account, withdrawal_id: str, reason: str | None = None) -> PayoutRequest:
        async def _reject(uow: UnitOfWork, request: PayoutRequest, account: Account) -> None:
            entry = await self._entry_for(uow, request)
            await self.ledger.fail_entry(uow, entry)
            request.status = RequestStatus.REJECTED
            request.reason = reason

        request, account = await self._resolve(admin, "withdrawals", withdrawal_id, _reject)
        log.info("withdrawal_rejected", withdrawal_id=request.id, account_id=account.id, reason=reason)
        await notify_safely(
            self.notifier,
            account.email,
            "withdrawal_rejected",
            {
                "username": account.username,
                "amount": str(request.amount),
                "currency": self.currency,
                "reason": reason or "-",
            },
        )
        return request

    # -- listings --

    async def list_deposits(
        self,
        account_id: str | None = None,
        status: RequestStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[FundingRequest]:
        return await self._list("deposits", account_id, status, limit, offset)

    async def list_withdrawals(
        self,
        account_id: str | None = None,
        status: RequestStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PayoutRequest]:
        return await self._list("withdrawals", account_id, status, limit, offset)

    async def _list(self, repo_name: str, account_id, status, limit: int, offset: int) -> list:
        limit, offset = paginate(limit, offset)
        filters: dict = {}
        if account_id is not None:
            filters["account_id"] = account_id
        if status is not None:
            filters["status"] = status

        async def _read(uow: UnitOfWork) -> list:
            repo: Repository = getattr(uow, repo_name)
            return await repo.find(sort="-created_at", limit=limit, offset=offset, **filters)

        return await self.datastore.run(_read)
