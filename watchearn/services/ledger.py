"""Ledger core: the only code path that changes an account balance."""

from dataclasses import dataclass
from decimal import Decimal

from watchearn.core.audit import log_event
from watchearn.core.clock import Clock
from watchearn.core.exceptions import InsufficientFunds, NotFoundError, ValidationError
from watchearn.core.logging import get_logger
from watchearn.core.pagination import paginate
from watchearn.core.security import ensure_admin
from watchearn.db.base import Datastore, UnitOfWork
from watchearn.models import Account, EntryKind, EntryStatus, LedgerEntry
from watchearn.models.base import quantize_money
from watchearn.models.ledger import PENDING_KINDS

log = get_logger(__name__)

DEBIT_KINDS = frozenset({EntryKind.WITHDRAWAL, EntryKind.PLAN_PURCHASE, EntryKind.ADMIN_DEBIT})


@dataclass
class Reconciliation:
    account_id: str
    balance: Decimal
    ledger_total: Decimal
    pending_total: Decimal

    @property
    def matches(self) -> bool:
        return self.balance == self.ledger_total

    def as_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "balance": str(self.balance),
            "ledger_total": str(self.ledger_total),
            "pending_total": str(self.pending_total),
            "matches": self.matches,
        }


def _check_sign(kind: EntryKind, amount: Decimal) -> None:
    if amount == 0:
        raise ValidationError("Ledger amount must be non-zero")
    if kind in DEBIT_KINDS and amount > 0:
        raise ValidationError(f"{kind.value} entries must be debits")
    if kind not in DEBIT_KINDS and amount < 0:
        raise ValidationError(f"{kind.value} entries must be credits")


def _apply(account: Account, amount: Decimal) -> Decimal:
    """Authoritative non-negative guard; runs before any mutation."""
    balance_after = account.balance + amount
    if balance_after < 0:
        raise InsufficientFunds(
            details={"balance": str(account.balance), "required": str(-amount)},
        )
    account.balance = balance_after
    return balance_after


class LedgerService:
    def __init__(self, datastore: Datastore, clock: Clock) -> None:
        self.datastore = datastore
        self.clock = clock

    async def post_entry(
        self,
        uow: UnitOfWork,
        account: Account,
        amount: Decimal,
        kind: EntryKind,
        description: str,
        reference_id: str | None = None,
        status: EntryStatus = EntryStatus.COMPLETED,
    ) -> LedgerEntry:
        """
        Append an entry and, when completed, move the balance in the same unit of work.

        `account` must have been loaded through `uow`; any other pending changes
        on it are persisted by the same save. Pending entries (deposit/withdrawal
        awaiting an admin) leave the balance untouched.
        """
        amount = quantize_money(amount)
        _check_sign(kind, amount)
        if status == EntryStatus.PENDING and kind not in PENDING_KINDS:
            raise ValidationError(f"{kind.value} entries cannot be pending")
        if status == EntryStatus.FAILED:
            raise ValidationError("Entries are created pending or completed")

        entry = LedgerEntry(
            account_id=account.id,
            amount=amount,
            kind=kind,
            status=status,
            description=description,
            reference_id=reference_id,
            created_at=self.clock(),
        )
        if status == EntryStatus.COMPLETED:
            entry.balance_after = _apply(account, amount)
            entry.settled_at = self.clock()
            await uow.accounts.save(account)
        await uow.ledger.insert(entry)
        log.info(
            "ledger_entry_posted",
            account_id=account.id,
            kind=kind.value,
            amount=str(amount),
            status=status.value,
            entry_id=entry.id,
        )
        return entry

    async def settle_entry(self, uow: UnitOfWork, entry: LedgerEntry, account: Account) -> LedgerEntry:
        """Complete a pending entry, applying its amount now."""
        if entry.status != EntryStatus.PENDING:
            raise ValidationError("Only pending entries can be settled")
        if entry.account_id != account.id:
            raise ValidationError("Entry does not belong to account")
        entry.balance_after = _apply(account, entry.amount)
        entry.status = EntryStatus.COMPLETED
        entry.settled_at = self.clock()
        await uow.accounts.save(account)
        await uow.ledger.save(entry)
        log.info("ledger_entry_settled", account_id=account.id, entry_id=entry.id, amount=str(entry.amount))
        return entry

    async def fail_entry(self, uow: UnitOfWork, entry: LedgerEntry) -> LedgerEntry:
        """Close a pending entry without balance effect."""
        if entry.status != EntryStatus.PENDING:
            raise ValidationError("Only pending entries can be failed")
        entry.status = EntryStatus.FAILED
        entry.settled_at = self.clock()
        await uow.ledger.save(entry)
        log.info("ledger_entry_failed", account_id=entry.account_id, entry_id=entry.id)
        return entry

    async def balance(self, account_id: str) -> Decimal:
        async def _read(uow: UnitOfWork) -> Decimal:
            account = await uow.accounts.get(account_id)
            if not account:
                raise NotFoundError("Account not found")
            return account.balance

        return await self.datastore.run(_read)

    async def history(
        self,
        account_id: str,
        kind: EntryKind | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        """Entries for one account, newest first."""
        limit, offset = paginate(limit, offset)
        filters: dict = {"account_id": account_id}
        if kind is not None:
            filters["kind"] = kind

        async def _read(uow: UnitOfWork) -> list[LedgerEntry]:
            return await uow.ledger.find(sort="-created_at", limit=limit, offset=offset, **filters)

        return await self.datastore.run(_read)

    async def all_entries(
        self,
        kind: EntryKind | None = None,
        status: EntryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        limit, offset = paginate(limit, offset)
        filters: dict = {}
        if kind is not None:
            filters["kind"] = kind
        if status is not None:
            filters["status"] = status

        async def _read(uow: UnitOfWork) -> list[LedgerEntry]:
            return await uow.ledger.find(sort="-created_at", limit=limit, offset=offset, **filters)

        return await self.datastore.run(_read)

    async def reconcile(self, account_id: str) -> Reconciliation:
        """Compare the stored balance with the sum of completed entries."""

        async def _read(uow: UnitOfWork) -> Reconciliation:
            account = await uow.accounts.get(account_id)
            if not account:
                raise NotFoundError("Account not found")
            entries = await uow.ledger.find(account_id=account_id)
            completed = sum(
                (e.amount for e in entries if e.status == EntryStatus.COMPLETED), Decimal("0.00")
            )
            pending = sum(
                (e.amount for e in entries if e.status == EntryStatus.PENDING), Decimal("0.00")
            )
            return Reconciliation(account_id, account.balance, completed, pending)

        result = await self.datastore.run(_read)
        if not result.matches:
            log.error(
                "ledger_mismatch",
                account_id=account_id,
                balance=str(result.balance),
                ledger_total=str(result.ledger_total),
            )
        return result

    async def admin_adjust(
        self,
        admin: Account,
        account_id: str,
        amount: Decimal,
        direction: str,
        note: str = "",
    ) -> LedgerEntry:
        """Manual credit/debit by an admin; a debit can never overdraw."""
        ensure_admin(admin)
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        if direction not in ("add", "remove"):
            raise ValidationError("direction must be 'add' or 'remove'")
        kind = EntryKind.ADMIN_CREDIT if direction == "add" else EntryKind.ADMIN_DEBIT
        signed = amount if direction == "add" else -amount

        async def _adjust(uow: UnitOfWork) -> LedgerEntry:
            account = await uow.accounts.get(account_id)
            if not account:
                raise NotFoundError("Account not found")
            label = "credit" if direction == "add" else "debit"
            entry = await self.post_entry(
                uow,
                account,
                signed,
                kind,
                f"Manual {label} by admin: {note or 'n/a'}",
                reference_id=admin.id,
            )
            await log_event(
                uow,
                admin.id,
                "balance_adjusted",
                "account",
                account.id,
                {"amount": str(signed), "note": note, "entry_id": entry.id},
            )
            return entry

        return await self.datastore.run(_adjust)
