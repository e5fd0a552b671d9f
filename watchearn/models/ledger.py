from enum import Enum

from watchearn.models.base import Money, Record, UTCDateTime


class EntryKind(str, Enum):
    SIGNUP_BONUS = "signup_bonus"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    PLAN_PURCHASE = "plan_purchase"
    DAILY_REWARD = "daily_reward"
    REFERRAL_PLAN_BONUS = "referral_plan_bonus"
    REFERRAL_DAILY_BONUS = "referral_daily_bonus"
    ADMIN_CREDIT = "admin_credit"
    ADMIN_DEBIT = "admin_debit"


class EntryStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# Only requests awaiting an admin decision may sit in the ledger as pending
PENDING_KINDS = frozenset({EntryKind.DEPOSIT, EntryKind.WITHDRAWAL})


class LedgerEntry(Record):
    account_id: str
    amount: Money  # positive = credit, negative = debit
    kind: EntryKind
    status: EntryStatus = EntryStatus.COMPLETED
    description: str
    reference_id: str | None = None  # deposit / withdrawal / plan / video id
    balance_after: Money | None = None
    settled_at: UTCDateTime | None = None
