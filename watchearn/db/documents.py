"""Beanie documents: collection names, field types and indexes for MongoDB."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from beanie import Document, Indexed
from pydantic import Field

from watchearn.models.account import PlanSnapshot
from watchearn.models.base import Money, new_id
from watchearn.models.funding import RequestStatus
from watchearn.models.ledger import EntryKind, EntryStatus
from watchearn.models.payment_method import ChannelDirection


class _Base(Document):
    id: str = Field(default_factory=new_id)
    version: int = 0
    created_at: datetime
    updated_at: datetime


class AccountDocument(_Base):
    username: Indexed(str, unique=True)
    email: Indexed(str, unique=True)
    password_hash: str = ""
    avatar_url: str = ""
    is_admin: bool = False
    is_blocked: bool = False
    session_version: int = 0
    balance: Money = Decimal("0.00")
    referral_code: Indexed(str, unique=True)
    referred_by: Indexed(str) | None = None
    active_plan: PlanSnapshot | None = None
    daily_watch_set: list[str] = Field(default_factory=list)
    last_quota_reset_at: datetime | None = None
    full_watch_history: list[str] = Field(default_factory=list)
    password_reset_token_hash: str | None = None
    password_reset_expires_at: datetime | None = None

    class Settings:
        name = "accounts"


class PlanDocument(_Base):
    name: Indexed(str, unique=True)
    cost: Money
    daily_video_limit: int
    duration_days: int
    reward_per_video: Money
    total_reward: Money = Decimal("0.00")
    is_active: bool = True

    class Settings:
        name = "plans"


class VideoDocument(_Base):
    title: str
    description: str = ""
    url: str
    storage_key: str | None = None
    duration_seconds: int
    uploaded_by: str | None = None
    is_active: bool = True

    class Settings:
        name = "videos"
        indexes = [[("is_active", 1)]]


class LedgerEntryDocument(_Base):
    account_id: str
    amount: Money
    kind: EntryKind
    status: EntryStatus = EntryStatus.COMPLETED
    description: str
    reference_id: str | None = None
    balance_after: Money | None = None
    settled_at: datetime | None = None

    class Settings:
        name = "ledger_entries"
        indexes = [
            [("account_id", 1), ("created_at", -1)],
            [("account_id", 1), ("status", 1)],
            [("reference_id", 1)],
        ]


class FundingRequestDocument(_Base):
    account_id: str
    amount: Money
    channel: str
    status: RequestStatus = RequestStatus.PENDING
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    reason: str | None = None
    ledger_entry_id: str | None = None
    proof_text: str | None = None
    proof_image_url: str | None = None
    external_reference: str | None = None

    class Settings:
        name = "deposits"
        indexes = [[("status", 1), ("created_at", -1)], [("account_id", 1), ("created_at", -1)]]


class PayoutRequestDocument(_Base):
    account_id: str
    amount: Money
    channel: str
    status: RequestStatus = RequestStatus.PENDING
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    reason: str | None = None
    ledger_entry_id: str | None = None
    phone_number: str

    class Settings:
        name = "withdrawals"
        indexes = [[("status", 1), ("created_at", -1)], [("account_id", 1), ("created_at", -1)]]


class PaymentMethodDocument(_Base):
    name: Indexed(str, unique=True)
    details: str
    instructions: str = ""
    direction: ChannelDirection = ChannelDirection.BOTH
    is_active: bool = True

    class Settings:
        name = "payment_methods"


class AuditLogDocument(_Base):
    actor_id: str | None = None
    event_type: str
    entity_type: str
    entity_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("actor_id", 1), ("created_at", -1)],
            [("entity_type", 1), ("entity_id", 1)],
        ]


# collection attribute on the unit of work -> document class
DOCUMENTS: dict[str, type[Document]] = {
    "accounts": AccountDocument,
    "plans": PlanDocument,
    "videos": VideoDocument,
    "ledger": LedgerEntryDocument,
    "deposits": FundingRequestDocument,
    "withdrawals": PayoutRequestDocument,
    "payment_methods": PaymentMethodDocument,
    "audit_logs": AuditLogDocument,
}

DOCUMENT_MODELS = list(DOCUMENTS.values())
