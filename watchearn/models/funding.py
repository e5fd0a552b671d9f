"""Deposit (FundingRequest) and withdrawal (PayoutRequest) records."""

from enum import Enum

from watchearn.models.base import Money, Record, UTCDateTime


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class _MoneyRequest(Record):
    account_id: str
    amount: Money
    channel: str
    status: RequestStatus = RequestStatus.PENDING
    resolved_by: str | None = None
    resolved_at: UTCDateTime | None = None
    reason: str | None = None
    ledger_entry_id: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.status != RequestStatus.PENDING


class FundingRequest(_MoneyRequest):
    proof_text: str | None = None
    proof_image_url: str | None = None
    external_reference: str | None = None  # mobile-money transaction id as reported by the user


class PayoutRequest(_MoneyRequest):
    phone_number: str
