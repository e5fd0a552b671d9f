from watchearn.models.account import Account, PlanSnapshot
from watchearn.models.audit_log import AuditLog
from watchearn.models.funding import FundingRequest, PayoutRequest, RequestStatus
from watchearn.models.ledger import EntryKind, EntryStatus, LedgerEntry
from watchearn.models.payment_method import ChannelDirection, PaymentMethod
from watchearn.models.plan import PlanDefinition
from watchearn.models.video import Video

__all__ = [
    "Account",
    "PlanSnapshot",
    "AuditLog",
    "FundingRequest",
    "PayoutRequest",
    "RequestStatus",
    "EntryKind",
    "EntryStatus",
    "LedgerEntry",
    "ChannelDirection",
    "PaymentMethod",
    "PlanDefinition",
    "Video",
]
