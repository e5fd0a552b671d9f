"""Repository and unit-of-work contracts the services depend on."""

from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Awaitable, Callable, Generic, Iterable, TypeVar

from watchearn.core.config import Settings
from watchearn.core.exceptions import ConcurrencyConflict
from watchearn.core.logging import get_logger
from watchearn.models import (
    Account,
    AuditLog,
    FundingRequest,
    LedgerEntry,
    PaymentMethod,
    PayoutRequest,
    PlanDefinition,
    Video,
)
from watchearn.models.base import Record

log = get_logger(__name__)

T = TypeVar("T", bound=Record)
R = TypeVar("R")

# collection name -> (model, unique fields)
COLLECTIONS: dict[str, tuple[type[Record], tuple[str, ...]]] = {
    "accounts": (Account, ("username", "email", "referral_code")),
    "plans": (PlanDefinition, ("name",)),
    "videos": (Video, ()),
    "ledger": (LedgerEntry, ()),
    "deposits": (FundingRequest, ()),
    "withdrawals": (PayoutRequest, ()),
    "payment_methods": (PaymentMethod, ("name",)),
    "audit_logs": (AuditLog, ()),
}


class Repository(ABC, Generic[T]):
    """CRUD over one collection. Filters are field equality (`**eq`)."""

    @abstractmethod
    async def get(self, id: str) -> T | None:
        ...

    @abstractmethod
    async def find_one(self, **eq: Any) -> T | None:
        ...

    @abstractmethod
    async def find(
        self,
        *,
        sort: str | None = None,
        limit: int | None = None,
        offset: int = 0,
        **eq: Any,
    ) -> list[T]:
        """`sort` is a field name, prefixed with '-' for descending."""
        ...

    @abstractmethod
    async def count(self, **eq: Any) -> int:
        ...

    @abstractmethod
    async def insert(self, obj: T) -> T:
        """Insert; raises ConflictError on a unique-field clash."""
        ...

    @abstractmethod
    async def save(self, obj: T) -> T:
        """
        Compare-and-set on `obj.version`: succeeds only if the stored copy still
        has the version `obj` was loaded with, then bumps it.
        Raises ConcurrencyConflict otherwise.
        """
        ...

    @abstractmethod
    async def sample(self, limit: int, exclude_ids: Iterable[str] = (), **eq: Any) -> list[T]:
        """Random selection of up to `limit` records."""
        ...


class UnitOfWork:
    """Repositories bound to one transaction."""

    accounts: Repository[Account]
    plans: Repository[PlanDefinition]
    videos: Repository[Video]
    ledger: Repository[LedgerEntry]
    deposits: Repository[FundingRequest]
    withdrawals: Repository[PayoutRequest]
    payment_methods: Repository[PaymentMethod]
    audit_logs: Repository[AuditLog]


class Datastore(ABC):
    def __init__(self, retries: int = 3) -> None:
        self.retries = retries

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    def transaction(self) -> AsyncContextManager[UnitOfWork]:
        """Commit on clean exit, roll back if the body raises."""
        ...

    async def run(self, fn: Callable[[UnitOfWork], Awaitable[R]]) -> R:
        """Run `fn` in a fresh transaction, retrying when it loses a version race."""
        attempt = 0
        while True:
            try:
                async with self.transaction() as uow:
                    return await fn(uow)
            except ConcurrencyConflict:
                attempt += 1
                if attempt > self.retries:
                    raise
                log.warning("transaction_retry", attempt=attempt)


def normalize_filters(eq: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.value if hasattr(v, "value") else v) for k, v in eq.items()}


def get_datastore(settings: Settings) -> Datastore:
    if settings.datastore_backend == "memory":
        from watchearn.db.memory import MemoryDatastore
        return MemoryDatastore(retries=settings.transaction_retries)
    from watchearn.db.mongo import MongoDatastore
    return MongoDatastore(settings)
