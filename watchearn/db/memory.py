"""In-process datastore: serializable transactions over copied state. Used by tests and local runs."""

import asyncio
import copy
import random
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable

from watchearn.core.clock import utcnow
from watchearn.core.exceptions import ConcurrencyConflict, ConflictError
from watchearn.db.base import COLLECTIONS, Datastore, Repository, T, UnitOfWork, normalize_filters


def _matches(obj: Any, eq: dict[str, Any]) -> bool:
    for key, expected in eq.items():
        value = getattr(obj, key, None)
        if hasattr(value, "value"):
            value = value.value
        if value != expected:
            return False
    return True


class MemoryRepository(Repository[T]):
    def __init__(self, rows: dict[str, T], unique: tuple[str, ...]) -> None:
        self._rows = rows
        self._unique = unique

    def _check_unique(self, obj: T) -> None:
        for field in self._unique:
            value = getattr(obj, field)
            if value is None:
                continue
            for other in self._rows.values():
                if other.id != obj.id and getattr(other, field) == value:
                    raise ConflictError(f"{field} already exists", details={"field": field})

    async def get(self, id: str) -> T | None:
        row = self._rows.get(id)
        return row.model_copy(deep=True) if row else None

    async def find_one(self, **eq: Any) -> T | None:
        eq = normalize_filters(eq)
        for row in self._rows.values():
            if _matches(row, eq):
                return row.model_copy(deep=True)
        return None

    async def find(self, *, sort: str | None = None, limit: int | None = None, offset: int = 0, **eq: Any) -> list[T]:
        eq = normalize_filters(eq)
        rows = [r for r in self._rows.values() if _matches(r, eq)]
        if sort:
            field = sort.lstrip("-+")
            rows.sort(key=lambda r: getattr(r, field), reverse=sort.startswith("-"))
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return [r.model_copy(deep=True) for r in rows]

    async def count(self, **eq: Any) -> int:
        eq = normalize_filters(eq)
        return sum(1 for r in self._rows.values() if _matches(r, eq))

    async def insert(self, obj: T) -> T:
        if obj.id in self._rows:
            raise ConflictError("Duplicate id", details={"field": "id"})
        self._check_unique(obj)
        self._rows[obj.id] = obj.model_copy(deep=True)
        return obj

    async def save(self, obj: T) -> T:
        stored = self._rows.get(obj.id)
        if stored is None or stored.version != obj.version:
            raise ConcurrencyConflict()
        self._check_unique(obj)
        obj.version += 1
        obj.updated_at = utcnow()
        self._rows[obj.id] = obj.model_copy(deep=True)
        return obj

    async def sample(self, limit: int, exclude_ids: Iterable[str] = (), **eq: Any) -> list[T]:
        excluded = set(exclude_ids)
        eq = normalize_filters(eq)
        pool = [r for r in self._rows.values() if r.id not in excluded and _matches(r, eq)]
        picked = random.sample(pool, min(max(limit, 0), len(pool)))
        return [r.model_copy(deep=True) for r in picked]


class MemoryUnitOfWork(UnitOfWork):
    def __init__(self, state: dict[str, dict[str, Any]]) -> None:
        for name, (_, unique) in COLLECTIONS.items():
            setattr(self, name, MemoryRepository(state[name], unique))


class MemoryDatastore(Datastore):
    """
    One lock serializes every transaction, so the model is trivially
    serializable. Each transaction mutates a deep copy that replaces the
    committed state only when the body completes.
    """

    def __init__(self, retries: int = 3) -> None:
        super().__init__(retries)
        self._state: dict[str, dict[str, Any]] = {name: {} for name in COLLECTIONS}
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[UnitOfWork]:
        async with self._lock:
            working = copy.deepcopy(self._state)
            yield MemoryUnitOfWork(working)
            self._state = working
