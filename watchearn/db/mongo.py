"""MongoDB datastore: Beanie documents, Motor client-session transactions."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable

import certifi
from beanie import Document, init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from pymongo.errors import DuplicateKeyError, PyMongoError

from watchearn.core.clock import utcnow
from watchearn.core.config import Settings
from watchearn.core.exceptions import ConcurrencyConflict, ConflictError
from watchearn.core.logging import get_logger
from watchearn.db.base import COLLECTIONS, Datastore, Repository, T, UnitOfWork, normalize_filters
from watchearn.db.documents import DOCUMENT_MODELS, DOCUMENTS

log = get_logger(__name__)

_RETRYABLE_LABELS = ("TransientTransactionError", "UnknownTransactionCommitResult")


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def _query(eq: dict[str, Any]) -> dict[str, Any]:
    q = normalize_filters(eq)
    if "id" in q:
        q["_id"] = q.pop("id")
    return q


def _duplicate_field(exc: DuplicateKeyError) -> str | None:
    details = exc.details or {}
    key_value = details.get("keyValue") or {}
    return next(iter(key_value), None)


class MongoRepository(Repository[T]):
    def __init__(self, document: type[Document], model: type[T], session: AsyncIOMotorClientSession) -> None:
        self._document = document
        self._model = model
        self._session = session

    def _to_model(self, doc: Document) -> T:
        return self._model.model_validate(doc.model_dump())

    def _to_document(self, obj: T) -> Document:
        return self._document.model_validate(obj.model_dump())

    async def get(self, id: str) -> T | None:
        doc = await self._document.find_one({"_id": id}, session=self._session)
        return self._to_model(doc) if doc else None

    async def find_one(self, **eq: Any) -> T | None:
        doc = await self._document.find_one(_query(eq), session=self._session)
        return self._to_model(doc) if doc else None

    async def find(self, *, sort: str | None = None, limit: int | None = None, offset: int = 0, **eq: Any) -> list[T]:
        cursor = self._document.find(_query(eq), session=self._session)
        if sort:
            cursor = cursor.sort(sort)
        if offset:
            cursor = cursor.skip(offset)
        if limit is not None:
            cursor = cursor.limit(limit)
        return [self._to_model(d) for d in await cursor.to_list()]

    async def count(self, **eq: Any) -> int:
        return await self._document.find(_query(eq), session=self._session).count()

    async def insert(self, obj: T) -> T:
        try:
            await self._to_document(obj).insert(session=self._session)
        except DuplicateKeyError as exc:
            field = _duplicate_field(exc)
            raise ConflictError(f"{field or 'value'} already exists", details={"field": field}) from exc
        return obj

    async def save(self, obj: T) -> T:
        expected = obj.version
        obj.version = expected + 1
        obj.updated_at = utcnow()
        fields = self._to_document(obj).model_dump(exclude={"id", "revision_id"})
        try:
            result = await self._document.find_one(
                {"_id": obj.id, "version": expected}, session=self._session
            ).update({"$set": fields}, session=self._session)
        except DuplicateKeyError as exc:
            obj.version = expected
            field = _duplicate_field(exc)
            raise ConflictError(f"{field or 'value'} already exists", details={"field": field}) from exc
        if result is None or result.matched_count == 0:
            obj.version = expected
            raise ConcurrencyConflict()
        return obj

    async def sample(self, limit: int, exclude_ids: Iterable[str] = (), **eq: Any) -> list[T]:
        if limit <= 0:
            return []
        match = _query(eq)
        excluded = list(exclude_ids)
        if excluded:
            match["_id"] = {"$nin": excluded}
        docs = await self._document.aggregate(
            [{"$match": match}, {"$sample": {"size": limit}}],
            projection_model=self._document,
            session=self._session,
        ).to_list()
        return [self._to_model(d) for d in docs]


class MongoUnitOfWork(UnitOfWork):
    def __init__(self, session: AsyncIOMotorClientSession) -> None:
        for name, (model, _) in COLLECTIONS.items():
            setattr(self, name, MongoRepository(DOCUMENTS[name], model, session))


class MongoDatastore(Datastore):
    """
    Needs a replica set (or Atlas): multi-document transactions are not
    available on a standalone mongod.
    """

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings.transaction_retries)
        self._settings = settings
        self.client: AsyncIOMotorClient | None = None

    async def connect(self) -> None:
        kwargs: dict[str, Any] = {"tz_aware": True}
        if _use_tls(self._settings.mongodb_uri):
            # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
            kwargs["tlsCAFile"] = certifi.where()
            kwargs["tlsDisableOCSPEndpointCheck"] = True
        self.client = AsyncIOMotorClient(self._settings.mongodb_uri, **kwargs)
        database = self.client[self._settings.mongodb_db_name]
        await init_beanie(database=database, document_models=DOCUMENT_MODELS)
        log.info("datastore_connected", backend="mongo", db=self._settings.mongodb_db_name)

    async def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[UnitOfWork]:
        if self.client is None:
            raise RuntimeError("MongoDatastore.connect() has not been awaited")
        async with await self.client.start_session() as session:
            try:
                async with session.start_transaction():
                    yield MongoUnitOfWork(session)
            except PyMongoError as exc:
                if any(exc.has_error_label(label) for label in _RETRYABLE_LABELS):
                    raise ConcurrencyConflict() from exc
                raise
