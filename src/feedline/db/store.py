"""Asynchronous relation store over SQLAlchemy sessions.

The store exposes the small document-style surface the engagement layer
needs: point reads by key, ordered equality queries with cursor
continuation, and atomic write batches. A batch runs as one database
transaction, so either every write in it lands or none does. Counter
changes are issued as ``UPDATE ... SET column = column + delta`` so
concurrent batches never lose each other's deltas.

All calls run in a worker thread and are bounded by a timeout.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from sqlalchemy import and_, case, delete, func, insert, inspect, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from feedline.core.errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    EngagementError,
    InvalidArgumentError,
    MissingIndexError,
    PreconditionFailedError,
    StoreError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from feedline.core.settings import settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")
ResultT = TypeVar("ResultT")


@dataclass(frozen=True)
class CreateOp:
    """Insert a new document; fails if the key already exists."""

    model: type[Any]
    values: Mapping[str, Any]


@dataclass(frozen=True)
class UpdateOp:
    """Set fields on an existing document, optionally guarded by expected values."""

    model: type[Any]
    key: str
    values: Mapping[str, Any]
    expect: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IncrementOp:
    """Apply an atomic delta to a numeric field, clamped at ``floor``."""

    model: type[Any]
    key: str
    column: str
    delta: int
    floor: int | None = 0


@dataclass(frozen=True)
class DeleteOp:
    """Delete a document; fails if it is missing and ``must_exist`` is set."""

    model: type[Any]
    key: str
    must_exist: bool = True


BatchOp = CreateOp | UpdateOp | IncrementOp | DeleteOp


def _primary_key(model: type[Any]) -> Any:
    return inspect(model).primary_key[0]


def _name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__name__", repr(fn))


class WriteBatch:
    """Collects writes and commits them atomically.

    Operations are applied in insertion order inside one transaction. A
    batch can be committed once.
    """

    def __init__(self, store: RelationStore) -> None:
        self._store = store
        self._ops: list[BatchOp] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._ops)

    @property
    def operations(self) -> tuple[BatchOp, ...]:
        return tuple(self._ops)

    def create(self, model: type[Any], **values: Any) -> WriteBatch:
        self._ops.append(CreateOp(model, values))
        return self

    def update(
        self,
        model: type[Any],
        key: str,
        *,
        expect: Mapping[str, Any] | None = None,
        **values: Any,
    ) -> WriteBatch:
        self._ops.append(UpdateOp(model, key, values, dict(expect or {})))
        return self

    def increment(
        self,
        model: type[Any],
        key: str,
        column: str,
        delta: int = 1,
        *,
        floor: int | None = 0,
    ) -> WriteBatch:
        self._ops.append(IncrementOp(model, key, column, delta, floor))
        return self

    def delete(self, model: type[Any], key: str, *, must_exist: bool = True) -> WriteBatch:
        self._ops.append(DeleteOp(model, key, must_exist))
        return self

    async def commit(self) -> None:
        """Apply every collected write, or none of them."""
        if self._committed:
            raise InvalidArgumentError("Write batch has already been committed")
        self._committed = True
        if not self._ops:
            return
        await self._store.run(self._store.apply_batch, tuple(self._ops))


class RelationStore:
    """Async facade over a SQLAlchemy session factory."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        timeout: float | None = None,
        serialize: bool | None = None,
        require_composite_indexes: bool | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            session_factory: Factory producing sessions bound to the database.
            timeout: Seconds before a request is abandoned as a timeout.
            serialize: Run one unit of work at a time. Required for SQLite,
                whose connection is shared between worker threads.
            require_composite_indexes: Reject equality + sort queries that no
                declared index covers, mirroring document databases.
        """
        self._session_factory = session_factory
        self.timeout = settings.store_timeout_seconds if timeout is None else timeout
        self.serialize = settings.is_sqlite if serialize is None else serialize
        self.require_composite_indexes = (
            settings.store_require_composite_indexes
            if require_composite_indexes is None
            else require_composite_indexes
        )
        self._lock = threading.Lock()

    # --- Execution -----------------------------------------------------------------
    async def run(self, fn: Callable[..., ResultT], *args: Any) -> ResultT:
        """Run ``fn(session, *args)``-style work in a thread under the timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._guarded, fn, *args),
                timeout=self.timeout,
            )
        except TimeoutError as err:
            logger.warning("Store request %s timed out after %.2fs", _name(fn), self.timeout)
            raise StoreTimeoutError(f"Store request timed out after {self.timeout}s") from err

    def _guarded(self, fn: Callable[..., ResultT], *args: Any) -> ResultT:
        try:
            if self.serialize:
                with self._lock:
                    return fn(*args)
            return fn(*args)
        except EngagementError:
            raise
        except SQLAlchemyError as err:
            logger.error("Store request %s failed: %s", _name(fn), err)
            raise StoreUnavailableError(str(err)) from err

    def batch(self) -> WriteBatch:
        """Return a new, empty write batch."""
        return WriteBatch(self)

    # --- Reads ---------------------------------------------------------------------
    async def get(self, model: type[ModelT], key: str) -> ModelT | None:
        """Return the document stored under ``key`` or None."""
        return await self.run(self._get, model, key)

    def _get(self, model: type[ModelT], key: str) -> ModelT | None:
        with self._session_factory() as session:
            return session.get(model, key)

    async def get_many(self, model: type[ModelT], keys: Iterable[str]) -> dict[str, ModelT]:
        """Return the documents that exist among ``keys``, indexed by key."""
        key_list = list(dict.fromkeys(keys))
        if not key_list:
            return {}
        return await self.run(self._get_many, model, key_list)

    def _get_many(self, model: type[ModelT], keys: list[str]) -> dict[str, ModelT]:
        pk = _primary_key(model)
        with self._session_factory() as session:
            rows = session.scalars(select(model).where(pk.in_(keys))).all()
            return {getattr(row, pk.key): row for row in rows}

    async def query(
        self,
        model: type[ModelT],
        *,
        where: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
        start_after: tuple[Any, str] | None = None,
    ) -> list[ModelT]:
        """Return documents matching equality filters in a stable order.

        Args:
            model: Mapped class to query.
            where: Field equality filters. Sequence values match any member.
            order_by: Field to sort by; the primary key breaks ties.
            descending: Sort direction for both the field and the tie-breaker.
            limit: Maximum number of documents to return.
            start_after: ``(order_value, key)`` of the last document already
                seen; only documents strictly after it are returned.

        Raises:
            MissingIndexError: If filters and sort need a composite index
                that the model does not declare.
        """
        filters = dict(where or {})
        if start_after is not None and order_by is None:
            raise InvalidArgumentError("start_after requires order_by")
        if filters and order_by and self.require_composite_indexes:
            if not self.has_composite_index(model, filters.keys(), order_by):
                raise MissingIndexError(
                    f"{model.__name__} needs an index on {sorted(filters)} + {order_by}"
                )
        return await self.run(
            self._query, model, filters, order_by, descending, limit, start_after
        )

    def _query(
        self,
        model: type[ModelT],
        filters: dict[str, Any],
        order_by: str | None,
        descending: bool,
        limit: int | None,
        start_after: tuple[Any, str] | None,
    ) -> list[ModelT]:
        pk = _primary_key(model)
        stmt = select(model).where(*self._conditions(model, filters))
        if order_by is not None:
            column = getattr(model, order_by)
            if start_after is not None:
                value, key = start_after
                if descending:
                    stmt = stmt.where(or_(column < value, and_(column == value, pk < key)))
                else:
                    stmt = stmt.where(or_(column > value, and_(column == value, pk > key)))
            if descending:
                stmt = stmt.order_by(column.desc(), pk.desc())
            else:
                stmt = stmt.order_by(column.asc(), pk.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())

    async def count(self, model: type[Any], *, where: Mapping[str, Any] | None = None) -> int:
        """Return how many documents match the equality filters."""
        return await self.run(self._count, model, dict(where or {}))

    def _count(self, model: type[Any], filters: dict[str, Any]) -> int:
        stmt = select(func.count()).select_from(model).where(*self._conditions(model, filters))
        with self._session_factory() as session:
            return int(session.scalar(stmt) or 0)

    @staticmethod
    def _conditions(model: type[Any], filters: Mapping[str, Any]) -> list[Any]:
        conditions = []
        for name, value in filters.items():
            column = getattr(model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(column.in_(list(value)))
            else:
                conditions.append(column == value)
        return conditions

    @staticmethod
    def has_composite_index(
        model: type[Any],
        filter_fields: Iterable[str],
        order_by: str,
    ) -> bool:
        """Return True if an index leads with the filter fields followed by ``order_by``."""
        wanted = set(filter_fields)
        for index in model.__table__.indexes:
            names = [column.name for column in index.columns]
            prefix, rest = names[: len(wanted)], names[len(wanted):]
            if set(prefix) == wanted and rest and rest[0] == order_by:
                return True
        return False

    # --- Writes --------------------------------------------------------------------
    def apply_batch(self, ops: Sequence[BatchOp]) -> None:
        """Apply ``ops`` inside a single transaction."""
        with self._session_factory() as session, session.begin():
            for op in ops:
                self._apply(session, op)

    def _apply(self, session: Session, op: BatchOp) -> None:
        if isinstance(op, CreateOp):
            self._apply_create(session, op)
        elif isinstance(op, UpdateOp):
            self._apply_update(session, op)
        elif isinstance(op, IncrementOp):
            self._apply_increment(session, op)
        elif isinstance(op, DeleteOp):
            self._apply_delete(session, op)
        else:  # pragma: no cover - exhaustive
            raise StoreError(f"Unsupported batch operation: {op!r}")

    @staticmethod
    def _apply_create(session: Session, op: CreateOp) -> None:
        try:
            session.execute(insert(op.model).values(**op.values))
        except IntegrityError as err:
            raise DocumentExistsError(
                f"{op.model.__name__} {op.values.get(_primary_key(op.model).key)!r} already exists"
            ) from err

    @staticmethod
    def _apply_update(session: Session, op: UpdateOp) -> None:
        model = op.model
        pk = _primary_key(model)
        stmt = update(model).where(pk == op.key)
        for name, expected in op.expect.items():
            stmt = stmt.where(getattr(model, name) == expected)
        result = session.execute(
            stmt.values(**op.values).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            exists = session.scalar(select(pk).where(pk == op.key)) is not None
            if exists:
                raise PreconditionFailedError(
                    f"{model.__name__} {op.key!r} no longer matches {dict(op.expect)!r}"
                )
            raise DocumentNotFoundError(f"{model.__name__} {op.key!r} does not exist")

    @staticmethod
    def _apply_increment(session: Session, op: IncrementOp) -> None:
        model = op.model
        column = getattr(model, op.column)
        value = column + op.delta
        if op.floor is not None:
            value = case((value < op.floor, op.floor), else_=value)
        result = session.execute(
            update(model)
            .where(_primary_key(model) == op.key)
            .values({op.column: value})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise DocumentNotFoundError(f"{model.__name__} {op.key!r} does not exist")

    @staticmethod
    def _apply_delete(session: Session, op: DeleteOp) -> None:
        result = session.execute(
            delete(op.model)
            .where(_primary_key(op.model) == op.key)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0 and op.must_exist:
            raise DocumentNotFoundError(f"{op.model.__name__} {op.key!r} does not exist")


_store: RelationStore | None = None


def get_store() -> RelationStore:
    """Return the process-wide store bound to the configured database."""
    global _store
    if _store is None:
        from feedline.db.session import SessionLocal

        _store = RelationStore(SessionLocal)
    return _store
