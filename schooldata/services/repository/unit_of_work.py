"""Unit of Work Pattern Implementation.

Provides transaction management and coordination across repositories:
- One repository handle per entity type per unit of work
- A single session shared by every handle, so handles see each other's
  staged writes
- ``save_changes`` as the batch boundary, with optional explicit
  begin/commit/rollback around it
- Automatic rollback when a unit of work is disposed mid-transaction
"""

import uuid
from enum import Enum

import typing as t
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any

from ...cache import RepositoryCache, get_repository_cache
from ...cleanup import CleanupMixin
from ...config import DataAccessSettings, get_settings
from ...database import Database, get_database
from ...logger import logger
from ...models import is_entity_type
from ._base import EntityType, TransactionError, ValidationError
from .cache import CachedRepository
from .sql import SqlRepository


class UnitOfWorkState(Enum):
    """State of the unit of work's explicit transaction."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass
class UnitOfWorkMetrics:
    """Metrics for Unit of Work operations."""

    transaction_id: str
    start_time: datetime
    end_time: datetime | None = None
    state: UnitOfWorkState = UnitOfWorkState.INACTIVE
    operations_count: int = 0
    batches_saved: int = 0
    repositories_used: set[str] = field(default_factory=set)
    error_message: str | None = None

    @property
    def duration(self) -> float | None:
        """Get unit of work duration in seconds."""
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class UnitOfWork(CleanupMixin):
    """Scope binding repository operations into one committable batch.

    A unit of work belongs to one logical request and must not be shared
    between concurrent tasks. Use it as an async context manager, or call
    :meth:`cleanup`, to release its session.
    """

    def __init__(
        self,
        database: Database | None = None,
        cache: RepositoryCache | None = None,
        settings: DataAccessSettings | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings or get_settings()
        self.database = database or get_database()
        self.cache = cache or get_repository_cache()
        self._session: AsyncSession | None = None
        self._state = UnitOfWorkState.INACTIVE
        self._repositories: dict[type[Any], CachedRepository[Any]] = {}
        self._operations: list[dict[str, Any]] = []
        self._metrics = UnitOfWorkMetrics(
            transaction_id=str(uuid.uuid4()),
            start_time=datetime.now(UTC),
        )

    @property
    def state(self) -> UnitOfWorkState:
        return self._state

    @property
    def is_active(self) -> bool:
        """Check if an explicit transaction is open."""
        return self._state == UnitOfWorkState.ACTIVE

    @property
    def transaction_id(self) -> str:
        return self._metrics.transaction_id

    @property
    def session(self) -> AsyncSession:
        if self.is_cleaned_up:
            msg = "Unit of work has been disposed"
            raise TransactionError(msg, self.transaction_id, self._state)
        if self._session is None:
            self._session = self.database.session()
        return self._session

    @property
    def pending_operations(self) -> list[dict[str, Any]]:
        """Staged writes not yet saved, oldest first."""
        return list(self._operations)

    def repository(self, entity_type: type[EntityType]) -> CachedRepository[EntityType]:
        """Return this unit of work's handle for ``entity_type``.

        The handle is created on first request and the same instance is
        returned for the lifetime of the unit of work.
        """
        handle = self._repositories.get(entity_type)
        if handle is not None:
            return handle

        if not is_entity_type(entity_type):
            msg = f"{entity_type!r} is not a persisted entity type"
            raise ValidationError(msg, operation="repository")

        handle = CachedRepository(
            SqlRepository(
                entity_type,
                self.session,
                journal=self.add_operation,
                on_read=self.end_read_transaction,
            ),
            self.cache,
        )
        self._repositories[entity_type] = handle
        self._metrics.repositories_used.add(handle.entity_name)
        return handle

    def add_operation(self, operation: str, entity_type: str, data: Any = None) -> None:
        """Record a staged write.

        Args:
            operation: Operation type (add, update, delete)
            entity_type: Name of the entity type written
            data: Identity of the written entity
        """
        self._operations.append(
            {
                "operation": operation,
                "entity_type": entity_type,
                "timestamp": datetime.now(UTC),
                "data": data,
            },
        )
        self._metrics.operations_count += 1

    async def end_read_transaction(self) -> None:
        """End the implicit transaction opened by a read, if it holds nothing.

        Outside an explicit transaction, reads must not pin a snapshot or
        hold store locks, otherwise commits made by other units of work stay
        invisible (or blocked) until this one is disposed.
        """
        session = self._session
        if (
            session is None
            or self.is_active
            or self._operations
            or session.new
            or session.dirty
            or session.deleted
            or not session.in_transaction()
        ):
            return
        await session.commit()

    async def _settle_handles(self) -> None:
        for handle in self._repositories.values():
            await handle.invalidate_pending()

    def _fail(self, message: str, error: Exception) -> TransactionError:
        self._state = UnitOfWorkState.FAILED
        self._metrics.error_message = str(error)
        logger.warning(f"{message} ({self.transaction_id}): {error}")
        return TransactionError(f"{message}: {error}", self.transaction_id, self._state)

    async def save_changes(self) -> int:
        """Flush every staged write as one batch.

        Without an explicit transaction the batch is committed. Inside one,
        it is only flushed and :meth:`commit` makes it durable.

        Returns:
            Number of staged writes in the batch

        Raises:
            TransactionError: If the store rejects the batch; staged writes
                are kept for a corrected retry
        """
        count = len(self._operations)
        session = self.session
        try:
            async with session.begin_nested():
                await session.flush()
            if not self.is_active:
                await session.commit()
        except SQLAlchemyError as e:
            self._metrics.error_message = str(e)
            logger.warning(f"Failed to save changes ({self.transaction_id}): {e}")
            msg = f"Failed to save changes: {e}"
            raise TransactionError(msg, self.transaction_id, self._state) from e

        self._operations.clear()
        self._metrics.batches_saved += 1
        if not self.is_active:
            await self._settle_handles()
        logger.debug(f"Saved {count} change(s) in {self.transaction_id}")
        return count

    async def begin_transaction(self) -> None:
        """Open the explicit transaction.

        Raises:
            TransactionError: If one is already open or unsaved writes are
                staged outside of it
        """
        if self.is_active:
            msg = "A transaction is already active"
            raise TransactionError(msg, self.transaction_id, self._state)
        if self._operations:
            msg = "Save staged changes before beginning a transaction"
            raise TransactionError(msg, self.transaction_id, self._state)

        session = self.session
        try:
            if session.in_transaction():
                # Ends the implicit read-only transaction.
                await session.commit()
            await session.begin()
        except SQLAlchemyError as e:
            raise self._fail("Failed to begin transaction", e) from e

        self._state = UnitOfWorkState.ACTIVE
        logger.info(f"Began transaction {self.transaction_id}")

    async def commit(self) -> None:
        """Commit the explicit transaction.

        Raises:
            TransactionError: If no transaction is active or the store
                rejects the commit, in which case the transaction is rolled
                back
        """
        if not self.is_active:
            msg = "No active transaction to commit"
            raise TransactionError(msg, self.transaction_id, self._state)

        self._state = UnitOfWorkState.COMMITTING
        session = self.session
        try:
            await session.flush()
            await session.commit()
        except SQLAlchemyError as e:
            error = self._fail("Failed to commit transaction", e)
            try:
                await session.rollback()
            except SQLAlchemyError as rollback_error:
                logger.warning(f"Rollback after failed commit also failed ({self.transaction_id}): {rollback_error}")
            finally:
                self._operations.clear()
                await self._settle_handles()
            raise error from e

        self._operations.clear()
        await self._settle_handles()
        self._state = UnitOfWorkState.COMMITTED
        self._metrics.end_time = datetime.now(UTC)
        logger.info(f"Committed transaction {self.transaction_id}")

    async def rollback(self) -> None:
        """Discard every change made since :meth:`begin_transaction`.

        Raises:
            TransactionError: If no transaction is active
        """
        if not self.is_active:
            msg = "No active transaction to roll back"
            raise TransactionError(msg, self.transaction_id, self._state)

        self._state = UnitOfWorkState.ROLLING_BACK
        try:
            await self.session.rollback()
        except SQLAlchemyError as e:
            raise self._fail("Failed to roll back transaction", e) from e
        finally:
            self._operations.clear()
            await self._settle_handles()

        self._state = UnitOfWorkState.ROLLED_BACK
        self._metrics.end_time = datetime.now(UTC)
        logger.info(f"Rolled back transaction {self.transaction_id}")

    async def get_metrics(self) -> UnitOfWorkMetrics:
        self._metrics.state = self._state
        return self._metrics

    async def _cleanup_resources(self) -> None:
        """Roll back an open transaction and close the session."""
        if self.is_active:
            await self.rollback()

        if self._session is not None:
            # Closing discards any staged, unsaved writes.
            await self._session.close()
            self._operations.clear()
            await self._settle_handles()
        self._session = None
        self._repositories.clear()
        if self._metrics.end_time is None:
            self._metrics.end_time = datetime.now(UTC)


class UnitOfWorkManager(CleanupMixin):
    """Factory and tracker for Unit of Work instances."""

    def __init__(
        self,
        database: Database | None = None,
        cache: RepositoryCache | None = None,
        settings: DataAccessSettings | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings or get_settings()
        self.database = database or get_database()
        self.cache = cache or get_repository_cache()
        self._active: dict[str, UnitOfWork] = {}
        self._completed: list[UnitOfWorkMetrics] = []
        self._max_completed_history = 1000

    def create_unit_of_work(self) -> UnitOfWork:
        uow = UnitOfWork(self.database, self.cache, self.settings)
        self._active[uow.transaction_id] = uow
        return uow

    @asynccontextmanager
    async def unit_of_work(self) -> t.AsyncGenerator[UnitOfWork, None]:
        """Yield a unit of work and dispose of it on exit."""
        uow = self.create_unit_of_work()
        try:
            yield uow
        finally:
            await self._complete(uow)

    @asynccontextmanager
    async def transaction(self) -> t.AsyncGenerator[UnitOfWork, None]:
        """Yield a unit of work inside an explicit transaction.

        Staged writes are saved and committed on normal exit. Any exception
        rolls the transaction back and is re-raised.
        """
        uow = self.create_unit_of_work()
        try:
            await uow.begin_transaction()
            yield uow
            await uow.save_changes()
            await uow.commit()
        except Exception:
            if uow.is_active:
                await uow.rollback()
            raise
        finally:
            await self._complete(uow)

    @property
    def active_count(self) -> int:
        return len(self._active)

    def get_transaction_history(self, limit: int = 100) -> list[UnitOfWorkMetrics]:
        return self._completed[-limit:]

    async def _complete(self, uow: UnitOfWork) -> None:
        self._active.pop(uow.transaction_id, None)
        await uow.cleanup()
        self._completed.append(await uow.get_metrics())
        if len(self._completed) > self._max_completed_history:
            self._completed = self._completed[-self._max_completed_history :]

    async def _cleanup_resources(self) -> None:
        for uow in list(self._active.values()):
            await uow.cleanup()
        self._active.clear()
        self._completed.clear()
