"""SQL Repository Implementation.

Generic repository over one mapped entity type and one ``AsyncSession``.
Writes are staged, never committed: each runs inside its own SAVEPOINT so
the store assigns identities immediately and a rejected write rolls back
alone, leaving earlier staged writes in the session intact. Committing is
the unit of work's job.
"""

import builtins

import typing as t
from collections.abc import Awaitable, Callable
from sqlalchemy import Select, func, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ...logger import logger
from ...models import Status, supports_soft_delete
from ._base import (
    DuplicateKeyError,
    EntityType,
    Filter,
    Include,
    NotFoundError,
    RepositoryBase,
    TransactionError,
    ValidationError,
)

Journal = Callable[[str, str, t.Any], None]
ReadHook = Callable[[], Awaitable[None]]

_UNIQUE_MARKERS = ("unique", "duplicate", "primary key")

# Rows another unit of work committed replace what this session loaded earlier.
_REFRESH = {"populate_existing": True}


def _is_unique_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return any(marker in message for marker in _UNIQUE_MARKERS)


class SqlRepository(RepositoryBase[EntityType]):
    """Repository bound to one session, usually the unit of work's."""

    def __init__(
        self,
        entity_type: type[EntityType],
        session: AsyncSession,
        journal: Journal | None = None,
        on_read: ReadHook | None = None,
    ) -> None:
        super().__init__(entity_type)
        self.session = session
        self._journal = journal
        self._on_read = on_read
        self._relationships = frozenset(sa_inspect(entity_type).relationships.keys())
        self._soft_deletable = supports_soft_delete(entity_type)

    async def _execute(self, stmt: t.Any, refresh: bool = False) -> t.Any:
        result = await self.session.execute(stmt, execution_options=_REFRESH if refresh else {})
        if self._on_read is not None:
            await self._on_read()
        return result

    def _load_options(self, include: Include) -> list[t.Any]:
        if not include:
            return []
        if isinstance(include, str):
            include = (include,)
        unknown = [name for name in include if name not in self._relationships]
        if unknown:
            msg = f"{self.entity_name} has no relationship(s): {', '.join(unknown)}"
            raise ValidationError(msg, entity_type=self.entity_name, operation="include")
        return [selectinload(getattr(self.entity_type, name)) for name in include]

    def _where_visible(self, stmt: Select[t.Any], include_deleted: bool) -> Select[t.Any]:
        if self._soft_deletable and not include_deleted:
            stmt = stmt.where(self.entity_type.status != Status.DELETED)  # type: ignore[attr-defined]
        return stmt

    def _record(self, operation: str, entity_id: int) -> None:
        logger.debug(f"Staged {operation} of {self.entity_name} {entity_id}")
        if self._journal is not None:
            self._journal(operation, self.entity_name, entity_id)

    def _check_instance(self, entity: t.Any) -> None:
        if not isinstance(entity, self.entity_type):
            msg = f"Expected {self.entity_name}, got {type(entity).__name__}"
            raise ValidationError(msg, entity_type=self.entity_name)

    async def get_by_id(
        self,
        entity_id: int,
        include: Include = None,
        include_deleted: bool = False,
    ) -> EntityType | None:
        stmt = select(self.entity_type).where(self.entity_type.id == entity_id)  # type: ignore[attr-defined]
        stmt = self._where_visible(stmt, include_deleted).options(*self._load_options(include))
        result = await self._execute(stmt, refresh=True)
        return result.scalars().first()

    async def get_all(
        self,
        filter: Filter = None,
        include: Include = None,
        *,
        entity_id: int | None = None,
        include_deleted: bool = False,
    ) -> builtins.list[EntityType]:
        stmt = select(self.entity_type)
        if filter is not None:
            stmt = stmt.where(filter)
        if entity_id is not None:
            stmt = stmt.where(self.entity_type.id == entity_id)  # type: ignore[attr-defined]
        stmt = self._where_visible(stmt, include_deleted)
        stmt = stmt.options(*self._load_options(include)).order_by(
            self.entity_type.id,  # type: ignore[attr-defined]
        )
        result = await self._execute(stmt, refresh=True)
        return list(result.scalars().all())

    async def add(self, entity: EntityType) -> int:
        self._check_instance(entity)
        entity_id = getattr(entity, "id", None)
        if entity_id is not None:
            existing = await self.session.get(self.entity_type, entity_id, populate_existing=True)
            if existing is not None:
                raise DuplicateKeyError(self.entity_name, entity_id)

        try:
            async with self.session.begin_nested():
                self.session.add(entity)
        except IntegrityError as e:
            logger.warning(f"Rejected insert of {self.entity_name}: {e.orig}")
            if _is_unique_violation(e):
                raise DuplicateKeyError(self.entity_name, entity_id) from e
            msg = f"Store rejected insert of {self.entity_name}: {e.orig}"
            raise TransactionError(msg) from e

        new_id = int(entity.id)  # type: ignore[attr-defined]
        self._record("add", new_id)
        return new_id

    async def _stored_and_visible(self, entity_id: int) -> bool:
        stmt = select(self.entity_type.id).where(self.entity_type.id == entity_id)  # type: ignore[attr-defined]
        stmt = self._where_visible(stmt, include_deleted=False)
        result = await self._execute(stmt)
        return result.scalar() is not None

    async def update(self, entity: EntityType) -> int:
        self._check_instance(entity)
        entity_id = getattr(entity, "id", None)
        # The check reads flushed state, so an in-memory soft delete still passes.
        if entity_id is None or not await self._stored_and_visible(entity_id):
            raise NotFoundError(self.entity_name, entity_id, operation="update")

        try:
            async with self.session.begin_nested():
                await self.session.merge(entity)
        except IntegrityError as e:
            logger.warning(f"Rejected update of {self.entity_name} {entity_id}: {e.orig}")
            if _is_unique_violation(e):
                raise DuplicateKeyError(self.entity_name) from e
            msg = f"Store rejected update of {self.entity_name} {entity_id}: {e.orig}"
            raise TransactionError(msg) from e

        self._record("update", entity_id)
        return int(entity_id)

    async def delete(self, entity: EntityType | int) -> int:
        entity_id = self._entity_id(entity)
        if self._soft_deletable:
            return await self.soft_delete(entity_id)

        existing = await self.session.get(self.entity_type, entity_id, populate_existing=True)
        if existing is None:
            raise NotFoundError(self.entity_name, entity_id, operation="delete")
        try:
            async with self.session.begin_nested():
                await self.session.delete(existing)
        except SQLAlchemyError as e:
            logger.warning(f"Rejected delete of {self.entity_name} {entity_id}: {e}")
            msg = f"Store rejected delete of {self.entity_name} {entity_id}: {e}"
            raise TransactionError(msg) from e

        self._record("delete", entity_id)
        return entity_id

    async def soft_delete(self, entity_id: int) -> int:
        if not self._soft_deletable:
            msg = f"{self.entity_name} does not support soft delete"
            raise ValidationError(msg, entity_type=self.entity_name, operation="soft_delete")
        entity = await self.get_by_id(entity_id)
        if entity is None:
            raise NotFoundError(self.entity_name, entity_id, operation="soft_delete")
        entity.mark_deleted()  # type: ignore[attr-defined]
        return await self.update(entity)

    async def count(self, filter: Filter = None, include_deleted: bool = False) -> int:
        stmt = select(func.count()).select_from(self.entity_type)
        if filter is not None:
            stmt = stmt.where(filter)
        stmt = self._where_visible(stmt, include_deleted)
        result = await self._execute(stmt)
        return int(result.scalar_one())

    async def exists(self, filter: Filter, include_deleted: bool = False) -> bool:
        stmt = select(self.entity_type.id).where(filter)  # type: ignore[attr-defined]
        stmt = self._where_visible(stmt, include_deleted).limit(1)
        result = await self._execute(stmt)
        return result.scalar() is not None
