"""Repository Base Classes and Interface.

Provides the repository contract shared by the store-backed repository and
the caching decorator:
- Generic repository interface for CRUD operations
- Error taxonomy for repository, cache and unit-of-work operations
- Paging result types
"""

import builtins
import math
from abc import ABC, abstractmethod

import typing as t
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

EntityType = TypeVar("EntityType")

Filter = Any
Include = Sequence[str] | None


class RepositoryError(Exception):
    """Base exception for repository operations."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.operation = operation
        super().__init__(message)


class NotFoundError(RepositoryError):
    """Raised when a write targets an entity that is absent or soft-deleted."""

    def __init__(self, entity_type: str, entity_id: Any, operation: str = "find") -> None:
        super().__init__(
            f"{entity_type} with ID {entity_id} not found",
            entity_type=entity_type,
            operation=operation,
        )
        self.entity_id = entity_id


class DuplicateKeyError(RepositoryError):
    """Raised when an insert collides with an existing identity or unique key."""

    def __init__(self, entity_type: str, entity_id: Any = None) -> None:
        message = (
            f"{entity_type} with ID {entity_id} already exists"
            if entity_id is not None
            else f"{entity_type} violates a unique constraint"
        )
        super().__init__(
            message,
            entity_type=entity_type,
            operation="add",
        )
        self.entity_id = entity_id


class ValidationError(RepositoryError):
    """Raised for caller arguments that cannot be defaulted."""


class TransactionError(RepositoryError):
    """Raised for transaction misuse or a batch rejected by the store."""

    def __init__(
        self,
        message: str,
        transaction_id: str | None = None,
        state: Any = None,
    ) -> None:
        super().__init__(message, operation="transaction")
        self.transaction_id = transaction_id
        self.state = state


@dataclass
class PaginationInfo:
    """Resolved paging parameters.

    ``page`` is 1-based. ``page_size`` of None means the whole result set.
    """

    page: int | None = None
    page_size: int | None = None
    total_items: int = 0

    @property
    def is_empty_request(self) -> bool:
        """True for page parameters that select nothing (zero or negative)."""
        return (self.page is not None and self.page <= 0) or (
            self.page_size is not None and self.page_size <= 0
        )

    @property
    def total_pages(self) -> int:
        if self.is_empty_request:
            return 0
        if self.page_size is None:
            return 1
        return math.ceil(self.total_items / self.page_size)

    @property
    def offset(self) -> int:
        if self.page is None or self.page_size is None:
            return 0
        return (self.page - 1) * self.page_size

    @property
    def has_next(self) -> bool:
        return self.page is not None and self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page is not None and self.page > 1


@dataclass
class PagedResult[T]:
    items: list[T] = field(default_factory=list)
    pagination: PaginationInfo = field(default_factory=PaginationInfo)

    @property
    def total_pages(self) -> int:
        return self.pagination.total_pages

    @property
    def total_items(self) -> int:
        return self.pagination.total_items

    @classmethod
    def empty(cls, pagination: PaginationInfo | None = None) -> "PagedResult[T]":
        """Result for page parameters that select nothing; zero total pages."""
        return cls(items=[], pagination=pagination or PaginationInfo(page=0, page_size=0))


class RepositoryBase[EntityType](ABC):
    """Abstract repository over one entity type with an integer identity.

    Reads that find nothing return None or an empty list; writes that find
    nothing raise :class:`NotFoundError`.
    """

    def __init__(self, entity_type: type[EntityType]) -> None:
        self.entity_type = entity_type
        self.entity_name = getattr(entity_type, "__name__", str(entity_type))

    @abstractmethod
    async def get_by_id(
        self,
        entity_id: int,
        include: Include = None,
        include_deleted: bool = False,
    ) -> EntityType | None:
        """Get entity by ID.

        Args:
            entity_id: Identity of the entity
            include: Relationship names to load eagerly
            include_deleted: Also return a soft-deleted entity

        Returns:
            Entity if found, None otherwise
        """

    @abstractmethod
    async def get_all(
        self,
        filter: Filter = None,
        include: Include = None,
        *,
        entity_id: int | None = None,
        include_deleted: bool = False,
    ) -> builtins.list[EntityType]:
        """List entities matching ``filter`` (and ``entity_id`` when given).

        Returns an empty list when nothing matches.
        """

    @abstractmethod
    async def add(self, entity: EntityType) -> int:
        """Stage a new entity and return its assigned identity.

        Raises:
            DuplicateKeyError: If the identity or a unique key is taken
        """

    @abstractmethod
    async def update(self, entity: EntityType) -> int:
        """Stage changes to an existing entity and return its identity.

        Raises:
            NotFoundError: If the entity does not exist or is soft-deleted
        """

    @abstractmethod
    async def delete(self, entity: "EntityType | int") -> int:
        """Delete by identity or instance; soft-deletable types are soft-deleted.

        Raises:
            NotFoundError: If the entity does not exist or is soft-deleted
        """

    @abstractmethod
    async def soft_delete(self, entity_id: int) -> int:
        """Mark the entity deleted without removing its row."""

    @abstractmethod
    async def count(self, filter: Filter = None, include_deleted: bool = False) -> int:
        """Count entities matching ``filter``."""

    @abstractmethod
    async def exists(self, filter: Filter, include_deleted: bool = False) -> bool:
        """Check whether any entity matches ``filter``."""

    async def first_or_default(
        self,
        filter: Filter,
        include: Include = None,
    ) -> EntityType | None:
        entities = await self.get_all(filter, include)
        return entities[0] if entities else None

    async def get_by_id_or_raise(self, entity_id: int) -> EntityType:
        entity = await self.get_by_id(entity_id)
        if entity is None:
            raise NotFoundError(self.entity_name, entity_id)
        return entity

    def _entity_id(self, entity: "EntityType | int") -> int:
        if isinstance(entity, int):
            return entity
        if not isinstance(entity, self.entity_type):
            msg = f"Expected {self.entity_name}, got {type(entity).__name__}"
            raise ValidationError(msg, entity_type=self.entity_name)
        entity_id: t.Any = getattr(entity, "id", None)
        if entity_id is None:
            raise NotFoundError(self.entity_name, None, operation="delete")
        return int(entity_id)
