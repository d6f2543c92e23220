"""Declarative base and capability mixins shared by every entity.

An entity's capabilities are expressed through the mixins it inherits:
``HasIdentity`` for a store-assigned integer primary key, ``SoftDeletable``
for the ``status``/``deleted_at`` pair used instead of physical deletion,
and ``Timestamped`` for creation/update instants.
"""

from enum import Enum

import typing as t
from datetime import UTC, datetime
from sqlalchemy import DateTime
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(UTC)


class Status(str, Enum):
    ACTIVE = "active"
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"
    CANCELED = "canceled"
    UNVERIFIED = "unverified"
    DELETED = "deleted"


class Base(DeclarativeBase):
    type_annotation_map: t.ClassVar[dict[t.Any, t.Any]] = {
        datetime: DateTime(timezone=True),
    }

    def __repr__(self) -> str:
        identity = getattr(self, "id", None)
        return f"<{type(self).__name__} id={identity}>"


class HasIdentity:
    """Integer identity assigned by the store on creation."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)


class SoftDeletable:
    """Logical deletion through ``status`` and ``deleted_at``."""

    status: Mapped[Status] = mapped_column(
        SqlEnum(Status, native_enum=False, length=16),
        default=Status.ACTIVE,
        index=True,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(default=None)

    @property
    def is_deleted(self) -> bool:
        return self.status == Status.DELETED

    def mark_deleted(self, when: datetime | None = None) -> None:
        self.status = Status.DELETED
        self.deleted_at = when or utc_now()


class Timestamped:
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime | None] = mapped_column(default=None, onupdate=utc_now)


def is_entity_type(candidate: t.Any) -> bool:
    """Return True for mapped classes that carry an integer identity."""
    return (
        isinstance(candidate, type)
        and issubclass(candidate, Base)
        and issubclass(candidate, HasIdentity)
        and hasattr(candidate, "__table__")
    )


def supports_soft_delete(entity_type: type[t.Any]) -> bool:
    return issubclass(entity_type, SoftDeletable)
