"""Users, refresh tokens, audit records and to-do items."""

from datetime import datetime
from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ._base import Base, HasIdentity, SoftDeletable, Timestamped, utc_now


class User(HasIdentity, SoftDeletable, Timestamped, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(254), unique=True)
    full_name: Mapped[str] = mapped_column(String(200), default="")
    password_hash: Mapped[str] = mapped_column(String(255), default="")
    role: Mapped[str] = mapped_column(String(32), default="student")

    refresh_tokens: Mapped[list["RefreshToken"]] = relationship(
        back_populates="user",
        passive_deletes=True,
    )


class RefreshToken(HasIdentity, Base):
    __tablename__ = "refresh_tokens"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    token: Mapped[str] = mapped_column(String(255), unique=True)
    expires_at: Mapped[datetime]
    revoked: Mapped[bool] = mapped_column(default=False)

    user: Mapped[User] = relationship(back_populates="refresh_tokens")


class AuditLog(HasIdentity, Base):
    __tablename__ = "audit_logs"

    entity_name: Mapped[str] = mapped_column(String(100))
    action: Mapped[str] = mapped_column(String(32))
    old_value: Mapped[str | None] = mapped_column(Text, default=None)
    new_value: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)


class ToDo(HasIdentity, SoftDeletable, Timestamped, Base):
    __tablename__ = "todos"

    description: Mapped[str] = mapped_column(String(500))
    is_completed: Mapped[bool] = mapped_column(default=False)
