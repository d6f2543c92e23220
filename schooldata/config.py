"""Settings for the data-access layer.

Settings are pydantic-settings models, so every option can be supplied as
a constructor argument or through a ``SCHOOLDATA_``-prefixed environment
variable. A default :class:`DataAccessSettings` instance is registered in
the dependency container when this module is imported; components that are
not handed explicit settings resolve it from there.
"""

import typing as t
from contextlib import suppress
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .depends import depends


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SCHOOLDATA_",
        extra="ignore",
        validate_default=True,
        protected_namespaces=("model_", "settings_"),
    )


class DataAccessSettings(Settings):
    """Repository, cache and store configuration."""

    # Store settings
    database_url: str = Field(
        default="sqlite+aiosqlite:///./schooldata.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Echo emitted SQL")

    # Cache settings
    cache_ttl: float = Field(
        default=30.0,
        gt=0,
        description="Cache entry time-to-live in seconds",
    )
    sliding_expiration: bool = Field(
        default=True,
        description="Reset an entry's expiration on every successful read",
    )
    cache_namespace: str = Field(default="schooldata", description="Cache key namespace")

    # Query settings
    default_page_size: int = Field(default=5, ge=1)

    log_level: str = Field(default="INFO")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if "://" not in v:
            msg = f"database_url must be a SQLAlchemy URL, got {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def get_settings() -> DataAccessSettings:
    """Return the registered settings, registering defaults if none are."""
    settings: t.Any = None
    with suppress(LookupError):
        settings = depends.get_sync(DataAccessSettings)
    if not isinstance(settings, DataAccessSettings):
        settings = depends.set(DataAccessSettings)
    return settings


depends.set(DataAccessSettings)
