import typing as t

from .cache import RepositoryCache, get_repository_cache
from .config import DataAccessSettings, get_settings
from .database import Database, get_database
from .depends import depends
from .logger import configure_logging, logger
from .services.repository import UnitOfWork, UnitOfWorkManager

__all__ = [
    "DataAccessSettings",
    "Database",
    "RepositoryCache",
    "UnitOfWork",
    "UnitOfWorkManager",
    "configure",
    "configure_logging",
    "depends",
    "get_database",
    "get_repository_cache",
    "get_settings",
]

__version__ = "0.3.0"


def configure(settings: DataAccessSettings | None = None, **overrides: t.Any) -> DataAccessSettings:
    """Register settings and a matching database and cache.

    Keyword overrides are applied on top of ``settings`` (or the defaults).
    Previously registered database and cache instances are replaced, not
    disposed; callers that created them own their cleanup.
    """
    settings = settings or DataAccessSettings()
    if overrides:
        settings = settings.model_copy(update=overrides)
    depends.set(DataAccessSettings, settings)
    depends.set(Database, Database(settings))
    depends.set(RepositoryCache, RepositoryCache(settings))
    logger.debug(f"Configured data access for {settings.database_url}")
    return settings
