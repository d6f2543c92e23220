"""Repository layer.

This module provides the data-access patterns of the package:
- Repository base interface with CRUD operations over one entity type
- SQL repository staging writes in the unit of work's session
- Read-through caching decorator with write invalidation
- Unit of Work pattern for batches and explicit transactions
- Dynamic sort, search and paging over runtime-supplied parameters
"""

from ._base import (
    DuplicateKeyError,
    NotFoundError,
    PagedResult,
    PaginationInfo,
    RepositoryBase,
    RepositoryError,
    TransactionError,
    ValidationError,
)
from .cache import CachedRepository, CacheMetrics
from .query_builder import (
    QueryBuilder,
    SortRegistry,
    apply_paging,
    apply_related_search,
    apply_search,
    apply_sort,
    composite_comparator,
    parse_sort,
    search,
)
from .sql import SqlRepository
from .unit_of_work import (
    UnitOfWork,
    UnitOfWorkManager,
    UnitOfWorkMetrics,
    UnitOfWorkState,
)

__all__ = [
    "CacheMetrics",
    "CachedRepository",
    "DuplicateKeyError",
    "NotFoundError",
    "PagedResult",
    "PaginationInfo",
    "QueryBuilder",
    "RepositoryBase",
    "RepositoryError",
    "SortRegistry",
    "SqlRepository",
    "TransactionError",
    "UnitOfWork",
    "UnitOfWorkManager",
    "UnitOfWorkMetrics",
    "UnitOfWorkState",
    "ValidationError",
    "apply_paging",
    "apply_related_search",
    "apply_search",
    "apply_sort",
    "composite_comparator",
    "parse_sort",
    "search",
]
