"""Query Builder Implementation.

Turns runtime-supplied sort field names, search terms and page parameters
into in-memory operations over repository results:
- Per-entity sort registries mapping field names to projections
- Composite, stable multi-key sorting with a single direction flag
- Paging with defaults instead of errors
- Free-text search in single-token and related (multi-token) modes
- A fluent builder tying these to a repository
"""

import builtins
from functools import cmp_to_key

import typing as t
from collections.abc import Callable, Iterable, Mapping, Sequence
from sqlalchemy import and_

from ._base import Filter, PagedResult, PaginationInfo, RepositoryBase

Projection = Callable[[t.Any], t.Any]
Comparator = Callable[[t.Any, t.Any], int]

DEFAULT_PAGE_SIZE = 5


def identity_projection(entity: t.Any) -> t.Any:
    return getattr(entity, "id", None)


class SortRegistry:
    """Allow-list of sortable and searchable projections for one entity type.

    Build one per entity type at import time and reuse it. Field names are
    matched case-insensitively; a name that is not registered resolves to
    the identity projection rather than failing.
    """

    def __init__(
        self,
        fields: Mapping[str, Projection],
        searchable: Sequence[str] | None = None,
        identity: Projection = identity_projection,
    ) -> None:
        self._fields = {name.lower(): projection for name, projection in fields.items()}
        self.identity = identity
        names = [name.lower() for name in searchable] if searchable is not None else list(self._fields)
        unknown = [name for name in names if name not in self._fields]
        if unknown:
            msg = f"Searchable fields must be registered: {', '.join(unknown)}"
            raise ValueError(msg)
        self._searchable = tuple(self._fields[name] for name in names)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._fields

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._fields)

    @property
    def searchable(self) -> tuple[Projection, ...]:
        return self._searchable

    def resolve(self, name: str) -> Projection:
        return self._fields.get(name.strip().lower(), self.identity)


def parse_sort(sort_by: str | Iterable[str] | None) -> list[str]:
    """Split a comma-separated sort string into trimmed lower-case tokens."""
    if not sort_by:
        return []
    parts = [sort_by] if isinstance(sort_by, str) else list(sort_by)
    tokens = []
    for part in parts:
        tokens.extend(token.strip().lower() for token in part.split(","))
    return [token for token in tokens if token]


def _compare_values(left: t.Any, right: t.Any) -> int:
    # None sorts lowest.
    if left is None or right is None:
        return (left is not None) - (right is not None)
    return (left > right) - (left < right)


def composite_comparator(
    sort_by: str | Iterable[str] | None,
    is_descending: bool,
    registry: SortRegistry,
) -> Comparator:
    """Build a comparator ordering by each sort token in turn.

    The first token is the primary key and later tokens break ties. The
    direction flag applies to every key.
    """
    projections = [registry.resolve(token) for token in parse_sort(sort_by)]
    sign = -1 if is_descending else 1

    def compare(left: t.Any, right: t.Any) -> int:
        for projection in projections:
            result = _compare_values(projection(left), projection(right))
            if result:
                return sign * result
        return 0

    return compare


def apply_sort[T](
    items: Iterable[T],
    sort_by: str | Iterable[str] | None,
    is_descending: bool,
    registry: SortRegistry,
) -> list[T]:
    """Stable sort of ``items``; with no sort tokens the input order is kept."""
    items = list(items)
    if not parse_sort(sort_by):
        return items
    return sorted(items, key=cmp_to_key(composite_comparator(sort_by, is_descending, registry)))


def apply_paging[T](
    items: Iterable[T],
    page_size: int | None = None,
    page_index: int | None = None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
) -> PagedResult[T]:
    """Slice one 1-based page out of ``items``.

    A size without an index selects the first page; an index without a size
    uses ``default_page_size``; neither returns everything as a single page.
    A size or index of zero or less selects nothing, with zero total pages.
    """
    items = list(items)
    total = len(items)

    requested = PaginationInfo(page=page_index, page_size=page_size, total_items=total)
    if requested.is_empty_request:
        return PagedResult.empty(requested)
    if page_size is None and page_index is None:
        return PagedResult(items=items, pagination=requested)

    info = PaginationInfo(
        page=page_index if page_index is not None else 1,
        page_size=page_size if page_size is not None else default_page_size,
        total_items=total,
    )
    end = info.offset + t.cast(int, info.page_size)
    return PagedResult(items=items[info.offset : end], pagination=info)


def _text(value: t.Any) -> str:
    return "" if value is None else str(value).lower()


def apply_search[T](items: Iterable[T], term: str | None, projections: Sequence[Projection]) -> list[T]:
    """Keep items where any projection contains ``term``, ignoring case."""
    if term is None or not term.strip():
        return []
    needle = term.strip().lower()
    return [item for item in items if any(needle in _text(projection(item)) for projection in projections)]


def apply_related_search[T](
    items: Iterable[T],
    term: str | None,
    projections: Sequence[Projection],
) -> list[T]:
    """Keep items whose space-joined projections contain the whole ``term``.

    Tokens are not matched independently: ``"John Smith"`` does not match a
    row holding ``"John"`` and ``"Smith"`` in unrelated fields.
    """
    if term is None or not term.strip():
        return []
    needle = term.strip().lower()
    return [
        item
        for item in items
        if needle in " ".join(_text(projection(item)) for projection in projections)
    ]


def search[T](items: Iterable[T], term: str | None, projections: Sequence[Projection]) -> list[T]:
    """Single-token terms use :func:`apply_search`, longer ones :func:`apply_related_search`."""
    if term is None or not term.split():
        return []
    if len(term.split()) == 1:
        return apply_search(items, term, projections)
    return apply_related_search(items, term, projections)


class QueryBuilder[EntityType]:
    """Fluent query builder for repositories.

    Filters and includes are pushed down to the repository; search, sort
    and paging run over the fetched rows in that order.
    """

    def __init__(
        self,
        repository: RepositoryBase[EntityType],
        registry: SortRegistry,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.default_page_size = default_page_size
        self.reset()

    def reset(self) -> "QueryBuilder[EntityType]":
        self._filters: list[Filter] = []
        self._include: tuple[str, ...] = ()
        self._sort_by: str | None = None
        self._is_descending = False
        self._search_term: str | None = None
        self._page_size: int | None = None
        self._page_index: int | None = None
        return self

    def where(self, filter: Filter) -> "QueryBuilder[EntityType]":
        """Add a SQLAlchemy boolean expression; multiple filters are ANDed."""
        self._filters.append(filter)
        return self

    def include(self, *names: str) -> "QueryBuilder[EntityType]":
        self._include = (*self._include, *names)
        return self

    def order_by(self, sort_by: str | None, is_descending: bool = False) -> "QueryBuilder[EntityType]":
        self._sort_by = sort_by
        self._is_descending = is_descending
        return self

    def search(self, term: str | None) -> "QueryBuilder[EntityType]":
        self._search_term = term
        return self

    def page(self, page_index: int | None = None, page_size: int | None = None) -> "QueryBuilder[EntityType]":
        self._page_index = page_index
        self._page_size = page_size
        return self

    def clone(self) -> "QueryBuilder[EntityType]":
        other = QueryBuilder(self.repository, self.registry, self.default_page_size)
        other._filters = list(self._filters)
        other._include = self._include
        other._sort_by = self._sort_by
        other._is_descending = self._is_descending
        other._search_term = self._search_term
        other._page_size = self._page_size
        other._page_index = self._page_index
        return other

    async def _fetch(self) -> builtins.list[EntityType]:
        filter = and_(*self._filters) if self._filters else None
        rows = await self.repository.get_all(filter, self._include or None)
        if self._search_term is not None:
            rows = search(rows, self._search_term, self.registry.searchable)
        return apply_sort(rows, self._sort_by, self._is_descending, self.registry)

    async def to_list(self) -> builtins.list[EntityType]:
        """Filtered, searched and sorted rows, ignoring paging."""
        return await self._fetch()

    async def to_page(self) -> PagedResult[EntityType]:
        return apply_paging(
            await self._fetch(),
            page_size=self._page_size,
            page_index=self._page_index,
            default_page_size=self.default_page_size,
        )

    async def first(self) -> EntityType | None:
        rows = await self._fetch()
        return rows[0] if rows else None

    async def count_only(self) -> int:
        return len(await self._fetch())
