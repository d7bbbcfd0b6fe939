from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, Iterable, TypeVar

from entity_queries.core.errors import ArgumentError, require
from entity_queries.services.entity_filter import EntityFilter, where
from entity_queries.services.entity_sorter import EntitySorter
from entity_queries.services.queryable import Predicate, Queryable, as_queryable

T = TypeVar("T")


class EntityQueryBase(ABC, Generic[T]):
    """Query contract shared by plain, aggregate and union queries.

    ``apply_filter`` narrows the input and does not have to order it;
    ``apply_sort`` orders the input and never filters it.
    """

    __slots__ = ()

    def apply(self, queryable: Iterable[T]) -> Queryable[T]:
        return self.apply_sort(self.apply_filter(queryable))

    @abstractmethod
    def apply_filter(self, queryable: Iterable[T]) -> Queryable[T]:
        ...

    @abstractmethod
    def apply_sort(self, queryable: Iterable[T]) -> Queryable[T]:
        ...


def _validate_count(value: Any, argument: str, *, optional: bool) -> int | None:
    if value is None and optional:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ArgumentError(f'Аргумент "{argument}" должен быть неотрицательным целым числом', argument=argument)
    return value


class EntityQuery(EntityQueryBase[T]):
    __slots__ = ("_filter", "_sorter", "_skip", "_take")

    def __init__(
        self,
        filter: EntityFilter[T] | None = None,
        sorter: EntitySorter[T] | None = None,
        skip: int = 0,
        take: int | None = None,
    ):
        if filter is not None and not callable(getattr(filter, "filter", None)):
            raise ArgumentError('Аргумент "filter" должен быть фильтром сущностей', argument="filter")
        if sorter is not None and not callable(getattr(sorter, "sort", None)):
            raise ArgumentError('Аргумент "sorter" должен быть сортировщиком сущностей', argument="sorter")
        self._filter = filter
        self._sorter = sorter
        self._skip = _validate_count(skip, "skip", optional=False)
        self._take = _validate_count(take, "take", optional=True)

    @classmethod
    def from_predicate(
        cls,
        predicate: Predicate,
        sorter: EntitySorter[T] | None = None,
        skip: int = 0,
        take: int | None = None,
    ) -> EntityQuery[T]:
        return cls(where(predicate), sorter, skip, take)

    @property
    def filter(self) -> EntityFilter[T] | None:
        return self._filter

    @property
    def sorter(self) -> EntitySorter[T] | None:
        return self._sorter

    @property
    def skip(self) -> int:
        return self._skip

    @property
    def take(self) -> int | None:
        return self._take

    @property
    def is_paged(self) -> bool:
        return self._skip > 0 or self._take is not None

    def _filtered(self, queryable: Iterable[T]) -> Queryable[T]:
        queryable = as_queryable(queryable, "queryable")
        if self._filter is not None:
            queryable = as_queryable(self._filter.filter(queryable), "queryable")
        return queryable

    def _paged(self, queryable: Queryable[T]) -> Queryable[T]:
        if self._sorter is not None:
            queryable = self._sorter.sort(queryable)
        if self._skip > 0:
            queryable = queryable.skip(self._skip)
        if self._take is not None:
            queryable = queryable.take(self._take)
        return queryable

    def apply(self, queryable: Iterable[T]) -> Queryable[T]:
        return self._paged(self._filtered(queryable))

    def apply_filter(self, queryable: Iterable[T]) -> Queryable[T]:
        queryable = self._filtered(queryable)
        if self.is_paged:
            # skip/take over an undefined order would pick arbitrary entities,
            # so a paged filter is only meaningful together with its sort.
            queryable = self._paged(queryable)
        return queryable

    def apply_sort(self, queryable: Iterable[T]) -> Queryable[T]:
        queryable = as_queryable(queryable, "queryable")
        if self._sorter is not None:
            queryable = self._sorter.sort(queryable)
        return queryable

    def __repr__(self) -> str:
        return (
            f"EntityQuery(filter={self._filter!r}, sorter={self._sorter!r}, "
            f"skip={self._skip}, take={self._take})"
        )


class AggregateEntityQuery(EntityQueryBase[T]):
    """Intersection of the inner queries, applied one after another."""

    __slots__ = ("_inner_queries",)

    def __init__(self, queries: Iterable[EntityQueryBase[T] | None]):
        require(queries, "queries")
        self._inner_queries: tuple[EntityQueryBase[T], ...] = tuple(q for q in queries if q is not None)

    @property
    def inner_queries(self) -> tuple[EntityQueryBase[T], ...]:
        return self._inner_queries

    def apply(self, queryable: Iterable[T]) -> Queryable[T]:
        current = as_queryable(queryable, "queryable")
        for query in self._inner_queries:
            current = query.apply(current)
        return current

    def apply_filter(self, queryable: Iterable[T]) -> Queryable[T]:
        current = as_queryable(queryable, "queryable")
        for query in self._inner_queries:
            current = query.apply_filter(current)
        return current

    def apply_sort(self, queryable: Iterable[T]) -> Queryable[T]:
        current = as_queryable(queryable, "queryable")
        for query in self._inner_queries:
            current = query.apply_sort(current)
        return current

    def __repr__(self) -> str:
        return f"AggregateEntityQuery({list(self._inner_queries)!r})"


class UnionEntityQuery(EntityQueryBase[T]):
    """Union of the inner queries' filters; the result is left unsorted."""

    __slots__ = ("_inner_queries",)

    def __init__(self, queries: Iterable[EntityQueryBase[T]]):
        require(queries, "queries")
        self._inner_queries: tuple[EntityQueryBase[T], ...] = tuple(queries)

    @property
    def inner_queries(self) -> tuple[EntityQueryBase[T], ...]:
        return self._inner_queries

    def apply_filter(self, queryable: Iterable[T]) -> Queryable[T]:
        source = as_queryable(queryable, "queryable")
        for index, query in enumerate(self._inner_queries):
            if query is None:
                raise ArgumentError(f"Вложенный запрос #{index} равен None", argument="queries")
        if not self._inner_queries:
            return source
        first, *rest = self._inner_queries
        # Each inner filter sees the original input, not the accumulated union.
        result = as_queryable(first.apply_filter(source), "queryable")
        for query in rest:
            result = result.union(query.apply_filter(source))
        return result

    def apply_sort(self, queryable: Iterable[T]) -> Queryable[T]:
        return require(queryable, "queryable")

    def __repr__(self) -> str:
        return f"UnionEntityQuery({list(self._inner_queries)!r})"
