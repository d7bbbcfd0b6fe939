from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, Iterable, TypeVar

from entity_queries.core.errors import ArgumentError, require
from entity_queries.services.queryable import Predicate, Queryable, as_queryable

T = TypeVar("T")


def _require_predicate(predicate: Any) -> Predicate:
    require(predicate, "predicate")
    if not callable(predicate):
        raise ArgumentError('Аргумент "predicate" должен быть вызываемым объектом', argument="predicate")
    return predicate


def describe_callable(func: Any) -> str:
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or repr(func)


class EntityFilter(ABC, Generic[T]):
    __slots__ = ()

    @abstractmethod
    def filter(self, collection: Iterable[T]) -> Queryable[T] | Iterable[T]:
        ...

    def where(self, predicate: Predicate) -> EntityFilter[T]:
        return and_where(self, predicate)


class _UnfilteredEntityFilter(EntityFilter[Any]):
    __slots__ = ()

    def filter(self, collection):
        return require(collection, "collection")

    def __str__(self) -> str:
        return ""

    def __repr__(self) -> str:
        return "EntityFilter(unfiltered)"


_UNFILTERED = _UnfilteredEntityFilter()


class WhereEntityFilter(EntityFilter[T]):
    __slots__ = ("_base_filter", "_predicate")

    def __init__(self, predicate: Predicate, base_filter: EntityFilter[T] | None = None):
        self._predicate = _require_predicate(predicate)
        self._base_filter = base_filter

    @property
    def base_filter(self) -> EntityFilter[T] | None:
        return self._base_filter

    @property
    def predicate(self) -> Predicate:
        return self._predicate

    def filter(self, collection: Iterable[T]) -> Queryable[T]:
        queryable = as_queryable(collection, "collection")
        if self._base_filter is not None:
            queryable = as_queryable(self._base_filter.filter(queryable), "collection")
        return queryable.where(self._predicate)

    def __str__(self) -> str:
        base = str(self._base_filter) if self._base_filter is not None else ""
        if base:
            return f"{base}, {describe_callable(self._predicate)}"
        return describe_callable(self._predicate)

    def __repr__(self) -> str:
        return f"EntityFilter(where {self})"


def unfiltered() -> EntityFilter[Any]:
    """Seed filter: returns its input unchanged and starts ``.where(...)`` chains."""
    return _UNFILTERED


def where(predicate: Predicate) -> EntityFilter[Any]:
    return WhereEntityFilter(predicate)


def and_where(base_filter: EntityFilter[T], predicate: Predicate) -> EntityFilter[T]:
    require(base_filter, "base_filter")
    return WhereEntityFilter(predicate, base_filter)
