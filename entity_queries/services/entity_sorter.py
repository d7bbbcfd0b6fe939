from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Generic, Iterable, TypeVar, Union

from entity_queries.core.errors import ArgumentError, InvalidOperationError, PathResolutionError, require
from entity_queries.services.entity_filter import describe_callable
from entity_queries.services.key_path import KeyPath, resolve_key_path
from entity_queries.services.queryable import KeySelector, OrderedQueryable, as_ordered, as_queryable

_LOG = logging.getLogger("entity_queries.sorter")

T = TypeVar("T")

# A key selector callable or a dotted member path such as "Address.City".
SortKey = Union[KeySelector, str]


class SortDirection(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"

    def flipped(self) -> SortDirection:
        return SortDirection.DESCENDING if self is SortDirection.ASCENDING else SortDirection.ASCENDING


def _resolve_key(key: SortKey, entity_type: type | None) -> KeySelector:
    require(key, "key")
    if isinstance(key, str):
        if entity_type is None:
            raise ArgumentError(
                f'Для сортировки по пути "{key}" необходимо указать тип сущности',
                argument="entity_type",
            )
        return resolve_key_path(entity_type, key)
    if not callable(key):
        raise ArgumentError('Аргумент "key" должен быть строкой или вызываемым объектом', argument="key")
    return key


def _describe_key(key: KeySelector) -> str:
    if isinstance(key, KeyPath):
        return str(key)
    return describe_callable(key)


class EntitySorter(ABC, Generic[T]):
    __slots__ = ("_entity_type",)

    def __init__(self, entity_type: type | None = None):
        self._entity_type = entity_type

    @property
    def entity_type(self) -> type | None:
        return self._entity_type

    @abstractmethod
    def sort(self, collection: Iterable[T]) -> OrderedQueryable[T]:
        ...

    @abstractmethod
    def sort_descending(self, collection: Iterable[T]) -> OrderedQueryable[T]:
        ...

    # A new primary ordering replaces everything before it, so only the
    # entity type of this sorter is carried over.
    def order_by(self, key: SortKey) -> EntitySorter[T]:
        return order_by(key, entity_type=self._entity_type)

    def order_by_descending(self, key: SortKey) -> EntitySorter[T]:
        return order_by_descending(key, entity_type=self._entity_type)

    def then_by(self, key: SortKey) -> EntitySorter[T]:
        return then_by(self, key)

    def then_by_descending(self, key: SortKey) -> EntitySorter[T]:
        return then_by_descending(self, key)


class _UnsortedEntitySorter(EntitySorter[T]):
    __slots__ = ()

    def sort(self, collection):
        raise InvalidOperationError(
            "Пустой сортировщик нельзя использовать для сортировки, вызовите order_by или order_by_descending"
        )

    def sort_descending(self, collection):
        raise InvalidOperationError(
            "Пустой сортировщик нельзя использовать для сортировки, вызовите order_by или order_by_descending"
        )

    def __str__(self) -> str:
        return ""

    def __repr__(self) -> str:
        return "EntitySorter(unsorted)"


class OrderByEntitySorter(EntitySorter[T]):
    __slots__ = ("_key_selector", "_direction")

    def __init__(self, key_selector: KeySelector, direction: SortDirection, entity_type: type | None = None):
        super().__init__(entity_type)
        self._key_selector = key_selector
        self._direction = SortDirection(direction)

    @property
    def key_selector(self) -> KeySelector:
        return self._key_selector

    @property
    def direction(self) -> SortDirection:
        return self._direction

    def _order(self, collection: Iterable[T], direction: SortDirection) -> OrderedQueryable[T]:
        queryable = as_queryable(collection, "collection")
        return queryable.order_by(self._key_selector, descending=direction is SortDirection.DESCENDING)

    def sort(self, collection: Iterable[T]) -> OrderedQueryable[T]:
        return self._order(collection, self._direction)

    def sort_descending(self, collection: Iterable[T]) -> OrderedQueryable[T]:
        return self._order(collection, self._direction.flipped())

    def __str__(self) -> str:
        suffix = " descending" if self._direction is SortDirection.DESCENDING else ""
        return _describe_key(self._key_selector) + suffix

    def __repr__(self) -> str:
        return f"EntitySorter(order by {self})"


class ThenByEntitySorter(EntitySorter[T]):
    __slots__ = ("_base_sorter", "_key_selector", "_direction")

    def __init__(
        self,
        base_sorter: EntitySorter[T],
        key_selector: KeySelector,
        direction: SortDirection,
        entity_type: type | None = None,
    ):
        super().__init__(entity_type if entity_type is not None else base_sorter.entity_type)
        self._base_sorter = base_sorter
        self._key_selector = key_selector
        self._direction = SortDirection(direction)

    @property
    def base_sorter(self) -> EntitySorter[T]:
        return self._base_sorter

    @property
    def key_selector(self) -> KeySelector:
        return self._key_selector

    @property
    def direction(self) -> SortDirection:
        return self._direction

    def sort(self, collection: Iterable[T]) -> OrderedQueryable[T]:
        ordered = as_ordered(self._base_sorter.sort(collection), "collection")
        return ordered.then_by(self._key_selector, descending=self._direction is SortDirection.DESCENDING)

    def sort_descending(self, collection: Iterable[T]) -> OrderedQueryable[T]:
        # Every key of the chain flips; reversing the sorted output would also
        # reverse the order of elements that tie on all keys.
        ordered = as_ordered(self._base_sorter.sort_descending(collection), "collection")
        flipped = self._direction.flipped()
        return ordered.then_by(self._key_selector, descending=flipped is SortDirection.DESCENDING)

    def __str__(self) -> str:
        suffix = " descending" if self._direction is SortDirection.DESCENDING else ""
        return f"{self._base_sorter}, {_describe_key(self._key_selector)}{suffix}"

    def __repr__(self) -> str:
        return f"EntitySorter(order by {self})"


def unsorted(entity_type: type | None = None) -> EntitySorter[Any]:
    """Seed sorter for fluent chains; it cannot sort by itself."""
    return _UnsortedEntitySorter(entity_type)


def order_by(key: SortKey, *, entity_type: type | None = None) -> EntitySorter[Any]:
    return OrderByEntitySorter(_resolve_key(key, entity_type), SortDirection.ASCENDING, entity_type)


def order_by_descending(key: SortKey, *, entity_type: type | None = None) -> EntitySorter[Any]:
    return OrderByEntitySorter(_resolve_key(key, entity_type), SortDirection.DESCENDING, entity_type)


def try_order_by(entity_type: type, path: str, *, descending: bool = False) -> EntitySorter[Any] | None:
    require(path, "path")
    factory = order_by_descending if descending else order_by
    try:
        return factory(path, entity_type=entity_type)
    except PathResolutionError as exc:
        _LOG.debug("sort path rejected path=%s reason=%s", path, exc)
        return None


def _then(base_sorter: EntitySorter[T], key: SortKey, direction: SortDirection) -> EntitySorter[T]:
    require(base_sorter, "base_sorter")
    # There is nothing to break ties of yet, so this becomes the primary ordering.
    if isinstance(base_sorter, _UnsortedEntitySorter):
        return OrderByEntitySorter(_resolve_key(key, base_sorter.entity_type), direction, base_sorter.entity_type)
    return ThenByEntitySorter(base_sorter, _resolve_key(key, base_sorter.entity_type), direction)


def then_by(base_sorter: EntitySorter[T], key: SortKey) -> EntitySorter[T]:
    return _then(base_sorter, key, SortDirection.ASCENDING)


def then_by_descending(base_sorter: EntitySorter[T], key: SortKey) -> EntitySorter[T]:
    return _then(base_sorter, key, SortDirection.DESCENDING)
