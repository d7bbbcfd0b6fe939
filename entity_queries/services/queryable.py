from __future__ import annotations

from itertools import chain, islice
from typing import Any, Callable, Generic, Iterable, Iterator, Protocol, TypeVar, runtime_checkable

from entity_queries.core.errors import ArgumentError, require

T = TypeVar("T")

Predicate = Callable[[Any], bool]
KeySelector = Callable[[Any], Any]


@runtime_checkable
class Queryable(Protocol[T]):
    def where(self, predicate: Predicate) -> Queryable[T]:
        ...

    def order_by(self, key: KeySelector, *, descending: bool = False) -> OrderedQueryable[T]:
        ...

    def skip(self, count: int) -> Queryable[T]:
        ...

    def take(self, count: int) -> Queryable[T]:
        ...

    def union(self, other: Iterable[T]) -> Queryable[T]:
        ...

    def __iter__(self) -> Iterator[T]:
        ...


@runtime_checkable
class OrderedQueryable(Queryable[T], Protocol[T]):
    def then_by(self, key: KeySelector, *, descending: bool = False) -> OrderedQueryable[T]:
        ...


def _null_safe_key(key: KeySelector) -> KeySelector:
    # None orders before any value, the way SQL NULLS FIRST does for ascending sorts.
    def wrapped(entity):
        value = key(entity)
        return (value is not None, value)

    return wrapped


def _count(value: int, argument: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ArgumentError(f'Аргумент "{argument}" должен быть неотрицательным целым числом', argument=argument)
    return value


def _distinct(items: Iterable[Any]) -> Iterator[Any]:
    seen_hashable: set[Any] = set()
    seen_other: list[Any] = []
    for item in items:
        try:
            if item in seen_hashable or any(item == other for other in seen_other):
                continue
            seen_hashable.add(item)
        except TypeError:
            if any(item == other for other in chain(seen_other, seen_hashable)):
                continue
            seen_other.append(item)
        yield item


class MemoryQueryable(Generic[T]):
    """Lazy in-memory implementation of the ``Queryable`` protocol.

    Every operation returns a new queryable; the source is only read when the
    result is iterated, and it is read again on every iteration. A one-shot
    iterator is copied into a list when wrapped, so it can be read repeatedly.
    """

    __slots__ = ("_iterate",)

    def __init__(self, source: Iterable[T]):
        require(source, "source")
        if isinstance(source, Iterator):
            # One-shot iterators (generators, map objects) are read once, up front.
            source = list(source)
        self._iterate: Callable[[], Iterator[T]] = lambda: iter(source)

    @classmethod
    def _derive(cls, iterate: Callable[[], Iterator[T]]) -> MemoryQueryable[T]:
        queryable = cls.__new__(cls)
        queryable._iterate = iterate
        return queryable

    def __iter__(self) -> Iterator[T]:
        return self._iterate()

    def where(self, predicate: Predicate) -> MemoryQueryable[T]:
        require(predicate, "predicate")
        return MemoryQueryable._derive(lambda: (item for item in self if predicate(item)))

    def order_by(self, key: KeySelector, *, descending: bool = False) -> MemoryOrderedQueryable[T]:
        require(key, "key")
        return MemoryOrderedQueryable(self, ((key, bool(descending)),))

    def skip(self, count: int) -> MemoryQueryable[T]:
        count = _count(count, "count")
        return MemoryQueryable._derive(lambda: islice(iter(self), count, None))

    def take(self, count: int) -> MemoryQueryable[T]:
        count = _count(count, "count")
        return MemoryQueryable._derive(lambda: islice(iter(self), count))

    def union(self, other: Iterable[T]) -> MemoryQueryable[T]:
        require(other, "other")
        if isinstance(other, Iterator):
            other = list(other)

        def iterate() -> Iterator[T]:
            yield from _distinct(chain(self, other))

        return MemoryQueryable._derive(iterate)

    def to_list(self) -> list[T]:
        return list(self)


class MemoryOrderedQueryable(MemoryQueryable[T]):
    __slots__ = ("_source", "_keys")

    def __init__(self, source: MemoryQueryable[T], keys: tuple[tuple[KeySelector, bool], ...]):
        self._source = source
        self._keys = keys
        self._iterate = self._sorted

    def _sorted(self) -> Iterator[T]:
        items = list(self._source)
        # list.sort is stable, so sorting by the least significant key first
        # leaves ties of the earlier keys ordered by the later ones.
        for key, descending in reversed(self._keys):
            items.sort(key=_null_safe_key(key), reverse=descending)
        return iter(items)

    def then_by(self, key: KeySelector, *, descending: bool = False) -> MemoryOrderedQueryable[T]:
        require(key, "key")
        return MemoryOrderedQueryable(self._source, self._keys + ((key, bool(descending)),))


def as_queryable(sequence: Iterable[T] | None, argument: str = "sequence") -> Queryable[T]:
    require(sequence, argument)
    if isinstance(sequence, Queryable):
        return sequence
    return MemoryQueryable(sequence)


def as_ordered(sequence: Iterable[T] | None, argument: str = "sequence") -> OrderedQueryable[T]:
    queryable = as_queryable(sequence, argument)
    if not isinstance(queryable, OrderedQueryable):
        raise ArgumentError(f'Аргумент "{argument}" должен быть упорядоченной последовательностью', argument=argument)
    return queryable
