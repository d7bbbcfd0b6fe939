import logging
import operator
import uuid
from datetime import date, datetime, timezone
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable

from entity_queries.core.config import settings
from entity_queries.core.errors import ArgumentError
from entity_queries.schemas.universal import FilterClause, UniversalQuery
from entity_queries.services.entity_filter import EntityFilter, where
from entity_queries.services.entity_query import AggregateEntityQuery, EntityQuery, EntityQueryBase, UnionEntityQuery
from entity_queries.services.entity_sorter import EntitySorter, unsorted
from entity_queries.services.key_path import KeyPath, resolve_key_path
from entity_queries.services.queryable import Predicate, Queryable

_LOG = logging.getLogger("entity_queries.universal_query")

_ORDERING_OPS = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}


def _bad_filter_value(field: str, kind: str) -> ArgumentError:
    return ArgumentError(f'Некорректное значение фильтра для поля "{field}" ({kind})', argument="value")


def _coerce_bool_filter_value(field: str, value):
    if isinstance(value, bool):
        return value
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes", "y", "да"}:
        return True
    if text in {"0", "false", "no", "n", "нет"}:
        return False
    raise _bad_filter_value(field, "boolean")


def _coerce_number_filter_value(field: str, value, python_type):
    if value is None:
        return None
    if python_type in {int, float} and isinstance(value, (int, float)) and not isinstance(value, bool):
        return python_type(value)
    if python_type is Decimal and isinstance(value, Decimal):
        return value
    text = str(value).strip()
    if not text:
        raise _bad_filter_value(field, "number")
    normalized = text.replace(",", ".")
    try:
        if python_type is int:
            return int(normalized)
        if python_type is float:
            return float(normalized)
        return Decimal(normalized)
    except (ValueError, TypeError, InvalidOperation):
        raise _bad_filter_value(field, "number")


def _coerce_date_filter_value(field: str, value):
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    text = str(value or "").strip()
    if not text:
        raise _bad_filter_value(field, "date")
    try:
        # Accept either YYYY-MM-DD or full ISO datetime and take its date part.
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        raise _bad_filter_value(field, "date")


def _coerce_datetime_filter_value(field: str, value):
    if isinstance(value, datetime):
        return value
    text = str(value or "").strip()
    if not text:
        raise _bad_filter_value(field, "datetime")
    try:
        if "T" not in text and " " not in text and len(text) == 10:
            # Date-only filter value for timestamp fields -> start of the day.
            return datetime.combine(date.fromisoformat(text), datetime.min.time())
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise _bad_filter_value(field, "datetime")


def _coerce_enum_filter_value(field: str, value, python_type):
    if isinstance(value, python_type):
        return value
    try:
        return python_type(value)
    except ValueError:
        pass
    try:
        return python_type[str(value)]
    except KeyError:
        raise _bad_filter_value(field, "enum")


def _coerce_filter_value(key_path: KeyPath, field: str, value):
    python_type = key_path.key_type
    if value is None or not isinstance(python_type, type):
        return value
    if python_type is uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value or "").strip())
        except ValueError:
            raise ArgumentError(f'Некорректный UUID в фильтре поля "{field}"', argument="value")
    if python_type is bool:
        return _coerce_bool_filter_value(field, value)
    if issubclass(python_type, Enum):
        return _coerce_enum_filter_value(field, value, python_type)
    if python_type in {int, float, Decimal}:
        return _coerce_number_filter_value(field, value, python_type)
    if python_type is datetime:
        return _coerce_datetime_filter_value(field, value)
    if python_type is date:
        return _coerce_date_filter_value(field, value)
    return value


def _is_date_only_filter_literal(raw_value) -> bool:
    if isinstance(raw_value, date) and not isinstance(raw_value, datetime):
        return True
    if not isinstance(raw_value, str):
        return False
    text = raw_value.strip()
    if not text or "T" in text or " " in text:
        return False
    try:
        date.fromisoformat(text)
        return True
    except ValueError:
        return False


def _align(left, right):
    # Naive timestamps are treated as UTC when compared against aware ones.
    if isinstance(left, datetime) and isinstance(right, datetime):
        if left.tzinfo is None and right.tzinfo is not None:
            left = left.replace(tzinfo=timezone.utc)
        elif right.tzinfo is None and left.tzinfo is not None:
            right = right.replace(tzinfo=timezone.utc)
    return left, right


def _named(predicate: Predicate, clause: FilterClause) -> Predicate:
    predicate.__qualname__ = f"{clause.field} {clause.op} {clause.value!r}"
    return predicate


def build_clause_predicate(entity_type: type, clause: FilterClause) -> Predicate:
    key_path = resolve_key_path(entity_type, clause.field, orderable=clause.op in _ORDERING_OPS)
    value = _coerce_filter_value(key_path, clause.field, clause.value)

    if key_path.key_type is datetime and clause.op in {"=", "!="} and _is_date_only_filter_literal(clause.value):
        day_start = value if isinstance(value, datetime) else datetime.combine(value, datetime.min.time())
        day_end = day_start + timedelta(days=1)

        def in_day(entity) -> bool:
            current = key_path(entity)
            if current is None:
                return False
            start, current = _align(day_start, current)
            end, current = _align(day_end, current)
            return start <= current < end

        if clause.op == "=":
            return _named(in_day, clause)
        return _named(lambda entity: not in_day(entity), clause)

    if clause.op == "~":
        needle = str(value if value is not None else "").lower()

        def contains(entity) -> bool:
            current = key_path(entity)
            return current is not None and needle in str(current).lower()

        return _named(contains, clause)

    if clause.op in {"=", "!="}:
        negate = clause.op == "!="

        def equals(entity) -> bool:
            current, expected = _align(key_path(entity), value)
            return (current == expected) != negate

        return _named(equals, clause)

    compare = _ORDERING_OPS[clause.op]

    def ordered(entity) -> bool:
        current = key_path(entity)
        if current is None or value is None:
            return False
        current, expected = _align(current, value)
        return compare(current, expected)

    return _named(ordered, clause)


def _build_sorter(entity_type: type, uq: UniversalQuery) -> EntitySorter | None:
    if not uq.sort:
        return None
    sorter = unsorted(entity_type)
    for s in uq.sort:
        sorter = sorter.then_by(s.field) if s.dir == "asc" else sorter.then_by_descending(s.field)
    return sorter


def _page_bounds(uq: UniversalQuery) -> tuple[int, int | None]:
    if uq.page is None:
        return 0, None
    limit = uq.page.limit
    if limit > settings.QUERY_MAX_PAGE_LIMIT:
        _LOG.warning("page limit clamped requested=%s max=%s", limit, settings.QUERY_MAX_PAGE_LIMIT)
        limit = settings.QUERY_MAX_PAGE_LIMIT
    return uq.page.offset, limit


def build_entity_query(entity_type: type, uq: UniversalQuery) -> EntityQueryBase:
    if entity_type is None:
        raise ArgumentError('Аргумент "entity_type" не может быть None', argument="entity_type")
    if uq is None:
        raise ArgumentError('Аргумент "uq" не может быть None', argument="uq")
    predicates = [build_clause_predicate(entity_type, f) for f in uq.filters]
    sorter = _build_sorter(entity_type, uq)
    skip, take = _page_bounds(uq)

    if uq.match == "any" and predicates:
        union = UnionEntityQuery([EntityQuery(where(p)) for p in predicates])
        query: EntityQueryBase = AggregateEntityQuery([union, EntityQuery(sorter=sorter, skip=skip, take=take)])
    else:
        entity_filter: EntityFilter | None = None
        for p in predicates:
            entity_filter = where(p) if entity_filter is None else entity_filter.where(p)
        query = EntityQuery(entity_filter, sorter, skip, take)

    _LOG.debug(
        "universal query built entity=%s match=%s filters=%s sort=%s skip=%s take=%s",
        entity_type.__name__,
        uq.match,
        len(predicates),
        sorter,
        skip,
        take,
    )
    return query


def apply_universal_query(sequence: Iterable[Any], entity_type: type, uq: UniversalQuery) -> Queryable[Any]:
    return build_entity_query(entity_type, uq).apply(sequence)
