from __future__ import annotations

import inspect
import logging
import sys
import types
import typing
from dataclasses import dataclass
from functools import cached_property, lru_cache
from typing import Any, Annotated, ClassVar, Mapping, Union

from pydantic import BaseModel
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.hybrid import HybridExtensionType
from sqlalchemy.orm import Mapped, Mapper

from entity_queries.core.config import settings
from entity_queries.core.errors import ArgumentError, PathResolutionError

_LOG = logging.getLogger("entity_queries.key_path")

# Declared value type is unknown (no annotation, Any, ambiguous union).
UNKNOWN = Any

_UNORDERED_TYPES = (dict, complex)

# Base classes whose own descriptors are not entity members.
_FRAMEWORK_MODULES = {"pydantic", "sqlalchemy"}


@dataclass(frozen=True)
class MemberInfo:
    name: str
    declaring_type: type
    value_type: Any = UNKNOWN
    readable: bool = True


_REGISTRY: dict[type, dict[str, Any]] = {}


def register_members(entity_type: type, members: Mapping[str, Any]) -> None:
    """Declare readable members for classes that carry no annotations.

    ``members`` maps attribute names to their value types (``Any`` when the
    type is not known). Registered members take precedence over discovered ones.
    """
    if not isinstance(entity_type, type):
        raise ArgumentError('Аргумент "entity_type" должен быть типом', argument="entity_type")
    if members is None:
        raise ArgumentError('Аргумент "members" не может быть None', argument="members")
    # Swapped in whole; readers may still be iterating the previous dict.
    _REGISTRY[entity_type] = {**_REGISTRY.get(entity_type, {}), **dict(members)}
    _resolve_cached.cache_clear()


def unregister_members(entity_type: type) -> None:
    _REGISTRY.pop(entity_type, None)
    _resolve_cached.cache_clear()


def _type_name(tp: Any) -> str:
    return getattr(tp, "__qualname__", None) or str(tp)


def _normalize_type(tp: Any) -> Any:
    if tp is None or tp is Any:
        return UNKNOWN
    if isinstance(tp, (str, typing.ForwardRef)):
        return UNKNOWN
    origin = typing.get_origin(tp)
    if origin is Annotated or origin is Mapped:
        return _normalize_type(typing.get_args(tp)[0])
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(tp) if arg is not type(None)]
        if len(args) == 1:
            return _normalize_type(args[0])
        return UNKNOWN
    if origin is typing.Literal:
        return UNKNOWN
    if origin is not None:
        # list[int] -> list, dict[str, int] -> dict
        return origin if isinstance(origin, type) else UNKNOWN
    return tp


def _own_annotations(obj: Any) -> dict[str, Any]:
    try:
        return dict(inspect.get_annotations(obj))
    except (NameError, TypeError):
        return {}


def _resolve_hint(annotation: Any, globalns: dict[str, Any], localns: dict[str, Any] | None) -> Any:
    holder = type("_HintHolder", (), {"__annotations__": {"hint": annotation}})
    try:
        return typing.get_type_hints(holder, globalns, localns, include_extras=True)["hint"]
    except (NameError, TypeError):
        return UNKNOWN


def _is_classvar_literal(annotation: Any) -> bool:
    return isinstance(annotation, str) and annotation.split("[")[0].strip() in {"ClassVar", "typing.ClassVar"}


def _safe_type_hints(obj: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(obj, include_extras=True)
    except (NameError, TypeError):
        pass
    # Resolve one by one: an unresolvable annotation (e.g. a TYPE_CHECKING-only
    # import) becomes unknown without hiding the others.
    hints: dict[str, Any] = {}
    if not isinstance(obj, type):
        globalns = getattr(obj, "__globals__", {})
        for name, annotation in _own_annotations(obj).items():
            hints[name] = _resolve_hint(annotation, globalns, None)
        return hints
    for klass in reversed(obj.__mro__):
        if klass.__module__.split(".")[0] in _FRAMEWORK_MODULES:
            continue
        globalns = getattr(sys.modules.get(klass.__module__), "__dict__", {})
        localns = dict(vars(klass))
        for name, annotation in _own_annotations(klass).items():
            if _is_classvar_literal(annotation):
                continue
            hints[name] = _resolve_hint(annotation, globalns, localns)
    return hints


def _is_public(name: str) -> bool:
    return not name.startswith("_")


def _plain_members(entity_type: type) -> dict[str, MemberInfo]:
    members: dict[str, MemberInfo] = {}
    for name, hint in _safe_type_hints(entity_type).items():
        if not _is_public(name) or typing.get_origin(hint) is ClassVar or hint is ClassVar:
            continue
        members[name] = MemberInfo(name, entity_type, _normalize_type(hint))
    for klass in reversed(entity_type.__mro__):
        if klass.__module__.split(".")[0] in _FRAMEWORK_MODULES:
            continue
        for name, attr in vars(klass).items():
            if not _is_public(name):
                continue
            if isinstance(attr, (types.GetSetDescriptorType, types.MemberDescriptorType)):
                # __slots__ entries and attributes of builtin types such as datetime.year
                members.setdefault(name, MemberInfo(name, entity_type, UNKNOWN))
            elif isinstance(attr, property):
                if attr.fget is None:
                    members[name] = MemberInfo(name, entity_type, UNKNOWN, readable=False)
                else:
                    hint = _safe_type_hints(attr.fget).get("return")
                    members[name] = MemberInfo(name, entity_type, _normalize_type(hint))
            elif isinstance(attr, cached_property):
                hint = _safe_type_hints(attr.func).get("return")
                members[name] = MemberInfo(name, entity_type, _normalize_type(hint))
    return members


def _pydantic_members(entity_type: type) -> dict[str, MemberInfo]:
    if not issubclass(entity_type, BaseModel):
        return {}
    members: dict[str, MemberInfo] = {}
    for name, field in entity_type.model_fields.items():
        if _is_public(name):
            members[name] = MemberInfo(name, entity_type, _normalize_type(field.annotation))
    for name, computed in entity_type.model_computed_fields.items():
        members[name] = MemberInfo(name, entity_type, _normalize_type(computed.return_type))
    return members


def _column_python_type(attr) -> Any:
    try:
        return attr.columns[0].type.python_type
    except (NotImplementedError, AttributeError, IndexError):
        return UNKNOWN


def _sqlalchemy_members(entity_type: type) -> dict[str, MemberInfo]:
    mapper = sa_inspect(entity_type, raiseerr=False)
    if not isinstance(mapper, Mapper):
        return {}
    members: dict[str, MemberInfo] = {}
    for attr in mapper.column_attrs:
        if _is_public(attr.key):
            members[attr.key] = MemberInfo(attr.key, entity_type, _column_python_type(attr))
    for rel in mapper.relationships:
        if _is_public(rel.key):
            target = list if rel.uselist else rel.mapper.class_
            members[rel.key] = MemberInfo(rel.key, entity_type, target)
    for key, descriptor in mapper.all_orm_descriptors.items():
        if not _is_public(key):
            continue
        if getattr(descriptor, "extension_type", None) is HybridExtensionType.HYBRID_PROPERTY:
            hint = _safe_type_hints(descriptor.fget).get("return")
            members[key] = MemberInfo(key, entity_type, _normalize_type(hint))
    for key, synonym in mapper.synonyms.items():
        if _is_public(key):
            proxied = members.get(synonym.name)
            members[key] = MemberInfo(key, entity_type, proxied.value_type if proxied else UNKNOWN)
    return members


def _registered_members(entity_type: type) -> dict[str, MemberInfo]:
    members: dict[str, MemberInfo] = {}
    for klass in reversed(entity_type.__mro__):
        for name, value_type in _REGISTRY.get(klass, {}).items():
            members[name] = MemberInfo(name, entity_type, _normalize_type(value_type))
    return members


def describe_members(entity_type: type) -> dict[str, MemberInfo]:
    """Readable (and write-only) public instance members of ``entity_type``, by name."""
    members = _plain_members(entity_type)
    members.update(_pydantic_members(entity_type))
    members.update(_sqlalchemy_members(entity_type))
    members.update(_registered_members(entity_type))
    return members


def _find_member(declaring_type: type, segment: str, path: str) -> MemberInfo:
    members = describe_members(declaring_type)
    member = members.get(segment)
    if member is None:
        matches = [info for name, info in members.items() if name.lower() == segment.lower()]
        if len(matches) > 1:
            raise PathResolutionError(
                f'"{path}" не удалось разобрать. {_type_name(declaring_type)} содержит несколько свойств "{segment}"',
                path=path,
                segment=segment,
                declaring_type=declaring_type,
            )
        member = matches[0] if matches else None
    if member is None:
        raise PathResolutionError(
            f'"{path}" не удалось разобрать. {_type_name(declaring_type)} не содержит свойства "{segment}"',
            path=path,
            segment=segment,
            declaring_type=declaring_type,
        )
    if not member.readable:
        raise PathResolutionError(
            f'"{path}" не удалось разобрать. Свойство "{member.name}" типа {_type_name(declaring_type)} '
            "не имеет публичного геттера",
            path=path,
            segment=segment,
            declaring_type=declaring_type,
        )
    return member


def is_orderable(value_type: Any) -> bool:
    if value_type is UNKNOWN or not isinstance(value_type, type):
        return True
    if issubclass(value_type, _UNORDERED_TYPES):
        return False
    return getattr(value_type, "__lt__", None) is not object.__lt__


class KeyPath:
    """Key selector for a dotted member path, resolved against an entity type.

    Calling it is equivalent to chained attribute access; a ``None`` met
    halfway through the chain yields ``None`` instead of raising.
    """

    __slots__ = ("entity_type", "path", "members", "_names")

    def __init__(self, entity_type: type, path: str, members: tuple[MemberInfo, ...]):
        self.entity_type = entity_type
        self.path = path
        self.members = members
        self._names = tuple(member.name for member in members)

    @property
    def key_type(self) -> Any:
        return self.members[-1].value_type

    def __call__(self, entity: Any) -> Any:
        value = entity
        for name in self._names:
            if value is None:
                return None
            value = getattr(value, name)
        return value

    def __str__(self) -> str:
        return ".".join(self._names)

    def __repr__(self) -> str:
        return f"KeyPath({_type_name(self.entity_type)}, {str(self)!r})"


@lru_cache(maxsize=settings.KEY_PATH_CACHE_SIZE)
def _resolve_cached(entity_type: type, path: str, orderable: bool) -> KeyPath:
    if not path:
        raise PathResolutionError("Путь свойства не может быть пустой строкой", path=path)
    resolved: list[MemberInfo] = []
    declaring_type: Any = entity_type
    for segment in path.split("."):
        if not segment:
            raise PathResolutionError(
                f'"{path}" не удалось разобрать. Путь содержит пустой сегмент',
                path=path,
                declaring_type=declaring_type,
            )
        if declaring_type is UNKNOWN or not isinstance(declaring_type, type):
            previous = resolved[-1]
            raise PathResolutionError(
                f'"{path}" не удалось разобрать. Тип свойства "{previous.name}" '
                f"типа {_type_name(previous.declaring_type)} неизвестен",
                path=path,
                segment=segment,
                declaring_type=previous.declaring_type,
            )
        member = _find_member(declaring_type, segment, path)
        resolved.append(member)
        declaring_type = member.value_type
    key_path = KeyPath(entity_type, path, tuple(resolved))
    if orderable and not is_orderable(key_path.key_type):
        last = resolved[-1]
        raise PathResolutionError(
            f'"{path}" не удалось разобрать. Значения свойства "{last.name}" '
            f"({_type_name(key_path.key_type)}) не поддерживают сравнение",
            path=path,
            segment=last.name,
            declaring_type=last.declaring_type,
        )
    _LOG.debug(
        "key path resolved entity=%s path=%s key_type=%s",
        _type_name(entity_type),
        key_path,
        _type_name(key_path.key_type),
    )
    return key_path


def resolve_key_path(entity_type: type, path: str, *, orderable: bool = True) -> KeyPath:
    if entity_type is None:
        raise ArgumentError('Аргумент "entity_type" не может быть None', argument="entity_type")
    if not isinstance(entity_type, type):
        raise ArgumentError('Аргумент "entity_type" должен быть типом', argument="entity_type")
    if path is None:
        raise ArgumentError('Аргумент "path" не может быть None', argument="path")
    if not isinstance(path, str):
        raise ArgumentError('Аргумент "path" должен быть строкой', argument="path")
    return _resolve_cached(entity_type, path, bool(orderable))
