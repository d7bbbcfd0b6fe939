from __future__ import annotations

from typing import Any


class EntityQueryError(Exception):
    pass


class ArgumentError(EntityQueryError, ValueError):
    def __init__(self, message: str, argument: str | None = None):
        super().__init__(message)
        self.argument = argument


class PathResolutionError(ArgumentError):
    def __init__(
        self,
        message: str,
        *,
        path: str,
        segment: str | None = None,
        declaring_type: Any = None,
    ):
        super().__init__(message, argument="path")
        self.path = path
        self.segment = segment
        self.declaring_type = declaring_type


class InvalidOperationError(EntityQueryError, RuntimeError):
    pass


def require(value: Any, argument: str) -> Any:
    if value is None:
        raise ArgumentError(f'Аргумент "{argument}" не может быть None', argument=argument)
    return value
