"""Type aliases and protocols shared across retrying_client.

This module has no intra-package dependencies, which keeps it importable from
every other module without circular imports.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from retrying_client.request import Outcome

__all__ = [
    "AsyncOperation",
    "JsonPrimitive",
    "JsonValue",
    "Operation",
]


# Primitive JSON types (leaf values)
type JsonPrimitive = str | int | float | bool | None

# JSON value can be primitive or nested (dict/list)
type JsonValue = JsonPrimitive | dict[str, JsonValue] | list[JsonValue]

# A single attempt: returns an outcome or raises the transport error
type Operation = Callable[[], Outcome]
type AsyncOperation = Callable[[], Awaitable[Outcome]]

