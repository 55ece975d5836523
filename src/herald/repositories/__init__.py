"""Repository layer for Herald.

Provides the notification backend protocol and a resolve() helper that
transparently handles both sync and async return values.
"""

from __future__ import annotations

import inspect
from typing import Awaitable, TypeVar

T = TypeVar("T")


async def resolve(value: T | Awaitable[T]) -> T:
    """Await a value if it is awaitable, otherwise return it directly.

    Lets callers treat sync and async collaborators (context generators,
    directories, resolvers) uniformly:
        data = await resolve(generator.generate(params))
    """
    if inspect.isawaitable(value):
        return await value  # type: ignore[return-value]
    return value  # type: ignore[return-value]
