"""Context registry: named generators producing template-rendering data."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Awaitable, Protocol, Union, runtime_checkable

from herald.core.types import JsonObject
from herald.notifications.errors import (
    ContextGenerationError,
    RegistryFrozenError,
    UnknownContextError,
)
from herald.repositories import resolve

logger = logging.getLogger(__name__)


@runtime_checkable
class ContextGenerator(Protocol):
    """Produces the data merged into a template at render time.

    ``generate`` may be sync or async and may perform I/O. It must raise
    rather than return partial data.
    """

    def generate(self, params: JsonObject) -> JsonObject | Awaitable[JsonObject]: ...


GeneratorLike = Union[ContextGenerator, Callable[[JsonObject], Any]]


class ContextRegistry:
    """Mapping of context name to generator, built once at startup.

    The registry is passed into the engine explicitly. ``freeze()`` makes it
    read-only; the app factory freezes it after wiring.
    """

    def __init__(self, generators: Mapping[str, GeneratorLike] | None = None) -> None:
        self._generators: dict[str, GeneratorLike] = {}
        self._frozen = False
        for name, generator in (generators or {}).items():
            self.register(name, generator)

    def register(self, name: str, generator: GeneratorLike) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register context {name!r}: registry is frozen")
        if not isinstance(generator, ContextGenerator) and not callable(generator):
            raise TypeError(f"Context generator for {name!r} must be callable or define generate()")
        self._generators[name] = generator

    def freeze(self) -> ContextRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def names(self) -> list[str]:
        return list(self._generators.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._generators

    async def generate(self, name: str, params: JsonObject) -> JsonObject:
        """Run the generator registered under ``name``.

        Raises ``UnknownContextError`` when nothing is registered and
        ``ContextGenerationError`` wrapping whatever the generator raised.
        """
        generator = self._generators.get(name)
        if generator is None:
            raise UnknownContextError(f"No context generator registered for {name!r}")

        func = generator.generate if isinstance(generator, ContextGenerator) else generator
        try:
            data = await resolve(func(dict(params)))
        except Exception as exc:
            raise ContextGenerationError(f"{name}: {exc}") from exc

        if not isinstance(data, Mapping):
            raise ContextGenerationError(
                f"{name}: generator returned {type(data).__name__}, expected a mapping"
            )
        return dict(data)
