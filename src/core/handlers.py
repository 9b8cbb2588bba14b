"""Handler registry: ordered (match predicate, action) units.

Entries are fixed at construction and scanned in registration order; the
first entry whose pattern matches claims the event.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import TYPE_CHECKING, Awaitable, Callable, Generic, Iterable, Optional, Protocol, Tuple, TypeVar

from core.models import MessageEvent, SlashCommand

if TYPE_CHECKING:
    from core.tenants import TenantConnection

P = TypeVar("P")
P_contra = TypeVar("P_contra", contravariant=True)


class Handler(Protocol[P_contra]):
    """Contract every registry entry satisfies."""

    def matches(self, text: str) -> bool:
        ...

    async def handle(self, connection: "TenantConnection", payload: P_contra) -> None:
        ...


@dataclass(frozen=True)
class RegexHandler(Generic[P]):
    """Handler that claims any text the pattern finds a match in."""

    name: str
    pattern: re.Pattern
    action: Callable[["TenantConnection", P], Awaitable[None]]

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None

    async def handle(self, connection: "TenantConnection", payload: P) -> None:
        await self.action(connection, payload)


MessageHandler = Handler[MessageEvent]
CommandHandler = Handler[SlashCommand]


class HandlerRegistry(Generic[P]):
    """Immutable, ordered set of handlers for one event taxonomy."""

    def __init__(self, handlers: Iterable[Handler[P]]) -> None:
        self._handlers: Tuple[Handler[P], ...] = tuple(handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self):
        return iter(self._handlers)

    def first_match(self, text: str) -> Optional[Handler[P]]:
        """Return the first handler whose predicate accepts the text."""

        for handler in self._handlers:
            if handler.matches(text):
                return handler
        return None
