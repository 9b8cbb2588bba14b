"""Event-class dispatchers and the top-level router.

The router acknowledges every recognized envelope before any handler runs,
so acknowledgment never waits on handler latency.

Socket Mode sessions share one app-level token, so Slack may deliver an event
for any installed workspace on any open session. The router acks on the
session that received the envelope and hands the payload to the connection of
the workspace named in it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Generic, Iterable, Optional, TypeVar, Union

from core.errors import DecodeError
from core.events import NOTIFICATION, classify, decode_message_event, decode_slash_command
from core.handlers import CommandHandler, HandlerRegistry, MessageHandler
from core.models import Envelope, MessageEvent, SlashCommand

if TYPE_CHECKING:
    from core.tenants import TenantConnection

LOGGER = logging.getLogger(__name__)

P = TypeVar("P")

TenantLookup = Callable[[str], Awaitable[Optional["TenantConnection"]]]


class EventDispatcher(Generic[P]):
    """Runs the first matching handler of one registry for a typed payload."""

    def __init__(self, name: str, registry: HandlerRegistry[P], match_text: Callable[[P], str]) -> None:
        self.name = name
        self._registry = registry
        self._match_text = match_text

    async def dispatch(self, connection: "TenantConnection", payload: P) -> bool:
        """Dispatch the payload; return False when no handler claimed it."""

        handler = self._registry.first_match(self._match_text(payload))
        if handler is None:
            return False
        await handler.handle(connection, payload)
        return True


def notification_dispatcher(handlers: Iterable[MessageHandler]) -> EventDispatcher[MessageEvent]:
    return EventDispatcher("notification", HandlerRegistry(handlers), lambda event: event.text)


def command_dispatcher(handlers: Iterable[CommandHandler]) -> EventDispatcher[SlashCommand]:
    return EventDispatcher("command", HandlerRegistry(handlers), lambda command: command.command)


class Router:
    """Classifies raw envelopes and forwards them to the matching dispatcher."""

    def __init__(
        self,
        notifications: EventDispatcher[MessageEvent],
        commands: EventDispatcher[SlashCommand],
        lookup: Optional[TenantLookup] = None,
    ) -> None:
        self._notifications = notifications
        self._commands = commands
        self._lookup = lookup

    def use_lookup(self, lookup: TenantLookup) -> None:
        """Resolve payloads for other workspaces through ``lookup`` (usually TenantManager.get_tenant)."""

        self._lookup = lookup

    async def dispatch(self, envelope: Envelope, connection: "TenantConnection") -> None:
        event_class = classify(envelope)
        if event_class is None:
            return

        await connection.ack(envelope)

        try:
            if event_class == NOTIFICATION:
                payload = decode_message_event(envelope.payload)
            else:
                payload = decode_slash_command(envelope.payload)
        except DecodeError as exc:
            LOGGER.warning(
                "Dropping %s envelope %s for workspace %s: %s",
                envelope.type,
                envelope.envelope_id,
                connection.tenant_id,
                exc,
            )
            return

        if payload is None:
            return
        owner = await self._owner(connection, payload)
        if event_class == NOTIFICATION:
            await self._notifications.dispatch(owner, payload)
        else:
            await self._commands.dispatch(owner, payload)

    async def _owner(
        self, connection: "TenantConnection", payload: Union[MessageEvent, SlashCommand]
    ) -> "TenantConnection":
        team_id = payload.team_id
        if not team_id or team_id == connection.tenant_id or self._lookup is None:
            return connection
        owner = await self._lookup(team_id)
        if owner is None:
            LOGGER.warning(
                "Event for workspace %s arrived on %s and it has no live connection",
                team_id,
                connection.tenant_id,
            )
            return connection
        return owner
