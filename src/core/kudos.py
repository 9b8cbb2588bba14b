"""Built-in kudos handlers.

``<@U123> ++`` in a message gives a kudo; ``/kudos [N]`` shows the leaderboard.
Storage calls block, so they run in a worker thread and are awaited before
the reply is sent.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING, Optional

from core.config import KudosConfig
from core.errors import UnknownTenantError
from core.handlers import RegexHandler
from core.models import KudosCount, MessageEvent, SlashCommand
from core.ports import CounterStorePort

if TYPE_CHECKING:
    from core.tenants import TenantConnection

LOGGER = logging.getLogger(__name__)

KUDOS_PATTERN = re.compile(r"<@(\w+)>\s*\+\+")
COMMAND_PATTERN = re.compile(r"^/kudos$")

INVALID_NUMBER_MESSAGE = "Invalid number specified. Please enter a valid number."
NO_KUDOS_MESSAGE = "No kudos have been given yet. Mention someone with ++ to get started!"


def extract_user_id(text: str) -> Optional[str]:
    match = KUDOS_PATTERN.search(text)
    return match.group(1) if match else None


def format_kudos_given(user_id: str, count: int) -> str:
    return f"<@{user_id}> got a kudos! 🎉\n Now has {count} kudos!"


def format_leaderboard(users: list[KudosCount], top_count: int) -> str:
    if not users:
        return NO_KUDOS_MESSAGE
    lines = [f"Top {top_count} kudos users:"]
    lines.extend(f"<@{user.user_id}> - {user.count} kudos" for user in users)
    return "\n".join(lines)


def parse_top_count(text: str, config: KudosConfig) -> Optional[int]:
    """Return the requested leaderboard size, or None if the argument is invalid."""

    args = text.split()
    if not args:
        return config.default_top_count
    try:
        value = int(args[0])
    except ValueError:
        return None
    if value <= 0:
        return None
    return min(value, config.max_top_count)


class KudosHandlers:
    """Handler bodies bound to a counter store.

    Counters are keyed on the workspace named in the event, falling back to
    the receiving connection when the event carries none.
    """

    def __init__(self, counters: CounterStorePort, config: KudosConfig = KudosConfig()) -> None:
        self._counters = counters
        self._config = config

    async def give_kudos(self, connection: "TenantConnection", event: MessageEvent) -> None:
        user_id = extract_user_id(event.text)
        if user_id is None:
            return

        team_id = event.team_id or connection.tenant_id
        try:
            count = await asyncio.to_thread(self._counters.increment_or_create, team_id, user_id)
        except UnknownTenantError as exc:
            LOGGER.warning("Kudos ignored: %s", exc)
            await connection.send_text(event.channel, exc.user_message)
            return

        LOGGER.info(
            "Incremented kudos for user %s in workspace %s, now has %s",
            user_id,
            team_id,
            count,
        )
        await connection.send_text(event.channel, format_kudos_given(user_id, count))

    async def leaderboard(self, connection: "TenantConnection", command: SlashCommand) -> None:
        top_count = parse_top_count(command.text, self._config)
        if top_count is None:
            await connection.send_text(command.channel_id, INVALID_NUMBER_MESSAGE)
            return

        team_id = command.team_id or connection.tenant_id
        exists = await asyncio.to_thread(self._counters.workspace_exists, team_id)
        if not exists:
            await connection.send_text(command.channel_id, UnknownTenantError.user_message)
            return

        users = await asyncio.to_thread(self._counters.top_n, team_id, top_count)
        await connection.send_text(command.channel_id, format_leaderboard(users, top_count))

    def message_handlers(self) -> list[RegexHandler[MessageEvent]]:
        return [RegexHandler("kudos", KUDOS_PATTERN, self.give_kudos)]

    def command_handlers(self) -> list[RegexHandler[SlashCommand]]:
        return [RegexHandler("kudos-leaderboard", COMMAND_PATTERN, self.leaderboard)]
