"""Envelope classification and payload decoding.

Classification happens once, at the router boundary. Everything past this
module works with typed payloads instead of raw dictionaries.
"""

from __future__ import annotations

from typing import Any, Optional

from core.errors import DecodeError
from core.models import Envelope, MessageEvent, SlashCommand

EVENTS_API = "events_api"
SLASH_COMMANDS = "slash_commands"

NOTIFICATION = "notification"
COMMAND = "command"


def classify(envelope: Envelope) -> Optional[str]:
    """Return the event class for an envelope type tag, or None if unrecognized."""

    if envelope.type == EVENTS_API:
        return NOTIFICATION
    if envelope.type == SLASH_COMMANDS:
        return COMMAND
    return None


def _require_str(data: dict[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise DecodeError(f"{where}: missing or invalid '{key}'")
    return value


def decode_message_event(payload: dict[str, Any]) -> Optional[MessageEvent]:
    """Decode an Events API payload into a MessageEvent.

    Returns None for inner events that are not messages; those are valid
    traffic we simply have no taxonomy for.
    """

    inner = payload.get("event")
    if not isinstance(inner, dict):
        raise DecodeError("events_api: payload has no inner event")
    if inner.get("type") != "message":
        return None

    team_id = payload.get("team_id") or inner.get("team") or ""
    text = inner.get("text") or ""
    if not isinstance(text, str):
        raise DecodeError("events_api: message text is not a string")

    return MessageEvent(
        team_id=str(team_id),
        channel=_require_str(inner, "channel", "events_api"),
        user=str(inner.get("user") or ""),
        text=text,
        ts=str(inner.get("ts") or ""),
    )


def decode_slash_command(payload: dict[str, Any]) -> SlashCommand:
    """Decode a slash command payload."""

    text = payload.get("text") or ""
    if not isinstance(text, str):
        raise DecodeError("slash_commands: command text is not a string")
    return SlashCommand(
        team_id=str(payload.get("team_id") or ""),
        channel_id=_require_str(payload, "channel_id", "slash_commands"),
        user_id=str(payload.get("user_id") or ""),
        command=_require_str(payload, "command", "slash_commands"),
        text=text,
    )
