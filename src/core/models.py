"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class TenantCredentials:
    """OAuth credentials for one installed workspace, saved as a whole record."""

    team_id: str
    team_name: str
    access_token: str
    bot_user_id: str
    scopes: frozenset[str]
    last_updated: datetime
    expires_at: Optional[datetime] = None
    refresh_token: Optional[str] = None


@dataclass(frozen=True)
class BotIdentity:
    """Result of asking the platform who the bot token belongs to."""

    team_id: str
    user_id: str
    user: str


@dataclass(frozen=True)
class KudosCount:
    """One row of the per-workspace leaderboard."""

    user_id: str
    count: int


@dataclass(frozen=True)
class Envelope:
    """A raw inbound envelope as delivered by a workspace stream."""

    type: str
    envelope_id: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MessageEvent:
    """Decoded notification-class payload: a message posted in a channel."""

    team_id: str
    channel: str
    user: str
    text: str
    ts: str


@dataclass(frozen=True)
class SlashCommand:
    """Decoded command-class payload: a named command with one argument string."""

    team_id: str
    channel_id: str
    user_id: str
    command: str
    text: str
