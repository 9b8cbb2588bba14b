"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class KudosConfig:
    """Leaderboard settings for the /kudos command."""

    default_top_count: int = 5
    max_top_count: int = 50


@dataclass(frozen=True)
class RefreshConfig:
    """Token refresh settings consumed by the credential service."""

    margin: timedelta = timedelta(hours=1)
