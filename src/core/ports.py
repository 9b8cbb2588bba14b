"""Ports (interfaces) used by the core.

Ports define the minimal contracts for storage, transport and credential
exchange adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import AsyncIterator, Optional, Protocol

from core.models import BotIdentity, Envelope, KudosCount, TenantCredentials


class CredentialStoragePort(Protocol):
    """Persistence for workspace credentials (replace-on-conflict)."""

    def save_credentials(self, credentials: TenantCredentials) -> None:
        ...

    def get_credentials(self, team_id: str) -> Optional[TenantCredentials]:
        ...

    def list_credentials(self) -> list[TenantCredentials]:
        ...


class CounterStorePort(Protocol):
    """Per-workspace, per-user kudos counters.

    ``increment_or_create`` must be atomic and must raise
    ``UnknownTenantError`` when the workspace has no credentials row.
    """

    def increment_or_create(self, team_id: str, user_id: str) -> int:
        ...

    def top_n(self, team_id: str, limit: int) -> list[KudosCount]:
        ...

    def workspace_exists(self, team_id: str) -> bool:
        ...


class TokenExchangerPort(Protocol):
    """OAuth collaborator that turns codes and refresh tokens into credentials."""

    async def exchange_code(self, code: str) -> TenantCredentials:
        ...

    async def refresh(self, credentials: TenantCredentials) -> TenantCredentials:
        ...


class StreamPort(Protocol):
    """One live bidirectional event session for a workspace."""

    def envelopes(self) -> AsyncIterator[Envelope]:
        ...

    async def ack(self, envelope: Envelope) -> None:
        ...

    async def run(self) -> None:
        ...

    async def close(self) -> None:
        ...


class ApiPort(Protocol):
    """Outbound API bound to one workspace's bot token."""

    async def send_text(self, channel: str, text: str) -> None:
        ...

    async def who_am_i(self) -> BotIdentity:
        ...


class ConnectionFactoryPort(Protocol):
    """Builds streams and API handles from stored credentials."""

    def open_stream(self, credentials: TenantCredentials) -> StreamPort:
        ...

    def build_api(self, credentials: TenantCredentials) -> ApiPort:
        ...
