"""Credential service: load, save and refresh workspace tokens."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
import logging
from typing import Optional

from core.config import RefreshConfig
from core.errors import CredentialError, UnknownTenantError
from core.models import TenantCredentials
from core.ports import CredentialStoragePort, TokenExchangerPort

LOGGER = logging.getLogger(__name__)


class CredentialStore:
    """Credential store with token refresh on top of a storage port."""

    def __init__(
        self,
        storage: CredentialStoragePort,
        exchanger: TokenExchangerPort,
        refresh_config: RefreshConfig = RefreshConfig(),
    ) -> None:
        self._storage = storage
        self._exchanger = exchanger
        self._refresh = refresh_config

    def save(self, credentials: TenantCredentials) -> None:
        self._storage.save_credentials(credentials)

    def get_one(self, team_id: str) -> TenantCredentials:
        credentials = self._storage.get_credentials(team_id)
        if credentials is None:
            raise UnknownTenantError(team_id)
        return credentials

    def get_all(self) -> list[TenantCredentials]:
        return self._storage.list_credentials()

    def needs_refresh(self, credentials: TenantCredentials, now: Optional[datetime] = None) -> bool:
        if credentials.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return credentials.expires_at - now <= self._refresh.margin

    async def refresh_if_needed(self, team_id: str, now: Optional[datetime] = None) -> bool:
        """Refresh the workspace token when it is close to expiry.

        Returns True when new credentials were saved.
        """

        now = now or datetime.now(timezone.utc)
        credentials = self.get_one(team_id)
        if not self.needs_refresh(credentials, now):
            return False
        if not credentials.refresh_token:
            raise CredentialError(f"token for workspace {team_id} expires without a refresh token")

        refreshed = await self._exchanger.refresh(credentials)
        updated = replace(
            credentials,
            access_token=refreshed.access_token,
            expires_at=refreshed.expires_at,
            refresh_token=refreshed.refresh_token or credentials.refresh_token,
            last_updated=now,
        )
        self.save(updated)
        LOGGER.info("Refreshed access token for workspace %s", team_id)
        return True
