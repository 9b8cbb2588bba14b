"""Slack OAuth v2 token exchange adapter."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from core.errors import CredentialError
from core.models import TenantCredentials

AUTHORIZE_URL = "https://slack.com/oauth/v2/authorize"

BOT_SCOPES = (
    "channels:history",
    "channels:read",
    "chat:write",
    "commands",
    "groups:history",
    "im:history",
    "users:read",
)


def credentials_from_oauth(data: Mapping[str, Any], now: Optional[datetime] = None) -> TenantCredentials:
    """Build credentials from an oauth.v2.access response body."""

    now = now or datetime.now(timezone.utc)
    team = data.get("team") or {}
    scope = data.get("scope") or ""
    refresh_token = data.get("refresh_token") or None
    expires_at = None
    # Refresh responses may carry expires_in without a new refresh token.
    if data.get("expires_in"):
        expires_at = now + timedelta(seconds=int(data["expires_in"]))

    return TenantCredentials(
        team_id=team.get("id", ""),
        team_name=team.get("name", ""),
        access_token=data.get("access_token", ""),
        bot_user_id=data.get("bot_user_id", ""),
        scopes=frozenset(part for part in scope.split(",") if part),
        last_updated=now,
        expires_at=expires_at,
        refresh_token=refresh_token,
    )


class SlackTokenExchanger:
    """Exchanges authorization codes and refresh tokens via oauth.v2.access."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        client: Optional[AsyncWebClient] = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._client = client or AsyncWebClient()

    def authorize_url(self) -> str:
        query = urlencode(
            {
                "client_id": self._client_id,
                "scope": ",".join(BOT_SCOPES),
                "redirect_uri": self._redirect_uri,
            },
            safe=",:/",
        )
        return f"{AUTHORIZE_URL}?{query}"

    async def exchange_code(self, code: str) -> TenantCredentials:
        try:
            response = await self._client.oauth_v2_access(
                client_id=self._client_id,
                client_secret=self._client_secret,
                code=code,
                redirect_uri=self._redirect_uri,
            )
        except SlackApiError as exc:
            raise CredentialError(f"failed to exchange token: {exc.response.get('error')}") from exc
        return credentials_from_oauth(response.data)

    async def refresh(self, credentials: TenantCredentials) -> TenantCredentials:
        try:
            response = await self._client.oauth_v2_access(
                client_id=self._client_id,
                client_secret=self._client_secret,
                grant_type="refresh_token",
                refresh_token=credentials.refresh_token,
            )
        except SlackApiError as exc:
            raise CredentialError(f"failed to refresh token: {exc.response.get('error')}") from exc
        return credentials_from_oauth(response.data)
