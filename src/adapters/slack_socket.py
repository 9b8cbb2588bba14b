"""Slack Socket Mode transport adapter.

Keeps slack_sdk-specific details out of the core: each workspace gets a
Socket Mode session whose requests are mapped to core Envelopes, plus a Web
API handle bound to the workspace's bot token.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse
from slack_sdk.web.async_client import AsyncWebClient

from core.errors import SendError, TransportError
from core.models import BotIdentity, Envelope, TenantCredentials

LOGGER = logging.getLogger(__name__)


def envelope_from_request(request: SocketModeRequest) -> Envelope:
    """Map a Socket Mode request onto the core envelope shape."""

    payload = request.payload if isinstance(request.payload, dict) else {}
    return Envelope(type=request.type, envelope_id=request.envelope_id, payload=payload)


class SlackSocketStream:
    """Socket Mode session for one workspace, exposed as an envelope stream."""

    def __init__(self, team_id: str, client: SocketModeClient) -> None:
        self._team_id = team_id
        self._client = client
        self._queue: "asyncio.Queue[Optional[Envelope]]" = asyncio.Queue()
        self._closed = asyncio.Event()
        client.socket_mode_request_listeners.append(self._on_request)

    async def _on_request(self, client: SocketModeClient, request: SocketModeRequest) -> None:
        if self._closed.is_set():
            return
        await self._queue.put(envelope_from_request(request))

    async def envelopes(self) -> AsyncIterator[Envelope]:
        while True:
            envelope = await self._queue.get()
            if envelope is None:
                return
            yield envelope

    async def ack(self, envelope: Envelope) -> None:
        await self._client.send_socket_mode_response(
            SocketModeResponse(envelope_id=envelope.envelope_id)
        )

    async def run(self) -> None:
        """Connect and hold the session open until closed.

        slack_sdk reconnects dropped websockets on its own; only a failure to
        establish the session surfaces here.
        """

        try:
            await self._client.connect()
        except Exception as exc:
            raise TransportError(f"could not open Socket Mode session for {self._team_id}") from exc
        await self._closed.wait()

    async def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._queue.put_nowait(None)
        await self._client.close()


class SlackWebApi:
    """Outbound Web API calls with one workspace's bot token."""

    def __init__(self, client: AsyncWebClient) -> None:
        self._client = client

    async def send_text(self, channel: str, text: str) -> None:
        try:
            await self._client.chat_postMessage(channel=channel, text=text)
        except SlackApiError as exc:
            raise SendError(f"failed to post message to {channel}: {exc.response.get('error')}") from exc

    async def who_am_i(self) -> BotIdentity:
        response = await self._client.auth_test()
        return BotIdentity(
            team_id=response.get("team_id", ""),
            user_id=response.get("user_id", ""),
            user=response.get("user", ""),
        )


class SlackConnectionFactory:
    """Builds Socket Mode streams and Web API handles from credentials.

    Socket Mode needs the app-level token, which is the same for every
    workspace; Web API calls use each workspace's bot token.
    """

    def __init__(self, app_token: str, debug: bool = False) -> None:
        self._app_token = app_token
        self._debug = debug

    def _web_client(self, credentials: TenantCredentials) -> AsyncWebClient:
        return AsyncWebClient(token=credentials.access_token)

    def open_stream(self, credentials: TenantCredentials) -> SlackSocketStream:
        logger = logging.getLogger(f"slack_sdk.socket_mode.{credentials.team_id}")
        if self._debug:
            logger.setLevel(logging.DEBUG)
        client = SocketModeClient(
            app_token=self._app_token,
            web_client=self._web_client(credentials),
            logger=logger,
        )
        return SlackSocketStream(credentials.team_id, client)

    def build_api(self, credentials: TenantCredentials) -> SlackWebApi:
        return SlackWebApi(self._web_client(credentials))
