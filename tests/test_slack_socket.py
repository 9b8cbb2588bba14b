from __future__ import annotations

import asyncio

import pytest
from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode.request import SocketModeRequest

from adapters.slack_socket import SlackWebApi, envelope_from_request
from core.errors import SendError


class StubWebClient:
    def __init__(self, error: str = "") -> None:
        self.posted: list[tuple[str, str]] = []
        self._error = error

    async def chat_postMessage(self, channel: str, text: str):
        if self._error:
            raise SlackApiError("The request to the Slack API failed.", {"ok": False, "error": self._error})
        self.posted.append((channel, text))
        return {"ok": True}

    async def auth_test(self):
        return {"ok": True, "team_id": "T1", "user_id": "UBOT", "user": "kudos"}


def test_send_text_posts_message() -> None:
    client = StubWebClient()

    asyncio.run(SlackWebApi(client).send_text("C1", "hello"))

    assert client.posted == [("C1", "hello")]


def test_send_text_wraps_slack_api_error() -> None:
    api = SlackWebApi(StubWebClient(error="channel_not_found"))

    with pytest.raises(SendError) as excinfo:
        asyncio.run(api.send_text("C1", "hello"))

    assert "channel_not_found" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, SlackApiError)


def test_who_am_i_reads_auth_test() -> None:
    identity = asyncio.run(SlackWebApi(StubWebClient()).who_am_i())

    assert (identity.team_id, identity.user_id, identity.user) == ("T1", "UBOT", "kudos")


def test_envelope_from_request() -> None:
    request = SocketModeRequest(
        type="slash_commands",
        envelope_id="env-1",
        payload={"command": "/kudos", "team_id": "T1"},
    )

    envelope = envelope_from_request(request)

    assert envelope.type == "slash_commands"
    assert envelope.envelope_id == "env-1"
    assert envelope.payload["command"] == "/kudos"
