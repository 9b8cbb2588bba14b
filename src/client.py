"""Slack client factories for kudosbot.

Builds the Socket Mode connection factory and the OAuth token exchanger from
settings so the app entry point never touches slack_sdk directly.
"""

from __future__ import annotations

import logging

import settings
from adapters.slack_oauth import SlackTokenExchanger
from adapters.slack_socket import SlackConnectionFactory


def build_connection_factory() -> SlackConnectionFactory:
    """Create the per-workspace Socket Mode factory.

    Fail fast on a missing app-level token to avoid an ambiguous websocket
    error later.
    """

    if not settings.SLACK_APP_TOKEN:
        raise RuntimeError("Missing KUDOS_SLACK_APP_TOKEN in environment")

    logging.getLogger(__name__).info("Initializing Slack Socket Mode factory")
    return SlackConnectionFactory(settings.SLACK_APP_TOKEN, debug=settings.DEBUG)


def build_token_exchanger() -> SlackTokenExchanger:
    if not settings.SLACK_CLIENT_ID or not settings.SLACK_CLIENT_SECRET:
        raise RuntimeError("Missing KUDOS_SLACK_CLIENT_ID or KUDOS_SLACK_CLIENT_SECRET in environment")

    return SlackTokenExchanger(
        client_id=settings.SLACK_CLIENT_ID,
        client_secret=settings.SLACK_CLIENT_SECRET,
        redirect_uri=settings.SLACK_REDIRECT_URI,
    )
