"""Install server: landing page and the Slack OAuth redirect endpoints.

A successful OAuth callback saves the workspace credentials and hands them to
the TenantManager, so a newly installed workspace starts receiving events
without a restart.
"""

from __future__ import annotations

import html
import logging
from typing import Optional

from aiohttp import web

import logs
from core.credentials import CredentialStore
from core.errors import CredentialError
from core.ports import TokenExchangerPort
from core.tenants import TenantManager

LOGGER = logging.getLogger(__name__)

_PAGE = """<html>
  <head><title>Slack Kudos App</title></head>
  <body>
    {body}
  </body>
</html>
"""

_LANDING = """<h1>Slack Kudos App</h1>
    <p>A simple way to give recognition to your team members in Slack!</p>
    <ul>
      <li><strong>Give kudos</strong> - mention a user with "++" (e.g. "@user ++")</li>
      <li><strong>View leaderboard</strong> - use the "/kudos" command</li>
    </ul>
    <a href="/oauth/start">Install on Slack</a>"""

_INSTALLED = """<h1>Installation Successful!</h1>
    <p>Kudos bot has been installed to your workspace: <strong>{team}</strong></p>
    <ol>
      <li>Invite {bot} to channels where you want to use it: <code>/invite {bot}</code></li>
      <li>Give kudos by mentioning someone with ++: <code>@user ++</code></li>
      <li>Check the leaderboard with <code>/kudos</code></li>
    </ol>"""


class InstallServer:
    """aiohttp server exposing the install flow."""

    def __init__(
        self,
        credentials: CredentialStore,
        exchanger: TokenExchangerPort,
        manager: TenantManager,
        authorize_url: str,
        host: str = "0.0.0.0",
        port: int = 8080,
    ) -> None:
        self._credentials = credentials
        self._exchanger = exchanger
        self._manager = manager
        self._authorize_url = authorize_url
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self._handle_index)
        app.router.add_get("/oauth/start", self._handle_start)
        app.router.add_get("/oauth/callback", self._handle_callback)
        return app

    async def start(self) -> None:
        if self._runner is not None:
            LOGGER.debug("Install server already started, skipping")
            return
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info("Install server listening on %s:%s", self._host, self._port)

    async def stop(self) -> None:
        if self._site is not None:
            await self._site.stop()
            self._site = None
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        LOGGER.info("Install server stopped")

    async def _handle_index(self, request: web.Request) -> web.Response:
        return web.Response(text=_PAGE.format(body=_LANDING), content_type="text/html")

    async def _handle_start(self, request: web.Request) -> web.Response:
        raise web.HTTPTemporaryRedirect(self._authorize_url)

    async def _handle_callback(self, request: web.Request) -> web.Response:
        code = request.query.get("code")
        if not code:
            return web.Response(status=400, text="Code not found")

        try:
            credentials = await self._exchanger.exchange_code(code)
        except CredentialError as exc:
            LOGGER.warning("OAuth exchange failed: %s", exc)
            return web.Response(status=500, text=f"Failed to exchange token: {exc}")

        logs.redact(credentials.access_token)
        try:
            self._credentials.save(credentials)
        except Exception as exc:
            LOGGER.exception("Failed to save credentials for workspace %s", credentials.team_id)
            return web.Response(status=500, text=f"Failed to save workspace credentials: {exc}")

        await self._manager.add_tenant(credentials)
        LOGGER.info("Installed workspace %s (%s)", credentials.team_name, credentials.team_id)

        bot_name = "the bot"
        connection = await self._manager.get_tenant(credentials.team_id)
        if connection is not None:
            try:
                identity = await connection.who_am_i()
                bot_name = f"@{identity.user}"
            except Exception:
                LOGGER.warning("Could not look up bot name for workspace %s", credentials.team_id)

        body = _INSTALLED.format(team=html.escape(credentials.team_name), bot=html.escape(bot_name))
        return web.Response(text=_PAGE.format(body=body), content_type="text/html")
