"""Application entry point for the kudos bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sqlite3
from typing import Optional

from art import tprint
import logs
import settings
from adapters.sqlite_storage import SQLiteStorage
from client import build_connection_factory, build_token_exchanger
from core.config import KudosConfig
from core.credentials import CredentialStore
from core.dispatch import Router, command_dispatcher, notification_dispatcher
from core.kudos import KudosHandlers
from core.tenants import TenantManager
from web import InstallServer

NAME = "KUDOS"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


def _open_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    try:
        storage.init_db()
    except sqlite3.Error as exc:
        raise RuntimeError(f"Error initializing database {settings.DB_PATH}: {exc}") from exc
    return storage


def build_router(storage: SQLiteStorage, config: KudosConfig) -> Router:
    """Wire the built-in kudos handlers into both event-class dispatchers."""

    handlers = KudosHandlers(storage, config)
    return Router(
        notification_dispatcher(handlers.message_handlers()),
        command_dispatcher(handlers.command_handlers()),
    )


async def _bootstrap_workspaces(credentials: CredentialStore, manager: TenantManager) -> int:
    """Start every installed workspace; failures skip that workspace only."""

    logger = logging.getLogger(__name__)
    started = 0
    for workspace in credentials.get_all():
        if not workspace.access_token:
            logger.warning("Skipping workspace %s due to missing access token", workspace.team_id)
            continue

        logs.redact(workspace.access_token)
        if settings.DEBUG:
            logger.debug(
                "Workspace %s (%s) token: %s",
                workspace.team_name,
                workspace.team_id,
                logs.mask_token(workspace.access_token),
            )

        try:
            await credentials.refresh_if_needed(workspace.team_id)
            refreshed = credentials.get_one(workspace.team_id)
            logs.redact(refreshed.access_token)
            await manager.add_tenant(refreshed)
        except Exception:
            logger.exception("Failed to start workspace %s", workspace.team_id)
            continue
        started += 1

        connection = await manager.get_tenant(workspace.team_id)
        if connection is None:
            continue
        try:
            identity = await connection.who_am_i()
        except Exception as exc:
            logger.warning("Failed to get bot info for workspace %s: %s", workspace.team_id, exc)
            continue
        logger.info("Bot installed to workspace %s as @%s", refreshed.team_name, identity.user)
        logger.info("Please invite @%s to channels where you want to use it", identity.user)

    return started


async def _serve() -> None:
    logger = logging.getLogger(__name__)

    missing = settings.missing_required()
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    storage = _open_storage()
    exchanger = build_token_exchanger()
    credentials = CredentialStore(storage, exchanger)
    router = build_router(
        storage,
        KudosConfig(
            default_top_count=settings.DEFAULT_TOP_COUNT,
            max_top_count=settings.MAX_TOP_COUNT,
        ),
    )
    manager = TenantManager(router, build_connection_factory())
    router.use_lookup(manager.get_tenant)

    server = InstallServer(
        credentials,
        exchanger,
        manager,
        authorize_url=exchanger.authorize_url(),
        port=settings.SERVER_PORT,
    )
    await server.start()
    logger.info("Base URL: %s", settings.BASE_URL)
    logger.info("Redirect URI: %s", settings.SLACK_REDIRECT_URI)

    started = await _bootstrap_workspaces(credentials, manager)
    logger.info("Bot is running with %s workspaces...", started)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    await stop_event.wait()

    logger.info("Shutting down...")
    # Close the listener first so no new installs arrive mid-shutdown.
    await server.stop()
    await manager.shutdown(settings.SHUTDOWN_GRACE_SECONDS)
    logger.info("Server stopped")


def _run() -> None:
    _print_banner()
    logs.configure_logging(settings.LOGGING or {}, debug=settings.DEBUG, project_root=settings.PROJECT_ROOT)
    logging.getLogger(__name__).info("Starting kudos bot")
    asyncio.run(_serve())


def _list_workspaces(storage: SQLiteStorage) -> None:
    workspaces = storage.list_credentials()
    if not workspaces:
        print("No workspaces installed yet.")
        return

    for index, workspace in enumerate(workspaces, start=1):
        expiry = workspace.expires_at.isoformat() if workspace.expires_at else "never"
        print(f"{index}. {workspace.team_id} | {workspace.team_name} | {workspace.bot_user_id} | {expiry}")


def _workspaces() -> None:
    _print_banner()
    _list_workspaces(_open_storage())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="kudosbot")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the bot for every installed workspace")
    subparsers.add_parser("workspaces", help="List installed workspaces and token expiry.")

    args = parser.parse_args(argv)
    if args.command == "workspaces":
        _workspaces()
        return
    _run()


if __name__ == "__main__":
    main()
