"""Workspace connections and the manager that owns their lifecycle.

Each workspace gets one live stream and two background tasks: an inbound pump
that feeds envelopes to the router in arrival order, and a stream-run task that
keeps the transport session alive. The manager's map is the only shared
in-memory structure and every access goes through a reader-writer lock.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Tuple

from core.locks import ReadWriteLock
from core.models import BotIdentity, Envelope, TenantCredentials
from core.ports import ApiPort, ConnectionFactoryPort, StreamPort

if TYPE_CHECKING:
    from core.dispatch import Router

LOGGER = logging.getLogger(__name__)


class TenantConnection:
    """One live stream plus a hot-swappable API handle for a workspace."""

    def __init__(self, tenant_id: str, stream: StreamPort, api: ApiPort) -> None:
        self.tenant_id = tenant_id
        self.stream = stream
        # (version, api) is replaced as a whole so readers never see a mix.
        self._api_ref: Tuple[int, ApiPort] = (1, api)
        self._stopping = asyncio.Event()
        self.pump_task: Optional[asyncio.Task] = None
        self.run_task: Optional[asyncio.Task] = None

    @property
    def api(self) -> ApiPort:
        return self._api_ref[1]

    @property
    def api_version(self) -> int:
        return self._api_ref[0]

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    @property
    def tasks(self) -> list[asyncio.Task]:
        return [task for task in (self.pump_task, self.run_task) if task is not None]

    def swap_api(self, api: ApiPort) -> None:
        """Replace the API handle in place; the stream keeps running."""

        version, _ = self._api_ref
        self._api_ref = (version + 1, api)

    async def ack(self, envelope: Envelope) -> None:
        await self.stream.ack(envelope)

    async def send_text(self, channel: str, text: str) -> None:
        api = self.api
        await api.send_text(channel, text)

    async def who_am_i(self) -> BotIdentity:
        api = self.api
        return await api.who_am_i()

    def start(self, router: "Router") -> None:
        """Spawn the pump and stream-run tasks."""

        self.pump_task = asyncio.create_task(
            self._pump(router), name=f"pump-{self.tenant_id}"
        )
        self.run_task = asyncio.create_task(
            self._run_stream(), name=f"stream-{self.tenant_id}"
        )

    async def stop(self) -> None:
        """Ask the pump to stop taking new envelopes and close the stream.

        Handler work already in progress is left to finish.
        """

        if self._stopping.is_set():
            return
        self._stopping.set()
        await self.stream.close()

    async def _pump(self, router: "Router") -> None:
        async for envelope in self.stream.envelopes():
            if self._stopping.is_set():
                break
            try:
                await router.dispatch(envelope, self)
            except Exception:
                LOGGER.exception(
                    "Error processing %s envelope for workspace %s",
                    envelope.type,
                    self.tenant_id,
                )
        LOGGER.debug("Pump for workspace %s finished", self.tenant_id)

    async def _run_stream(self) -> None:
        LOGGER.info("Starting Socket Mode session for workspace %s", self.tenant_id)
        try:
            await self.stream.run()
        except Exception:
            LOGGER.exception("Socket Mode session for workspace %s stopped", self.tenant_id)
        else:
            LOGGER.info("Socket Mode session for workspace %s closed", self.tenant_id)
        finally:
            # The pump must not outlive its transport session.
            await self.stop()


class TenantManager:
    """Concurrency-safe map from workspace id to its live connection."""

    def __init__(self, router: "Router", factory: ConnectionFactoryPort) -> None:
        self._router = router
        self._factory = factory
        self._tenants: dict[str, TenantConnection] = {}
        self._lock = ReadWriteLock()

    async def add_tenant(self, credentials: TenantCredentials) -> None:
        """Start a workspace, or hot-swap its API credentials if already running."""

        async with self._lock.write():
            existing = self._tenants.get(credentials.team_id)
            if existing is not None and not existing.stopping:
                existing.swap_api(self._factory.build_api(credentials))
                LOGGER.info(
                    "Refreshed credentials for workspace: %s (%s)",
                    credentials.team_name,
                    credentials.team_id,
                )
                return

            if existing is not None:
                LOGGER.info("Restarting stopped session for workspace %s", credentials.team_id)
            connection = TenantConnection(
                credentials.team_id,
                self._factory.open_stream(credentials),
                self._factory.build_api(credentials),
            )
            self._tenants[credentials.team_id] = connection
            connection.start(self._router)

        LOGGER.info("Added workspace: %s (%s)", credentials.team_name, credentials.team_id)

    async def remove_tenant(self, tenant_id: str) -> None:
        """Drop a workspace from future lookups and close its stream."""

        async with self._lock.write():
            connection = self._tenants.pop(tenant_id, None)
        if connection is None:
            return
        LOGGER.info("Removed workspace: %s", tenant_id)
        await connection.stop()

    async def get_tenant(self, tenant_id: str) -> Optional[TenantConnection]:
        async with self._lock.read():
            return self._tenants.get(tenant_id)

    async def tenant_ids(self) -> list[str]:
        async with self._lock.read():
            return sorted(self._tenants)

    async def shutdown(self, grace_seconds: float) -> None:
        """Stop every workspace and give in-flight handlers a bounded grace period."""

        async with self._lock.write():
            connections = list(self._tenants.values())
            self._tenants.clear()

        for connection in connections:
            await connection.stop()

        tasks = [task for connection in connections for task in connection.tasks]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=grace_seconds)
        if not pending:
            return
        LOGGER.warning(
            "Grace period of %ss elapsed, cancelling %s workspace task(s)",
            grace_seconds,
            len(pending),
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
