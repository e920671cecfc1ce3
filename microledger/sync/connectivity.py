"""
Connectivity Signal

The application needs a boolean "is connected" query and two events,
became-connected and became-disconnected. Listeners are coroutines and
are awaited in registration order, so a became-connected handler can
finish replaying the queue before anything else reacts.

Two monitors:
- ManualConnectivity: the embedding code says when the network is up
- RemoteProbeConnectivity: polls the remote store's ``ping()``
"""

import asyncio
from typing import Awaitable, Callable, Optional

from microledger.audit import AuditLogger
from microledger.models.audit import AuditEventBuilder
from microledger.services.remote import RemoteStoreInterface


Listener = Callable[[], Awaitable[None]]


class ConnectivityMonitor:
    """Base class: holds the current state and notifies listeners on change."""

    def __init__(self, connected: bool = False, audit_logger: Optional[AuditLogger] = None):
        self._connected = connected
        self._audit = audit_logger or AuditLogger()
        self._on_connected: list[Listener] = []
        self._on_disconnected: list[Listener] = []

    @property
    def is_connected(self) -> bool:
        return self._connected

    def subscribe(
        self,
        on_connected: Optional[Listener] = None,
        on_disconnected: Optional[Listener] = None,
    ) -> None:
        if on_connected is not None:
            self._on_connected.append(on_connected)
        if on_disconnected is not None:
            self._on_disconnected.append(on_disconnected)

    async def _transition(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        self._audit.log(AuditEventBuilder.connectivity_changed(connected))
        for listener in list(self._on_connected if connected else self._on_disconnected):
            await listener()

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class ManualConnectivity(ConnectivityMonitor):
    """Connectivity set explicitly by the caller."""

    async def set_connected(self, connected: bool) -> None:
        """Change state; listeners run only on an actual transition."""
        await self._transition(connected)


class RemoteProbeConnectivity(ConnectivityMonitor):
    """Polls the remote store and reports transitions."""

    def __init__(
        self,
        remote: RemoteStoreInterface,
        interval_seconds: float = 30.0,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(connected=False, audit_logger=audit_logger)
        self._remote = remote
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def probe(self) -> bool:
        """Ping once and emit a transition if the answer changed."""
        connected = await self._remote.ping()
        await self._transition(connected)
        return connected

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.probe()

    async def start(self) -> None:
        """Probe immediately, then keep polling in the background."""
        await self.probe()
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._poll())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
