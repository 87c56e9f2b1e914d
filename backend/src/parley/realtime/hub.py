"""Single-owner registry of live websocket connections.

Every mutation of the registry happens inside one asyncio task, the control
loop. Other code talks to it by enqueueing commands: ``register``,
``unregister``, ``submit`` and ``send_direct`` are non-blocking and may be
called from worker threads as well as from the event loop. Commands are
processed strictly in the order they were enqueued.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Mapping

from fastapi import status

from app.config import get_settings
from app.monitoring.metrics import (
    realtime_connections,
    realtime_deliveries_total,
    realtime_disconnects_total,
    realtime_events_dropped_total,
    realtime_events_total,
)

from .connection import Connection, ConnectionState
from .events import Event, encode_frame


logger = logging.getLogger(__name__)

BACKPRESSURE_CLOSE_CODE = status.WS_1013_TRY_AGAIN_LATER
SHUTDOWN_CLOSE_CODE = status.WS_1001_GOING_AWAY


class HubUnavailableError(RuntimeError):
    """Raised when a connection is handed to a hub that is not running."""


@dataclass(frozen=True, slots=True)
class HubStats:
    users: int
    connections: int


@dataclass(slots=True)
class _Register:
    connection: Connection


@dataclass(slots=True)
class _Unregister:
    connection: Connection
    code: int
    reason: str


@dataclass(slots=True)
class _Submit:
    event: Event


@dataclass(slots=True)
class _Direct:
    connection: Connection
    frame: str


@dataclass(slots=True)
class _Query:
    future: asyncio.Future


@dataclass(slots=True)
class _Stop:
    pass


class RealtimeHub:
    """Routes events to the connections of their recipients."""

    def __init__(self, *, max_pending_events: int = 1024) -> None:
        self.max_pending_events = max_pending_events
        self._registry: dict[int, set[Connection]] = {}
        self._inbox: asyncio.Queue[object] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None
        self._accepting = False
        self._pending_events = 0
        self._pending_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._accepting and self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._inbox = asyncio.Queue()
        self._registry = {}
        with self._pending_lock:
            self._pending_events = 0
        realtime_connections.set(0)
        self._accepting = True
        self._task = self._loop.create_task(self._run(), name="realtime-hub")
        logger.info("Realtime hub started")

    async def stop(self) -> None:
        """Close every connection and wait for the control loop to exit."""

        if not self.running:
            return
        self._enqueue(_Stop())
        self._accepting = False
        task = self._task
        if task is not None:
            await task
        self._task = None
        logger.info("Realtime hub stopped")

    # ------------------------------------------------------------------
    # Public, non-blocking API
    # ------------------------------------------------------------------

    def register(self, connection: Connection) -> None:
        if not self.running:
            raise HubUnavailableError("Realtime hub is not running")
        if not self._enqueue(_Register(connection)):
            raise HubUnavailableError("Realtime hub loop is closed")

    def unregister(
        self,
        connection: Connection,
        *,
        code: int = status.WS_1000_NORMAL_CLOSURE,
        reason: str = "",
    ) -> None:
        """Remove ``connection`` and close its queue; repeated calls are harmless."""

        if not self.running:
            connection.close(code, reason)
            return
        self._enqueue(_Unregister(connection, code, reason))

    def submit(self, event: Event) -> bool:
        """Queue ``event`` for fan-out. Returns ``False`` if it was discarded."""

        kind = event.kind.value
        if not self.running:
            logger.debug("Realtime hub not running; discarding %s event", kind)
            realtime_events_dropped_total.labels(kind, "hub_unavailable").inc()
            return False

        with self._pending_lock:
            if self._pending_events >= self.max_pending_events:
                full = True
            else:
                full = False
                self._pending_events += 1
        if full:
            logger.warning(
                "Realtime hub inbox full (%d events); discarding %s event",
                self.max_pending_events,
                kind,
            )
            realtime_events_dropped_total.labels(kind, "inbox_full").inc()
            return False

        if not self._enqueue(_Submit(event)):
            with self._pending_lock:
                self._pending_events -= 1
            realtime_events_dropped_total.labels(kind, "hub_unavailable").inc()
            return False
        return True

    def send_direct(self, connection: Connection, payload: Mapping[str, Any]) -> None:
        """Deliver a frame to one registered connection, in order with other events."""

        if self.running:
            self._enqueue(_Direct(connection, encode_frame(payload)))

    async def flush(self) -> None:
        """Wait until every command enqueued before this call has been processed."""

        await self.stats()

    async def stats(self) -> HubStats:
        if not self.running:
            return HubStats(users=0, connections=0)
        future = asyncio.get_running_loop().create_future()
        self._enqueue(_Query(future))
        return await future

    # ------------------------------------------------------------------
    # Control loop
    # ------------------------------------------------------------------

    def _enqueue(self, command: object) -> bool:
        loop, inbox = self._loop, self._inbox
        if loop is None or inbox is None:
            return False
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        if current is loop:
            inbox.put_nowait(command)
            return True
        try:
            loop.call_soon_threadsafe(inbox.put_nowait, command)
        except RuntimeError:
            logger.debug("Realtime hub loop closed; dropping %s", type(command).__name__)
            return False
        return True

    async def _run(self) -> None:
        inbox = self._inbox
        if inbox is None:
            raise HubUnavailableError("Realtime hub was not started")
        while True:
            command = await inbox.get()
            if isinstance(command, _Stop):
                self._shutdown(inbox)
                return
            try:
                self._dispatch(command)
            except Exception:
                logger.exception("Realtime hub failed to process %s", type(command).__name__)
            # get() does not suspend on a non-empty queue; let write loops drain.
            await asyncio.sleep(0)

    def _dispatch(self, command: object) -> None:
        if isinstance(command, _Submit):
            with self._pending_lock:
                self._pending_events -= 1
            self._deliver(command.event)
        elif isinstance(command, _Register):
            self._add(command.connection)
        elif isinstance(command, _Unregister):
            self._remove(command.connection, code=command.code, reason=command.reason, cause="closed")
        elif isinstance(command, _Direct):
            self._offer(command.connection, command.frame)
        elif isinstance(command, _Query):
            if not command.future.done():
                command.future.set_result(self._snapshot_stats())

    def _add(self, connection: Connection) -> None:
        if connection.state is ConnectionState.UNREGISTERED:
            logger.debug("Ignoring registration of closed connection %r", connection)
            return
        bucket = self._registry.setdefault(connection.user_id, set())
        if connection in bucket:
            return
        bucket.add(connection)
        connection.state = ConnectionState.REGISTERED
        realtime_connections.inc()
        logger.debug("Registered %r (%d for user)", connection, len(bucket))

    def _remove(
        self,
        connection: Connection,
        *,
        code: int,
        reason: str,
        cause: str,
        discard: bool = False,
    ) -> None:
        bucket = self._registry.get(connection.user_id)
        removed = bucket is not None and connection in bucket
        if removed:
            bucket.discard(connection)
            if not bucket:
                del self._registry[connection.user_id]
            realtime_connections.dec()
            realtime_disconnects_total.labels(cause).inc()
            logger.debug("Unregistered %r (%s)", connection, cause)
        connection.close(code, reason, discard=discard)

    def _targets(self, event: Event) -> list[Connection]:
        if event.is_broadcast:
            return [conn for bucket in self._registry.values() for conn in bucket]
        targets: list[Connection] = []
        for user_id in event.recipients:
            targets.extend(self._registry.get(user_id, ()))
        return targets

    def _deliver(self, event: Event) -> None:
        kind = event.kind.value
        try:
            frame = event.encode()
        except (TypeError, ValueError):
            logger.warning("Unable to serialize %s event", kind, exc_info=logger.isEnabledFor(logging.DEBUG))
            realtime_events_total.labels(kind, "invalid").inc()
            return

        targets = self._targets(event)
        if not targets:
            realtime_events_total.labels(kind, "no_listeners").inc()
            return

        delivered = 0
        for connection in targets:
            if self._offer(connection, frame):
                delivered += 1
        if delivered:
            realtime_deliveries_total.labels(kind).inc(delivered)
        realtime_events_total.labels(kind, "routed").inc()

    def _offer(self, connection: Connection, frame: str) -> bool:
        if connection not in self._registry.get(connection.user_id, ()):
            return False
        if connection.offer(frame):
            return True
        logger.warning(
            "Disconnecting slow websocket %s for user %s: %d frames pending",
            connection.id,
            connection.user_id,
            connection.pending,
        )
        self._remove(
            connection,
            code=BACKPRESSURE_CLOSE_CODE,
            reason="Outbound queue overflow",
            cause="backpressure",
            discard=True,
        )
        return False

    def _snapshot_stats(self) -> HubStats:
        return HubStats(
            users=len(self._registry),
            connections=sum(len(bucket) for bucket in self._registry.values()),
        )

    def _shutdown(self, inbox: asyncio.Queue[object]) -> None:
        for bucket in list(self._registry.values()):
            for connection in list(bucket):
                self._remove(
                    connection,
                    code=SHUTDOWN_CLOSE_CODE,
                    reason="Server shutting down",
                    cause="shutdown",
                )
        self._registry.clear()
        realtime_connections.set(0)

        # Release anyone awaiting a barrier queued behind the stop command.
        while not inbox.empty():
            command = inbox.get_nowait()
            if isinstance(command, _Query) and not command.future.done():
                command.future.set_result(HubStats(users=0, connections=0))
            elif isinstance(command, (_Register, _Unregister)):
                command.connection.close(SHUTDOWN_CLOSE_CODE, "Server shutting down")


settings = get_settings()

hub = RealtimeHub(max_pending_events=settings.realtime_max_pending_events)


async def startup_realtime() -> None:
    await hub.start()


async def shutdown_realtime() -> None:
    await hub.stop()


def get_hub() -> RealtimeHub:
    return hub


__all__ = [
    "RealtimeHub",
    "HubStats",
    "HubUnavailableError",
    "BACKPRESSURE_CLOSE_CODE",
    "SHUTDOWN_CLOSE_CODE",
    "hub",
    "get_hub",
    "startup_realtime",
    "shutdown_realtime",
]
