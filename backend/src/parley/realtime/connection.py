"""One live websocket session and its outbound queue."""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum

from fastapi import status
from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState


logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    REGISTERED = "registered"
    UNREGISTERED = "unregistered"


_CLOSE = object()

CLOSE_TIMEOUT = 5.0


class Connection:
    """A websocket bound to a single user.

    The hub control loop is the only producer for the outbound queue and
    :meth:`write_loop` is the only consumer. Closing enqueues a sentinel, so
    frames accepted before a normal close are still flushed in order.
    """

    def __init__(self, websocket: WebSocket, user_id: int, *, queue_size: int = 256) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be positive")
        self.websocket = websocket
        self.user_id = int(user_id)
        self.id = uuid.uuid4().hex[:12]
        self.queue_size = queue_size
        self.state = ConnectionState.CONNECTING
        self.close_code: int | None = None
        self.close_reason: str = ""
        self._outbox: asyncio.Queue[object] = asyncio.Queue()
        self._pending = 0
        self._writer: asyncio.Task | None = None
        self._sending = False
        self._abandon_send = False

    def __repr__(self) -> str:
        return f"<Connection {self.id} user={self.user_id} state={self.state.value}>"

    @property
    def closed(self) -> bool:
        return self.close_code is not None

    @property
    def pending(self) -> int:
        """Frames accepted but not yet written to the transport."""

        return self._pending

    def offer(self, frame: str) -> bool:
        """Queue a frame without waiting; ``False`` when closed or full."""

        if self.closed or self._pending >= self.queue_size:
            return False
        self._pending += 1
        self._outbox.put_nowait(frame)
        return True

    def close(
        self,
        code: int = status.WS_1000_NORMAL_CLOSURE,
        reason: str = "",
        *,
        discard: bool = False,
    ) -> bool:
        """Close the outbound queue. Only the first call has any effect.

        With ``discard`` the backlog is dropped and a send stuck on the
        transport is abandoned, so the close goes out next.
        """

        if self.closed:
            return False
        self.close_code = code
        self.close_reason = reason
        self.state = ConnectionState.UNREGISTERED
        if discard:
            self._abort()
        self._outbox.put_nowait(_CLOSE)
        return True

    def _abort(self) -> None:
        while True:
            try:
                self._outbox.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._pending = 0
        if self._sending and self._writer is not None and not self._writer.done():
            self._abandon_send = True
            self._writer.cancel()

    async def write_loop(self) -> None:
        """Drain the outbound queue onto the websocket until the queue is closed."""

        self._writer = asyncio.current_task()
        while True:
            item = await self._outbox.get()
            if item is _CLOSE:
                await self._close_transport()
                return
            self._pending -= 1
            self._sending = True
            try:
                await self.websocket.send_text(item)  # type: ignore[arg-type]
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.debug("Websocket send failed for %r: %s", self, exc)
                return
            except asyncio.CancelledError:
                writer = asyncio.current_task()
                if not self._abandon_send or writer is None or writer.uncancel() > 0:
                    raise
                self._abandon_send = False
                logger.debug("Abandoned stalled send on %r", self)
            finally:
                self._sending = False

    async def _close_transport(self) -> None:
        if self.websocket.application_state != WebSocketState.CONNECTED:
            return
        try:
            await asyncio.wait_for(
                self.websocket.close(
                    code=self.close_code or status.WS_1000_NORMAL_CLOSURE,
                    reason=self.close_reason or None,
                ),
                timeout=CLOSE_TIMEOUT,
            )
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Websocket close failed for %r: %s", self, exc)
        except asyncio.TimeoutError:
            logger.info("Timed out closing websocket %s for user %s", self.id, self.user_id)
