"""WebSocket entrypoint streaming realtime conversation events."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, WebSocket, status
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.api.deps import get_user_from_token
from app.config import get_settings
from app.database import get_db_session
from parley.realtime import Connection, HubUnavailableError, RealtimeHub, get_hub

router = APIRouter(tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

_DENIAL_EXTENSION = "websocket.http.response"


def _extract_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    return token or None


async def _reject(websocket: WebSocket, detail: str) -> None:
    """Refuse the upgrade with 401 where the server can send one, else close with 1008."""

    logger.info("Rejected websocket from %s: %s", websocket.client, detail)
    if _DENIAL_EXTENSION in websocket.scope.get("extensions", {}):
        await websocket.send_denial_response(
            JSONResponse({"detail": detail}, status_code=status.HTTP_401_UNAUTHORIZED)
        )
        return
    await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=detail)


async def _authenticate(websocket: WebSocket) -> int | None:
    token = _extract_token(websocket)
    if token is None:
        await _reject(websocket, "Missing token")
        return None

    try:
        with get_db_session() as db:
            return get_user_from_token(token, db).id
    except HTTPException as exc:
        await _reject(websocket, str(exc.detail))
        return None


async def _read_loop(websocket: WebSocket, connection: Connection, hub: RealtimeHub) -> None:
    """Consume client frames until the peer goes away.

    Clients are not expected to send application data; pings are answered
    and everything else is ignored.
    """

    while True:
        try:
            message = await websocket.receive()
        except (WebSocketDisconnect, RuntimeError):
            return
        if message["type"] == "websocket.disconnect":
            return

        raw = message.get("text")
        if not raw:
            continue
        if raw.strip().lower() == "ping":
            hub.send_direct(connection, {"type": "pong"})
            continue
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict) and payload.get("type") == "ping":
            hub.send_direct(connection, {"type": "pong"})


@router.websocket("/ws")
async def realtime_updates(websocket: WebSocket) -> None:
    """Push events for every conversation the authenticated user belongs to."""

    user_id = await _authenticate(websocket)
    if user_id is None:
        return

    hub = get_hub()
    await websocket.accept()
    connection = Connection(websocket, user_id, queue_size=settings.realtime_send_queue_size)
    try:
        hub.register(connection)
    except HubUnavailableError:
        logger.warning("Realtime hub unavailable; closing websocket for user %s", user_id)
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER, reason="Realtime unavailable")
        return

    hub.send_direct(
        connection,
        {"type": "connected", "payload": {"user_id": user_id, "connection_id": connection.id}},
    )
    logger.debug("Websocket %s opened for user %s", connection.id, user_id)

    reader = asyncio.create_task(_read_loop(websocket, connection, hub), name=f"ws-read-{connection.id}")
    writer = asyncio.create_task(connection.write_loop(), name=f"ws-write-{connection.id}")
    try:
        await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        hub.unregister(connection)
        for task in (reader, writer):
            if not task.done():
                task.cancel()
        for task in (reader, writer):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if websocket.application_state == WebSocketState.CONNECTED:
            with contextlib.suppress(WebSocketDisconnect, RuntimeError):
                await websocket.close()
        logger.debug("Websocket %s closed for user %s", connection.id, user_id)
