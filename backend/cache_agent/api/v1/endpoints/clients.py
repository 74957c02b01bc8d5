"""
Foreground client WebSocket.

A foreground connects with its current URL, receives queued client messages
and may send SKIP_WAITING / CLEAR_CACHE control messages, each answered with
an acknowledgement.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from cache_agent.api.v1.shared.dependencies import get_ws_agent
from cache_agent.services.agent import AgentHost
from cache_agent.services.clients import ForegroundClient
from cache_agent.services.events import EventKind
from cache_agent.services.messaging import UnsupportedMessage

logger = logging.getLogger(__name__)

router = APIRouter()


async def _pump_outbox(websocket: WebSocket, client: ForegroundClient) -> None:
    while True:
        message = await client.outbox.get()
        await websocket.send_json(message)


@router.websocket("/clients/ws")
async def client_socket(
    websocket: WebSocket,
    url: str = "/",
    client_id: str | None = None,
    agent: AgentHost = Depends(get_ws_agent),
) -> None:
    await websocket.accept()
    client = agent.clients.connect(url, client_id)
    await websocket.send_json(
        {
            "type": "CONNECTED",
            "clientId": client.client_id,
            "controller": client.controller,
        }
    )
    pump = asyncio.create_task(_pump_outbox(websocket, client))
    try:
        while True:
            try:
                raw = await websocket.receive_json()
            except ValueError as exc:
                logger.info("Undecodable frame from %s: %s", client.client_id, exc)
                await websocket.send_json(
                    {"type": "ERROR", "detail": "Client message must be JSON"}
                )
                continue
            try:
                ack = await agent.dispatch(EventKind.MESSAGE, message=raw)
            except UnsupportedMessage as exc:
                logger.info("Rejected client message from %s: %s", client.client_id, exc)
                await websocket.send_json({"type": "ERROR", "detail": str(exc)})
            else:
                await websocket.send_json(
                    {
                        "type": "ACK",
                        "message": ack.type.value,
                        "detail": ack.detail,
                    }
                )
    except WebSocketDisconnect:
        logger.debug("Client %s closed its socket", client.client_id)
    finally:
        pump.cancel()
        agent.clients.disconnect(client.client_id)
