from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from duo_chat.api.deps import get_hub, get_uow_factory, get_verifier
from duo_chat.application.dto.principal import Principal
from duo_chat.application.ports.auth import TokenVerifier
from duo_chat.application.uow import UoWFactory
from duo_chat.config import settings
from duo_chat.infrastructure.ws.hub import RealtimeHub
from duo_chat.infrastructure.ws.protocol import Outbound, encode_outbound
from duo_chat.infrastructure.ws.router import RealtimeRouter

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


async def _authenticate(verifier: TokenVerifier, token: str) -> Principal | None:
    try:
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    hub: Annotated[RealtimeHub, Depends(get_hub)],
    uow_factory: Annotated[UoWFactory, Depends(get_uow_factory)],
    verifier: Annotated[TokenVerifier, Depends(get_verifier)],
    token: str = Query(...),
) -> None:
    principal = await _authenticate(verifier, token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    await websocket.accept()
    realtime = RealtimeRouter(hub, principal, websocket, uow_factory)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{realtime.transport_id}",
    )
    try:
        while True:
            raw = await websocket.receive_text()
            await realtime.handle(raw)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for user %d on %s", principal.user_id, realtime.transport_id)
    finally:
        heartbeat_task.cancel()
        await realtime.close()


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    frame = encode_outbound(Outbound.PONG, {})
    try:
        while True:
            await asyncio.sleep(interval)
            await ws.send_text(frame)
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Heartbeat stopped", exc_info=True)
