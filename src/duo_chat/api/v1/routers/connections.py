from __future__ import annotations

import logging

from fastapi import APIRouter, Query

from duo_chat.api.deps import CurrentPrincipal, NotifierDep, UoWDep
from duo_chat.api.v1.schemas.connection import ConnectionResponse, CurrentConnectionResponse
from duo_chat.api.v1.schemas.connection_request import (
    ConnectionRequestResponse,
    SendRequestBody,
)
from duo_chat.api.v1.schemas.message import MessageResponse
from duo_chat.application.exceptions import UnauthorizedError
from duo_chat.services import connection_service, message_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["connections"])


@router.post("/connection-requests", response_model=ConnectionRequestResponse, status_code=201)
async def send_request(
    body: SendRequestBody,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> ConnectionRequestResponse:
    request = await connection_service.send_request(
        principal.user_id, body.to_username.strip(), uow, notifier,
    )
    return ConnectionRequestResponse.model_validate(request)


@router.get("/connection-requests/{username}", response_model=list[ConnectionRequestResponse])
async def list_pending_requests(
    username: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> list[ConnectionRequestResponse]:
    if username != principal.username:
        logger.warning("User %d asked for pending requests of %s", principal.user_id, username)
        raise UnauthorizedError("Can only list your own requests")
    requests = await connection_service.list_pending_requests(username, uow)
    return [ConnectionRequestResponse.model_validate(r) for r in requests]


@router.post("/connection-requests/{request_id}/accept", response_model=ConnectionResponse)
async def accept_request(
    request_id: int,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> ConnectionResponse:
    connection = await connection_service.accept(request_id, principal.user_id, uow, notifier)
    return ConnectionResponse.model_validate(connection)


@router.post("/connection-requests/{request_id}/reject", status_code=204)
async def reject_request(
    request_id: int,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await connection_service.reject(request_id, principal.user_id, uow)


@router.post("/connections/{connection_id}/disconnect", response_model=ConnectionResponse)
async def disconnect(
    connection_id: int,
    principal: CurrentPrincipal,
    uow: UoWDep,
    notifier: NotifierDep,
) -> ConnectionResponse:
    connection = await connection_service.disconnect(
        connection_id, principal.user_id, uow, notifier,
    )
    return ConnectionResponse.model_validate(connection)


@router.get("/connections/current", response_model=CurrentConnectionResponse | None)
async def current_connection(
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> CurrentConnectionResponse | None:
    current = await connection_service.get_current_connection(principal.user_id, uow)
    if current is None:
        return None
    return CurrentConnectionResponse.model_validate(current)


@router.get("/connections/{connection_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    connection_id: int,
    principal: CurrentPrincipal,
    uow: UoWDep,
    limit: int = Query(50),
    offset: int = Query(0),
) -> list[MessageResponse]:
    messages = await message_service.list_messages(
        connection_id, principal.user_id, limit, offset, uow,
    )
    return [MessageResponse.model_validate(m) for m in messages]
