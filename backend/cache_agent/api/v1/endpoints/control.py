"""
Agent control endpoints.

Partition inspection, client messages, push delivery, notification clicks,
background sync and version installs.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from cache_agent.api.v1.shared.dependencies import get_agent
from cache_agent.models.agent import (
    InstallRequest,
    InstallResponse,
    MessageAck,
    NotificationClick,
    NotificationClickResult,
    NotificationEvent,
    PartitionInfo,
    PartitionListResponse,
    PushAccepted,
    SyncRequest,
    SyncResult,
)
from cache_agent.services.agent import AgentHost
from cache_agent.services.events import EventKind
from cache_agent.services.messaging import UnsupportedMessage
from cache_agent.services.partitions import PartitionNames
from cache_agent.services.sync import BACKGROUND_SYNC_TAG

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/partitions", response_model=PartitionListResponse)
async def list_partitions(agent: AgentHost = Depends(get_agent)) -> PartitionListResponse:
    """List every stored partition with its entry count."""
    active = agent.lifecycle.active
    allow_list = active.names.allow_list if active else frozenset()
    names = PartitionNames(agent.settings.cache_name_prefix, agent.settings.cache_version)
    partitions = []
    for name in sorted(await agent.store.list_partitions()):
        partitions.append(
            PartitionInfo(
                name=name,
                kind=names.kind_of(name),
                entries=await agent.store.count(name),
                current=name in allow_list,
            )
        )
    return PartitionListResponse(version=agent.lifecycle.version, partitions=partitions)


@router.post("/messages", response_model=MessageAck)
async def post_message(
    message: dict[str, Any] = Body(...),
    agent: AgentHost = Depends(get_agent),
) -> MessageAck:
    """Handle a SKIP_WAITING or CLEAR_CACHE control message."""
    try:
        return await agent.dispatch(EventKind.MESSAGE, message=message)
    except UnsupportedMessage as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc


@router.post(
    "/push",
    response_model=PushAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def receive_push(
    payload: Any = Body(...),
    agent: AgentHost = Depends(get_agent),
) -> PushAccepted:
    """Display a notification for an incoming push message."""
    notification = await agent.dispatch(EventKind.PUSH, data=payload)
    if notification is None:
        return PushAccepted(accepted=False)
    return PushAccepted(accepted=True, tag=notification.tag)


@router.get("/notifications", response_model=list[NotificationEvent])
async def list_notifications(
    agent: AgentHost = Depends(get_agent),
) -> list[NotificationEvent]:
    """Notifications currently on display."""
    return agent.notifications.tray.list()


@router.post("/notifications/{tag}/click", response_model=NotificationClickResult)
async def click_notification(
    tag: str,
    click: NotificationClick | None = None,
    agent: AgentHost = Depends(get_agent),
) -> NotificationClickResult:
    client = await agent.dispatch(
        EventKind.NOTIFICATION_CLICK, tag=tag, action=click.action if click else ""
    )
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Notification '{tag}' is not displayed.",
        )
    return NotificationClickResult(client_id=client.client_id, connected=client.connected)


@router.post("/sync", response_model=SyncResult)
async def trigger_sync(
    request: SyncRequest | None = None,
    agent: AgentHost = Depends(get_agent),
) -> SyncResult:
    """Signal that connectivity was restored."""
    request = request or SyncRequest()
    purged = await agent.dispatch(EventKind.SYNC, tag=request.tag)
    return SyncResult(
        tag=request.tag,
        handled=request.tag == BACKGROUND_SYNC_TAG,
        purged=purged,
    )


@router.post("/lifecycle/install", response_model=InstallResponse)
async def install_version(
    request: InstallRequest,
    agent: AgentHost = Depends(get_agent),
) -> InstallResponse:
    """Install (and, depending on configuration, activate) a cache version."""
    summary = await agent.dispatch(EventKind.INSTALL, version=request.version)
    if agent.lifecycle.version == request.version:
        state = "active"
    else:
        state = "waiting"
    return InstallResponse(
        version=summary.version,
        state=state,
        cached=summary.cached,
        failed=summary.failed,
    )
