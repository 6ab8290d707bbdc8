"""
Module: webhooks.py
Description: Webhook ingestion and status/replay handlers.

Implements the HTTP surface of the webhook relay:
- POST /api/webhooks/receive/{application_name}: capture and queue a webhook
- GET /api/webhooks/events: list the caller's events
- GET /api/webhooks/events/{event_id}: one event with its attempt log
- POST /api/webhooks/replay/{event_id}: re-enqueue an event

Key Components:
- get_event_service(): Dependency returning the app's EventService
- get_tenant_id(): Dependency resolving the caller's tenant
- Domain errors mapped to HTTP status codes

Dependencies: FastAPI, typing, models, delivery
"""

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi import status as status_codes

from webhook_relay.config.settings import get_settings
from webhook_relay.delivery.service import EventService, build_event_service
from webhook_relay.errors import EventNotFoundError, TargetNotConfiguredError
from webhook_relay.models.event import EventStatus
from webhook_relay.models.request import ReplayEventRequest
from webhook_relay.models.response import EventResponse, IngestResponse, ReplayResponse
from webhook_relay.utils.logger import get_logger

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = get_logger(__name__)

# Hop-by-hop and transport headers are not part of the captured call
_DROPPED_HEADERS = {"host", "content-length", "connection", "authorization", "cookie"}


def get_event_service(request: Request) -> EventService:
    """
    Dependency to get the EventService.

    Built once per application from settings and kept on app.state,
    so every request shares the same store, registry and queue clients.

    Returns:
        Configured EventService instance
    """
    service = getattr(request.app.state, "event_service", None)
    if service is None:
        service = build_event_service(get_settings())
        request.app.state.event_service = service
    return service


def get_tenant_id(
    request: Request,
    x_tenant_id: Optional[str] = Header(default=None)
) -> str:
    """
    Resolve the caller's tenant.

    Prefers the tenant set by the API Gateway authorizer (carried in the
    Lambda event by Mangum); falls back to the X-Tenant-Id header set by
    a trusted upstream proxy.

    Raises:
        HTTPException: 401 if no tenant can be resolved
    """
    event = request.scope.get('aws.event') or {}
    context = event.get('requestContext', {}).get('authorizer', {}).get('context', {})
    tenant_id = context.get('tenantId') or x_tenant_id

    if not tenant_id:
        raise HTTPException(
            status_code=status_codes.HTTP_401_UNAUTHORIZED,
            detail="Tenant identity is required"
        )

    return tenant_id


@router.post("/receive/{application_name}", response_model=IngestResponse)
async def receive_webhook(
    application_name: str,
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    service: EventService = Depends(get_event_service)
) -> IngestResponse:
    """
    Capture an incoming webhook call and queue it for delivery.

    Delivery is asynchronous; the response only confirms the webhook
    was stored.

    Raises:
        HTTPException: 400 if the body is not JSON
        HTTPException: 404 if the application has no registered target
        HTTPException: 500 if storing or queueing fails

    Example:
        POST /api/webhooks/receive/Zoom
        {"event": "meeting.started", "payload": {...}}

        Response (200):
        {"success": true, "id": "evt_abc123def456", "application_name": "Zoom"}
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(
            status_code=status_codes.HTTP_400_BAD_REQUEST,
            detail="Request body must be valid JSON"
        )

    headers = {
        name: value
        for name, value in request.headers.items()
        if name.lower() not in _DROPPED_HEADERS
    }

    try:
        event_id = await service.receive(tenant_id, application_name, headers, payload)

    except TargetNotConfiguredError as e:
        raise HTTPException(
            status_code=status_codes.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    except Exception as e:
        logger.error(
            "Failed to receive webhook",
            tenant_id=tenant_id,
            application_name=application_name,
            error=str(e),
            error_type=type(e).__name__
        )
        raise HTTPException(
            status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to receive webhook"
        )

    return IngestResponse(id=event_id, application_name=application_name)


@router.get("/events", response_model=List[EventResponse])
async def list_events(
    status: Optional[EventStatus] = None,
    limit: int = 50,
    tenant_id: str = Depends(get_tenant_id),
    service: EventService = Depends(get_event_service)
) -> List[EventResponse]:
    """
    List the caller's events, newest first.

    Args:
        status: Optional status filter (pending, retrying, success, failed)
        limit: Maximum number of events to return (default 50, max 100)

    Raises:
        HTTPException: 400 if limit is out of range
        HTTPException: 500 if database error

    Example:
        GET /api/webhooks/events?status=failed&limit=10
    """
    if limit < 1 or limit > 100:
        raise HTTPException(
            status_code=status_codes.HTTP_400_BAD_REQUEST,
            detail="Limit must be between 1 and 100"
        )

    try:
        events = await service.list_events(
            tenant_id,
            status=status.value if status else None,
            limit=limit
        )
    except Exception as e:
        logger.error("Database error listing events", tenant_id=tenant_id, error=str(e))
        raise HTTPException(
            status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list events"
        )

    return [EventResponse.from_event(event) for event in events]


@router.get("/events/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: EventService = Depends(get_event_service)
) -> EventResponse:
    """
    Retrieve one of the caller's events with its attempt log.

    Raises:
        HTTPException: 404 if the event is unknown or not owned
    """
    try:
        event = await service.get_event(tenant_id, event_id)
    except EventNotFoundError as e:
        raise HTTPException(
            status_code=status_codes.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return EventResponse.from_event(event)


@router.post("/replay/{event_id}", response_model=ReplayResponse)
async def replay_event(
    event_id: str,
    body: Optional[ReplayEventRequest] = None,
    tenant_id: str = Depends(get_tenant_id),
    service: EventService = Depends(get_event_service)
) -> ReplayResponse:
    """
    Re-enqueue one of the caller's events for delivery.

    Attempt history is kept unless the body sets reset_history.

    Raises:
        HTTPException: 404 if the event is unknown or not owned
        HTTPException: 500 if the replay could not be queued

    Example:
        POST /api/webhooks/replay/evt_abc123def456

        Response (200):
        {"success": true, "queued": "evt_abc123def456", "reset_history": false}
    """
    reset_history = body.reset_history if body else False

    try:
        await service.replay(tenant_id, event_id, reset_history=reset_history)

    except EventNotFoundError as e:
        raise HTTPException(
            status_code=status_codes.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    except Exception as e:
        logger.error("Event replay failed", event_id=event_id, error=str(e))
        raise HTTPException(
            status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Event replay failed"
        )

    return ReplayResponse(queued=event_id, reset_history=reset_history)
