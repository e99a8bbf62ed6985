"""Deployment progress streaming endpoints."""

from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from storebuilder.api.dependencies.common import get_progress_registry
from storebuilder.services.progress_registry import ProgressRegistry

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/{deployment_id}/events")
async def deployment_events(
    deployment_id: str,
    request: Request,
    registry: ProgressRegistry = Depends(get_progress_registry),
):
    """
    Stream progress events for a deployment as server-sent events.

    Clients usually subscribe before starting the deployment with the same
    ``deployment_id``. The stream ends after a ``complete`` or ``error``
    event; the channel is removed when the client goes away.
    """
    if not deployment_id or len(deployment_id) > 100:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "invalid_deployment_id",
                "message": "deployment_id must be 1-100 characters",
                "code": "INVALID_DEPLOYMENT_ID"
            }
        )

    async def event_stream() -> AsyncIterator[str]:
        stream = registry.stream(deployment_id)
        try:
            async for frame in stream:
                yield frame
                if await request.is_disconnected():
                    break
        finally:
            await stream.aclose()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
