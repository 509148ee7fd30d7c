from __future__ import annotations

import json

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from lidarview.engine.lidar_viewer import LidarViewer
from lidarview_service.dependencies import get_viewer

router = APIRouter(prefix="/v1", tags=["events"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/events")
async def events(
    since: int | None = None,
    viewer: LidarViewer = Depends(get_viewer),
) -> StreamingResponse:
    async def event_stream():
        async for event in viewer.stream_events(since=since):
            payload = event.model_dump(mode="json")
            event_id = payload.get("id")
            if event_id is not None:
                yield f"id: {event_id}\n"
            yield f"event: {payload['type']}\n"
            yield f"data: {json.dumps(payload)}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
