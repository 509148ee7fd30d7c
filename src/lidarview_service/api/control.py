from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from lidarview.control.bridge import (
    BridgePointCloudControl,
    CommandStreamClosedError,
    UnknownLoadRequestError,
)
from lidarview.engine.lidar_viewer import LidarViewer
from lidarview.models import ControlState, LoadOutcome
from lidarview_service.api.events import SSE_HEADERS
from lidarview_service.dependencies import get_bridge, get_viewer

router = APIRouter(prefix="/v1/control", tags=["control"])

KEEPALIVE_SECONDS = 15.0


@router.get("/commands")
async def commands(bridge: BridgePointCloudControl = Depends(get_bridge)) -> StreamingResponse:
    # Claimed when the page connects; an older page loses its stream.
    stream = bridge.claim_commands()

    async def command_stream():
        while True:
            try:
                command = await bridge.next_command(timeout=KEEPALIVE_SECONDS, stream=stream)
            except CommandStreamClosedError:
                yield "event: superseded\ndata: {}\n\n"
                return
            if command is None:
                yield ": keepalive\n\n"
                continue
            yield f"event: {command.action}\n"
            yield f"data: {command.model_dump_json()}\n\n"

    return StreamingResponse(
        command_stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/ready", status_code=status.HTTP_202_ACCEPTED)
async def control_ready(
    bridge: BridgePointCloudControl = Depends(get_bridge),
    viewer: LidarViewer = Depends(get_viewer),
) -> dict[str, object]:
    # A page reload reports ready again; the bridge treats that as a reset.
    bridge.mark_ready()
    return {"control_ready": viewer.control_ready, "active": list(viewer.selection)}


@router.post("/loads/{request_id}", status_code=status.HTTP_202_ACCEPTED)
async def load_outcome(
    request_id: str,
    outcome: LoadOutcome,
    bridge: BridgePointCloudControl = Depends(get_bridge),
) -> dict[str, str]:
    try:
        if outcome.resource_id is not None:
            bridge.resolve_load(request_id, outcome.resource_id)
        else:
            bridge.reject_load(request_id, str(outcome.error))
    except UnknownLoadRequestError as exc:
        raise HTTPException(
            status_code=404,
            detail=f"Load request '{request_id}' is not pending.",
        ) from exc
    return {"request_id": request_id, "status": "accepted"}


@router.post("/state", status_code=status.HTTP_202_ACCEPTED)
async def report_state(
    state: ControlState,
    bridge: BridgePointCloudControl = Depends(get_bridge),
) -> dict[str, str]:
    bridge.report_state(state)
    return {"status": "accepted"}
