from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST

from lidarview.engine.lidar_viewer import LidarViewer
from lidarview.settings import Settings
from lidarview_service.dependencies import get_runtime_settings, get_viewer
from lidarview_service.observability import render_metrics

router = APIRouter(prefix="/v1", tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
def metrics(
    viewer: LidarViewer = Depends(get_viewer),
    settings: Settings = Depends(get_runtime_settings),
) -> Response:
    if not settings.lidar_enable_metrics:
        raise HTTPException(status_code=404, detail="Metrics disabled.")
    body = render_metrics(viewer)
    return Response(content=body, media_type=CONTENT_TYPE_LATEST)
