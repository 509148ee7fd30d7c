from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from lidarview.engine.lidar_viewer import LidarViewer
from lidarview.settings import Settings
from lidarview_service.dependencies import get_runtime_settings, get_viewer

router = APIRouter(prefix="/v1", tags=["health"])


@router.get("/health")
def healthcheck(
    settings: Settings = Depends(get_runtime_settings),
    viewer: LidarViewer = Depends(get_viewer),
) -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "control_backend": settings.control_backend,
        "control_ready": str(viewer.control_ready).lower(),
        "datasets": str(len(viewer.catalog)),
        "metrics_enabled": str(bool(settings.lidar_enable_metrics)).lower(),
    }
