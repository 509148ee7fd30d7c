from __future__ import annotations

from fastapi import HTTPException, Request, status

from lidarview.control.bridge import BridgePointCloudControl
from lidarview.engine.lidar_viewer import LidarViewer
from lidarview.settings import Settings


def get_viewer(request: Request) -> LidarViewer:
    viewer = getattr(request.app.state, "viewer", None)
    if viewer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Viewer is not ready.",
        )
    return viewer


def get_runtime_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Settings are not ready.",
        )
    return settings


def get_bridge(request: Request) -> BridgePointCloudControl:
    viewer = get_viewer(request)
    control = viewer.control
    if not isinstance(control, BridgePointCloudControl):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The point-cloud control is not running in bridge mode.",
        )
    return control
