from __future__ import annotations

from fastapi import APIRouter, Depends

from lidarview.engine.lidar_viewer import LidarViewer
from lidarview.models import BasemapRequest, MapConfig
from lidarview_service.dependencies import get_viewer

router = APIRouter(prefix="/v1", tags=["map"])


@router.get("/map", response_model=MapConfig)
def get_map_config(viewer: LidarViewer = Depends(get_viewer)) -> MapConfig:
    return viewer.map_config()


@router.put("/map/basemap", response_model=MapConfig)
async def set_basemap(
    request: BasemapRequest,
    viewer: LidarViewer = Depends(get_viewer),
) -> MapConfig:
    return viewer.set_basemap(request.basemap.value)
