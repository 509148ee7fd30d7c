from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from lidarview.catalog import DatasetNotFoundError
from lidarview.engine.lidar_viewer import LidarViewer
from lidarview.models import (
    DatasetStatus,
    LoadingView,
    SelectionResponse,
    ToggleRequest,
    ToggleResponse,
)
from lidarview_service.dependencies import get_viewer
from lidarview_service.observability import record_toggle

router = APIRouter(prefix="/v1", tags=["datasets"])


@router.get("/datasets", response_model=list[DatasetStatus])
def list_datasets(viewer: LidarViewer = Depends(get_viewer)) -> list[DatasetStatus]:
    return viewer.list_datasets()


@router.get("/selection", response_model=SelectionResponse)
def get_selection(viewer: LidarViewer = Depends(get_viewer)) -> SelectionResponse:
    return viewer.get_selection()


@router.post("/selection/toggle", response_model=ToggleResponse)
async def toggle_dataset(
    request: ToggleRequest,
    viewer: LidarViewer = Depends(get_viewer),
) -> ToggleResponse:
    try:
        if request.dataset_id is not None:
            response = viewer.toggle_dataset(request.dataset_id)
        else:
            response = viewer.toggle(str(request.source))
    except DatasetNotFoundError as exc:
        target = request.dataset_id or request.source
        raise HTTPException(status_code=404, detail=f"Dataset '{target}' not found.") from exc
    record_toggle(response.active_now)
    return response


@router.get("/loading", response_model=LoadingView)
def get_loading(viewer: LidarViewer = Depends(get_viewer)) -> LoadingView:
    return viewer.loading()


@router.get("/ledger")
def get_ledger(viewer: LidarViewer = Depends(get_viewer)) -> dict[str, str]:
    return viewer.ledger()
