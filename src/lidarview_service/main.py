from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from lidarview.catalog import DatasetNotFoundError
from lidarview.engine.lidar_viewer import LidarViewer, UnknownBasemapError
from lidarview.settings import Settings, get_settings
from lidarview_service.api.control import router as control_router
from lidarview_service.api.datasets import router as datasets_router
from lidarview_service.api.events import router as events_router
from lidarview_service.api.health import router as health_router
from lidarview_service.api.map import router as map_router
from lidarview_service.api.metrics import router as metrics_router
from lidarview_service.dependencies import get_viewer
from lidarview_service.logging_config import configure_logging
from lidarview_service.middleware import (
    APIKeyMiddleware,
    MaxBodySizeMiddleware,
    RequestTelemetryMiddleware,
)
from lidarview_service.observability import install_viewer_metrics
from lidarview_service.pages import render_viewer_page


def create_app(settings: Settings | None = None, viewer: LidarViewer | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        session = viewer or LidarViewer(settings=settings)
        remove_metrics = install_viewer_metrics(session)
        await session.start()
        app.state.viewer = session
        app.state.settings = settings
        try:
            yield
        finally:
            remove_metrics()
            await session.stop()
            app.state.viewer = None

    app = FastAPI(
        title="Lidar Viewer Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(RequestTelemetryMiddleware)
    app.add_middleware(MaxBodySizeMiddleware, max_body_bytes=settings.lidar_max_request_mb * 1024 * 1024)
    app.add_middleware(APIKeyMiddleware, api_key=settings.lidar_api_key)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(DatasetNotFoundError)
    async def _dataset_not_found(request: Request, exc: DatasetNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": f"Dataset {exc} not found."})

    @app.exception_handler(UnknownBasemapError)
    async def _unknown_basemap(request: Request, exc: UnknownBasemapError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": f"Basemap {exc} not found."})

    app.include_router(health_router)
    app.include_router(datasets_router)
    app.include_router(map_router)
    app.include_router(events_router)
    app.include_router(control_router)
    app.include_router(metrics_router)

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    def root_page(request: Request) -> str:
        session = get_viewer(request)
        return render_viewer_page(
            title=settings.lidar_viewer_title,
            backend=settings.control_backend,
            map_config=session.map_config(),
            datasets=session.list_datasets(),
        )

    return app


def serve() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "lidarview_service.main:app",
        host=settings.lidar_host,
        port=settings.lidar_port,
        log_config=None,
    )


settings = get_settings()
configure_logging(level=settings.lidar_log_level, json_logs=settings.lidar_log_json)
app = create_app(settings)
